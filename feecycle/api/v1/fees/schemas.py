"""Fee record schemas."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from feecycle.api.v1.credits.schemas import StudentCreditResponse
from feecycle.core.enums import FeeStatus, PaymentMethod


class FeeRecordResponse(BaseModel):
    id: UUID
    student_id: UUID
    student_name: str
    stage: str
    level: Optional[int] = None
    fee_month: str
    due_date: datetime
    fee_amount: int
    paid_amount: int
    remaining_amount: int
    payment_percentage: int
    status: FeeStatus
    payment_date: Optional[datetime] = None
    payment_method: Optional[str] = None
    transaction_id: Optional[str] = None
    remarks: Optional[str] = None
    updated_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime


class FeePaymentUpdate(BaseModel):
    """
    Partial update of a fee record's payment fields.

    Sending payment_date with no (or zero) paid_amount records a full payment;
    sending payment_date: null clears the payment and resets paid_amount to 0.
    Identity fields (student, month, due date, fee amount) are not part of this schema.
    """

    paid_amount: Optional[int] = Field(None, ge=0)
    payment_date: Optional[datetime] = None
    payment_method: Optional[PaymentMethod] = None
    transaction_id: Optional[str] = Field(None, max_length=100)
    remarks: Optional[str] = Field(None, max_length=500)


class BulkPaymentMonth(BaseModel):
    fee_month: str = Field(..., max_length=50, description="YYYY-MM (legacy 'January 2025' also accepted)")


class BulkPaymentCreate(BaseModel):
    student_id: UUID
    months: List[BulkPaymentMonth] = Field(default_factory=list)
    payment_date: Optional[datetime] = None
    payment_method: PaymentMethod
    transaction_id: Optional[str] = Field(None, max_length=100)
    remarks: Optional[str] = Field(None, max_length=500)
    paid_amount: Optional[int] = Field(
        None,
        gt=0,
        description="Amount per month (capped at the monthly fee); for a student without a batch, the total credited",
    )


class BulkPaymentResult(BaseModel):
    routed_to_credit: bool
    credit: Optional[StudentCreditResponse] = None
    fee_records: List[FeeRecordResponse] = []
    next_fee_record: Optional[FeeRecordResponse] = None
    message: str


class PayableFeesResponse(BaseModel):
    overdue: List[FeeRecordResponse]
    next_upcoming: Optional[FeeRecordResponse] = None


class GenerationResult(BaseModel):
    student_id: UUID
    created: List[FeeRecordResponse]
