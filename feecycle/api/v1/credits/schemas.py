"""Credit ledger schemas."""

from datetime import datetime
from typing import Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from feecycle.core.enums import CreditTransactionType, PaymentMethod


class CreditCreate(BaseModel):
    student_id: UUID
    amount: int = Field(..., gt=0)
    description: Optional[str] = Field(None, max_length=500)
    payment_method: Optional[PaymentMethod] = None
    transaction_id: Optional[str] = Field(None, max_length=100)
    paid_date: Optional[datetime] = None
    remarks: Optional[str] = Field(None, max_length=500)


class CreditRefundCreate(BaseModel):
    student_id: UUID
    amount: int = Field(..., gt=0)
    description: str = Field(..., max_length=500)
    fee_record_id: Optional[UUID] = None
    remarks: Optional[str] = Field(None, max_length=500)


class CreditAdjustmentCreate(BaseModel):
    student_id: UUID
    amount: int = Field(..., description="Signed: positive adds credit, negative removes it")
    description: str = Field(..., max_length=500)
    remarks: Optional[str] = Field(None, max_length=500)

    @field_validator("amount")
    @classmethod
    def amount_not_zero(cls, value: int) -> int:
        if value == 0:
            raise ValueError("Adjustment amount cannot be zero")
        return value


class StudentCreditResponse(BaseModel):
    id: UUID
    student_id: UUID
    student_name: str
    transaction_type: CreditTransactionType
    amount: int
    balance_before: int
    balance_after: int
    description: str
    payment_method: Optional[str] = None
    transaction_id: Optional[str] = None
    fee_record_id: Optional[UUID] = None
    fee_month: Optional[str] = None
    processed_by: Optional[UUID] = None
    processed_at: datetime
    remarks: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class CreditBalanceResponse(BaseModel):
    student_id: UUID
    balance: int


class CreditApplicationResult(BaseModel):
    amount_used: int
    obligations_touched: int
    remaining_balance: int


class CreditSummaryResponse(BaseModel):
    balances: Dict[UUID, int]
