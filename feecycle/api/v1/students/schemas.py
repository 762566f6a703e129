"""Student lifecycle schemas."""

from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from feecycle.api.v1.batches.schemas import BatchAssignmentResult
from feecycle.core.enums import Stage


class StudentCreate(BaseModel):
    student_name: str = Field(..., min_length=1, max_length=100)
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=20)
    stage: Stage
    level: int = Field(1, ge=1, le=3)
    enrollment_date: Optional[date] = Field(None, description="Defaults to today")
    batch_id: Optional[UUID] = None


class StudentResponse(BaseModel):
    id: UUID
    student_code: str
    student_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    stage: Optional[str] = None
    level: Optional[int] = None
    batch_id: Optional[UUID] = None
    enrollment_date: Optional[date] = None
    fee_cycle_start_date: Optional[date] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class StudentCreateResult(BaseModel):
    student: StudentResponse
    batch_assignment: Optional[BatchAssignmentResult] = None
    message: Optional[str] = None


class StudentDeleteResult(BaseModel):
    student_id: UUID
    fee_records_deleted: int
    credit_entries_deleted: int
    audit_logs_deleted: int


class StageLevelChange(BaseModel):
    stage: Stage
    level: int = Field(1, ge=1, le=3)
    batch_id: UUID = Field(..., description="Active batch running the new stage and level")


class StageLevelChangeResult(BaseModel):
    student: StudentResponse
    previous_stage: Optional[str] = None
    previous_level: Optional[int] = None
    batch_assignment: BatchAssignmentResult
