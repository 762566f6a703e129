"""Batch assignment schemas."""

from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class BatchAssignRequest(BaseModel):
    student_id: UUID


class BulkBatchAssignRequest(BaseModel):
    student_ids: List[UUID] = Field(..., min_length=1)


class BatchAssignmentResult(BaseModel):
    student_id: UUID
    batch_id: UUID
    previous_batch_id: Optional[UUID] = None
    obligations_created: int
    obligations_removed: int
    credit_applied: int
    remaining_credit: int


class BulkBatchAssignmentResult(BaseModel):
    batch_id: UUID
    assigned_count: int
    results: List[BatchAssignmentResult]


class BatchRemovalResult(BaseModel):
    student_id: UUID
    previous_batch_id: Optional[UUID] = None
