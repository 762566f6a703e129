from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from feecycle.auth.dependencies import get_current_user
from feecycle.auth.schemas import CurrentUser
from feecycle.core.exceptions import ServiceError
from feecycle.db.session import get_db

from . import service
from .schemas import (
    BatchAssignRequest,
    BatchAssignmentResult,
    BatchRemovalResult,
    BulkBatchAssignRequest,
    BulkBatchAssignmentResult,
)

router = APIRouter(prefix="/api/v1/batches", tags=["batches"])


@router.post("/{batch_id}/assign", response_model=BatchAssignmentResult)
async def assign_student(
    batch_id: UUID,
    payload: BatchAssignRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> BatchAssignmentResult:
    """Assign or transfer a student; generates their fees and applies any prepaid credit."""
    try:
        return await service.assign_student_to_batch(db, payload.student_id, batch_id, changed_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/{batch_id}/assign-bulk", response_model=BulkBatchAssignmentResult)
async def assign_students_bulk(
    batch_id: UUID,
    payload: BulkBatchAssignRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> BulkBatchAssignmentResult:
    """All students are assigned or none are."""
    try:
        return await service.bulk_assign_students_to_batch(
            db, payload.student_ids, batch_id, changed_by=current_user.id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/students/{student_id}", response_model=BatchRemovalResult)
async def remove_student(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> BatchRemovalResult:
    try:
        return await service.remove_student_from_batch(db, student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
