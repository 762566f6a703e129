from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from fastapi import status as http_status
from sqlalchemy.ext.asyncio import AsyncSession

from feecycle.api.v1.fees.schemas import FeeRecordResponse
from feecycle.api.v1.fees.service import get_student_fees
from feecycle.auth.dependencies import get_current_user
from feecycle.auth.schemas import CurrentUser
from feecycle.core.exceptions import ServiceError
from feecycle.db.session import get_db

from . import service
from .schemas import (
    StageLevelChange,
    StageLevelChangeResult,
    StudentCreate,
    StudentCreateResult,
    StudentDeleteResult,
    StudentResponse,
)

router = APIRouter(prefix="/api/v1/students", tags=["students"])


@router.post("", response_model=StudentCreateResult, status_code=http_status.HTTP_201_CREATED)
async def create_student(
    payload: StudentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> StudentCreateResult:
    """Enroll a student, optionally directly into a batch (fees are generated on assignment)."""
    try:
        return await service.create_student(db, payload, changed_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/{student_id}", response_model=StudentResponse)
async def get_student(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> StudentResponse:
    try:
        return await service.get_student_detail(db, student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/{student_id}/fees", response_model=List[FeeRecordResponse])
async def list_fees(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[FeeRecordResponse]:
    try:
        return await get_student_fees(db, student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put("/{student_id}/stage-level", response_model=StageLevelChangeResult)
async def change_stage_level(
    student_id: UUID,
    payload: StageLevelChange,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> StageLevelChangeResult:
    """Change stage/level and move into a matching batch; upcoming months are re-raised at the new fee."""
    try:
        return await service.change_stage_level(db, student_id, payload, changed_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/{student_id}", response_model=StudentDeleteResult)
async def delete_student(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> StudentDeleteResult:
    """Delete a student together with their fee records, credit ledger and fee audit trail."""
    try:
        return await service.delete_student(db, student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
