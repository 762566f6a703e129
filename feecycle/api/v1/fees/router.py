from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from fastapi import status as http_status
from sqlalchemy.ext.asyncio import AsyncSession

from feecycle.auth.dependencies import get_current_user
from feecycle.auth.schemas import CurrentUser
from feecycle.core.exceptions import ServiceError
from feecycle.db.session import get_db

from . import service
from .schemas import (
    BulkPaymentCreate,
    BulkPaymentResult,
    FeePaymentUpdate,
    FeeRecordResponse,
    GenerationResult,
    PayableFeesResponse,
)

router = APIRouter(prefix="/api/v1/fees", tags=["fees"])


@router.get("/student/{student_id}", response_model=List[FeeRecordResponse])
async def list_student_fees(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[FeeRecordResponse]:
    """All fee records of a student, oldest due date first, with computed status."""
    try:
        return await service.get_student_fees(db, student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/payable/{student_id}", response_model=PayableFeesResponse)
async def get_payable_fees(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> PayableFeesResponse:
    """Overdue fees and the next upcoming fee: what can be paid right now."""
    try:
        return await service.get_payable_obligations(db, student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/generate/{student_id}", response_model=GenerationResult)
async def generate_missing_fees(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> GenerationResult:
    """Fill every missing month from the fee-cycle start through the current month."""
    try:
        return await service.generate_missing_obligations(db, student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/generate-next/{student_id}", response_model=Optional[FeeRecordResponse])
async def generate_next_fee(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> Optional[FeeRecordResponse]:
    """Generate the next month's fee. Returns null while an unpaid fee is outstanding."""
    try:
        return await service.generate_next_obligation(db, student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put("/{fee_record_id}", response_model=FeeRecordResponse)
async def update_fee_payment(
    fee_record_id: UUID,
    payload: FeePaymentUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> FeeRecordResponse:
    try:
        return await service.record_payment(db, fee_record_id, payload, changed_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/bulk-payment", response_model=BulkPaymentResult, status_code=http_status.HTTP_201_CREATED)
async def bulk_payment(
    payload: BulkPaymentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> BulkPaymentResult:
    """Record one payment covering several months, or a credit for a student without a batch."""
    try:
        return await service.record_bulk_payment(db, payload, changed_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
