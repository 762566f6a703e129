from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi import status as http_status
from sqlalchemy.ext.asyncio import AsyncSession

from feecycle.auth.dependencies import get_current_user
from feecycle.auth.schemas import CurrentUser
from feecycle.core.exceptions import ServiceError
from feecycle.core.services import get_student
from feecycle.db.session import get_db

from . import service
from .schemas import (
    CreditAdjustmentCreate,
    CreditApplicationResult,
    CreditBalanceResponse,
    CreditCreate,
    CreditRefundCreate,
    CreditSummaryResponse,
    StudentCreditResponse,
)

router = APIRouter(prefix="/api/v1/credits", tags=["credits"])


@router.get("/student/{student_id}", response_model=CreditBalanceResponse)
async def get_balance(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> CreditBalanceResponse:
    try:
        await get_student(db, student_id)
        balance = await service.get_credit_balance(db, student_id)
        return CreditBalanceResponse(student_id=student_id, balance=balance)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/history/{student_id}", response_model=List[StudentCreditResponse])
async def get_history(
    student_id: UUID,
    limit: Optional[int] = Query(None, ge=1, le=500),
    skip: Optional[int] = Query(None, ge=0),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[StudentCreditResponse]:
    """Ledger entries, newest first."""
    try:
        return await service.get_credit_history(db, student_id, limit=limit, skip=skip)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/summary", response_model=CreditSummaryResponse)
async def get_summary(
    student_ids: List[UUID] = Query(...),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> CreditSummaryResponse:
    """Balances for several students in one call (students list view)."""
    balances = await service.get_credit_summary(db, student_ids)
    return CreditSummaryResponse(balances=balances)


@router.post("/add", response_model=StudentCreditResponse, status_code=http_status.HTTP_201_CREATED)
async def add_credit(
    payload: CreditCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> StudentCreditResponse:
    try:
        return await service.add_credit(db, payload, processed_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/refund", response_model=StudentCreditResponse, status_code=http_status.HTTP_201_CREATED)
async def add_refund(
    payload: CreditRefundCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> StudentCreditResponse:
    try:
        return await service.add_refund(db, payload, processed_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/adjust", response_model=StudentCreditResponse, status_code=http_status.HTTP_201_CREATED)
async def make_adjustment(
    payload: CreditAdjustmentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> StudentCreditResponse:
    """Signed manual correction; rejected if it would take the balance below zero."""
    try:
        return await service.make_adjustment(db, payload, processed_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/apply/{student_id}", response_model=CreditApplicationResult)
async def apply_credits(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> CreditApplicationResult:
    """Spend the balance on outstanding fees, oldest due date first."""
    try:
        return await service.apply_credits_to_fee_records(db, student_id, processed_by=current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
