from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from feecycle.auth.dependencies import get_current_user, require_cron_api_key
from feecycle.auth.schemas import CurrentUser
from feecycle.core.exceptions import ServiceError
from feecycle.db.session import get_db

from . import service
from .schemas import ReconciliationReport, ReconciliationRequest, StudentReconciliationResult

router = APIRouter(prefix="/api/v1/reconciliation", tags=["reconciliation"])


@router.post(
    "/run",
    response_model=ReconciliationReport,
    dependencies=[Depends(require_cron_api_key)],
)
async def run_reconciliation(
    payload: ReconciliationRequest,
    db: AsyncSession = Depends(get_db),
) -> ReconciliationReport:
    """Sweep all students. Called by cron with the X-Cron-API-Key header; use dry_run to preview."""
    return await service.reconcile_all(db, dry_run=payload.dry_run, active_only=payload.active_only)


@router.post("/student/{student_id}", response_model=StudentReconciliationResult)
async def reconcile_student(
    student_id: UUID,
    dry_run: bool = False,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> StudentReconciliationResult:
    try:
        return await service.reconcile_student(db, student_id, dry_run=dry_run)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
