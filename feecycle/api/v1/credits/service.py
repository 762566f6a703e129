"""
Credit ledger service: prepaid balance per student, append-only.

The balance is the signed sum of a student's ledger entries; every entry also records
balance_before/balance_after. Helpers that take a loaded Student run inside the caller's
unit of work; the public operations open their own.
"""

import logging
from datetime import date, datetime, time
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from feecycle.core.enums import CreditTransactionType
from feecycle.core.exceptions import InsufficientCreditError, InvalidAmountError, NegativeBalanceError
from feecycle.core.fee_calendar import resolve_today
from feecycle.core.locks import student_lock
from feecycle.core.models import FeeRecord, Student, StudentCredit
from feecycle.core.services import get_student, to_uuid
from feecycle.db.unit_of_work import unit_of_work

from .schemas import (
    CreditAdjustmentCreate,
    CreditApplicationResult,
    CreditCreate,
    CreditRefundCreate,
    StudentCreditResponse,
)

logger = logging.getLogger(__name__)

CREDIT_REMARK = "Paid from prepaid credit"

_signed_amount = case(
    (StudentCredit.transaction_type == CreditTransactionType.credit_used.value, -StudentCredit.amount),
    else_=StudentCredit.amount,
)


def _to_response(entry: StudentCredit) -> StudentCreditResponse:
    return StudentCreditResponse.model_validate(entry)


def payment_timestamp(today: Optional[date] = None) -> datetime:
    if today is None:
        return datetime.utcnow()
    return datetime.combine(today, time())


async def get_credit_balance(db: AsyncSession, student_id: UUID) -> int:
    total = (
        await db.execute(
            select(func.coalesce(func.sum(_signed_amount), 0)).where(StudentCredit.student_id == to_uuid(student_id))
        )
    ).scalar_one()
    return int(total or 0)


async def append_entry(
    db: AsyncSession,
    student: Student,
    transaction_type: CreditTransactionType,
    amount: int,
    description: str,
    *,
    balance_before: Optional[int] = None,
    payment_method: Optional[str] = None,
    transaction_id: Optional[str] = None,
    fee_record: Optional[FeeRecord] = None,
    processed_by: Optional[UUID] = None,
    processed_at: Optional[datetime] = None,
    remarks: Optional[str] = None,
) -> StudentCredit:
    if balance_before is None:
        balance_before = await get_credit_balance(db, student.id)
    delta = -amount if transaction_type == CreditTransactionType.credit_used else amount
    balance_after = balance_before + delta
    if balance_after < 0:
        if transaction_type == CreditTransactionType.credit_used:
            raise InsufficientCreditError(balance_before, amount)
        raise NegativeBalanceError(balance_before, amount)

    entry = StudentCredit(
        student_id=student.id,
        student_name=student.student_name,
        transaction_type=transaction_type.value,
        amount=amount,
        balance_before=balance_before,
        balance_after=balance_after,
        description=description,
        payment_method=payment_method,
        transaction_id=transaction_id,
        fee_record_id=fee_record.id if fee_record is not None else None,
        fee_month=fee_record.fee_month if fee_record is not None else None,
        processed_by=processed_by,
        processed_at=processed_at or datetime.utcnow(),
        remarks=remarks,
    )
    db.add(entry)
    await db.flush()
    logger.info(
        "Ledger %s of %s for student %s (balance %s -> %s)",
        transaction_type.value, amount, student.id, balance_before, balance_after,
    )
    return entry


async def record_credit_added(
    db: AsyncSession,
    student: Student,
    amount: int,
    description: str,
    *,
    payment_method: Optional[str] = None,
    transaction_id: Optional[str] = None,
    processed_by: Optional[UUID] = None,
    paid_date: Optional[datetime] = None,
    remarks: Optional[str] = None,
) -> StudentCredit:
    if amount <= 0:
        raise InvalidAmountError(f"Credit amount must be greater than zero, got {amount}")
    return await append_entry(
        db,
        student,
        CreditTransactionType.credit_added,
        amount,
        description,
        payment_method=payment_method,
        transaction_id=transaction_id,
        processed_by=processed_by,
        processed_at=paid_date,
        remarks=remarks,
    )


async def record_adjustment(
    db: AsyncSession,
    student: Student,
    amount: int,
    description: str,
    *,
    processed_by: Optional[UUID] = None,
    remarks: Optional[str] = None,
) -> StudentCredit:
    """Signed adjustment. Used by reconciliation to turn an overpayment excess into credit."""
    return await append_entry(
        db,
        student,
        CreditTransactionType.credit_adjustment,
        amount,
        description,
        processed_by=processed_by,
        remarks=remarks,
    )


async def outstanding_fee_records(db: AsyncSession, student_id: UUID) -> List[FeeRecord]:
    """Unpaid and partially paid records, oldest due date first."""
    return list(
        (
            await db.execute(
                select(FeeRecord)
                .where(FeeRecord.student_id == student_id, FeeRecord.paid_amount < FeeRecord.fee_amount)
                .order_by(FeeRecord.due_date, FeeRecord.created_at, FeeRecord.id)
            )
        ).scalars().all()
    )


async def apply_credit_balance(
    db: AsyncSession,
    student: Student,
    processed_by: Optional[UUID] = None,
    today: Optional[date] = None,
) -> CreditApplicationResult:
    """
    Walk outstanding records oldest-first, paying each from the balance until either runs out.

    Oldest-first guarantees overdue months are cleared before upcoming ones.
    """
    balance = await get_credit_balance(db, student.id)
    if balance <= 0:
        return CreditApplicationResult(amount_used=0, obligations_touched=0, remaining_balance=max(balance, 0))

    paid_at = payment_timestamp(today)
    amount_used = 0
    touched = 0
    for record in await outstanding_fee_records(db, student.id):
        if balance <= 0:
            break
        portion = min(balance, record.fee_amount - (record.paid_amount or 0))
        if portion <= 0:
            continue
        await append_entry(
            db,
            student,
            CreditTransactionType.credit_used,
            portion,
            f"Credit applied to fee for {record.fee_month}",
            balance_before=balance,
            fee_record=record,
            processed_by=processed_by,
        )
        record.paid_amount = (record.paid_amount or 0) + portion
        if record.payment_date is None:
            record.payment_date = paid_at
        if not record.remarks:
            record.remarks = CREDIT_REMARK
        record.updated_by = processed_by
        balance -= portion
        amount_used += portion
        touched += 1

    await db.flush()
    if touched:
        logger.info(
            "Applied %s credit to %s fee record(s) for student %s, %s remaining",
            amount_used, touched, student.id, balance,
        )
    return CreditApplicationResult(amount_used=amount_used, obligations_touched=touched, remaining_balance=balance)


# --- Public operations (own unit of work) ---
async def add_credit(
    db: AsyncSession,
    payload: CreditCreate,
    processed_by: Optional[UUID] = None,
) -> StudentCreditResponse:
    async with student_lock(payload.student_id):
        async with unit_of_work(db):
            student = await get_student(db, payload.student_id)
            entry = await record_credit_added(
                db,
                student,
                payload.amount,
                payload.description or "Credit added",
                payment_method=payload.payment_method.value if payload.payment_method else None,
                transaction_id=payload.transaction_id,
                processed_by=processed_by,
                paid_date=payload.paid_date,
                remarks=payload.remarks,
            )
    await db.refresh(entry)
    return _to_response(entry)


async def add_refund(
    db: AsyncSession,
    payload: CreditRefundCreate,
    processed_by: Optional[UUID] = None,
) -> StudentCreditResponse:
    async with student_lock(payload.student_id):
        async with unit_of_work(db):
            student = await get_student(db, payload.student_id)
            fee_record = None
            if payload.fee_record_id is not None:
                fee_record = await db.get(FeeRecord, payload.fee_record_id)
                if fee_record is None or fee_record.student_id != student.id:
                    fee_record = None
            entry = await append_entry(
                db,
                student,
                CreditTransactionType.credit_refund,
                payload.amount,
                payload.description,
                fee_record=fee_record,
                processed_by=processed_by,
                remarks=payload.remarks,
            )
    await db.refresh(entry)
    return _to_response(entry)


async def make_adjustment(
    db: AsyncSession,
    payload: CreditAdjustmentCreate,
    processed_by: Optional[UUID] = None,
) -> StudentCreditResponse:
    async with student_lock(payload.student_id):
        async with unit_of_work(db):
            student = await get_student(db, payload.student_id)
            entry = await record_adjustment(
                db,
                student,
                payload.amount,
                payload.description,
                processed_by=processed_by,
                remarks=payload.remarks,
            )
    await db.refresh(entry)
    return _to_response(entry)


async def apply_credits_to_fee_records(
    db: AsyncSession,
    student_id: UUID,
    processed_by: Optional[UUID] = None,
    today: Optional[date] = None,
) -> CreditApplicationResult:
    async with student_lock(student_id):
        async with unit_of_work(db):
            student = await get_student(db, student_id)
            result = await apply_credit_balance(db, student, processed_by=processed_by, today=resolve_today(today))
    return result


async def get_credit_history(
    db: AsyncSession,
    student_id: UUID,
    limit: Optional[int] = None,
    skip: Optional[int] = None,
) -> List[StudentCreditResponse]:
    await get_student(db, student_id)
    stmt = (
        select(StudentCredit)
        .where(StudentCredit.student_id == to_uuid(student_id))
        .order_by(StudentCredit.created_at.desc(), StudentCredit.processed_at.desc())
    )
    if skip:
        stmt = stmt.offset(skip)
    if limit:
        stmt = stmt.limit(limit)
    result = await db.execute(stmt)
    return [_to_response(e) for e in result.scalars().all()]


async def get_credit_summary(db: AsyncSession, student_ids: List[UUID]) -> Dict[UUID, int]:
    """Current balance for each requested student; students without entries get 0."""
    ids = [to_uuid(s) for s in student_ids]
    summary: Dict[UUID, int] = {sid: 0 for sid in ids}
    if not ids:
        return summary
    rows = (
        await db.execute(
            select(StudentCredit.student_id, func.sum(_signed_amount))
            .where(StudentCredit.student_id.in_(ids))
            .group_by(StudentCredit.student_id)
        )
    ).all()
    for sid, total in rows:
        summary[sid] = int(total or 0)
    return summary
