"""
Fees service: monthly fee generation, payment recording and bulk payments.

Due dates always come from calculate_due_date with the student's enrollment day as the anchor.
Status is computed from the stored dates and amounts on every read.
"""

import logging
from datetime import date
from typing import Dict, List, Optional, Sequence
from uuid import UUID

from fastapi import status
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from feecycle.api.v1.credits.schemas import StudentCreditResponse
from feecycle.api.v1.credits.service import payment_timestamp, record_credit_added
from feecycle.core.config import settings
from feecycle.core.enums import FeeStatus
from feecycle.core.exceptions import (
    DuplicateReferenceError,
    InvalidFeeMonthError,
    NoBatchAssigned,
    NonConsecutivePeriodsError,
    NotFoundError,
    OverpaymentRejected,
    ServiceError,
)
from feecycle.core.fee_calendar import (
    Period,
    add_months,
    calculate_due_date,
    format_fee_month,
    months_between,
    parse_fee_month,
    period_of,
    resolve_today,
)
from feecycle.core.locks import student_lock
from feecycle.core.models import CourseLevel, FeeRecord, Student, StudentCredit
from feecycle.core.services import (
    due_anchor_day,
    fee_cycle_start,
    get_level_config,
    get_student,
    log_fee_audit,
    to_uuid,
)
from feecycle.db.unit_of_work import unit_of_work

from .schemas import (
    BulkPaymentCreate,
    BulkPaymentResult,
    FeePaymentUpdate,
    FeeRecordResponse,
    GenerationResult,
    PayableFeesResponse,
)

logger = logging.getLogger(__name__)

UNPAID_STATUSES = (FeeStatus.overdue, FeeStatus.upcoming)


def _to_response(record: FeeRecord, today: Optional[date] = None) -> FeeRecordResponse:
    return FeeRecordResponse(
        id=to_uuid(record.id),
        student_id=to_uuid(record.student_id),
        student_name=record.student_name,
        stage=record.stage,
        level=record.level,
        fee_month=record.fee_month,
        due_date=record.due_date,
        fee_amount=record.fee_amount,
        paid_amount=record.paid_amount or 0,
        remaining_amount=record.remaining_amount,
        payment_percentage=record.payment_percentage,
        status=record.status_on(today),
        payment_date=record.payment_date,
        payment_method=record.payment_method,
        transaction_id=record.transaction_id,
        remarks=record.remarks,
        updated_by=to_uuid(record.updated_by),
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _payment_snapshot(record: FeeRecord) -> dict:
    return {
        "fee_month": record.fee_month,
        "paid_amount": record.paid_amount or 0,
        "payment_date": record.payment_date.isoformat() if record.payment_date else None,
        "payment_method": record.payment_method,
        "transaction_id": record.transaction_id,
        "remarks": record.remarks,
    }


def record_period(record: FeeRecord) -> Period:
    """Parsed fee month, falling back to the due date's month for unparseable labels."""
    return record.period or period_of(record.due_date)


async def student_fee_records(db: AsyncSession, student_id: UUID) -> List[FeeRecord]:
    result = await db.execute(
        select(FeeRecord)
        .where(FeeRecord.student_id == to_uuid(student_id))
        .order_by(FeeRecord.due_date, FeeRecord.created_at)
    )
    return list(result.scalars().all())


def build_fee_record(student: Student, period: Period, config: CourseLevel, anchor_day: int) -> FeeRecord:
    return FeeRecord(
        student_id=student.id,
        student_name=student.student_name,
        stage=student.stage,
        level=student.level,
        fee_month=format_fee_month(*period),
        due_date=calculate_due_date(period[0], period[1], anchor_day),
        fee_amount=config.fee_amount,
        paid_amount=0,
    )


async def remove_fee_records(db: AsyncSession, records: Sequence[FeeRecord]) -> int:
    """Delete fee records, unlinking ledger entries that point at them first."""
    ids = [r.id for r in records]
    if not ids:
        return 0
    await db.execute(
        update(StudentCredit)
        .where(StudentCredit.fee_record_id.in_(ids))
        .values(fee_record_id=None)
        .execution_options(synchronize_session="fetch")
    )
    for record in records:
        await db.delete(record)
    await db.flush()
    return len(ids)


async def generate_missing_for_student(
    db: AsyncSession,
    student: Student,
    today: Optional[date] = None,
) -> List[FeeRecord]:
    """
    Create every missing month from the fee-cycle start through the current month.

    Bounded by the course duration and by FEE_GENERATION_MAX_MONTHS. Existing months are
    matched by parsed period, so a legacy "January 2025" row blocks a new "2025-01".
    """
    if not student.batch_id:
        raise NoBatchAssigned(f"Student {student.student_name} is not assigned to a batch")
    today = resolve_today(today)
    config = await get_level_config(db, student)
    start_period = period_of(fee_cycle_start(student))
    end_period = period_of(today)
    anchor_day = due_anchor_day(student)
    existing = {record_period(r) for r in await student_fee_records(db, student.id)}

    created: List[FeeRecord] = []
    for offset in range(settings.fee_generation_max_months):
        if config.duration_months and offset >= config.duration_months:
            break
        period = add_months(start_period, offset)
        if period > end_period:
            break
        if period in existing:
            continue
        record = build_fee_record(student, period, config, anchor_day)
        db.add(record)
        created.append(record)
        existing.add(period)
        logger.info(
            "Created fee record %s for student %s (%s)",
            record.fee_month, student.id, record.status_on(today).value,
        )
    else:
        if add_months(start_period, settings.fee_generation_max_months) <= end_period:
            logger.warning(
                "Fee generation for student %s stopped at the %s month ceiling",
                student.id, settings.fee_generation_max_months,
            )

    if created:
        await db.flush()
    return created


async def generate_next_for_student(
    db: AsyncSession,
    student: Student,
    today: Optional[date] = None,
) -> Optional[FeeRecord]:
    """Create the month after the latest record, unless an unpaid overdue or upcoming record exists."""
    if not student.batch_id:
        return None
    today = resolve_today(today)
    records = await student_fee_records(db, student.id)
    if any(r.status_on(today) in UNPAID_STATUSES for r in records):
        return None

    config = await get_level_config(db, student)
    start_period = period_of(fee_cycle_start(student))
    if records:
        latest = max(records, key=lambda r: r.due_date)
        next_period = add_months(record_period(latest), 1)
    else:
        next_period = start_period

    if config.duration_months and months_between(start_period, next_period) >= config.duration_months:
        logger.info("Student %s has reached the course duration, no next fee generated", student.id)
        return None

    for r in records:
        if record_period(r) == next_period:
            return r

    record = build_fee_record(student, next_period, config, due_anchor_day(student))
    db.add(record)
    await db.flush()
    logger.info("Generated next fee record %s for student %s", record.fee_month, student.id)
    return record


async def _roll_forward(db: AsyncSession, student: Student, today: Optional[date]) -> Optional[FeeRecord]:
    """Generate the next month after a payment. A failure here never fails the payment itself."""
    try:
        return await generate_next_for_student(db, student, today)
    except ServiceError as e:
        logger.warning("Failed to generate next month fee for student %s: %s", student.id, e.message)
        return None


async def _check_transaction_id(db: AsyncSession, transaction_id: Optional[str], student_id: UUID) -> None:
    if not transaction_id:
        return
    clash = (
        await db.execute(
            select(FeeRecord.id)
            .where(FeeRecord.transaction_id == transaction_id, FeeRecord.student_id != student_id)
            .limit(1)
        )
    ).scalar_one_or_none()
    if clash is not None:
        raise DuplicateReferenceError()


def _check_consecutive(periods: List[Period]) -> None:
    ordered = sorted(periods)
    for prev, curr in zip(ordered, ordered[1:]):
        if months_between(prev, curr) != 1:
            raise NonConsecutivePeriodsError()


# --- Generation ---
async def generate_missing_obligations(
    db: AsyncSession,
    student_id: UUID,
    today: Optional[date] = None,
) -> GenerationResult:
    async with student_lock(student_id):
        async with unit_of_work(db):
            student = await get_student(db, student_id)
            created = await generate_missing_for_student(db, student, today)
    return GenerationResult(student_id=to_uuid(student_id), created=[_to_response(r, today) for r in created])


async def generate_next_obligation(
    db: AsyncSession,
    student_id: UUID,
    today: Optional[date] = None,
) -> Optional[FeeRecordResponse]:
    async with student_lock(student_id):
        async with unit_of_work(db):
            student = await get_student(db, student_id)
            record = await generate_next_for_student(db, student, today)
    return _to_response(record, today) if record is not None else None


# --- Payments ---
async def record_payment(
    db: AsyncSession,
    fee_record_id: UUID,
    payload: FeePaymentUpdate,
    changed_by: Optional[UUID] = None,
    today: Optional[date] = None,
) -> FeeRecordResponse:
    record = await db.get(FeeRecord, to_uuid(fee_record_id))
    if not record:
        raise NotFoundError("Fee record")
    student_id = record.student_id

    async with student_lock(student_id):
        async with unit_of_work(db):
            record = await db.get(FeeRecord, to_uuid(fee_record_id))
            if not record:
                raise NotFoundError("Fee record")
            fields = payload.model_fields_set

            paid_amount = payload.paid_amount if "paid_amount" in fields else None
            if "payment_date" in fields:
                if payload.payment_date is not None:
                    if not paid_amount:
                        paid_amount = record.fee_amount
                else:
                    paid_amount = 0
            if paid_amount is not None and paid_amount > record.fee_amount:
                raise OverpaymentRejected(paid_amount, record.fee_amount)
            if "transaction_id" in fields and payload.transaction_id:
                await _check_transaction_id(db, payload.transaction_id, record.student_id)

            old = _payment_snapshot(record)
            if paid_amount is not None:
                record.paid_amount = paid_amount
            if "payment_date" in fields:
                record.payment_date = payload.payment_date
            if "payment_method" in fields:
                record.payment_method = payload.payment_method.value if payload.payment_method else None
            if "transaction_id" in fields:
                record.transaction_id = payload.transaction_id
            if "remarks" in fields:
                record.remarks = payload.remarks
            record.updated_by = changed_by
            await db.flush()

            await log_fee_audit(
                db, "fee_records", record.id, "UPDATE", old, _payment_snapshot(record), changed_by,
                student_id=record.student_id,
            )
            logger.info(
                "Updated payment on fee record %s (%s) for student %s: paid %s of %s",
                record.id, record.fee_month, record.student_id, record.paid_amount, record.fee_amount,
            )

            if record.payment_date is not None and record.paid_amount >= record.fee_amount:
                student = await get_student(db, record.student_id)
                await _roll_forward(db, student, today)
    await db.refresh(record)
    return _to_response(record, today)


async def record_bulk_payment(
    db: AsyncSession,
    payload: BulkPaymentCreate,
    changed_by: Optional[UUID] = None,
    today: Optional[date] = None,
) -> BulkPaymentResult:
    """
    Pay several months at once. A student without a batch gets the payment as credit instead,
    applied automatically when they are assigned to a batch.
    """
    async with student_lock(payload.student_id):
        async with unit_of_work(db):
            student = await get_student(db, payload.student_id)
            config = await get_level_config(db, student)
            method = payload.payment_method.value

            if not student.batch_id:
                total = payload.paid_amount or (
                    len(payload.months) * config.fee_amount if payload.months else config.fee_amount
                )
                credit = await record_credit_added(
                    db,
                    student,
                    total,
                    f"Payment received before batch assignment - {method}",
                    payment_method=method,
                    transaction_id=payload.transaction_id,
                    processed_by=changed_by,
                    paid_date=payload.payment_date,
                    remarks=payload.remarks,
                )
                logger.info("Student %s has no batch; bulk payment of %s recorded as credit", student.id, total)
                result = BulkPaymentResult(
                    routed_to_credit=True,
                    credit=StudentCreditResponse.model_validate(credit),
                    message="Student has no batch assigned. Credit created and will be applied on batch assignment.",
                )
            else:
                if not payload.months:
                    raise ServiceError(
                        "Months are required for students with a batch assignment",
                        status.HTTP_400_BAD_REQUEST,
                    )
                periods: List[Period] = []
                for month in payload.months:
                    period = parse_fee_month(month.fee_month)
                    if period is None:
                        raise InvalidFeeMonthError(month.fee_month)
                    if period not in periods:
                        periods.append(period)

                if payload.transaction_id:
                    await _check_transaction_id(db, payload.transaction_id, student.id)
                    _check_consecutive(periods)

                existing: Dict[Period, FeeRecord] = {}
                for r in await student_fee_records(db, student.id):
                    existing.setdefault(record_period(r), r)
                anchor_day = due_anchor_day(student)
                amount = payload.paid_amount or config.fee_amount
                paid_at = payload.payment_date or payment_timestamp(today)

                touched: List[FeeRecord] = []
                for period in sorted(periods):
                    record = existing.get(period)
                    if record is not None:
                        old = _payment_snapshot(record)
                        record.paid_amount = min((record.paid_amount or 0) + amount, record.fee_amount)
                        action = "UPDATE"
                    else:
                        old = None
                        record = build_fee_record(student, period, config, anchor_day)
                        record.paid_amount = min(amount, record.fee_amount)
                        db.add(record)
                        action = "CREATE"
                    record.payment_date = paid_at
                    record.payment_method = method
                    record.transaction_id = payload.transaction_id
                    if payload.remarks:
                        record.remarks = payload.remarks
                    record.updated_by = changed_by
                    await db.flush()
                    await log_fee_audit(
                        db, "fee_records", record.id, action, old, _payment_snapshot(record), changed_by,
                        student_id=student.id,
                    )
                    touched.append(record)

                next_record = await _roll_forward(db, student, today)
                logger.info("Recorded bulk payment for %s month(s) for student %s", len(touched), student.id)
                result = BulkPaymentResult(
                    routed_to_credit=False,
                    fee_records=[_to_response(r, today) for r in touched],
                    next_fee_record=_to_response(next_record, today) if next_record is not None else None,
                    message=f"Recorded payment for {len(touched)} month(s)",
                )
    return result


# --- Queries ---
async def get_student_fees(
    db: AsyncSession,
    student_id: UUID,
    today: Optional[date] = None,
) -> List[FeeRecordResponse]:
    await get_student(db, student_id)
    return [_to_response(r, today) for r in await student_fee_records(db, student_id)]


async def get_payable_obligations(
    db: AsyncSession,
    student_id: UUID,
    today: Optional[date] = None,
) -> PayableFeesResponse:
    """All overdue fees plus the single earliest upcoming fee."""
    await get_student(db, student_id)
    overdue: List[FeeRecordResponse] = []
    next_upcoming: Optional[FeeRecordResponse] = None
    for r in await student_fee_records(db, student_id):
        fee_status = r.status_on(today)
        if fee_status == FeeStatus.overdue:
            overdue.append(_to_response(r, today))
        elif fee_status == FeeStatus.upcoming and next_upcoming is None:
            next_upcoming = _to_response(r, today)
    return PayableFeesResponse(overdue=overdue, next_upcoming=next_upcoming)
