"""
Reconciliation sweep: repairs historical fee data student by student.

Steps per student, in order: fee-cycle anchor, duplicate months, month labels, overpayments,
zero-amount payments, due dates, missing months, months beyond the course duration, credit
application. Orphaned ledger entries and fee records are cleaned once after all students.

Each student is its own unit of work. A dry run executes exactly the same steps and rolls back,
so its counts are what a live run would change. Running the sweep twice changes nothing the
second time.
"""

import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import AsyncIterator, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from feecycle.api.v1.credits.service import apply_credit_balance, record_adjustment
from feecycle.api.v1.fees.service import (
    generate_missing_for_student,
    record_period,
    remove_fee_records,
    student_fee_records,
)
from feecycle.core.exceptions import ServiceError
from feecycle.core.fee_calendar import (
    Period,
    add_months,
    calculate_due_date,
    format_fee_month,
    is_canonical_fee_month,
    period_of,
    resolve_today,
)
from feecycle.core.locks import student_lock
from feecycle.core.models import Batch, FeeRecord, Student, StudentCredit
from feecycle.core.services import due_anchor_day, fee_cycle_start, find_level_config, get_student, to_uuid
from feecycle.db.unit_of_work import unit_of_work

from .schemas import ReconciliationCounts, ReconciliationError, ReconciliationReport, StudentReconciliationResult

logger = logging.getLogger(__name__)

SWEEP_REMARK = "Corrected by fee reconciliation"


@asynccontextmanager
async def _reconcile_scope(db: AsyncSession, dry_run: bool) -> AsyncIterator[AsyncSession]:
    if not dry_run:
        async with unit_of_work(db):
            yield db
        return
    try:
        yield db
    finally:
        await db.rollback()


# --- Steps ---
async def _fix_fee_cycle_start(db: AsyncSession, student: Student) -> int:
    """
    With a batch the anchor is exactly the later of the batch start and the enrollment date, so an
    anchor that drifted in either direction is reset. Without a batch a missing anchor becomes the
    enrollment date.
    """
    current = student.fee_cycle_start_date
    enrolled = student.enrollment_date
    if not student.batch_id:
        if current is None and enrolled is not None:
            student.fee_cycle_start_date = enrolled
            logger.info("Student %s: fee cycle start set to enrollment date %s", student.id, enrolled)
            return 1
        return 0

    batch = await db.get(Batch, student.batch_id)
    if batch is None:
        return 0
    correct = max(batch.start_date, enrolled) if enrolled else batch.start_date
    if current != correct:
        student.fee_cycle_start_date = correct
        logger.info("Student %s: fee cycle start corrected %s -> %s", student.id, current, correct)
        return 1
    return 0


def _keep_order(record: FeeRecord) -> Tuple:
    # payment data first, then the highest paid amount, then the earliest created
    return (record.payment_date is None, -(record.paid_amount or 0), record.created_at)


async def _delete_duplicates(db: AsyncSession, student: Student) -> int:
    by_period: Dict[Period, List[FeeRecord]] = {}
    for record in await student_fee_records(db, student.id):
        by_period.setdefault(record_period(record), []).append(record)

    doomed: List[FeeRecord] = []
    for period, records in by_period.items():
        if len(records) < 2:
            continue
        ordered = sorted(records, key=_keep_order)
        logger.info(
            "Student %s: %s duplicate fee record(s) for %s, keeping %s",
            student.id, len(ordered) - 1, format_fee_month(*period), ordered[0].id,
        )
        doomed.extend(ordered[1:])
    return await remove_fee_records(db, doomed)


async def _standardize_fee_months(db: AsyncSession, student: Student) -> int:
    fixed = 0
    for record in await student_fee_records(db, student.id):
        period = record.period
        if period is None or is_canonical_fee_month(record.fee_month):
            continue
        canonical = format_fee_month(*period)
        logger.info("Student %s: fee month %r -> %s", student.id, record.fee_month, canonical)
        record.fee_month = canonical
        fixed += 1
    if fixed:
        await db.flush()
    return fixed


async def _fix_overpayments(db: AsyncSession, student: Student) -> int:
    fixed = 0
    for record in await student_fee_records(db, student.id):
        paid = record.paid_amount or 0
        if paid <= record.fee_amount:
            continue
        excess = paid - record.fee_amount
        record.paid_amount = record.fee_amount
        await record_adjustment(
            db,
            student,
            excess,
            f"Overpayment on {record.fee_month} converted to credit",
            remarks=SWEEP_REMARK,
        )
        logger.info("Student %s: overpayment of %s on %s moved to credit", student.id, excess, record.fee_month)
        fixed += 1
    return fixed


async def _fix_zero_amount_payments(db: AsyncSession, student: Student) -> int:
    """A payment date with nothing paid is a full payment recorded without its amount."""
    fixed = 0
    for record in await student_fee_records(db, student.id):
        if record.payment_date is not None and not record.paid_amount and record.fee_amount > 0:
            record.paid_amount = record.fee_amount
            logger.info("Student %s: zero-amount payment on %s set to full fee", student.id, record.fee_month)
            fixed += 1
    if fixed:
        await db.flush()
    return fixed


async def _fix_due_dates(db: AsyncSession, student: Student) -> int:
    records = await student_fee_records(db, student.id)
    if not records:
        return 0
    anchor_day = due_anchor_day(student)
    fixed = 0
    for record in records:
        year, month = record_period(record)
        expected = calculate_due_date(year, month, anchor_day)
        if record.due_date.date() != expected.date():
            logger.info(
                "Student %s: due date for %s corrected %s -> %s",
                student.id, record.fee_month, record.due_date.date(), expected.date(),
            )
            record.due_date = expected
            fixed += 1
    if fixed:
        await db.flush()
    return fixed


async def _delete_excess(db: AsyncSession, student: Student) -> int:
    """Unpaid, untouched months at or beyond fee-cycle start + course duration."""
    config = await find_level_config(db, student.stage, student.level)
    if config is None or not config.duration_months:
        return 0
    if not student.fee_cycle_start_date and not student.enrollment_date:
        return 0
    end_period = add_months(period_of(fee_cycle_start(student)), config.duration_months)
    doomed = [
        r for r in await student_fee_records(db, student.id)
        if r.payment_date is None and not r.paid_amount and record_period(r) >= end_period
    ]
    for record in doomed:
        logger.info("Student %s: deleting fee %s beyond course duration", student.id, record.fee_month)
    return await remove_fee_records(db, doomed)


async def reconcile_loaded_student(
    db: AsyncSession,
    student: Student,
    today: Optional[date] = None,
) -> ReconciliationCounts:
    today = resolve_today(today)
    counts = ReconciliationCounts()
    counts.fee_cycle_start_corrected = await _fix_fee_cycle_start(db, student)
    await db.flush()
    counts.duplicate_fees_deleted = await _delete_duplicates(db, student)
    counts.fee_months_standardized = await _standardize_fee_months(db, student)
    counts.overpayments_fixed = await _fix_overpayments(db, student)
    counts.zero_amount_payments_fixed = await _fix_zero_amount_payments(db, student)
    counts.due_dates_fixed = await _fix_due_dates(db, student)
    if student.batch_id:
        counts.missing_fees_created = len(await generate_missing_for_student(db, student, today))
    counts.excess_fees_deleted = await _delete_excess(db, student)
    credit = await apply_credit_balance(db, student, today=today)
    counts.credits_applied = credit.amount_used
    counts.credit_fees_paid = credit.obligations_touched
    return counts


async def _cleanup_orphans(db: AsyncSession) -> Tuple[int, int]:
    """Ledger entries pointing at missing fee records or students, and fee records of missing students."""
    student_ids = select(Student.id)
    fee_ids = select(FeeRecord.id)
    orphan_credit_ids = (
        await db.execute(
            select(StudentCredit.id).where(
                (StudentCredit.fee_record_id.is_not(None) & StudentCredit.fee_record_id.not_in(fee_ids))
                | StudentCredit.student_id.not_in(student_ids)
            )
        )
    ).scalars().all()
    if orphan_credit_ids:
        await db.execute(delete(StudentCredit).where(StudentCredit.id.in_(orphan_credit_ids)))

    orphan_fee_ids = (
        await db.execute(select(FeeRecord.id).where(FeeRecord.student_id.not_in(student_ids)))
    ).scalars().all()
    if orphan_fee_ids:
        await db.execute(delete(FeeRecord).where(FeeRecord.id.in_(orphan_fee_ids)))

    if orphan_credit_ids or orphan_fee_ids:
        logger.info(
            "Orphan cleanup: %s ledger entries, %s fee records",
            len(orphan_credit_ids), len(orphan_fee_ids),
        )
    return len(orphan_credit_ids), len(orphan_fee_ids)


# --- Public operations ---
async def reconcile_student(
    db: AsyncSession,
    student_id: UUID,
    dry_run: bool = False,
    today: Optional[date] = None,
) -> StudentReconciliationResult:
    async with student_lock(student_id):
        async with _reconcile_scope(db, dry_run):
            student = await get_student(db, student_id)
            counts = await reconcile_loaded_student(db, student, today)
    logger.info(
        "Reconciled student %s%s: %s change(s)",
        student_id, " (dry run)" if dry_run else "", counts.total_changes(),
    )
    return StudentReconciliationResult(student_id=to_uuid(student_id), dry_run=dry_run, **counts.model_dump())


async def reconcile_all(
    db: AsyncSession,
    dry_run: bool = False,
    active_only: bool = True,
    today: Optional[date] = None,
) -> ReconciliationReport:
    """Sweep every student; a failing student is rolled back, recorded and skipped."""
    today = resolve_today(today)
    report = ReconciliationReport(dry_run=dry_run, active_only=active_only)

    stmt = select(Student.id, Student.student_name).order_by(Student.student_name, Student.id)
    if active_only:
        stmt = stmt.where(Student.is_active.is_(True))
    rows = [(sid, name) for sid, name in (await db.execute(stmt)).all()]
    await db.rollback()
    report.total_students = len(rows)
    logger.info(
        "Fee reconciliation started: %s student(s), %s",
        len(rows), "dry run" if dry_run else "live",
    )

    for student_id, student_name in rows:
        try:
            async with student_lock(student_id):
                async with _reconcile_scope(db, dry_run):
                    student = await get_student(db, student_id)
                    counts = await reconcile_loaded_student(db, student, today)
        except ServiceError as e:
            logger.warning("Reconciliation failed for student %s (%s): %s", student_name, student_id, e.message)
            report.errors.append(ReconciliationError(student_id=student_id, student_name=student_name, error=e.message))
            report.students_skipped += 1
            continue
        except Exception as e:
            logger.exception("Unexpected error reconciling student %s (%s)", student_name, student_id)
            report.errors.append(ReconciliationError(student_id=student_id, student_name=student_name, error=str(e)))
            report.students_skipped += 1
            continue
        report.add(counts)
        report.students_processed += 1

    async with _reconcile_scope(db, dry_run):
        credits_cleaned, fees_cleaned = await _cleanup_orphans(db)
    report.orphaned_credits_cleaned = credits_cleaned
    report.orphaned_fee_records_deleted = fees_cleaned

    logger.info(
        "Fee reconciliation finished (%s): %s processed, %s skipped, %s change(s), %s error(s)",
        "dry run" if dry_run else "live",
        report.students_processed, report.students_skipped, report.changes, len(report.errors),
    )
    return report
