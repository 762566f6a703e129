"""
Batch assignment: moving students between batches and keeping their fee schedule in step.

Assigning a student anchors the fee cycle to the batch start date, generates the missing
months and spends any prepaid credit on them, all in one unit of work. On a transfer the
untouched upcoming months of the old schedule are dropped first.
"""

import logging
from datetime import date
from typing import List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from feecycle.api.v1.credits.service import apply_credit_balance
from feecycle.api.v1.fees.service import (
    generate_missing_for_student,
    remove_fee_records,
    student_fee_records,
)
from feecycle.core.enums import BatchStatus
from feecycle.core.exceptions import BatchInactiveError, CapacityExceededError, StageLevelMismatchError
from feecycle.core.fee_calendar import resolve_today
from feecycle.core.locks import student_lock, student_locks
from feecycle.core.models import Batch, FeeRecord, Student
from feecycle.core.services import count_active_students_in_batch, get_batch, get_student, log_fee_audit, to_uuid
from feecycle.db.unit_of_work import unit_of_work

from .schemas import BatchAssignmentResult, BatchRemovalResult, BulkBatchAssignmentResult

logger = logging.getLogger(__name__)


def check_batch_active(batch: Batch) -> None:
    if batch.status != BatchStatus.active.value:
        raise BatchInactiveError(f"Cannot assign students to batch {batch.batch_name} ({batch.status})")


def check_stage_level(student: Student, batch: Batch) -> None:
    student_stage = (student.stage or "").lower()
    student_level = student.level or 1
    if student_stage != batch.stage.lower() or student_level != batch.level:
        raise StageLevelMismatchError(
            f"Student's stage/level ({student.stage} {student.level}) does not match "
            f"batch ({batch.stage} {batch.level})"
        )


async def check_capacity(db: AsyncSession, batch: Batch, incoming: int) -> None:
    if batch.max_students is None or incoming <= 0:
        return
    current = await count_active_students_in_batch(db, batch.id)
    available = batch.max_students - current
    if incoming > available:
        raise CapacityExceededError(
            f"Cannot assign {incoming} student(s). Batch has only {max(available, 0)} available slot(s) "
            f"({current}/{batch.max_students} filled)."
        )


def _is_untouched_upcoming(record: FeeRecord, today: date) -> bool:
    return (
        record.payment_date is None
        and (record.paid_amount or 0) == 0
        and record.due_date.date() >= today
    )


async def assign_to_batch(
    db: AsyncSession,
    student: Student,
    batch: Batch,
    changed_by: Optional[UUID] = None,
    today: Optional[date] = None,
) -> BatchAssignmentResult:
    """Assignment steps after prechecks; flushes only, the caller owns the unit of work."""
    today = resolve_today(today)
    previous_batch_id = student.batch_id
    removed = 0

    if previous_batch_id is not None and previous_batch_id != batch.id:
        stale = [r for r in await student_fee_records(db, student.id) if _is_untouched_upcoming(r, today)]
        for record in stale:
            await log_fee_audit(
                db, "fee_records", record.id, "DELETE",
                {"fee_month": record.fee_month, "reason": "batch transfer"}, None, changed_by,
                student_id=student.id,
            )
        removed = await remove_fee_records(db, stale)
        logger.info(
            "Transfer of student %s from batch %s: removed %s upcoming fee record(s)",
            student.id, previous_batch_id, removed,
        )

    student.fee_cycle_start_date = batch.start_date
    student.batch_id = batch.id
    await db.flush()

    created = await generate_missing_for_student(db, student, today)
    credit = await apply_credit_balance(db, student, processed_by=changed_by, today=today)
    logger.info(
        "Assigned student %s to batch %s: %s fee record(s) created, %s credit applied",
        student.id, batch.id, len(created), credit.amount_used,
    )
    return BatchAssignmentResult(
        student_id=to_uuid(student.id),
        batch_id=to_uuid(batch.id),
        previous_batch_id=to_uuid(previous_batch_id),
        obligations_created=len(created),
        obligations_removed=removed,
        credit_applied=credit.amount_used,
        remaining_credit=credit.remaining_balance,
    )


async def assign_student_to_batch(
    db: AsyncSession,
    student_id: UUID,
    batch_id: UUID,
    changed_by: Optional[UUID] = None,
    today: Optional[date] = None,
) -> BatchAssignmentResult:
    async with student_lock(student_id):
        async with unit_of_work(db):
            batch = await get_batch(db, batch_id)
            student = await get_student(db, student_id)
            check_batch_active(batch)
            check_stage_level(student, batch)
            if student.batch_id != batch.id:
                await check_capacity(db, batch, 1)
            result = await assign_to_batch(db, student, batch, changed_by=changed_by, today=today)
    return result


async def bulk_assign_students_to_batch(
    db: AsyncSession,
    student_ids: List[UUID],
    batch_id: UUID,
    changed_by: Optional[UUID] = None,
    today: Optional[date] = None,
) -> BulkBatchAssignmentResult:
    """All-or-nothing: any student failing a check aborts the whole assignment."""
    ids = list(dict.fromkeys(to_uuid(s) for s in student_ids))
    async with student_locks(ids):
        async with unit_of_work(db):
            batch = await get_batch(db, batch_id)
            check_batch_active(batch)
            students = [await get_student(db, sid) for sid in ids]
            for student in students:
                check_stage_level(student, batch)
            incoming = sum(1 for s in students if s.batch_id != batch.id)
            await check_capacity(db, batch, incoming)

            results = []
            for student in students:
                results.append(await assign_to_batch(db, student, batch, changed_by=changed_by, today=today))
    logger.info("Bulk assigned %s student(s) to batch %s", len(results), batch_id)
    return BulkBatchAssignmentResult(batch_id=to_uuid(batch_id), assigned_count=len(results), results=results)


async def remove_student_from_batch(db: AsyncSession, student_id: UUID) -> BatchRemovalResult:
    """Clear the batch reference only. Existing fee records and credit are left as they are."""
    async with student_lock(student_id):
        async with unit_of_work(db):
            student = await get_student(db, student_id)
            previous_batch_id = student.batch_id
            student.batch_id = None
            await db.flush()
    logger.info("Removed student %s from batch %s", student_id, previous_batch_id)
    return BatchRemovalResult(student_id=to_uuid(student_id), previous_batch_id=to_uuid(previous_batch_id))
