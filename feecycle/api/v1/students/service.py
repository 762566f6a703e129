"""
Student lifecycle: enrollment, stage/level changes and deletion.

Deletion cascades explicitly in the service (ledger, fee records, audit trail, then the student)
rather than relying on database ON DELETE rules, so the same code path works on every backend.
"""

import logging
import secrets
from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from feecycle.api.v1.batches.service import assign_to_batch, check_batch_active, check_capacity, check_stage_level
from feecycle.core.exceptions import ServiceError
from feecycle.core.fee_calendar import resolve_today
from feecycle.core.locks import student_lock
from feecycle.core.models import FeeAuditLog, FeeRecord, Student, StudentCredit
from feecycle.core.services import get_batch, get_student, to_uuid
from feecycle.db.unit_of_work import unit_of_work

from .schemas import (
    StageLevelChange,
    StageLevelChangeResult,
    StudentCreate,
    StudentCreateResult,
    StudentDeleteResult,
    StudentResponse,
)

logger = logging.getLogger(__name__)


def generate_student_code_candidate(enrolled_on: date) -> str:
    """STU-YYYYMMDD-NNNNN with a random five-digit suffix."""
    suffix = "".join(secrets.choice("0123456789") for _ in range(5))
    return f"STU-{enrolled_on:%Y%m%d}-{suffix}"


async def generate_student_code(db: AsyncSession, enrolled_on: date, max_attempts: int = 20) -> str:
    for _ in range(max_attempts):
        code = generate_student_code_candidate(enrolled_on)
        result = await db.execute(select(Student.id).where(Student.student_code == code))
        if result.scalar_one_or_none() is None:
            return code
    raise ServiceError("Could not generate unique student code", status.HTTP_500_INTERNAL_SERVER_ERROR)


async def get_student_detail(db: AsyncSession, student_id: UUID) -> StudentResponse:
    return StudentResponse.model_validate(await get_student(db, student_id))


async def create_student(
    db: AsyncSession,
    payload: StudentCreate,
    changed_by: Optional[UUID] = None,
    today: Optional[date] = None,
) -> StudentCreateResult:
    """
    Enroll a student. With batch_id the student goes straight into the batch: the fee cycle is
    anchored, missing months are generated, all in the same unit of work. Without a batch no fee
    records exist yet and any payment is kept as credit.
    """
    today = resolve_today(today)
    enrolled_on = payload.enrollment_date or today
    assignment = None
    async with unit_of_work(db):
        batch = await get_batch(db, payload.batch_id) if payload.batch_id else None
        student = Student(
            student_code=await generate_student_code(db, enrolled_on),
            student_name=payload.student_name.strip(),
            email=payload.email.strip().lower() if payload.email else None,
            phone=payload.phone,
            stage=payload.stage.value,
            level=payload.level,
            enrollment_date=enrolled_on,
            is_active=True,
        )
        if batch is not None:
            check_batch_active(batch)
            check_stage_level(student, batch)
            await check_capacity(db, batch, 1)
        db.add(student)
        await db.flush()
        if batch is not None:
            async with student_lock(student.id):
                assignment = await assign_to_batch(db, student, batch, changed_by=changed_by, today=today)
    await db.refresh(student)
    logger.info("Created student %s (%s)", student.id, student.student_code)
    return StudentCreateResult(
        student=StudentResponse.model_validate(student),
        batch_assignment=assignment,
        message=None if batch is not None else (
            "Student created without batch. Any payments will be stored as credits until a batch is assigned."
        ),
    )


async def change_stage_level(
    db: AsyncSession,
    student_id: UUID,
    payload: StageLevelChange,
    changed_by: Optional[UUID] = None,
    today: Optional[date] = None,
) -> StageLevelChangeResult:
    """
    Move a student to a new stage/level together with a batch that runs it.

    Paid and past months keep the fee they were raised at; untouched upcoming months of the old
    batch are dropped and regenerated at the new level's fee.
    """
    today = resolve_today(today)
    async with student_lock(student_id):
        async with unit_of_work(db):
            student = await get_student(db, student_id)
            batch = await get_batch(db, payload.batch_id)
            previous_stage, previous_level = student.stage, student.level
            check_batch_active(batch)
            student.stage = payload.stage.value
            student.level = payload.level
            check_stage_level(student, batch)
            if student.batch_id != batch.id:
                await check_capacity(db, batch, 1)
            assignment = await assign_to_batch(db, student, batch, changed_by=changed_by, today=today)
        await db.refresh(student)
    logger.info(
        "Student %s moved from %s %s to %s %s",
        student.id, previous_stage, previous_level, student.stage, student.level,
    )
    return StageLevelChangeResult(
        student=StudentResponse.model_validate(student),
        previous_stage=previous_stage,
        previous_level=previous_level,
        batch_assignment=assignment,
    )


async def delete_student(db: AsyncSession, student_id: UUID) -> StudentDeleteResult:
    async with student_lock(student_id):
        async with unit_of_work(db):
            student = await get_student(db, student_id)
            sid = student.id
            credits = await db.execute(delete(StudentCredit).where(StudentCredit.student_id == sid))
            fees = await db.execute(delete(FeeRecord).where(FeeRecord.student_id == sid))
            audits = await db.execute(delete(FeeAuditLog).where(FeeAuditLog.student_id == sid))
            await db.delete(student)
            await db.flush()
    logger.info(
        "Deleted student %s with %s fee record(s), %s credit entries, %s audit rows",
        sid, fees.rowcount, credits.rowcount, audits.rowcount,
    )
    return StudentDeleteResult(
        student_id=to_uuid(sid),
        fee_records_deleted=fees.rowcount,
        credit_entries_deleted=credits.rowcount,
        audit_logs_deleted=audits.rowcount,
    )
