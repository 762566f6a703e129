"""Directory lookups shared by the fee, credit, batch and reconciliation services."""

from datetime import date
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from feecycle.core.exceptions import MissingAnchorError, NotFoundError
from feecycle.core.models import Batch, Course, CourseLevel, FeeAuditLog, Student


def to_uuid(val):
    if val is None:
        return None
    return val if isinstance(val, UUID) else UUID(str(val))


async def get_student(db: AsyncSession, student_id: UUID) -> Student:
    student = await db.get(Student, to_uuid(student_id))
    if not student:
        raise NotFoundError("Student")
    return student


async def get_batch(db: AsyncSession, batch_id: UUID) -> Batch:
    batch = await db.get(Batch, to_uuid(batch_id))
    if not batch:
        raise NotFoundError("Batch")
    return batch


async def find_level_config(db: AsyncSession, stage: Optional[str], level: Optional[int]) -> Optional[CourseLevel]:
    """Level matching the student's level, else the course's first level; None without an active course."""
    if not stage:
        return None
    levels = (
        await db.execute(
            select(CourseLevel)
            .join(Course, CourseLevel.course_id == Course.id)
            .where(Course.course_name == stage.strip().lower(), Course.is_active.is_(True))
            .order_by(CourseLevel.level_number)
        )
    ).scalars().all()
    if not levels:
        return None
    wanted = level or 1
    for lvl in levels:
        if lvl.level_number == wanted:
            return lvl
    return levels[0]


async def get_level_config(db: AsyncSession, student: Student) -> CourseLevel:
    config = await find_level_config(db, student.stage, student.level)
    if not config:
        raise NotFoundError(f"Course configuration for stage '{student.stage}'")
    return config


async def count_active_students_in_batch(db: AsyncSession, batch_id: UUID) -> int:
    return (
        await db.execute(
            select(func.count(Student.id)).where(Student.batch_id == batch_id, Student.is_active.is_(True))
        )
    ).scalar_one()


def fee_cycle_start(student: Student) -> date:
    """Later of the stored anchor and the enrollment date, or whichever exists."""
    anchor = student.fee_cycle_start_date
    enrolled = student.enrollment_date
    if anchor and enrolled:
        return max(anchor, enrolled)
    if anchor or enrolled:
        return anchor or enrolled
    raise MissingAnchorError(f"Student {student.student_name} has no enrollment date or fee cycle start date")


def due_anchor_day(student: Student) -> int:
    """Day of month every due date is pinned to: the enrollment day."""
    if student.enrollment_date:
        return student.enrollment_date.day
    return fee_cycle_start(student).day


async def log_fee_audit(
    db: AsyncSession,
    reference_table: str,
    reference_id: UUID,
    action_type: str,
    old_value: Optional[dict],
    new_value: Optional[dict],
    changed_by: Optional[UUID],
    student_id: Optional[UUID] = None,
) -> None:
    log = FeeAuditLog(
        student_id=student_id,
        reference_table=reference_table,
        reference_id=reference_id,
        action_type=action_type,
        old_value=old_value,
        new_value=new_value,
        changed_by=changed_by,
    )
    db.add(log)
