import asyncio
import gc
from datetime import date
from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from feecycle.api.v1.credits.service import get_credit_balance
from feecycle.api.v1.fees.schemas import BulkPaymentCreate
from feecycle.api.v1.fees.service import record_bulk_payment
from feecycle.core import locks
from feecycle.core.locks import student_lock
from feecycle.core.models import Batch, Course, CourseLevel, FeeRecord, Student, StudentCredit
from feecycle.db.session import Base, build_engine


@pytest.fixture()
async def sessions(tmp_path):
    """Session factory on a file database, so concurrent sessions use separate connections."""
    file_engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'fees.db'}")
    async with file_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(bind=file_engine, class_=AsyncSession, expire_on_commit=False)
    await file_engine.dispose()


async def _seed_student(sessions, with_batch: bool):
    async with sessions() as db:
        course = Course(course_name="beginner", display_name="Beginner", is_active=True)
        db.add(course)
        await db.flush()
        db.add(CourseLevel(course_id=course.id, level_number=1, fee_amount=2000))
        batch = Batch(
            batch_name="Morning",
            batch_code="B-MORNING",
            stage="beginner",
            level=1,
            status="active",
            start_date=date(2025, 1, 1),
        )
        db.add(batch)
        await db.flush()
        student = Student(
            student_code=f"STU-TEST-{uuid4().hex[:10]}",
            student_name="Asha Rao",
            stage="beginner",
            level=1,
            batch_id=batch.id if with_batch else None,
            enrollment_date=date(2025, 1, 15),
            fee_cycle_start_date=date(2025, 1, 1) if with_batch else None,
            is_active=True,
        )
        db.add(student)
        await db.commit()
        return student.id


async def _pay_concurrently(sessions, payloads):
    async def pay(payload):
        async with sessions() as db:
            return await record_bulk_payment(db, payload, today=date(2025, 1, 10))

    return await asyncio.gather(*(pay(p) for p in payloads))


@pytest.mark.asyncio
async def test_student_lock_serializes_and_is_released() -> None:
    student_id = uuid4()
    events = []

    async def worker(name: str, hold: float) -> None:
        async with student_lock(student_id):
            events.append(f"{name} in")
            await asyncio.sleep(hold)
            events.append(f"{name} out")

    await asyncio.gather(worker("first", 0.02), worker("second", 0))

    assert events == ["first in", "first out", "second in", "second out"]
    gc.collect()
    assert str(student_id) not in locks._locks


@pytest.mark.asyncio
async def test_concurrent_bulk_payments_share_months(sessions) -> None:
    student_id = await _seed_student(sessions, with_batch=True)
    payloads = [
        BulkPaymentCreate(
            student_id=student_id,
            months=[{"fee_month": "2025-02"}, {"fee_month": "2025-03"}],
            payment_method="cash",
            paid_amount=1000,
        ),
        BulkPaymentCreate(
            student_id=student_id,
            months=[{"fee_month": "2025-03"}, {"fee_month": "2025-04"}],
            payment_method="upi",
            paid_amount=1000,
        ),
    ]

    results = await _pay_concurrently(sessions, payloads)

    assert all(r.routed_to_credit is False for r in results)
    async with sessions() as db:
        rows = (
            await db.execute(
                select(FeeRecord.fee_month, FeeRecord.paid_amount)
                .where(FeeRecord.student_id == student_id)
                .order_by(FeeRecord.fee_month)
            )
        ).all()
    # one record per month; March received both payments
    assert [tuple(r) for r in rows] == [("2025-02", 1000), ("2025-03", 2000), ("2025-04", 1000), ("2025-05", 0)]


@pytest.mark.asyncio
async def test_concurrent_credits_keep_ledger_consistent(sessions) -> None:
    student_id = await _seed_student(sessions, with_batch=False)
    payloads = [
        BulkPaymentCreate(student_id=student_id, payment_method="cash", paid_amount=1000),
        BulkPaymentCreate(student_id=student_id, payment_method="cash", paid_amount=1000),
    ]

    await _pay_concurrently(sessions, payloads)

    async with sessions() as db:
        assert await get_credit_balance(db, student_id) == 2000
        entries = (
            await db.execute(
                select(StudentCredit.balance_before, StudentCredit.balance_after)
                .where(StudentCredit.student_id == student_id)
                .order_by(StudentCredit.balance_before)
            )
        ).all()
    assert [tuple(e) for e in entries] == [(0, 1000), (1000, 2000)]
