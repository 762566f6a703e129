from datetime import date, datetime

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from feecycle.api.v1.fees.service import (
    generate_missing_obligations,
    generate_next_obligation,
    get_payable_obligations,
)
from feecycle.core.config import settings
from feecycle.core.enums import FeeStatus
from feecycle.core.exceptions import MissingAnchorError, NoBatchAssigned
from feecycle.core.models import FeeRecord


async def _fee_count(db: AsyncSession, student_id) -> int:
    return (
        await db.execute(select(func.count(FeeRecord.id)).where(FeeRecord.student_id == student_id))
    ).scalar_one()


@pytest.mark.asyncio
async def test_generates_every_month_through_current(db_session, make_course, make_batch, make_student) -> None:
    await make_course(levels=[(1, 2000, None)])
    batch = await make_batch(start_date=date(2025, 1, 1))
    student = await make_student(enrollment_date=date(2025, 1, 15), batch=batch, fee_cycle_start_date=date(2025, 1, 1))

    result = await generate_missing_obligations(db_session, student.id, today=date(2025, 4, 10))

    assert [r.fee_month for r in result.created] == ["2025-01", "2025-02", "2025-03", "2025-04"]
    assert all(r.due_date.day == 15 for r in result.created)
    assert all(r.fee_amount == 2000 and r.paid_amount == 0 for r in result.created)
    assert [r.status for r in result.created] == [
        FeeStatus.overdue, FeeStatus.overdue, FeeStatus.overdue, FeeStatus.upcoming,
    ]


@pytest.mark.asyncio
async def test_generation_is_idempotent(db_session, make_course, make_batch, make_student) -> None:
    await make_course()
    batch = await make_batch(start_date=date(2025, 1, 1))
    student = await make_student(batch=batch)

    first = await generate_missing_obligations(db_session, student.id, today=date(2025, 3, 1))
    second = await generate_missing_obligations(db_session, student.id, today=date(2025, 3, 1))

    assert len(first.created) == 3
    assert second.created == []
    assert await _fee_count(db_session, student.id) == 3


@pytest.mark.asyncio
async def test_legacy_label_blocks_duplicate_month(db_session, make_course, make_batch, make_student) -> None:
    await make_course()
    batch = await make_batch(start_date=date(2025, 1, 1))
    student = await make_student(batch=batch)
    db_session.add(
        FeeRecord(
            student_id=student.id,
            student_name=student.student_name,
            stage="beginner",
            level=1,
            fee_month="January 2025",
            due_date=datetime(2025, 1, 15, 23, 59, 59),
            fee_amount=2000,
            paid_amount=0,
        )
    )
    await db_session.commit()

    result = await generate_missing_obligations(db_session, student.id, today=date(2025, 2, 20))

    assert [r.fee_month for r in result.created] == ["2025-02"]
    assert await _fee_count(db_session, student.id) == 2


@pytest.mark.asyncio
async def test_fee_cycle_starts_at_later_of_anchor_and_enrollment(
    db_session, make_course, make_batch, make_student
) -> None:
    await make_course()
    batch = await make_batch(start_date=date(2025, 3, 1))
    student = await make_student(enrollment_date=date(2025, 1, 20), batch=batch, fee_cycle_start_date=date(2025, 3, 1))

    result = await generate_missing_obligations(db_session, student.id, today=date(2025, 4, 5))

    assert [r.fee_month for r in result.created] == ["2025-03", "2025-04"]
    # due day follows enrollment, not the batch start
    assert result.created[0].due_date.day == 20


@pytest.mark.asyncio
async def test_generation_respects_course_duration(db_session, make_course, make_batch, make_student) -> None:
    await make_course(levels=[(1, 2000, 2)])
    batch = await make_batch(start_date=date(2025, 1, 1))
    student = await make_student(batch=batch)

    result = await generate_missing_obligations(db_session, student.id, today=date(2025, 6, 1))

    assert [r.fee_month for r in result.created] == ["2025-01", "2025-02"]


@pytest.mark.asyncio
async def test_generation_stops_at_configured_ceiling(
    db_session, make_course, make_batch, make_student, monkeypatch
) -> None:
    monkeypatch.setattr(settings, "fee_generation_max_months", 3)
    await make_course()
    batch = await make_batch(start_date=date(2024, 1, 1))
    student = await make_student(enrollment_date=date(2024, 1, 10), batch=batch)

    result = await generate_missing_obligations(db_session, student.id, today=date(2025, 1, 1))

    assert len(result.created) == 3


@pytest.mark.asyncio
async def test_generation_requires_batch(db_session, make_course, make_student) -> None:
    await make_course()
    student = await make_student()

    with pytest.raises(NoBatchAssigned):
        await generate_missing_obligations(db_session, student.id, today=date(2025, 3, 1))


@pytest.mark.asyncio
async def test_generation_requires_an_anchor(db_session, make_course, make_batch, make_student) -> None:
    await make_course()
    batch = await make_batch(start_date=date(2025, 1, 1))
    student = await make_student(enrollment_date=None, batch=batch)

    with pytest.raises(MissingAnchorError):
        await generate_missing_obligations(db_session, student.id, today=date(2025, 3, 1))


@pytest.mark.asyncio
async def test_next_obligation_waits_for_unpaid_fee(db_session, make_course, make_batch, make_student) -> None:
    await make_course()
    batch = await make_batch(start_date=date(2025, 1, 1))
    student = await make_student(batch=batch)

    first = await generate_next_obligation(db_session, student.id, today=date(2025, 1, 5))
    blocked = await generate_next_obligation(db_session, student.id, today=date(2025, 1, 5))

    assert first is not None and first.fee_month == "2025-01"
    assert blocked is None
    assert await _fee_count(db_session, student.id) == 1


@pytest.mark.asyncio
async def test_next_obligation_follows_latest_paid_month(db_session, make_course, make_batch, make_student) -> None:
    await make_course()
    batch = await make_batch(start_date=date(2025, 1, 1))
    student = await make_student(batch=batch)
    await generate_missing_obligations(db_session, student.id, today=date(2025, 2, 1))
    for record in (await db_session.execute(select(FeeRecord))).scalars().all():
        record.paid_amount = record.fee_amount
        record.payment_date = datetime(2025, 2, 1)
    await db_session.commit()

    nxt = await generate_next_obligation(db_session, student.id, today=date(2025, 2, 1))

    assert nxt is not None
    assert nxt.fee_month == "2025-03"
    assert nxt.status == FeeStatus.upcoming


@pytest.mark.asyncio
async def test_next_obligation_without_batch_is_none(db_session, make_course, make_student) -> None:
    await make_course()
    student = await make_student()

    assert await generate_next_obligation(db_session, student.id, today=date(2025, 2, 1)) is None


@pytest.mark.asyncio
async def test_payable_lists_overdue_and_first_upcoming(db_session, make_course, make_batch, make_student) -> None:
    await make_course()
    batch = await make_batch(start_date=date(2025, 1, 1))
    student = await make_student(batch=batch)
    await generate_missing_obligations(db_session, student.id, today=date(2025, 3, 10))

    payable = await get_payable_obligations(db_session, student.id, today=date(2025, 3, 10))

    assert [r.fee_month for r in payable.overdue] == ["2025-01", "2025-02"]
    assert payable.next_upcoming is not None
    assert payable.next_upcoming.fee_month == "2025-03"
