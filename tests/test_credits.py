from datetime import date, datetime

import pytest
from sqlalchemy import select

from feecycle.api.v1.batches.service import assign_student_to_batch
from feecycle.api.v1.credits.schemas import CreditAdjustmentCreate, CreditCreate, CreditRefundCreate
from feecycle.api.v1.credits.service import (
    add_credit,
    add_refund,
    apply_credits_to_fee_records,
    get_credit_balance,
    get_credit_history,
    get_credit_summary,
    make_adjustment,
    record_credit_added,
)
from feecycle.api.v1.fees.schemas import BulkPaymentCreate
from feecycle.api.v1.fees.service import generate_missing_obligations, get_student_fees, record_bulk_payment
from feecycle.core.enums import CreditTransactionType, FeeStatus
from feecycle.core.exceptions import InvalidAmountError, NegativeBalanceError
from feecycle.core.models import FeeRecord, StudentCredit


@pytest.mark.asyncio
async def test_add_credit_updates_balance(db_session, make_course, make_student) -> None:
    await make_course()
    student = await make_student()

    entry = await add_credit(db_session, CreditCreate(student_id=student.id, amount=1500, payment_method="cash"))

    assert entry.transaction_type == CreditTransactionType.credit_added
    assert entry.balance_before == 0
    assert entry.balance_after == 1500
    assert await get_credit_balance(db_session, student.id) == 1500


@pytest.mark.asyncio
async def test_refund_and_adjustments(db_session, make_course, make_student) -> None:
    await make_course()
    student = await make_student()
    await add_credit(db_session, CreditCreate(student_id=student.id, amount=1000))

    refund = await add_refund(db_session, CreditRefundCreate(student_id=student.id, amount=200, description="Class cancelled"))
    down = await make_adjustment(
        db_session, CreditAdjustmentCreate(student_id=student.id, amount=-700, description="Correction")
    )

    assert refund.balance_after == 1200
    assert down.balance_before == 1200
    assert down.balance_after == 500
    assert await get_credit_balance(db_session, student.id) == 500


@pytest.mark.asyncio
async def test_adjustment_cannot_make_balance_negative(db_session, make_course, make_student) -> None:
    await make_course()
    student = await make_student()
    student_id = student.id
    await add_credit(db_session, CreditCreate(student_id=student.id, amount=300))

    with pytest.raises(NegativeBalanceError):
        await make_adjustment(
            db_session, CreditAdjustmentCreate(student_id=student.id, amount=-301, description="Too much")
        )

    assert await get_credit_balance(db_session, student_id) == 300


def test_zero_adjustment_is_invalid() -> None:
    with pytest.raises(ValueError):
        CreditAdjustmentCreate(student_id="6f1c1c55-1a2b-4c3d-9e8f-001122334455", amount=0, description="Nothing")


@pytest.mark.asyncio
async def test_credit_applies_oldest_first(db_session, make_course, make_batch, make_student) -> None:
    await make_course(levels=[(1, 2000, None)])
    batch = await make_batch(start_date=date(2025, 1, 1))
    student = await make_student(batch=batch)
    await generate_missing_obligations(db_session, student.id, today=date(2025, 3, 20))
    await add_credit(db_session, CreditCreate(student_id=student.id, amount=3000))

    result = await apply_credits_to_fee_records(db_session, student.id, today=date(2025, 3, 20))

    assert result.amount_used == 3000
    assert result.obligations_touched == 2
    assert result.remaining_balance == 0
    fees = await get_student_fees(db_session, student.id, today=date(2025, 3, 20))
    assert [(f.fee_month, f.paid_amount, f.status) for f in fees] == [
        ("2025-01", 2000, FeeStatus.paid),
        ("2025-02", 1000, FeeStatus.partially_paid),
        ("2025-03", 0, FeeStatus.overdue),
    ]
    used = (
        await db_session.execute(
            select(StudentCredit)
            .where(StudentCredit.transaction_type == CreditTransactionType.credit_used.value)
            .order_by(StudentCredit.balance_before.desc())
        )
    ).scalars().all()
    assert [(u.amount, u.fee_month) for u in used] == [(2000, "2025-01"), (1000, "2025-02")]
    assert all(u.fee_record_id is not None for u in used)


@pytest.mark.asyncio
async def test_credit_larger_than_outstanding_leaves_remainder(
    db_session, make_course, make_batch, make_student
) -> None:
    await make_course(levels=[(1, 2000, None)])
    batch = await make_batch(start_date=date(2025, 1, 1))
    student = await make_student(batch=batch)
    await generate_missing_obligations(db_session, student.id, today=date(2025, 2, 1))
    await add_credit(db_session, CreditCreate(student_id=student.id, amount=5000))

    result = await apply_credits_to_fee_records(db_session, student.id, today=date(2025, 2, 1))

    assert result.amount_used == 4000
    assert result.remaining_balance == 1000
    unpaid = (
        await db_session.execute(select(FeeRecord).where(FeeRecord.paid_amount < FeeRecord.fee_amount))
    ).scalars().all()
    assert unpaid == []


@pytest.mark.asyncio
async def test_prepaid_credit_is_spent_on_batch_assignment(
    db_session, make_course, make_batch, make_student
) -> None:
    await make_course(levels=[(1, 2000, None)])
    student = await make_student(enrollment_date=date(2025, 1, 20))
    await record_bulk_payment(
        db_session,
        BulkPaymentCreate(
            student_id=student.id,
            months=[{"fee_month": "2025-02"}],
            payment_date=datetime(2025, 1, 25),
            payment_method="cash",
            paid_amount=3000,
        ),
        today=date(2025, 1, 25),
    )
    assert await get_credit_balance(db_session, student.id) == 3000
    batch = await make_batch(start_date=date(2025, 2, 1))

    result = await assign_student_to_batch(db_session, student.id, batch.id, today=date(2025, 2, 10))

    assert result.obligations_created == 1
    assert result.credit_applied == 2000
    assert result.remaining_credit == 1000
    fees = await get_student_fees(db_session, student.id, today=date(2025, 2, 10))
    assert [(f.fee_month, f.paid_amount, f.status) for f in fees] == [("2025-02", 2000, FeeStatus.paid)]
    assert await get_credit_balance(db_session, student.id) == 1000


@pytest.mark.asyncio
async def test_history_and_summary(db_session, make_course, make_student) -> None:
    await make_course()
    first = await make_student(name="A Student")
    second = await make_student(name="B Student")
    await add_credit(db_session, CreditCreate(student_id=first.id, amount=100))
    await add_credit(db_session, CreditCreate(student_id=first.id, amount=50))

    history = await get_credit_history(db_session, first.id)
    summary = await get_credit_summary(db_session, [first.id, second.id])

    assert len(history) == 2
    assert sorted(h.amount for h in history) == [50, 100]
    assert summary == {first.id: 150, second.id: 0}


@pytest.mark.asyncio
async def test_non_positive_credit_is_a_client_error(db_session, make_course, make_student) -> None:
    await make_course()
    student = await make_student()

    with pytest.raises(InvalidAmountError) as exc_info:
        await record_credit_added(db_session, student, 0, "Nothing received")

    assert exc_info.value.status_code == 400
    assert await get_credit_balance(db_session, student.id) == 0
