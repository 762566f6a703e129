"""Student credit ledger: append-only prepaid balance transactions."""

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Uuid

from feecycle.db.session import Base


class StudentCredit(Base):
    """
    One ledger entry. amount is positive for credit_added/credit_used/credit_refund
    (credit_used is subtracted); credit_adjustment carries its own sign.
    """

    __tablename__ = "student_credits"
    __table_args__ = (
        CheckConstraint(
            "transaction_type IN ('credit_added','credit_used','credit_refund','credit_adjustment')",
            name="chk_student_credit_transaction_type",
        ),
        CheckConstraint("balance_after >= 0", name="chk_student_credit_balance_after"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    student_name = Column(String(100), nullable=False)
    transaction_type = Column(String(30), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    balance_before = Column(Integer, nullable=False, default=0)
    balance_after = Column(Integer, nullable=False, default=0)
    description = Column(String(500), nullable=False)
    payment_method = Column(String(20), nullable=True)
    transaction_id = Column(String(100), nullable=True, index=True)
    fee_record_id = Column(Uuid, ForeignKey("fee_records.id", ondelete="SET NULL"), nullable=True)
    fee_month = Column(String(50), nullable=True)
    processed_by = Column(Uuid, nullable=True)  # NULL: system (reconciliation, auto-apply)
    processed_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    remarks = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
