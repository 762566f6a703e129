"""Fee record: one month's fee obligation for one student. Status is computed, never stored."""

import uuid
from datetime import date, datetime
from typing import Optional

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint, Uuid

from feecycle.core.enums import FeeStatus
from feecycle.core.fee_calendar import Period, compute_fee_status, parse_fee_month
from feecycle.db.session import Base


class FeeRecord(Base):
    """
    fee_amount is copied from the course level at creation and never updated.
    paid_amount <= fee_amount is enforced by the service layer; reconciliation repairs legacy rows that break it.
    """

    __tablename__ = "fee_records"
    __table_args__ = (
        UniqueConstraint("student_id", "fee_month", name="uq_fee_record_student_month"),
        CheckConstraint("fee_amount >= 0", name="chk_fee_record_fee_amount"),
        CheckConstraint("paid_amount >= 0", name="chk_fee_record_paid_amount"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    student_name = Column(String(100), nullable=False)
    stage = Column(String(20), nullable=False)
    level = Column(Integer, nullable=True)
    fee_month = Column(String(50), nullable=False)  # canonical YYYY-MM; legacy "January 2025" is still parsed
    due_date = Column(DateTime, nullable=False, index=True)
    fee_amount = Column(Integer, nullable=False)
    paid_amount = Column(Integer, nullable=False, default=0)
    payment_date = Column(DateTime, nullable=True)
    payment_method = Column(String(20), nullable=True)  # cash, online, card, upi, other
    transaction_id = Column(String(100), nullable=True, index=True)
    remarks = Column(String(500), nullable=True)
    updated_by = Column(Uuid, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    @property
    def period(self) -> Optional[Period]:
        return parse_fee_month(self.fee_month)

    @property
    def remaining_amount(self) -> int:
        return max(self.fee_amount - (self.paid_amount or 0), 0)

    @property
    def payment_percentage(self) -> int:
        if not self.fee_amount:
            return 0
        return round((self.paid_amount or 0) * 100 / self.fee_amount)

    def status_on(self, today: Optional[date] = None) -> FeeStatus:
        return compute_fee_status(self.due_date, self.payment_date, self.paid_amount or 0, self.fee_amount, today)

    @property
    def status(self) -> FeeStatus:
        return self.status_on()
