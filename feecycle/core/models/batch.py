"""Batch directory entry: consulted for fee-cycle anchor derivation and transfer eligibility."""

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, Column, Date, DateTime, Integer, String, Uuid

from feecycle.core.enums import BatchStatus
from feecycle.db.session import Base


class Batch(Base):
    __tablename__ = "batches"
    __table_args__ = (
        CheckConstraint("status IN ('active','ended','draft')", name="chk_batch_status"),
        CheckConstraint("max_students IS NULL OR max_students >= 1", name="chk_batch_max_students"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    batch_name = Column(String(100), nullable=False, unique=True)
    batch_code = Column(String(50), nullable=False, unique=True)
    stage = Column(String(20), nullable=False)
    level = Column(Integer, nullable=False)
    max_students = Column(Integer, nullable=True)  # NULL: unlimited
    status = Column(String(20), nullable=False, default=BatchStatus.draft.value)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    description = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
