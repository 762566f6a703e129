"""Student record as seen by the fee engine."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, String, Uuid

from feecycle.db.session import Base


class Student(Base):
    """
    fee_cycle_start_date is the anchor written on batch assignment (batch start date).
    The effective fee-cycle start is the later of the anchor and enrollment_date.
    """

    __tablename__ = "students"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_code = Column(String(30), nullable=False, unique=True)  # e.g. STU-20250115-00001
    student_name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(20), nullable=True)
    stage = Column(String(20), nullable=True)
    level = Column(Integer, nullable=True)
    batch_id = Column(Uuid, ForeignKey("batches.id", ondelete="SET NULL"), nullable=True, index=True)
    # Nullable only so imported legacy rows can be represented; generation rejects a student with no dates.
    enrollment_date = Column(Date, nullable=True)
    fee_cycle_start_date = Column(Date, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __mapper_args__ = {"version_id_col": version}
