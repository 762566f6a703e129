"""Course configuration: monthly fee and duration per (stage, level). Read-only to the fee engine."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from feecycle.db.session import Base


class Course(Base):
    """One course per stage (course_name is the stage, e.g. "beginner")."""

    __tablename__ = "courses"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    course_name = Column(String(50), nullable=False, unique=True)
    display_name = Column(String(100), nullable=False)
    description = Column(String(1000), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    display_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    levels = relationship(
        "CourseLevel",
        back_populates="course",
        order_by="CourseLevel.level_number",
        cascade="all, delete-orphan",
        lazy="raise",
    )


class CourseLevel(Base):
    """Fee amount (integer currency units) and duration for one level of a course."""

    __tablename__ = "course_levels"
    __table_args__ = (
        UniqueConstraint("course_id", "level_number", name="uq_course_level_number"),
        CheckConstraint("fee_amount >= 0", name="chk_course_level_fee_amount"),
        CheckConstraint("duration_months IS NULL OR duration_months >= 1", name="chk_course_level_duration"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    course_id = Column(Uuid, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True)
    level_number = Column(Integer, nullable=False)
    fee_amount = Column(Integer, nullable=False)
    duration_months = Column(Integer, nullable=True)  # NULL: no upper bound on generated months
    approximate_hours = Column(Integer, nullable=False, default=0)

    course = relationship("Course", back_populates="levels")
