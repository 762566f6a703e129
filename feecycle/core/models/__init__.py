from feecycle.core.models.batch import Batch
from feecycle.core.models.course import Course, CourseLevel
from feecycle.core.models.student import Student
from feecycle.core.models.fee_record import FeeRecord
from feecycle.core.models.student_credit import StudentCredit
from feecycle.core.models.fee_audit_log import FeeAuditLog

__all__ = [
    "Batch",
    "Course",
    "CourseLevel",
    "Student",
    "FeeRecord",
    "StudentCredit",
    "FeeAuditLog",
]
