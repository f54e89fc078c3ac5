"""
Domain layer - scheduling and payment rules, free of I/O.
"""

from .conflict_resolver import ConflictResolver
from .group_coverage import propagate_group_coverage
from .models import (
    AvailabilitySlot,
    Enrollment,
    Lesson,
    LessonRecord,
    LessonWindow,
    Teacher,
    TeacherPaymentMonth,
)
from .payment_engine import PaymentEngine
from .schedule_time import ScheduleClock

__all__ = [
    "AvailabilitySlot",
    "ConflictResolver",
    "Enrollment",
    "Lesson",
    "LessonRecord",
    "LessonWindow",
    "PaymentEngine",
    "ScheduleClock",
    "Teacher",
    "TeacherPaymentMonth",
    "propagate_group_coverage",
]
