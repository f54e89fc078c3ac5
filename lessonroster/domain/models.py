"""
Domain models for teachers, availability, lessons and payment records.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Tuple

from pendulum import DateTime

from .exceptions import ValidationError
from .schedule_time import (
    MINUTES_PER_DAY,
    WEEKDAY_NAMES,
    format_minute,
    intervals_overlap,
    validate_day_of_week,
)

DEFAULT_LESSON_MINUTES = 60


class TeacherStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class EnrollmentStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    INACTIVE = "INACTIVE"
    PENDING = "PENDING"


class LessonType(str, Enum):
    INDIVIDUAL = "INDIVIDUAL"
    GROUP = "GROUP"


class LessonStatus(str, Enum):
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    MAKEUP = "MAKEUP"


class RecordStatus(str, Enum):
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, Enum):
    PAGO = "PAGO"
    EM_ABERTO = "EM_ABERTO"


@dataclass(frozen=True)
class LessonWindow:
    """
    Immutable absolute time window ``[start, end)`` of a lesson.

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValidationError(f"Start time {self.start} must be before end time {self.end}")

    @classmethod
    def from_start(cls, start: DateTime, duration_minutes: int) -> "LessonWindow":
        if duration_minutes <= 0:
            raise ValidationError(f"duration_minutes must be positive, got {duration_minutes}")
        return cls(start=start, end=start.add(minutes=duration_minutes))

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() / 60)

    def overlaps(self, other: "LessonWindow") -> bool:
        """Check if this window overlaps with another."""
        return intervals_overlap(self.start, self.end, other.start, other.end)

    def __str__(self) -> str:
        return f"{self.start.format('DD/MM/YYYY HH:mm')} - {self.end.format('HH:mm')}"


@dataclass(frozen=True)
class Teacher:
    id: str
    name: str
    hourly_rate: Optional[Decimal] = None
    status: TeacherStatus = TeacherStatus.ACTIVE
    period_amount: Optional[Decimal] = None  # standing flat amount per period
    extra_amount: Optional[Decimal] = None

    def __post_init__(self):
        if not self.id:
            raise ValidationError("Teacher id is required")
        if self.hourly_rate is not None and self.hourly_rate < 0:
            raise ValidationError(f"hourly_rate must not be negative for teacher {self.id}")

    @property
    def is_active(self) -> bool:
        return self.status == TeacherStatus.ACTIVE


@dataclass(frozen=True)
class AvailabilitySlot:
    """
    Recurring weekly interval in which a teacher accepts lessons.

    Minutes are counted from local midnight in the schedule timezone.
    """
    teacher_id: str
    day_of_week: int
    start_minute: int
    end_minute: int

    def __post_init__(self):
        validate_day_of_week(self.day_of_week)
        for value in (self.start_minute, self.end_minute):
            if not 0 <= value < MINUTES_PER_DAY:
                raise ValidationError(f"Slot minute out of range [0, 1440): {value}")
        if self.start_minute >= self.end_minute:
            raise ValidationError(
                f"Slot start {format_minute(self.start_minute)} must be before "
                f"end {format_minute(self.end_minute)}"
            )

    def contains(self, day_of_week: int, start_minute: int, end_minute: int) -> bool:
        """True when ``[start_minute, end_minute)`` on that day fits entirely inside the slot."""
        return (
            self.day_of_week == day_of_week
            and start_minute >= self.start_minute
            and end_minute <= self.end_minute
        )


@dataclass(frozen=True)
class Enrollment:
    id: str
    student_name: str = ""
    status: EnrollmentStatus = EnrollmentStatus.ACTIVE
    lesson_type: LessonType = LessonType.INDIVIDUAL
    group_name: Optional[str] = None
    paused_at: Optional[DateTime] = None

    @property
    def group_key(self) -> Optional[str]:
        """Normalized group name, or None for individual enrollments."""
        if self.lesson_type != LessonType.GROUP or not self.group_name:
            return None
        key = self.group_name.strip()
        return key or None


@dataclass(frozen=True)
class AuditEntry:
    """One immutable line of a lesson's audit trail."""
    actor: str
    action: str
    timestamp: DateTime
    source_teacher: Optional[str] = None
    destination_teacher: Optional[str] = None

    def render(self) -> str:
        when = self.timestamp.format("DD/MM/YYYY HH:mm")
        if self.action == "transfer":
            return (
                f"Lesson transferred from teacher {self.source_teacher} "
                f"to teacher {self.destination_teacher} by {self.actor} at {when}"
            )
        return f"{self.action} by {self.actor} at {when}"


@dataclass(frozen=True)
class Lesson:
    """A scheduled occurrence. Cancellation is a status change, never a delete."""
    id: str
    teacher_id: Optional[str]
    enrollment_id: str
    start_at: DateTime
    duration_minutes: int = DEFAULT_LESSON_MINUTES
    status: LessonStatus = LessonStatus.CONFIRMED
    student_name: str = ""
    notes: Optional[str] = None
    audit_trail: Tuple[AuditEntry, ...] = ()

    def __post_init__(self):
        if not self.id:
            raise ValidationError("Lesson id is required")
        if self.duration_minutes is None:
            object.__setattr__(self, "duration_minutes", DEFAULT_LESSON_MINUTES)
        elif self.duration_minutes <= 0:
            raise ValidationError(
                f"duration_minutes must be positive for lesson {self.id}, got {self.duration_minutes}"
            )

    @property
    def end_at(self) -> DateTime:
        return self.start_at.add(minutes=self.duration_minutes)

    @property
    def is_cancelled(self) -> bool:
        return self.status == LessonStatus.CANCELLED

    def window(self) -> LessonWindow:
        return LessonWindow(start=self.start_at, end=self.end_at)

    def with_audit_entry(self, entry: AuditEntry) -> "Lesson":
        """Append ``entry`` to the trail and to the rendered notes."""
        line = entry.render()
        notes = f"{self.notes}\n{line}" if self.notes and self.notes.strip() else line
        return replace(self, notes=notes, audit_trail=self.audit_trail + (entry,))

    def transferred_to(self, teacher_id: str, entry: AuditEntry) -> "Lesson":
        return replace(self.with_audit_entry(entry), teacher_id=teacher_id)


@dataclass(frozen=True)
class LessonRecord:
    """
    Post-hoc confirmation that a lesson took place.

    Carries its parent lesson and, when known, the enrollment the lesson
    belongs to so the payment filters can run without extra lookups.
    """
    id: str
    lesson: Lesson
    status: RecordStatus = RecordStatus.CONFIRMED
    actual_minutes: Optional[int] = None
    enrollment: Optional[Enrollment] = None

    @property
    def minutes(self) -> int:
        if self.actual_minutes is not None:
            return self.actual_minutes
        return self.lesson.duration_minutes


@dataclass(frozen=True)
class TeacherPaymentMonth:
    """Per-teacher, per-month override of the payment period and amounts."""
    teacher_id: str
    year: int
    month: int
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    period_amount: Optional[Decimal] = None
    extra_amount: Optional[Decimal] = None
    payment_status: PaymentStatus = PaymentStatus.EM_ABERTO
    registered_hours: Optional[Decimal] = None
    payable_amount: Optional[Decimal] = None

    def __post_init__(self):
        if not 1 <= self.month <= 12:
            raise ValidationError(f"month must be between 1 and 12, got {self.month}")


@dataclass(frozen=True, order=True)
class RequiredSlot:
    """A weekly (day, start, end) occupied by a lesson that must be covered."""
    day_of_week: int
    start_minute: int
    end_minute: int

    def format_display(self) -> str:
        return (
            f"{WEEKDAY_NAMES[self.day_of_week]} "
            f"{format_minute(self.start_minute)}-{format_minute(self.end_minute)}"
        )


@dataclass
class TeacherSchedule:
    """Facts about one teacher needed by the conflict resolver."""
    teacher: Teacher
    slots: List[AvailabilitySlot] = field(default_factory=list)
    lessons: List[Lesson] = field(default_factory=list)


@dataclass(frozen=True)
class AvailabilityDecision:
    available: bool
    reason: Optional[str] = None
    conflicting_lesson_id: Optional[str] = None


@dataclass(frozen=True)
class OpenTime:
    """A bookable start time found inside a teacher's availability."""
    start_at: DateTime
    start_minute: int
    end_minute: int

    def format_display(self) -> str:
        return f"{format_minute(self.start_minute)} - {format_minute(self.end_minute)}"


@dataclass(frozen=True)
class PaymentResult:
    registered_minutes: int
    registered_hours: Decimal
    hours_amount: Decimal
    payable_amount: Decimal
    record_count: int


@dataclass(frozen=True)
class EstimatedHours:
    """Scheduled (not confirmed) hours. Reconciliation only, never paid."""
    minutes: int
    hours: Decimal
    expected_records: int


@dataclass(frozen=True)
class PaymentTerms:
    """Effective period window and amounts for one payment computation."""
    period_start: DateTime
    period_end: DateTime
    hourly_rate: Decimal
    period_amount: Decimal
    extra_amount: Decimal
    payment_status: PaymentStatus = PaymentStatus.EM_ABERTO
    year: Optional[int] = None
    month: Optional[int] = None


@dataclass(frozen=True)
class PaymentStatement:
    teacher_id: str
    teacher_name: str
    terms: PaymentTerms
    result: PaymentResult
    estimated: EstimatedHours

    @property
    def registered_hours(self) -> Decimal:
        return self.result.registered_hours

    @property
    def payable_amount(self) -> Decimal:
        return self.result.payable_amount

    @property
    def estimated_hours(self) -> Decimal:
        return self.estimated.hours


@dataclass(frozen=True)
class TransferResult:
    transferred_count: int
    lesson_ids: Tuple[str, ...] = ()


@dataclass(frozen=True)
class CoverageReport:
    """Which active enrollments have a teacher this week and next week."""
    covered_this_week: frozenset
    covered_next_week: frozenset
    without_teacher_this_week: Tuple[str, ...]
    without_teacher_next_week: Tuple[str, ...]
