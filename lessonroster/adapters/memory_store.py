"""
In-memory lesson repository, optionally seeded from a YAML fixture file.

Useful for running the CLI and the services without a database.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Collection, Dict, Iterable, List, Optional, Set, Tuple

import pendulum
import yaml
from pendulum import DateTime

from ..domain.exceptions import NotFoundError
from ..domain.models import (
    AuditEntry,
    AvailabilitySlot,
    Enrollment,
    EnrollmentStatus,
    Lesson,
    LessonRecord,
    LessonStatus,
    LessonType,
    PaymentStatus,
    RecordStatus,
    Teacher,
    TeacherPaymentMonth,
    TeacherStatus,
)
from ..domain.schedule_time import ScheduleClock, parse_minute

logger = logging.getLogger(__name__)

PaymentKey = Tuple[str, int, int]


class InMemoryRepository:
    """
    Dictionary-backed implementation of ``LessonRepositoryProtocol``.

    All stored values are frozen dataclasses, so a transaction snapshot is a
    shallow copy of the containers.
    """

    def __init__(
        self,
        clock: ScheduleClock,
        *,
        teachers: Iterable[Teacher] = (),
        slots: Iterable[AvailabilitySlot] = (),
        enrollments: Iterable[Enrollment] = (),
        lessons: Iterable[Lesson] = (),
        records: Iterable[LessonRecord] = (),
        holidays: Iterable[str] = (),
        payment_months: Iterable[TeacherPaymentMonth] = (),
    ):
        self.clock = clock
        self._teachers: Dict[str, Teacher] = {teacher.id: teacher for teacher in teachers}
        self._slots: List[AvailabilitySlot] = list(slots)
        self._enrollments: Dict[str, Enrollment] = {item.id: item for item in enrollments}
        self._lessons: Dict[str, Lesson] = {lesson.id: lesson for lesson in lessons}
        self._records: Dict[str, LessonRecord] = {record.id: record for record in records}
        self._holidays: Set[str] = set(holidays)
        self._payment_months: Dict[PaymentKey, TeacherPaymentMonth] = {
            (item.teacher_id, item.year, item.month): item for item in payment_months
        }
        self._lock = asyncio.Lock()

    # Reads

    async def get_teacher(self, teacher_id: str) -> Optional[Teacher]:
        return self._teachers.get(teacher_id)

    async def list_teachers(self, status: Optional[TeacherStatus] = None) -> List[Teacher]:
        teachers = [
            teacher for teacher in self._teachers.values()
            if status is None or teacher.status == status
        ]
        return sorted(teachers, key=lambda teacher: (teacher.name.lower(), teacher.id))

    async def get_teacher_slots(self, teacher_id: str) -> List[AvailabilitySlot]:
        return [slot for slot in self._slots if slot.teacher_id == teacher_id]

    async def get_teacher_lessons(
        self,
        teacher_id: str,
        from_date: Optional[DateTime] = None,
        statuses: Optional[Collection[LessonStatus]] = None,
    ) -> List[Lesson]:
        lessons = [
            lesson for lesson in self._lessons.values()
            if lesson.teacher_id == teacher_id
            and (from_date is None or lesson.start_at >= from_date)
            and (statuses is None or lesson.status in statuses)
        ]
        return sorted(lessons, key=lambda lesson: (lesson.start_at, lesson.id))

    async def get_lessons_between(self, start: DateTime, end: DateTime) -> List[Lesson]:
        lessons = [lesson for lesson in self._lessons.values() if start <= lesson.start_at <= end]
        return sorted(lessons, key=lambda lesson: (lesson.start_at, lesson.id))

    async def get_enrollments(self, status: Optional[EnrollmentStatus] = None) -> List[Enrollment]:
        return [
            enrollment for enrollment in self._enrollments.values()
            if status is None or enrollment.status == status
        ]

    async def get_confirmed_records(
        self,
        teacher_id: str,
        period_start: DateTime,
        period_end: DateTime,
    ) -> List[LessonRecord]:
        """Confirmed records joined with the current state of their lesson and enrollment."""
        result: List[LessonRecord] = []
        for record in self._records.values():
            if record.status != RecordStatus.CONFIRMED:
                continue
            lesson = self._lessons.get(record.lesson.id, record.lesson)
            if lesson.teacher_id != teacher_id:
                continue
            if not period_start <= lesson.start_at <= period_end:
                continue
            enrollment = self._enrollments.get(lesson.enrollment_id, record.enrollment)
            result.append(replace(record, lesson=lesson, enrollment=enrollment))
        return sorted(result, key=lambda record: (record.lesson.start_at, record.id))

    async def get_holidays(self, start_key: str, end_key: str) -> Set[str]:
        return {key for key in self._holidays if start_key <= key <= end_key}

    async def get_payment_month_override(
        self,
        teacher_id: str,
        year: int,
        month: int,
    ) -> Optional[TeacherPaymentMonth]:
        return self._payment_months.get((teacher_id, year, month))

    # Writes

    async def save_payment_month(self, payment_month: TeacherPaymentMonth) -> None:
        key = (payment_month.teacher_id, payment_month.year, payment_month.month)
        self._payment_months[key] = payment_month

    async def reassign_lesson_teacher(
        self,
        lesson_id: str,
        new_teacher_id: str,
        audit_entry: AuditEntry,
    ) -> Lesson:
        lesson = self._lessons.get(lesson_id)
        if lesson is None:
            raise NotFoundError("Lesson", lesson_id)
        updated = lesson.transferred_to(new_teacher_id, audit_entry)
        self._lessons[lesson_id] = updated
        return updated

    async def upsert_payment_month_summary(
        self,
        teacher_id: str,
        year: int,
        month: int,
        registered_hours: Decimal,
        payable_amount: Decimal,
        status: PaymentStatus,
    ) -> None:
        key = (teacher_id, year, month)
        current = self._payment_months.get(key) or TeacherPaymentMonth(
            teacher_id=teacher_id, year=year, month=month
        )
        self._payment_months[key] = replace(
            current,
            registered_hours=registered_hours,
            payable_amount=payable_amount,
            payment_status=status,
        )

    @asynccontextmanager
    async def transaction(self):
        """Serialize units of work and roll back every write on error."""
        async with self._lock:
            snapshot = self._snapshot()
            try:
                yield
            except BaseException:
                self._restore(snapshot)
                logger.debug("Transaction rolled back")
                raise

    def _snapshot(self) -> Dict[str, Any]:
        return {
            "lessons": dict(self._lessons),
            "records": dict(self._records),
            "payment_months": dict(self._payment_months),
        }

    def _restore(self, snapshot: Dict[str, Any]) -> None:
        self._lessons = snapshot["lessons"]
        self._records = snapshot["records"]
        self._payment_months = snapshot["payment_months"]

    # Fixture loading

    @classmethod
    def load_from_yaml(cls, data_path: Path, clock: ScheduleClock) -> "InMemoryRepository":
        """
        Build a repository from a YAML fixture file.

        Args:
            data_path: Path to the fixture file
            clock: Schedule clock used to read local timestamps

        Returns:
            InMemoryRepository seeded with the fixture

        Raises:
            FileNotFoundError: If the fixture file doesn't exist
            ValueError: If the YAML is invalid or an entry is malformed
        """
        if not data_path.exists():
            raise FileNotFoundError(f"Data file not found: {data_path}")

        try:
            with open(data_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {data_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Data file must contain a mapping at the root level.")

        try:
            return cls._from_mapping(data, clock)
        except (KeyError, TypeError, InvalidOperation) as exc:
            raise ValueError(f"Malformed entry in {data_path}: {exc!r}") from exc

    @classmethod
    def _from_mapping(cls, data: Dict[str, Any], clock: ScheduleClock) -> "InMemoryRepository":
        teachers = [
            Teacher(
                id=str(item["id"]),
                name=item.get("name", str(item["id"])),
                hourly_rate=_optional_decimal(item.get("hourly_rate")),
                status=TeacherStatus(item.get("status", TeacherStatus.ACTIVE.value)),
                period_amount=_optional_decimal(item.get("period_amount")),
                extra_amount=_optional_decimal(item.get("extra_amount")),
            )
            for item in data.get("teachers") or []
        ]
        slots = [
            AvailabilitySlot(
                teacher_id=str(item["teacher_id"]),
                day_of_week=int(item["day_of_week"]),
                start_minute=parse_minute(item["start"]),
                end_minute=parse_minute(item["end"]),
            )
            for item in data.get("slots") or []
        ]
        enrollments = [
            Enrollment(
                id=str(item["id"]),
                student_name=item.get("student_name", ""),
                status=EnrollmentStatus(item.get("status", EnrollmentStatus.ACTIVE.value)),
                lesson_type=LessonType(item.get("lesson_type", LessonType.INDIVIDUAL.value)),
                group_name=item.get("group_name"),
                paused_at=_optional_instant(item.get("paused_at"), clock),
            )
            for item in data.get("enrollments") or []
        ]
        lessons = {
            str(item["id"]): Lesson(
                id=str(item["id"]),
                teacher_id=_optional_str(item.get("teacher_id")),
                enrollment_id=str(item["enrollment_id"]),
                start_at=_instant(item["start_at"], clock),
                duration_minutes=item.get("duration_minutes"),
                status=LessonStatus(item.get("status", LessonStatus.CONFIRMED.value)),
                student_name=item.get("student_name", ""),
                notes=item.get("notes"),
            )
            for item in data.get("lessons") or []
        }
        records = [
            LessonRecord(
                id=str(item["id"]),
                lesson=lessons[str(item["lesson_id"])],
                status=RecordStatus(item.get("status", RecordStatus.CONFIRMED.value)),
                actual_minutes=item.get("actual_minutes"),
            )
            for item in data.get("records") or []
        ]
        holidays = [clock.date_key(clock.parse_date(value)) for value in data.get("holidays") or []]
        payment_months = [
            TeacherPaymentMonth(
                teacher_id=str(item["teacher_id"]),
                year=int(item["year"]),
                month=int(item["month"]),
                period_start=_optional_date(item.get("period_start"), clock),
                period_end=_optional_date(item.get("period_end"), clock),
                period_amount=_optional_decimal(item.get("period_amount")),
                extra_amount=_optional_decimal(item.get("extra_amount")),
                payment_status=PaymentStatus(item.get("payment_status", PaymentStatus.EM_ABERTO.value)),
            )
            for item in data.get("payment_months") or []
        ]

        logger.debug(
            "Loaded %d teachers, %d lessons and %d records from fixture",
            len(teachers), len(lessons), len(records),
        )
        return cls(
            clock,
            teachers=teachers,
            slots=slots,
            enrollments=enrollments,
            lessons=lessons.values(),
            records=records,
            holidays=holidays,
            payment_months=payment_months,
        )


def _instant(value: Any, clock: ScheduleClock) -> DateTime:
    """YAML may hand over datetime/date objects; naive values are schedule-local."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return pendulum.instance(value, tz=clock.timezone)
        return clock.localize(value)
    if isinstance(value, date):
        return clock.start_of_day(value)
    return clock.parse_instant(value)


def _optional_instant(value: Any, clock: ScheduleClock) -> Optional[DateTime]:
    return None if value is None else _instant(value, clock)


def _optional_date(value: Any, clock: ScheduleClock) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    return clock.local_date(_instant(value, clock))


def _optional_decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(str(value))


def _optional_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)
