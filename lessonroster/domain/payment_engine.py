"""
Teacher payment proration.

A teacher is paid for REGISTERED hours (confirmed lesson records), never for
the estimate derived from scheduled lessons:

    payable = round2(registered_hours * hourly_rate) + period_amount + extra_amount

Records are excluded when they fall outside the period, on a holiday, belong
to another teacher, are not confirmed, or are dated on/after the pause date of
a paused individual enrollment.
"""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Collection, Iterable, List, Optional, Union

from pendulum import DateTime

from .exceptions import ComputationInconsistency, ValidationError
from .models import (
    EnrollmentStatus,
    EstimatedHours,
    Lesson,
    LessonRecord,
    LessonStatus,
    PaymentResult,
    PaymentStatus,
    PaymentTerms,
    RecordStatus,
    Teacher,
    TeacherPaymentMonth,
)
from .schedule_time import ScheduleClock

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0")
MINUTES_PER_HOUR = Decimal(60)

Amount = Union[Decimal, int, str, None]


def to_decimal(value: Amount) -> Decimal:
    """Coerce an optional amount to Decimal; absent amounts are zero."""
    if value is None:
        return ZERO
    if isinstance(value, float):
        value = str(value)
    try:
        return Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"Invalid amount: {value!r}") from None


def round2(value: Amount) -> Decimal:
    """Round half-up to two decimal places."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def minutes_to_hours(minutes: int) -> Decimal:
    return round2(Decimal(minutes) / MINUTES_PER_HOUR)


class PaymentEngine:
    """
    Computes registered/estimated hours and the payable amount for a period.

    Pure function of its inputs: no wall-clock reads, no I/O.
    """

    def __init__(self, clock: ScheduleClock):
        self.clock = clock

    def is_paused_out(self, record: LessonRecord) -> bool:
        """
        True when the record's lesson is on or after the pause date of a
        PAUSED individual enrollment. Group enrollments pass, and so do
        active ones that keep an old pause date.
        """
        enrollment = record.enrollment
        if enrollment is None or enrollment.paused_at is None:
            return False
        if enrollment.status != EnrollmentStatus.PAUSED:
            return False
        if enrollment.group_key is not None:
            return False
        lesson_day = self.clock.local_date(record.lesson.start_at)
        paused_day = self.clock.local_date(enrollment.paused_at)
        return lesson_day >= paused_day

    def payable_records(
        self,
        teacher_id: str,
        period_start: DateTime,
        period_end: DateTime,
        records: Iterable[LessonRecord],
        holidays: Collection[str],
    ) -> List[LessonRecord]:
        """Records that count towards the payment, in input order."""
        self._validate_period(period_start, period_end)
        selected: List[LessonRecord] = []
        for record in records:
            lesson = record.lesson
            if lesson.teacher_id != teacher_id:
                continue
            if lesson.start_at < period_start or lesson.start_at > period_end:
                continue
            if record.status != RecordStatus.CONFIRMED:
                continue
            if self.clock.date_key(lesson.start_at) in holidays:
                continue
            if self.is_paused_out(record):
                continue
            selected.append(record)
        return selected

    def compute_payable(
        self,
        teacher_id: str,
        period_start: DateTime,
        period_end: DateTime,
        records: Iterable[LessonRecord],
        holidays: Collection[str],
        hourly_rate: Amount,
        period_amount: Amount = None,
        extra_amount: Amount = None,
    ) -> PaymentResult:
        """
        Registered hours and payable amount for one teacher and period.

        Args:
            teacher_id: Teacher being paid
            period_start: Inclusive start instant
            period_end: Inclusive end instant
            records: Lesson records, possibly of several teachers
            holidays: ``YYYY-MM-DD`` keys excluded entirely
            hourly_rate: Rate per registered hour; None counts as zero
            period_amount: Flat amount for the period
            extra_amount: Extra amount for the period

        Returns:
            PaymentResult with every monetary term rounded once

        Raises:
            ValidationError: If the period is inverted or the rate negative
            ComputationInconsistency: If a record carries negative minutes
        """
        rate = to_decimal(hourly_rate)
        if rate < 0:
            raise ValidationError(f"hourly_rate must not be negative, got {rate}")

        selected = self.payable_records(teacher_id, period_start, period_end, records, holidays)

        total_minutes = 0
        for record in selected:
            minutes = record.minutes
            if minutes is None or minutes < 0:
                logger.error(
                    "Record %s of teacher %s has invalid minutes: %r",
                    record.id, teacher_id, minutes,
                )
                raise ComputationInconsistency(
                    f"Record {record.id} has invalid minutes: {minutes!r}"
                )
            total_minutes += minutes

        registered_hours = minutes_to_hours(total_minutes)
        hours_amount = self.hours_amount(registered_hours, rate)
        payable = round2(hours_amount + round2(period_amount) + round2(extra_amount))

        return PaymentResult(
            registered_minutes=total_minutes,
            registered_hours=registered_hours,
            hours_amount=hours_amount,
            payable_amount=payable,
            record_count=len(selected),
        )

    @staticmethod
    def hours_amount(registered_hours: Decimal, hourly_rate: Amount) -> Decimal:
        return round2(to_decimal(registered_hours) * to_decimal(hourly_rate))

    def estimated_hours(
        self,
        teacher_id: str,
        period_start: DateTime,
        period_end: DateTime,
        lessons: Iterable[Lesson],
        holidays: Collection[str],
    ) -> EstimatedHours:
        """Hours from scheduled CONFIRMED lessons. Reported for reconciliation only."""
        self._validate_period(period_start, period_end)
        minutes = 0
        count = 0
        for lesson in lessons:
            if lesson.teacher_id != teacher_id or lesson.status != LessonStatus.CONFIRMED:
                continue
            if lesson.start_at < period_start or lesson.start_at > period_end:
                continue
            if self.clock.date_key(lesson.start_at) in holidays:
                continue
            minutes += lesson.duration_minutes
            count += 1
        return EstimatedHours(minutes=minutes, hours=minutes_to_hours(minutes), expected_records=count)

    def resolve_terms(
        self,
        teacher: Teacher,
        now: DateTime,
        year: Optional[int] = None,
        month: Optional[int] = None,
        override: Optional[TeacherPaymentMonth] = None,
    ) -> PaymentTerms:
        """
        Effective period and amounts for a computation.

        Without (year, month) the period is the calendar month containing
        ``now``. An override's window and amounts replace the defaults for
        this computation only; its window may lie outside the named month.
        """
        if (year is None) != (month is None):
            raise ValidationError("year and month must be given together")

        if year is None:
            local_now = self.clock.localize(now)
            year, month = local_now.year, local_now.month

        period_start, period_end = self.clock.month_bounds(year, month)
        period_amount = to_decimal(teacher.period_amount)
        extra_amount = to_decimal(teacher.extra_amount)
        status = PaymentStatus.EM_ABERTO

        if override is not None:
            if override.period_start is not None:
                period_start = self.clock.start_of_day(override.period_start)
            if override.period_end is not None:
                period_end = self.clock.end_of_day(override.period_end)
            if override.period_amount is not None:
                period_amount = to_decimal(override.period_amount)
            if override.extra_amount is not None:
                extra_amount = to_decimal(override.extra_amount)
            status = override.payment_status

        self._validate_period(period_start, period_end)
        return PaymentTerms(
            period_start=period_start,
            period_end=period_end,
            hourly_rate=to_decimal(teacher.hourly_rate),
            period_amount=period_amount,
            extra_amount=extra_amount,
            payment_status=status,
            year=year,
            month=month,
        )

    @staticmethod
    def _validate_period(period_start: DateTime, period_end: DateTime) -> None:
        if period_end < period_start:
            raise ValidationError(f"Period end {period_end} is before start {period_start}")
