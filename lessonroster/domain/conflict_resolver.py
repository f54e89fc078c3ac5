"""
Availability and conflict resolution for teacher lesson windows.

Pure domain logic: every fact (slots, lessons, holidays) is handed in by the
caller and ``now`` is always explicit, so decisions are reproducible.
"""

from __future__ import annotations

import logging
from typing import Collection, Iterable, List, Optional, Sequence

from pendulum import DateTime

from .exceptions import ConflictError, ValidationError
from .models import (
    AvailabilityDecision,
    AvailabilitySlot,
    Lesson,
    LessonWindow,
    OpenTime,
    RequiredSlot,
    TeacherSchedule,
)
from .schedule_time import (
    MINUTES_PER_DAY,
    ScheduleClock,
    format_minute,
    intervals_overlap,
    validate_day_of_week,
)

logger = logging.getLogger(__name__)

OUTSIDE_AVAILABILITY_REASON = "Requested time is outside the teacher's availability"


class ConflictResolver:
    """
    Decides whether a teacher can take a lesson window.

    Algorithm for a single window:
    1. Overlap check against the teacher's non-cancelled lessons. An
       occupied calendar wins over stated availability, so this runs first.
    2. Slot containment: a teacher with no slots is available at any time;
       otherwise the whole lesson must fit inside one slot of that weekday.
    """

    def __init__(
        self,
        clock: ScheduleClock,
        *,
        open_time_step_minutes: int = 30,
        booking_horizon_days: int = 90,
    ):
        if open_time_step_minutes <= 0:
            raise ValidationError("open_time_step_minutes must be positive")
        self.clock = clock
        self.open_time_step_minutes = open_time_step_minutes
        self.booking_horizon_days = booking_horizon_days

    def find_overlap(
        self,
        window: LessonWindow,
        lessons: Iterable[Lesson],
        exclude_lesson_id: Optional[str] = None,
    ) -> Optional[Lesson]:
        """Return the earliest non-cancelled lesson overlapping ``window``."""
        candidates = [
            lesson for lesson in lessons
            if not lesson.is_cancelled
            and lesson.id != exclude_lesson_id
            and window.overlaps(lesson.window())
        ]
        if not candidates:
            return None
        return min(candidates, key=lambda lesson: (lesson.start_at, lesson.id))

    @staticmethod
    def fits_availability(
        slots: Sequence[AvailabilitySlot],
        day_of_week: int,
        start_minute: int,
        end_minute: int,
    ) -> bool:
        """
        True when some slot fully contains the interval. Partial overlap with
        a slot boundary is not a fit. Zero slots means available at any time.
        """
        if not slots:
            return True
        return any(slot.contains(day_of_week, start_minute, end_minute) for slot in slots)

    def is_available(
        self,
        teacher_id: str,
        start_at: DateTime,
        duration_minutes: int,
        slots: Sequence[AvailabilitySlot],
        lessons: Iterable[Lesson],
        exclude_lesson_id: Optional[str] = None,
    ) -> AvailabilityDecision:
        """
        Check a candidate window for one teacher.

        Args:
            teacher_id: Teacher being checked; lessons of other teachers are ignored
            start_at: Absolute start of the candidate lesson
            duration_minutes: Candidate length, must be positive
            slots: The teacher's weekly availability slots
            lessons: The teacher's existing lessons
            exclude_lesson_id: Lesson being edited in place, if any

        Returns:
            AvailabilityDecision with a reason when unavailable
        """
        if not teacher_id:
            raise ValidationError("teacher_id is required")

        window = LessonWindow.from_start(self.clock.localize(start_at), duration_minutes)
        own_lessons = [lesson for lesson in lessons if lesson.teacher_id == teacher_id]

        conflict = self.find_overlap(window, own_lessons, exclude_lesson_id)
        if conflict is not None:
            counterpart = conflict.student_name or f"lesson {conflict.id}"
            local_start = self.clock.localize(conflict.start_at)
            reason = (
                f"Teacher already has a lesson with {counterpart} "
                f"at {local_start.format('DD/MM/YYYY HH:mm')}"
            )
            logger.warning(
                "Overlap for teacher %s at %s: conflicts with lesson %s",
                teacher_id, window, conflict.id,
            )
            return AvailabilityDecision(
                available=False,
                reason=reason,
                conflicting_lesson_id=conflict.id,
            )

        day_of_week = self.clock.day_of_week(window.start)
        start_minute = self.clock.minute_of_day(window.start)
        end_minute = start_minute + duration_minutes

        own_slots = [slot for slot in slots if slot.teacher_id == teacher_id]
        if not self.fits_availability(own_slots, day_of_week, start_minute, end_minute):
            return AvailabilityDecision(available=False, reason=OUTSIDE_AVAILABILITY_REASON)

        return AvailabilityDecision(available=True)

    def ensure_available(
        self,
        teacher_id: str,
        start_at: DateTime,
        duration_minutes: int,
        slots: Sequence[AvailabilitySlot],
        lessons: Iterable[Lesson],
        exclude_lesson_id: Optional[str] = None,
    ) -> None:
        """Raising variant of :meth:`is_available`."""
        decision = self.is_available(
            teacher_id, start_at, duration_minutes, slots, lessons, exclude_lesson_id
        )
        if not decision.available:
            raise ConflictError(decision.reason or OUTSIDE_AVAILABILITY_REASON, decision.conflicting_lesson_id)

    def find_free_teachers(
        self,
        days: Collection[int],
        start_minute: int,
        end_minute: int,
        pool: Sequence[TeacherSchedule],
        now: DateTime,
    ) -> List[str]:
        """
        Teachers that can take a weekly recurring lesson on every given day.

        For each day the lesson must fit the teacher's availability and must
        not overlap anything on the next future occurrence of that weekday.
        Result keeps the order of ``pool``.
        """
        if not days:
            raise ValidationError("At least one day of the week is required")
        for day in days:
            validate_day_of_week(day)
        self._validate_minutes(start_minute, end_minute)

        duration = end_minute - start_minute
        ordered_days = sorted(set(days))
        windows = {
            day: LessonWindow.from_start(
                self.clock.at_minute(self.clock.next_occurrence(day, now), start_minute),
                duration,
            )
            for day in ordered_days
        }

        free: List[str] = []
        for schedule in pool:
            qualifies = all(
                self.fits_availability(schedule.slots, day, start_minute, end_minute)
                and self.find_overlap(windows[day], schedule.lessons) is None
                for day in ordered_days
            )
            if qualifies:
                free.append(schedule.teacher.id)
        return free

    def required_slots(self, lessons: Iterable[Lesson]) -> List[RequiredSlot]:
        """Distinct weekly slots occupied by the non-cancelled lessons, sorted."""
        required = set()
        for lesson in lessons:
            if lesson.is_cancelled:
                continue
            start_minute = self.clock.minute_of_day(lesson.start_at)
            required.add(
                RequiredSlot(
                    day_of_week=self.clock.day_of_week(lesson.start_at),
                    start_minute=start_minute,
                    end_minute=start_minute + lesson.duration_minutes,
                )
            )
        return sorted(required)

    def covers_required_slots(
        self,
        required: Iterable[RequiredSlot],
        schedule: TeacherSchedule,
        from_date: DateTime,
    ) -> bool:
        """
        True when every required slot fits the teacher's availability and no
        lesson of theirs from ``from_date`` onward sits on the same weekday
        at an overlapping time of day.
        """
        occupied = [
            (
                self.clock.day_of_week(lesson.start_at),
                self.clock.minute_of_day(lesson.start_at),
                self.clock.minute_of_day(lesson.start_at) + lesson.duration_minutes,
            )
            for lesson in schedule.lessons
            if not lesson.is_cancelled and lesson.start_at >= from_date
        ]
        for slot in required:
            if not self.fits_availability(
                schedule.slots, slot.day_of_week, slot.start_minute, slot.end_minute
            ):
                return False
            for day, start, end in occupied:
                if day == slot.day_of_week and intervals_overlap(
                    slot.start_minute, slot.end_minute, start, end
                ):
                    return False
        return True

    def find_teachers_covering_all_slots(
        self,
        required: Iterable[RequiredSlot],
        pool: Sequence[TeacherSchedule],
        exclude_teacher_id: Optional[str],
        from_date: DateTime,
    ) -> List[str]:
        """
        Teachers able to take over every required slot.

        Each teacher is evaluated on their own facts only, so the outcome
        does not depend on evaluation order. Result keeps the order of ``pool``.
        """
        required_list = list(required)
        return [
            schedule.teacher.id
            for schedule in pool
            if schedule.teacher.id != exclude_teacher_id
            and self.covers_required_slots(required_list, schedule, from_date)
        ]

    def open_start_times(
        self,
        teacher_id: str,
        day: DateTime,
        duration_minutes: int,
        slots: Sequence[AvailabilitySlot],
        lessons: Iterable[Lesson],
        holidays: Collection[str] = (),
    ) -> List[OpenTime]:
        """
        Bookable start times on ``day``, stepping through each slot of that
        weekday. Holidays and days without slots have none.
        """
        if duration_minutes <= 0:
            raise ValidationError(f"duration_minutes must be positive, got {duration_minutes}")
        if self.clock.date_key(day) in holidays:
            return []

        day_of_week = self.clock.day_of_week(day)
        day_slots = sorted(
            (slot for slot in slots
             if slot.teacher_id == teacher_id and slot.day_of_week == day_of_week),
            key=lambda slot: slot.start_minute,
        )
        own_lessons = [
            lesson for lesson in lessons
            if lesson.teacher_id == teacher_id and not lesson.is_cancelled
        ]

        open_times: List[OpenTime] = []
        seen = set()
        for slot in day_slots:
            minute = slot.start_minute
            while minute + duration_minutes <= slot.end_minute:
                if minute not in seen:
                    start_at = self.clock.at_minute(day, minute)
                    window = LessonWindow.from_start(start_at, duration_minutes)
                    if self.find_overlap(window, own_lessons) is None:
                        open_times.append(
                            OpenTime(
                                start_at=start_at,
                                start_minute=minute,
                                end_minute=minute + duration_minutes,
                            )
                        )
                        seen.add(minute)
                minute += self.open_time_step_minutes

        return sorted(open_times, key=lambda item: item.start_minute)

    def available_dates(
        self,
        teacher_id: str,
        from_day: DateTime,
        duration_minutes: int,
        slots: Sequence[AvailabilitySlot],
        lessons: Iterable[Lesson],
        holidays: Collection[str] = (),
    ) -> List[str]:
        """Date keys within the booking horizon that still have an open start time."""
        own_lessons = list(lessons)
        slot_days = {slot.day_of_week for slot in slots if slot.teacher_id == teacher_id}

        dates: List[str] = []
        current = self.clock.start_of_day(from_day)
        last = current.add(days=self.booking_horizon_days)
        while current <= last:
            if self.clock.day_of_week(current) in slot_days and self.open_start_times(
                teacher_id, current, duration_minutes, slots, own_lessons, holidays
            ):
                dates.append(self.clock.date_key(current))
            current = current.add(days=1)
        return dates

    @staticmethod
    def _validate_minutes(start_minute: int, end_minute: int) -> None:
        if not 0 <= start_minute < MINUTES_PER_DAY:
            raise ValidationError(f"start minute out of range: {start_minute}")
        if not 0 < end_minute <= MINUTES_PER_DAY:
            raise ValidationError(f"end minute out of range: {end_minute}")
        if start_minute >= end_minute:
            raise ValidationError(
                f"start {format_minute(start_minute)} must be before end {format_minute(end_minute)}"
            )
