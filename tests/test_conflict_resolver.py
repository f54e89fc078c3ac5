"""
Tests for ConflictResolver.
"""

from typing import List, Optional

import pendulum
import pytest

from lessonroster.domain.conflict_resolver import OUTSIDE_AVAILABILITY_REASON, ConflictResolver
from lessonroster.domain.exceptions import ConflictError, ValidationError
from lessonroster.domain.models import (
    AvailabilitySlot,
    Lesson,
    LessonStatus,
    RequiredSlot,
    Teacher,
    TeacherSchedule,
)
from lessonroster.domain.schedule_time import ScheduleClock

TZ = "America/Sao_Paulo"


def _at(value: str):
    return pendulum.parse(value, tz=TZ)


def _lesson(
    lesson_id: str,
    start: str,
    minutes: int = 60,
    teacher_id: str = "t1",
    status: LessonStatus = LessonStatus.CONFIRMED,
    student_name: str = "",
) -> Lesson:
    return Lesson(
        id=lesson_id,
        teacher_id=teacher_id,
        enrollment_id=f"e-{lesson_id}",
        start_at=_at(start),
        duration_minutes=minutes,
        status=status,
        student_name=student_name,
    )


def _slot(day: int, start: int, end: int, teacher_id: str = "t1") -> AvailabilitySlot:
    return AvailabilitySlot(teacher_id=teacher_id, day_of_week=day, start_minute=start, end_minute=end)


def _schedule(
    teacher_id: str,
    slots: Optional[List[AvailabilitySlot]] = None,
    lessons: Optional[List[Lesson]] = None,
) -> TeacherSchedule:
    return TeacherSchedule(
        teacher=Teacher(id=teacher_id, name=teacher_id.upper()),
        slots=slots or [],
        lessons=lessons or [],
    )


@pytest.fixture
def resolver():
    return ConflictResolver(ScheduleClock(TZ))


class TestIsAvailable:
    """Tests for single-window availability checks."""

    def test_overlap_with_existing_lesson(self, resolver):
        """Monday 09:30 for 30 min collides with the Monday 09:00 lesson."""
        slots = [_slot(1, 540, 600)]
        lessons = [_lesson("l1", "2025-03-03 09:00", student_name="Joao")]

        decision = resolver.is_available("t1", _at("2025-03-03 09:30"), 30, slots, lessons)

        assert not decision.available
        assert decision.conflicting_lesson_id == "l1"
        assert "Joao" in decision.reason
        assert "03/03/2025 09:00" in decision.reason

    def test_same_slot_on_free_monday(self, resolver):
        slots = [_slot(1, 540, 600)]
        lessons = [_lesson("l1", "2025-03-03 09:00")]

        decision = resolver.is_available("t1", _at("2025-03-10 09:00"), 60, slots, lessons)

        assert decision.available
        assert decision.reason is None

    def test_partial_slot_fit_rejected(self, resolver):
        """Starting inside the slot but ending after it is not a fit."""
        slots = [_slot(1, 540, 600)]

        decision = resolver.is_available("t1", _at("2025-03-10 09:30"), 60, slots, [])

        assert not decision.available
        assert decision.reason == OUTSIDE_AVAILABILITY_REASON
        assert decision.conflicting_lesson_id is None

    def test_zero_slots_means_available(self, resolver):
        decision = resolver.is_available("t1", _at("2025-03-09 23:00"), 45, [], [])
        assert decision.available

    def test_overlap_checked_before_slots(self, resolver):
        slots = [_slot(3, 540, 600)]
        lessons = [_lesson("l1", "2025-03-03 07:00", student_name="Maria")]

        decision = resolver.is_available("t1", _at("2025-03-03 07:30"), 60, slots, lessons)

        assert decision.conflicting_lesson_id == "l1"
        assert "Maria" in decision.reason

    def test_reason_falls_back_to_lesson_id(self, resolver):
        lessons = [_lesson("l7", "2025-03-03 09:00")]

        decision = resolver.is_available("t1", _at("2025-03-03 09:15"), 30, [], lessons)

        assert "lesson l7" in decision.reason

    def test_touching_lessons_do_not_conflict(self, resolver):
        lessons = [_lesson("l1", "2025-03-03 09:00")]

        assert resolver.is_available("t1", _at("2025-03-03 10:00"), 60, [], lessons).available
        assert resolver.is_available("t1", _at("2025-03-03 08:00"), 60, [], lessons).available

    def test_cancelled_lessons_ignored(self, resolver):
        lessons = [_lesson("l1", "2025-03-03 09:00", status=LessonStatus.CANCELLED)]

        assert resolver.is_available("t1", _at("2025-03-03 09:00"), 60, [], lessons).available

    def test_excluded_lesson_ignored(self, resolver):
        """Re-validating a lesson in place does not conflict with itself."""
        lessons = [_lesson("l1", "2025-03-03 09:00")]

        decision = resolver.is_available(
            "t1", _at("2025-03-03 09:00"), 60, [], lessons, exclude_lesson_id="l1"
        )

        assert decision.available

    def test_other_teachers_ignored(self, resolver):
        lessons = [_lesson("l1", "2025-03-03 09:00", teacher_id="t2")]
        slots = [_slot(1, 540, 600, teacher_id="t2")]

        decision = resolver.is_available("t1", _at("2025-03-03 09:00"), 60, slots, lessons)

        assert decision.available

    def test_candidate_in_other_timezone(self, resolver):
        """12:00 UTC is 09:00 in Sao Paulo and fits the Monday slot."""
        slots = [_slot(1, 540, 600)]
        candidate = pendulum.datetime(2025, 3, 10, 12, 0, tz="UTC")

        assert resolver.is_available("t1", candidate, 60, slots, []).available

    def test_invalid_duration(self, resolver):
        with pytest.raises(ValidationError):
            resolver.is_available("t1", _at("2025-03-03 09:00"), 0, [], [])

    def test_missing_teacher_id(self, resolver):
        with pytest.raises(ValidationError):
            resolver.is_available("", _at("2025-03-03 09:00"), 60, [], [])

    def test_ensure_available_raises_conflict(self, resolver):
        lessons = [_lesson("l1", "2025-03-03 09:00")]

        with pytest.raises(ConflictError) as excinfo:
            resolver.ensure_available("t1", _at("2025-03-03 09:30"), 30, [], lessons)

        assert excinfo.value.conflicting_lesson_id == "l1"


class TestFindFreeTeachers:
    """Tests for weekly recurring search across a pool."""

    def test_free_teachers_for_monday(self, resolver):
        now = _at("2025-03-02 12:00")  # Sunday
        pool = [
            _schedule("a", [_slot(1, 480, 720, "a")], [_lesson("la", "2025-03-03 09:00", teacher_id="a")]),
            _schedule("b", [_slot(1, 480, 720, "b")]),
            _schedule("c"),
            _schedule("d", [_slot(3, 480, 720, "d")]),
        ]

        free = resolver.find_free_teachers([1], 540, 600, pool, now)

        assert free == ["b", "c"]

    def test_every_day_must_fit(self, resolver):
        now = _at("2025-03-02 12:00")
        pool = [
            _schedule("b", [_slot(1, 480, 720, "b"), _slot(3, 480, 720, "b")]),
            _schedule("d", [_slot(3, 480, 720, "d")]),
        ]

        assert resolver.find_free_teachers([1, 3], 540, 600, pool, now) == ["b"]

    def test_uses_next_future_occurrence(self, resolver):
        """A lesson later today does not block: the next Monday is a week away."""
        now = _at("2025-03-03 08:00")  # Monday
        pool = [_schedule("a", [], [_lesson("la", "2025-03-03 09:00", teacher_id="a")])]

        assert resolver.find_free_teachers([1], 540, 600, pool, now) == ["a"]

    def test_requires_days(self, resolver):
        with pytest.raises(ValidationError):
            resolver.find_free_teachers([], 540, 600, [], _at("2025-03-02 12:00"))

    def test_rejects_inverted_minutes(self, resolver):
        with pytest.raises(ValidationError):
            resolver.find_free_teachers([1], 600, 540, [], _at("2025-03-02 12:00"))


class TestTransferCoverage:
    """Tests for required slots and teachers covering all of them."""

    def test_required_slots_skip_cancelled(self, resolver):
        lessons = [
            _lesson("l1", "2025-03-03 09:00"),
            _lesson("l2", "2025-03-10 09:00"),
            _lesson("l3", "2025-03-05 10:00", status=LessonStatus.CANCELLED),
        ]

        assert resolver.required_slots(lessons) == [RequiredSlot(1, 540, 600)]

    def test_find_teachers_covering_all_slots(self, resolver):
        required = [RequiredSlot(1, 540, 600), RequiredSlot(3, 600, 660)]
        from_date = _at("2025-03-03 00:00")
        pool = [
            _schedule("src", [], []),
            _schedule("x", [_slot(1, 480, 720, "x"), _slot(3, 480, 720, "x")]),
            _schedule(
                "y",
                [_slot(1, 480, 720, "y"), _slot(3, 480, 720, "y")],
                [_lesson("ly", "2025-03-12 10:30", teacher_id="y")],
            ),
            _schedule("z", [], [_lesson("lz", "2025-02-24 09:00", teacher_id="z")]),
            _schedule("w", [_slot(1, 480, 720, "w")]),
        ]

        qualifying = resolver.find_teachers_covering_all_slots(required, pool, "src", from_date)

        assert qualifying == ["x", "z"]

    def test_pool_order_does_not_change_result(self, resolver):
        required = [RequiredSlot(1, 540, 600)]
        from_date = _at("2025-03-03 00:00")
        pool = [
            _schedule("x", [_slot(1, 540, 600, "x")]),
            _schedule("y", [], [_lesson("ly", "2025-03-17 09:30", teacher_id="y")]),
            _schedule("z"),
        ]

        forward = resolver.find_teachers_covering_all_slots(required, pool, None, from_date)
        backward = resolver.find_teachers_covering_all_slots(required, list(reversed(pool)), None, from_date)

        assert set(forward) == set(backward) == {"x", "z"}


class TestOpenTimes:
    """Tests for open start times and available dates."""

    def test_open_start_times_skip_busy(self, resolver):
        slots = [_slot(1, 480, 660)]
        lessons = [_lesson("l1", "2025-03-03 09:00")]

        times = resolver.open_start_times("t1", _at("2025-03-03 00:00"), 60, slots, lessons)

        assert [item.start_minute for item in times] == [480, 600]
        assert times[0].format_display() == "08:00 - 09:00"

    def test_open_start_times_on_holiday(self, resolver):
        slots = [_slot(1, 480, 660)]

        times = resolver.open_start_times(
            "t1", _at("2025-03-03 00:00"), 60, slots, [], holidays={"2025-03-03"}
        )

        assert times == []

    def test_available_dates(self):
        resolver = ConflictResolver(ScheduleClock(TZ), booking_horizon_days=14)
        slots = [_slot(1, 540, 600)]
        lessons = [_lesson("l1", "2025-03-03 09:00")]

        dates = resolver.available_dates("t1", _at("2025-03-03 00:00"), 60, slots, lessons)

        assert dates == ["2025-03-10", "2025-03-17"]

    def test_available_dates_skip_holidays(self):
        resolver = ConflictResolver(ScheduleClock(TZ), booking_horizon_days=7)
        slots = [_slot(1, 540, 600)]

        dates = resolver.available_dates(
            "t1", _at("2025-03-03 00:00"), 60, slots, [], holidays={"2025-03-10"}
        )

        assert dates == ["2025-03-03"]
