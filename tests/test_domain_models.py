"""
Tests for domain models.
"""

from decimal import Decimal

import pendulum
import pytest

from lessonroster.domain.exceptions import ValidationError
from lessonroster.domain.models import (
    AuditEntry,
    AvailabilitySlot,
    Enrollment,
    Lesson,
    LessonRecord,
    LessonType,
    LessonWindow,
    RequiredSlot,
    Teacher,
    TeacherPaymentMonth,
)

TZ = "America/Sao_Paulo"


class TestLessonWindow:
    """Tests for LessonWindow model."""

    def test_create_valid_window(self):
        """Test creating a valid window from a start and duration."""
        start = pendulum.parse("2025-03-03 09:00", tz=TZ)

        window = LessonWindow.from_start(start, 90)

        assert window.end == pendulum.parse("2025-03-03 10:30", tz=TZ)
        assert window.duration_minutes() == 90

    def test_invalid_window_raises_error(self):
        """Test that an inverted window raises ValidationError."""
        start = pendulum.parse("2025-03-03 10:00", tz=TZ)
        end = pendulum.parse("2025-03-03 09:00", tz=TZ)

        with pytest.raises(ValidationError, match="Start time .* must be before end time"):
            LessonWindow(start=start, end=end)

    def test_non_positive_duration_rejected(self):
        with pytest.raises(ValidationError):
            LessonWindow.from_start(pendulum.parse("2025-03-03 09:00", tz=TZ), 0)

    def test_overlaps(self):
        """Test half-open overlap detection in both directions."""
        w1 = LessonWindow.from_start(pendulum.parse("2025-03-03 09:00", tz=TZ), 60)
        w2 = LessonWindow.from_start(pendulum.parse("2025-03-03 09:30", tz=TZ), 60)
        w3 = LessonWindow.from_start(pendulum.parse("2025-03-03 10:00", tz=TZ), 60)

        assert w1.overlaps(w2)
        assert w2.overlaps(w1)
        assert not w1.overlaps(w3)
        assert not w3.overlaps(w1)

    def test_same_instant_in_other_timezone_overlaps(self):
        local = LessonWindow.from_start(pendulum.parse("2025-03-03 09:00", tz=TZ), 60)
        utc = LessonWindow.from_start(pendulum.parse("2025-03-03 12:30", tz="UTC"), 30)

        assert local.overlaps(utc)


class TestAvailabilitySlot:
    """Tests for AvailabilitySlot model."""

    def test_contains_exact_bounds(self):
        slot = AvailabilitySlot(teacher_id="t1", day_of_week=1, start_minute=540, end_minute=600)

        assert slot.contains(1, 540, 600)
        assert slot.contains(1, 550, 590)

    def test_partial_fit_is_not_contained(self):
        slot = AvailabilitySlot(teacher_id="t1", day_of_week=1, start_minute=540, end_minute=600)

        assert not slot.contains(1, 570, 630)
        assert not slot.contains(1, 510, 570)
        assert not slot.contains(2, 540, 600)

    @pytest.mark.parametrize(
        "day, start, end",
        [(7, 540, 600), (-1, 540, 600), (1, 600, 540), (1, 540, 540), (1, 540, 1440)],
    )
    def test_invalid_slot_rejected(self, day, start, end):
        with pytest.raises(ValidationError):
            AvailabilitySlot(teacher_id="t1", day_of_week=day, start_minute=start, end_minute=end)


class TestLesson:
    """Tests for Lesson and its audit trail."""

    def _lesson(self, **overrides) -> Lesson:
        values = dict(
            id="l1",
            teacher_id="t1",
            enrollment_id="e1",
            start_at=pendulum.parse("2025-03-03 09:00", tz=TZ),
        )
        values.update(overrides)
        return Lesson(**values)

    def test_missing_duration_defaults_to_sixty(self):
        lesson = self._lesson(duration_minutes=None)

        assert lesson.duration_minutes == 60
        assert lesson.end_at == pendulum.parse("2025-03-03 10:00", tz=TZ)

    def test_negative_duration_rejected(self):
        with pytest.raises(ValidationError):
            self._lesson(duration_minutes=-5)

    def test_transfer_appends_audit_line(self):
        """Existing notes are kept and the audit line is appended after a newline."""
        entry = AuditEntry(
            actor="admin",
            action="transfer",
            timestamp=pendulum.parse("2025-03-01 14:05", tz=TZ),
            source_teacher="Ana",
            destination_teacher="Bruno",
        )
        lesson = self._lesson(notes="Bring the workbook")

        moved = lesson.transferred_to("t2", entry)

        assert moved.teacher_id == "t2"
        assert moved.notes == (
            "Bring the workbook\n"
            "Lesson transferred from teacher Ana to teacher Bruno by admin at 01/03/2025 14:05"
        )
        assert moved.audit_trail == (entry,)
        assert lesson.teacher_id == "t1"
        assert lesson.audit_trail == ()

    def test_second_transfer_keeps_first_line(self):
        first = AuditEntry("admin", "transfer", pendulum.parse("2025-03-01 10:00", tz=TZ), "Ana", "Bruno")
        second = AuditEntry("maria", "transfer", pendulum.parse("2025-03-02 10:00", tz=TZ), "Bruno", "Carla")

        lesson = self._lesson().transferred_to("t2", first).transferred_to("t3", second)

        assert lesson.notes.splitlines() == [first.render(), second.render()]
        assert len(lesson.audit_trail) == 2


class TestOtherModels:
    """Tests for the smaller value objects."""

    def test_group_key_normalized(self):
        group = Enrollment(id="e1", lesson_type=LessonType.GROUP, group_name="  Turma A ")
        blank = Enrollment(id="e2", lesson_type=LessonType.GROUP, group_name="   ")
        individual = Enrollment(id="e3", group_name="Turma A")

        assert group.group_key == "Turma A"
        assert blank.group_key is None
        assert individual.group_key is None

    def test_record_minutes_fallback(self):
        lesson = Lesson(
            id="l1",
            teacher_id="t1",
            enrollment_id="e1",
            start_at=pendulum.parse("2025-03-03 09:00", tz=TZ),
            duration_minutes=45,
        )

        assert LessonRecord(id="r1", lesson=lesson).minutes == 45
        assert LessonRecord(id="r2", lesson=lesson, actual_minutes=50).minutes == 50

    def test_teacher_negative_rate_rejected(self):
        with pytest.raises(ValidationError):
            Teacher(id="t1", name="Ana", hourly_rate=Decimal("-1"))

    def test_payment_month_validates_month(self):
        with pytest.raises(ValidationError):
            TeacherPaymentMonth(teacher_id="t1", year=2025, month=13)

    def test_required_slot_display_and_order(self):
        slots = sorted([RequiredSlot(3, 600, 660), RequiredSlot(1, 540, 600)])

        assert slots[0].format_display() == "Monday 09:00-10:00"
        assert slots[1].format_display() == "Wednesday 10:00-11:00"
