"""
Persistence protocol consumed by the application services.

The services hold no state between calls: every fact is fetched fresh through
this protocol, so any store (database, file fixture, test stub) can be plugged
in as long as it provides these coroutines.
"""

from __future__ import annotations

from decimal import Decimal
from typing import AsyncContextManager, Collection, List, Optional, Protocol, Set

from pendulum import DateTime

from ..domain.models import (
    AuditEntry,
    AvailabilitySlot,
    Enrollment,
    EnrollmentStatus,
    Lesson,
    LessonRecord,
    LessonStatus,
    PaymentStatus,
    Teacher,
    TeacherPaymentMonth,
    TeacherStatus,
)


class LessonRepositoryProtocol(Protocol):
    """Read and write calls needed by scheduling, payroll and transfer."""

    async def get_teacher(self, teacher_id: str) -> Optional[Teacher]:
        """Return the teacher or None."""

    async def list_teachers(self, status: Optional[TeacherStatus] = None) -> List[Teacher]:
        """Return teachers ordered by name, optionally filtered by status."""

    async def get_teacher_slots(self, teacher_id: str) -> List[AvailabilitySlot]:
        """Return the teacher's weekly availability slots."""

    async def get_teacher_lessons(
        self,
        teacher_id: str,
        from_date: Optional[DateTime] = None,
        statuses: Optional[Collection[LessonStatus]] = None,
    ) -> List[Lesson]:
        """Return the teacher's lessons starting at/after ``from_date``, ordered by start."""

    async def get_lessons_between(self, start: DateTime, end: DateTime) -> List[Lesson]:
        """Return every lesson starting inside ``[start, end]``."""

    async def get_enrollments(self, status: Optional[EnrollmentStatus] = None) -> List[Enrollment]:
        """Return enrollments, optionally filtered by status."""

    async def get_confirmed_records(
        self,
        teacher_id: str,
        period_start: DateTime,
        period_end: DateTime,
    ) -> List[LessonRecord]:
        """Return confirmed records whose lesson starts inside the period."""

    async def get_holidays(self, start_key: str, end_key: str) -> Set[str]:
        """Return holiday date keys between the two keys, inclusive."""

    async def get_payment_month_override(
        self,
        teacher_id: str,
        year: int,
        month: int,
    ) -> Optional[TeacherPaymentMonth]:
        """Return the month override or None."""

    async def save_payment_month(self, payment_month: TeacherPaymentMonth) -> None:
        """Create or replace a month override."""

    async def reassign_lesson_teacher(
        self,
        lesson_id: str,
        new_teacher_id: str,
        audit_entry: AuditEntry,
    ) -> Lesson:
        """Move a lesson to another teacher and append the audit entry."""

    async def upsert_payment_month_summary(
        self,
        teacher_id: str,
        year: int,
        month: int,
        registered_hours: Decimal,
        payable_amount: Decimal,
        status: PaymentStatus,
    ) -> None:
        """Persist the computed monthly summary."""

    def transaction(self) -> AsyncContextManager[None]:
        """Serializable unit of work; writes inside are discarded on error."""
