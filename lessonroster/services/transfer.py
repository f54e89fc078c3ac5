"""
Bulk transfer of a teacher's future schedule to another teacher.

Single pass ``VALIDATING -> COMMITTED | REJECTED``: every non-cancelled lesson
is validated against the destination before any lesson is written, and both
phases run inside one repository transaction.
"""

from __future__ import annotations

import logging
from typing import List

from pendulum import DateTime

from ..domain.conflict_resolver import ConflictResolver
from ..domain.exceptions import TransferAborted, ValidationError
from ..domain.models import AuditEntry, Lesson, TeacherSchedule, TransferResult
from ..domain.schedule_time import WEEKDAY_ABBREVIATIONS, format_minute
from .repository import LessonRepositoryProtocol
from .scheduling import SchedulingService

logger = logging.getLogger(__name__)

TRANSFER_ACTION = "transfer"


class TransferService:
    """Validates and commits schedule transfers between teachers."""

    def __init__(
        self,
        repository: LessonRepositoryProtocol,
        resolver: ConflictResolver,
    ) -> None:
        self._repository = repository
        self._resolver = resolver
        self._scheduling = SchedulingService(repository, resolver)

    async def transfer_schedule(
        self,
        source_teacher_id: str,
        destination_teacher_id: str,
        from_date: DateTime,
        *,
        actor: str,
        now: DateTime,
    ) -> TransferResult:
        """
        Reassign every lesson of the source teacher from ``from_date`` onward.

        Cancelled lessons are moved too, for continuity, but impose no
        availability requirement on the destination.

        Raises:
            ValidationError: Missing ids or source equals destination
            NotFoundError: Either teacher does not exist
            TransferAborted: Some lesson does not fit the destination; nothing written
        """
        if not source_teacher_id or not destination_teacher_id:
            raise ValidationError("Source and destination teacher ids are required")
        if source_teacher_id == destination_teacher_id:
            raise ValidationError("Cannot transfer lessons to the same teacher")

        source = await self._scheduling.require_teacher(source_teacher_id)
        destination = await self._scheduling.require_teacher(destination_teacher_id)
        clock = self._resolver.clock
        from_day = clock.start_of_day(from_date)

        async with self._repository.transaction():
            lessons = await self._repository.get_teacher_lessons(source.id, from_date=from_day)
            if not lessons:
                logger.info("No lessons to transfer from teacher %s since %s", source.id, from_day)
                return TransferResult(transferred_count=0)

            self._validate(lessons, await self._scheduling.load_schedule(destination, from_day))

            entry = AuditEntry(
                actor=actor or "admin",
                action=TRANSFER_ACTION,
                timestamp=clock.localize(now),
                source_teacher=source.name,
                destination_teacher=destination.name,
            )
            moved: List[str] = []
            for lesson in lessons:
                await self._repository.reassign_lesson_teacher(lesson.id, destination.id, entry)
                moved.append(lesson.id)

        logger.info(
            "Transferred %d lesson(s) from teacher %s to %s (actor: %s)",
            len(moved), source.id, destination.id, entry.actor,
        )
        return TransferResult(transferred_count=len(moved), lesson_ids=tuple(moved))

    def _validate(self, lessons: List[Lesson], destination: TeacherSchedule) -> None:
        """Raise ``TransferAborted`` on the first lesson the destination cannot take."""
        clock = self._resolver.clock
        for lesson in sorted(lessons, key=lambda item: (item.start_at, item.id)):
            if lesson.is_cancelled:
                continue
            decision = self._resolver.is_available(
                destination.teacher.id,
                lesson.start_at,
                lesson.duration_minutes,
                destination.slots,
                destination.lessons,
            )
            if decision.available:
                continue

            day_of_week = clock.day_of_week(lesson.start_at)
            start_minute = clock.minute_of_day(lesson.start_at)
            label = f"{WEEKDAY_ABBREVIATIONS[day_of_week]} at {format_minute(start_minute)}"
            if decision.conflicting_lesson_id is not None:
                message = (
                    f"Destination teacher already has a lesson at the same time. "
                    f"Lesson on {label} conflicts with an existing lesson."
                )
            else:
                message = (
                    f"Destination teacher is not available for every lesson. "
                    f"Lesson on {label} is outside their availability."
                )
            logger.warning(
                "Transfer to teacher %s rejected at lesson %s: %s",
                destination.teacher.id, lesson.id, decision.reason,
            )
            raise TransferAborted(
                message,
                lesson_id=lesson.id,
                day_of_week=day_of_week,
                start_minute=start_minute,
                reason=decision.reason or "",
            )
