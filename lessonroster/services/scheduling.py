"""
Application services for availability checks and teacher search.

The service fetches facts through the repository protocol and delegates every
decision to the domain-level ``ConflictResolver``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Collection, List, Optional

from pendulum import DateTime

from ..domain.conflict_resolver import ConflictResolver
from ..domain.exceptions import NotFoundError, ValidationError
from ..domain.models import (
    AvailabilityDecision,
    LessonStatus,
    OpenTime,
    RequiredSlot,
    Teacher,
    TeacherSchedule,
    TeacherStatus,
)
from .repository import LessonRepositoryProtocol

logger = logging.getLogger(__name__)

ACTIVE_LESSON_STATUSES = (LessonStatus.CONFIRMED, LessonStatus.MAKEUP)


class SchedulingService:
    """Orchestrates fact loading and conflict resolution for scheduling."""

    def __init__(
        self,
        repository: LessonRepositoryProtocol,
        resolver: ConflictResolver,
    ) -> None:
        self._repository = repository
        self._resolver = resolver

    @property
    def clock(self):
        return self._resolver.clock

    async def require_teacher(self, teacher_id: str) -> Teacher:
        if not teacher_id:
            raise ValidationError("teacher_id is required")
        teacher = await self._repository.get_teacher(teacher_id)
        if teacher is None:
            raise NotFoundError("Teacher", teacher_id)
        return teacher

    async def load_schedule(
        self,
        teacher: Teacher,
        from_date: Optional[DateTime] = None,
    ) -> TeacherSchedule:
        """Slots plus non-cancelled lessons of one teacher."""
        slots, lessons = await asyncio.gather(
            self._repository.get_teacher_slots(teacher.id),
            self._repository.get_teacher_lessons(
                teacher.id, from_date=from_date, statuses=ACTIVE_LESSON_STATUSES
            ),
        )
        return TeacherSchedule(teacher=teacher, slots=list(slots), lessons=list(lessons))

    async def load_pool(
        self,
        from_date: Optional[DateTime] = None,
        exclude_teacher_id: Optional[str] = None,
    ) -> List[TeacherSchedule]:
        """Schedules of all active teachers, fetched concurrently, in name order."""
        teachers = await self._repository.list_teachers(status=TeacherStatus.ACTIVE)
        teachers = [teacher for teacher in teachers if teacher.id != exclude_teacher_id]
        return list(
            await asyncio.gather(*(self.load_schedule(teacher, from_date) for teacher in teachers))
        )

    async def check_availability(
        self,
        teacher_id: str,
        start_at: DateTime,
        duration_minutes: int,
        exclude_lesson_id: Optional[str] = None,
    ) -> AvailabilityDecision:
        teacher = await self.require_teacher(teacher_id)
        schedule = await self.load_schedule(teacher)
        return self._resolver.is_available(
            teacher.id,
            start_at,
            duration_minutes,
            schedule.slots,
            schedule.lessons,
            exclude_lesson_id=exclude_lesson_id,
        )

    async def ensure_available(
        self,
        teacher_id: str,
        start_at: DateTime,
        duration_minutes: int,
        exclude_lesson_id: Optional[str] = None,
    ) -> None:
        """Raise ``ConflictError`` when the window cannot be booked."""
        teacher = await self.require_teacher(teacher_id)
        schedule = await self.load_schedule(teacher)
        self._resolver.ensure_available(
            teacher.id,
            start_at,
            duration_minutes,
            schedule.slots,
            schedule.lessons,
            exclude_lesson_id=exclude_lesson_id,
        )

    async def find_free_teachers(
        self,
        days: Collection[int],
        start_minute: int,
        end_minute: int,
        now: DateTime,
    ) -> List[Teacher]:
        """Active teachers free for a weekly recurring lesson on every given day."""
        pool = await self.load_pool(from_date=self.clock.start_of_day(now))
        free_ids = set(self._resolver.find_free_teachers(days, start_minute, end_minute, pool, now))
        return [schedule.teacher for schedule in pool if schedule.teacher.id in free_ids]

    async def required_slots_for(self, teacher_id: str, from_date: DateTime) -> List[RequiredSlot]:
        teacher = await self.require_teacher(teacher_id)
        lessons = await self._repository.get_teacher_lessons(
            teacher.id, from_date=from_date, statuses=ACTIVE_LESSON_STATUSES
        )
        return self._resolver.required_slots(lessons)

    async def available_teachers_for_transfer(
        self,
        source_teacher_id: str,
        from_date: DateTime,
    ) -> List[Teacher]:
        """Active teachers that could take over every future slot of the source teacher."""
        from_day = self.clock.start_of_day(from_date)
        required = await self.required_slots_for(source_teacher_id, from_day)
        if not required:
            return []
        pool = await self.load_pool(from_date=from_day, exclude_teacher_id=source_teacher_id)
        qualifying = set(
            self._resolver.find_teachers_covering_all_slots(
                required, pool, source_teacher_id, from_day
            )
        )
        return [schedule.teacher for schedule in pool if schedule.teacher.id in qualifying]

    async def open_start_times(
        self,
        teacher_id: str,
        day: DateTime,
        duration_minutes: int,
    ) -> List[OpenTime]:
        teacher = await self.require_teacher(teacher_id)
        day_start, day_end = self.clock.day_bounds(day)
        key = self.clock.date_key(day_start)
        schedule, holidays = await asyncio.gather(
            self.load_schedule(teacher, from_date=day_start),
            self._repository.get_holidays(key, key),
        )
        lessons = [lesson for lesson in schedule.lessons if lesson.start_at <= day_end]
        return self._resolver.open_start_times(
            teacher.id, day_start, duration_minutes, schedule.slots, lessons, holidays
        )

    async def available_dates(
        self,
        teacher_id: str,
        from_day: DateTime,
        duration_minutes: int,
    ) -> List[str]:
        teacher = await self.require_teacher(teacher_id)
        start = self.clock.start_of_day(from_day)
        end = start.add(days=self._resolver.booking_horizon_days).end_of("day")
        schedule, holidays = await asyncio.gather(
            self.load_schedule(teacher, from_date=start),
            self._repository.get_holidays(self.clock.date_key(start), self.clock.date_key(end)),
        )
        return self._resolver.available_dates(
            teacher.id, start, duration_minutes, schedule.slots, schedule.lessons, holidays
        )
