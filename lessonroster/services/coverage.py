"""
Weekly teacher coverage of active enrollments.
"""

from __future__ import annotations

import asyncio
import logging

from pendulum import DateTime

from ..domain.group_coverage import enrollments_with_teacher, propagate_group_coverage
from ..domain.models import CoverageReport, EnrollmentStatus
from ..domain.schedule_time import ScheduleClock
from .repository import LessonRepositoryProtocol

logger = logging.getLogger(__name__)


class CoverageService:
    """Reports which active enrollments have a teacher this week and next week."""

    def __init__(
        self,
        repository: LessonRepositoryProtocol,
        clock: ScheduleClock,
        week_last_day: int = 6,
    ) -> None:
        self._repository = repository
        self._clock = clock
        self._week_last_day = week_last_day

    async def weekly_coverage(self, now: DateTime) -> CoverageReport:
        this_start, this_end = self._clock.week_window(now, self._week_last_day)
        next_start, next_end = self._clock.week_window(this_start.add(days=7), self._week_last_day)

        enrollments, this_week, next_week = await asyncio.gather(
            self._repository.get_enrollments(status=EnrollmentStatus.ACTIVE),
            self._repository.get_lessons_between(this_start, this_end),
            self._repository.get_lessons_between(next_start, next_end),
        )
        active_ids = {enrollment.id for enrollment in enrollments}

        covered_this = propagate_group_coverage(
            enrollments,
            enrollments_with_teacher(this_week, this_start, this_end) & active_ids,
        )
        covered_next = propagate_group_coverage(
            enrollments,
            enrollments_with_teacher(next_week, next_start, next_end) & active_ids,
        )

        report = CoverageReport(
            covered_this_week=covered_this,
            covered_next_week=covered_next,
            without_teacher_this_week=tuple(e.id for e in enrollments if e.id not in covered_this),
            without_teacher_next_week=tuple(e.id for e in enrollments if e.id not in covered_next),
        )
        logger.info(
            "Coverage week of %s: %d without teacher, %d next week",
            this_start.to_date_string(),
            len(report.without_teacher_this_week),
            len(report.without_teacher_next_week),
        )
        return report
