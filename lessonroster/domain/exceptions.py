"""
Domain-specific exception hierarchy for lessonroster.
"""

from __future__ import annotations

from typing import Optional


class LessonRosterError(Exception):
    """Base class for all application-level errors."""


class ValidationError(LessonRosterError):
    """Raised when caller input is malformed (bad ids, ranges or durations)."""


class NotFoundError(LessonRosterError):
    """Raised when a referenced teacher, enrollment or lesson does not exist."""

    def __init__(self, kind: str, identifier: str) -> None:
        super().__init__(f"{kind} not found: {identifier}")
        self.kind = kind
        self.identifier = identifier


class ConflictError(LessonRosterError):
    """
    Raised when a candidate lesson window is not available for a teacher.

    Carries the human-readable reason and, for overlaps, the id of the
    lesson already occupying the window.
    """

    def __init__(self, reason: str, conflicting_lesson_id: Optional[str] = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.conflicting_lesson_id = conflicting_lesson_id


class TransferAborted(LessonRosterError):
    """Raised when a schedule transfer fails validation. Nothing was written."""

    def __init__(
        self,
        message: str,
        *,
        lesson_id: str,
        day_of_week: int,
        start_minute: int,
        reason: str,
    ) -> None:
        super().__init__(message)
        self.lesson_id = lesson_id
        self.day_of_week = day_of_week
        self.start_minute = start_minute
        self.reason = reason


class ComputationInconsistency(LessonRosterError):
    """Raised when an internal invariant is violated during a computation."""
