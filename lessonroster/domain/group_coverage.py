"""
Group coverage propagation.

Coverage ("has a lesson with an assigned teacher this week") is shared across
every member of a named group: either all members are covered or none.
"""

from __future__ import annotations

from typing import AbstractSet, Dict, FrozenSet, Iterable, List

from pendulum import DateTime

from .models import Enrollment, Lesson


def group_members(enrollments: Iterable[Enrollment]) -> Dict[str, List[str]]:
    """Map each group name to the ids of its members, in input order."""
    groups: Dict[str, List[str]] = {}
    for enrollment in enrollments:
        key = enrollment.group_key
        if key is None:
            continue
        groups.setdefault(key, []).append(enrollment.id)
    return groups


def propagate_group_coverage(
    enrollments: Iterable[Enrollment],
    has_teacher: AbstractSet[str],
) -> FrozenSet[str]:
    """
    Return a new set where any covered group member covers the whole group.

    Single pass over the groups; groups do not nest. Individual enrollments
    pass through unchanged and ``has_teacher`` is never mutated.
    """
    expanded = set(has_teacher)
    for member_ids in group_members(enrollments).values():
        if any(member_id in has_teacher for member_id in member_ids):
            expanded.update(member_ids)
    return frozenset(expanded)


def enrollments_with_teacher(
    lessons: Iterable[Lesson],
    window_start: DateTime,
    window_end: DateTime,
) -> FrozenSet[str]:
    """Enrollment ids having any lesson with a teacher inside the window."""
    return frozenset(
        lesson.enrollment_id
        for lesson in lessons
        if lesson.teacher_id is not None
        and window_start <= lesson.start_at <= window_end
    )
