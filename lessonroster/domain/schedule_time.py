"""
Schedule time: the single conversion boundary between absolute instants and
wall-clock schedule values (day of week, minute of day, date keys).

Every derivation goes through one canonical timezone, never the caller's
local timezone. Day-of-week numbering is 0=Sunday ... 6=Saturday.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Tuple, Union

import pendulum
from pendulum import DateTime

from .exceptions import ValidationError

DEFAULT_TIMEZONE = "America/Sao_Paulo"

MINUTES_PER_DAY = 24 * 60

WEEKDAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")
WEEKDAY_ABBREVIATIONS = tuple(name[:3] for name in WEEKDAY_NAMES)

Instant = Union[DateTime, datetime]


def intervals_overlap(a_start, a_end, b_start, b_end) -> bool:
    """Half-open overlap test: ``[a_start, a_end)`` against ``[b_start, b_end)``."""
    return a_start < b_end and a_end > b_start


def format_minute(minute: int) -> str:
    """Format a minute of day as ``HH:MM``."""
    return f"{minute // 60:02d}:{minute % 60:02d}"


def parse_minute(value: str) -> int:
    """
    Parse ``HH:MM`` (or a plain integer string) into a minute of day.

    Raises:
        ValidationError: If the value is malformed or outside the day
    """
    text = str(value).strip()
    try:
        if ":" in text:
            hours, minutes = text.split(":", 1)
            minute = int(hours) * 60 + int(minutes)
        else:
            minute = int(text)
    except ValueError as exc:
        raise ValidationError(f"Invalid time of day: '{value}'") from exc

    if not 0 <= minute <= MINUTES_PER_DAY:
        raise ValidationError(f"Time of day out of range: '{value}'")
    return minute


def validate_day_of_week(day_of_week: int) -> int:
    if not isinstance(day_of_week, int) or not 0 <= day_of_week <= 6:
        raise ValidationError(f"day_of_week must be between 0 and 6, got {day_of_week!r}")
    return day_of_week


class ScheduleClock:
    """
    Converts instants to and from the canonical schedule timezone.

    The clock never reads the wall clock itself: callers pass ``now``
    explicitly so every computation is reproducible.
    """

    def __init__(self, timezone: str = DEFAULT_TIMEZONE):
        if timezone not in pendulum.timezones():
            raise ValidationError(f"Unknown timezone: {timezone}")
        self.timezone_name = timezone
        self.timezone = pendulum.timezone(timezone)

    def localize(self, instant: Instant) -> DateTime:
        """Return ``instant`` expressed in the schedule timezone."""
        if not isinstance(instant, datetime):
            raise ValidationError(f"Expected a timestamp, got {instant!r}")
        if instant.tzinfo is None:
            raise ValidationError(f"Timestamp must be timezone-aware: {instant}")
        return pendulum.instance(instant).in_timezone(self.timezone)

    def parse_instant(self, value: str) -> DateTime:
        """
        Parse an ISO-8601 timestamp. Values without an offset are read as
        schedule-local wall-clock time.
        """
        try:
            parsed = pendulum.parse(str(value), tz=self.timezone)
        except ValueError as exc:
            raise ValidationError(f"Invalid timestamp: '{value}'") from exc
        if not isinstance(parsed, DateTime):
            raise ValidationError(f"Expected a date and time, got '{value}'")
        return self.localize(parsed)

    def parse_date(self, value: Union[str, date]) -> DateTime:
        """Parse a ``YYYY-MM-DD`` key into the start of that local day."""
        if isinstance(value, date) and not isinstance(value, datetime):
            return self.start_of_day(value)
        try:
            parsed = pendulum.from_format(str(value).strip(), "YYYY-MM-DD", tz=self.timezone)
        except ValueError as exc:
            raise ValidationError(f"Invalid date (expected YYYY-MM-DD): '{value}'") from exc
        return parsed.start_of("day")

    def day_of_week(self, instant: Instant) -> int:
        """Day of week in the schedule timezone, 0=Sunday."""
        return self.localize(instant).isoweekday() % 7

    def minute_of_day(self, instant: Instant) -> int:
        local = self.localize(instant)
        return local.hour * 60 + local.minute

    def date_key(self, instant: Instant) -> str:
        """Local calendar date as ``YYYY-MM-DD``."""
        return self.localize(instant).format("YYYY-MM-DD")

    def local_date(self, instant: Instant) -> date:
        return self.localize(instant).date()

    def start_of_day(self, day: Union[date, Instant]) -> DateTime:
        if isinstance(day, datetime):
            return self.localize(day).start_of("day")
        return pendulum.datetime(day.year, day.month, day.day, tz=self.timezone)

    def end_of_day(self, day: Union[date, Instant]) -> DateTime:
        return self.start_of_day(day).end_of("day")

    def day_bounds(self, day: Union[date, Instant]) -> Tuple[DateTime, DateTime]:
        start = self.start_of_day(day)
        return start, start.end_of("day")

    def month_bounds(self, year: int, month: int) -> Tuple[DateTime, DateTime]:
        """
        First and last instant of a calendar month. The end is inclusive
        (23:59:59.999999 on the last day).
        """
        if not 1 <= month <= 12:
            raise ValidationError(f"month must be between 1 and 12, got {month}")
        start = pendulum.datetime(year, month, 1, tz=self.timezone)
        return start, start.end_of("month")

    def period_for(self, now: Instant) -> Tuple[DateTime, DateTime]:
        """Calendar month containing ``now``."""
        local = self.localize(now)
        return self.month_bounds(local.year, local.month)

    def at_minute(self, day: Union[date, Instant], minute: int) -> DateTime:
        """Instant at ``minute`` past local midnight of ``day``."""
        return self.start_of_day(day).set(hour=minute // 60, minute=minute % 60)

    def next_occurrence(
        self,
        day_of_week: int,
        now: Instant,
        *,
        include_today: bool = False,
    ) -> DateTime:
        """
        Start of the next local day falling on ``day_of_week``.

        Today only counts when ``include_today`` is set; otherwise the
        result is always strictly in the future.
        """
        validate_day_of_week(day_of_week)
        today = self.start_of_day(now)
        days_ahead = (day_of_week - self.day_of_week(today)) % 7
        if days_ahead == 0 and not include_today:
            days_ahead = 7
        return today.add(days=days_ahead)

    def week_window(self, now: Instant, last_day: int = 6) -> Tuple[DateTime, DateTime]:
        """
        Monday 00:00 of the week containing ``now`` through the end of
        ``last_day``. Sunday belongs to the week that started six days before.
        """
        validate_day_of_week(last_day)
        today = self.start_of_day(now)
        monday = today.subtract(days=today.isoweekday() - 1)
        offset = (last_day - 1) % 7
        return monday, monday.add(days=offset).end_of("day")
