"""Semantic duration values and the parser for drop deltas.

Durations here follow RFC 5545: a signed span made of weeks, days and a
time-of-day part. Days are calendar days, so adding one day to an all-day
event moves it to the next date regardless of DST.

Parsing never raises. Anything that cannot be turned into a duration comes
back as ``None`` and callers decide what that means.
"""

import math
import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from calshift.util import DAY, HOUR, MINUTE

_ISO_PATTERN = re.compile(
    r"^(?P<sign>[+-])?P"
    r"(?:(?P<weeks>\d+)W)?"
    r"(?:(?P<days>\d+)D)?"
    r"(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+)S)?)?$"
)
_CLOCK_PATTERN = re.compile(
    r"^(?P<sign>[+-])?(?P<hours>\d+):(?P<minutes>\d{2})(?::(?P<seconds>\d{2}))?$"
)

_MAPPING_KEYS = frozenset(
    {"years", "months", "weeks", "days", "hours", "minutes", "seconds", "milliseconds"}
)


@dataclass(frozen=True, kw_only=True)
class Duration:
    """A signed calendar duration.

    Attributes:
        weeks: Whole weeks
        days: Whole calendar days
        hours: Hours of the time part
        minutes: Minutes of the time part
        seconds: Seconds of the time part
        negative: True if the whole span points backwards
    """

    weeks: int = 0
    days: int = 0
    hours: int = 0
    minutes: int = 0
    seconds: int = 0
    negative: bool = False

    def __post_init__(self) -> None:
        for name in ("weeks", "days", "hours", "minutes", "seconds"):
            if getattr(self, name) < 0:
                raise ValueError(
                    f"Duration {name} must be >= 0, got {getattr(self, name)}. "
                    f"Use negative=True for backward spans."
                )

    def __str__(self) -> str:
        """ISO 8601 rendering, e.g. ``-P1DT2H``."""
        sign = "-" if self.negative else ""
        date_part = ""
        if self.weeks:
            date_part += f"{self.weeks}W"
        if self.days:
            date_part += f"{self.days}D"
        time_part = ""
        if self.hours:
            time_part += f"{self.hours}H"
        if self.minutes:
            time_part += f"{self.minutes}M"
        if self.seconds:
            time_part += f"{self.seconds}S"
        if not date_part and not time_part:
            return "PT0S"
        return f"{sign}P{date_part}" + (f"T{time_part}" if time_part else "")

    @property
    def day_span(self) -> int:
        """Signed number of calendar days (weeks included)."""
        value = self.weeks * 7 + self.days
        return -value if self.negative else value

    @property
    def time_span(self) -> int:
        """Signed number of seconds in the time-of-day part."""
        value = self.hours * HOUR + self.minutes * MINUTE + self.seconds
        return -value if self.negative else value

    def total_seconds(self) -> int:
        return self.day_span * DAY + self.time_span

    def to_timedelta(self) -> timedelta:
        return timedelta(days=self.day_span, seconds=self.time_span)

    @classmethod
    def from_parts(cls, days: int, seconds: int) -> "Duration":
        """Build a duration from a signed day count and signed seconds.

        Mixed signs (one day forward, one hour back) cannot be expressed as
        an RFC 5545 duration, so they are folded into a single signed span.
        """
        if days and seconds and (days > 0) != (seconds > 0):
            total = days * DAY + seconds
            days, seconds = divmod(abs(total), DAY)
            if total < 0:
                days, seconds = -days, -seconds

        negative = days < 0 or seconds < 0
        days, seconds = abs(days), abs(seconds)
        hours, remainder = divmod(seconds, HOUR)
        minutes, secs = divmod(remainder, MINUTE)
        return cls(
            days=days, hours=hours, minutes=minutes, seconds=secs, negative=negative
        )

    @classmethod
    def from_seconds(cls, total: int) -> "Duration":
        """Build a duration from signed seconds, splitting out whole days."""
        days, seconds = divmod(abs(total), DAY)
        if total < 0:
            return cls.from_parts(-days, -seconds)
        return cls.from_parts(days, seconds)

    @classmethod
    def from_timedelta(cls, value: timedelta) -> "Duration":
        return cls.from_seconds(int(value.total_seconds()))


@dataclass(frozen=True)
class ResolvedDurations:
    """The three durations a drop needs, all known to be valid."""

    delta: Duration
    default_all_day: Duration
    default_timed: Duration


def _parse_string(value: str) -> Duration | None:
    text = value.strip().upper()

    match = _ISO_PATTERN.match(text)
    # "P1DT" and bare "P" match the pattern but are not durations
    if match and not text.endswith("T") and any(
        match.group(g) is not None
        for g in ("weeks", "days", "hours", "minutes", "seconds")
    ):
        return Duration(
            weeks=int(match.group("weeks") or 0),
            days=int(match.group("days") or 0),
            hours=int(match.group("hours") or 0),
            minutes=int(match.group("minutes") or 0),
            seconds=int(match.group("seconds") or 0),
            negative=match.group("sign") == "-",
        )

    match = _CLOCK_PATTERN.match(text)
    if match:
        minutes = int(match.group("minutes"))
        seconds = int(match.group("seconds") or 0)
        if minutes >= 60 or seconds >= 60:
            return None
        total = int(match.group("hours")) * HOUR + minutes * MINUTE + seconds
        return Duration.from_seconds(-total if match.group("sign") == "-" else total)

    return None


def _parse_milliseconds(value: int | float) -> int | None:
    if not math.isfinite(value):
        return None
    if value % 1000:
        return None
    return int(value // 1000)


def _parse_mapping(value: Mapping[str, Any]) -> Duration | None:
    if not set(value) <= _MAPPING_KEYS:
        return None
    numbers: dict[str, int | float] = {}
    for key, raw in value.items():
        if isinstance(raw, bool) or not isinstance(raw, (int, float)):
            return None
        if not math.isfinite(raw):
            return None
        if key != "milliseconds" and raw != int(raw):
            return None
        numbers[key] = int(raw) if key != "milliseconds" else raw

    # Calendar-relative spans have no fixed duration
    if numbers.get("years") or numbers.get("months"):
        return None

    millis = _parse_milliseconds(numbers.get("milliseconds", 0))
    if millis is None:
        return None

    days = numbers.get("weeks", 0) * 7 + numbers.get("days", 0)
    seconds = (
        numbers.get("hours", 0) * HOUR
        + numbers.get("minutes", 0) * MINUTE
        + numbers.get("seconds", 0)
        + millis
    )
    return Duration.from_parts(days, seconds)


def _parse_value(value: Any) -> Duration | None:
    if isinstance(value, Duration):
        return value
    if isinstance(value, timedelta):
        if value.microseconds:
            return None
        return Duration.from_timedelta(value)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        seconds = _parse_milliseconds(value)
        return Duration.from_seconds(seconds) if seconds is not None else None
    if isinstance(value, Mapping):
        return _parse_mapping(value)
    if isinstance(value, str):
        return _parse_string(value)
    return None


def parse_duration(value: Any) -> Duration | None:
    """Convert a drop delta or configured default into a Duration.

    Args:
        value: A Duration, timedelta, number of milliseconds, mapping of
            units (``{"days": 1, "milliseconds": 3600000}``), ISO 8601
            string (``"PT1H"``) or clock string (``"01:00"``)

    Returns:
        The parsed Duration, or None if the value is not a valid duration
    """
    duration = _parse_value(value)
    if duration is None:
        return None
    try:
        duration.to_timedelta()
    except OverflowError:
        # Too long for timedelta, so no date can be shifted by it
        return None
    return duration


def resolve_durations(
    delta: Any, default_all_day: Any, default_timed: Any
) -> ResolvedDurations | None:
    """Parse the drop delta and both default durations.

    Returns:
        ResolvedDurations, or None if any of the three values is invalid
    """
    parsed_delta = parse_duration(delta)
    parsed_all_day = parse_duration(default_all_day)
    parsed_timed = parse_duration(default_timed)
    if parsed_delta is None or parsed_all_day is None or parsed_timed is None:
        return None
    return ResolvedDurations(
        delta=parsed_delta,
        default_all_day=parsed_all_day,
        default_timed=parsed_timed,
    )


__all__ = ["Duration", "ResolvedDurations", "parse_duration", "resolve_durations"]
