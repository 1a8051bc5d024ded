"""Locate occurrences inside recurring calendar objects.

Rule expansion is delegated to python-dateutil's RFC 5545 rrule
implementation; this module only anchors rules to their master's start,
applies EXDATEs, and forks single occurrences out of a master so they can be
modified on their own.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from dateutil.rrule import rrule, rruleset, rrulestr

from calshift.component import CalendarObject, EventComponent
from calshift.util import to_instant

_UNTIL_PATTERN = re.compile(r"UNTIL=(?P<date>\d{8})(?P<time>T\d{6})?(?P<utc>Z)?")
_COUNT_PATTERN = re.compile(r"COUNT=(?P<count>\d+)")
_UNTIL_DATETIME_FORMAT = "%Y%m%dT%H%M%SZ"
_UNTIL_DATE_FORMAT = "%Y%m%d"


def recurrence_id_to_datetime(recurrence_id: int | float | str) -> datetime:
    """Interpret a recurrence id (Unix seconds) as an aware UTC datetime."""
    return datetime.fromtimestamp(int(float(recurrence_id)), tz=timezone.utc)


def _rule_parts(rule: str) -> list[str]:
    rule = rule.removeprefix("RRULE:")
    return [part for part in rule.split(";") if part]


def parse_rule_count(rule: str) -> int | None:
    """Return the COUNT of an RRULE value, or None if it has none."""
    match = _COUNT_PATTERN.search(rule)
    return int(match.group("count")) if match else None


def set_rule_until(rule: str, until: date | datetime) -> str:
    """Return ``rule`` ending at ``until`` (inclusive), dropping any COUNT.

    Dates are written as DATE values, datetimes as UTC DATE-TIME values.
    """
    parts = [
        p for p in _rule_parts(rule) if not p.startswith(("UNTIL=", "COUNT="))
    ]
    if isinstance(until, datetime):
        value = to_instant(until).strftime(_UNTIL_DATETIME_FORMAT)
    else:
        value = until.strftime(_UNTIL_DATE_FORMAT)
    parts.append(f"UNTIL={value}")
    return ";".join(parts)


def set_rule_count(rule: str, count: int) -> str:
    """Return ``rule`` limited to ``count`` occurrences, dropping any UNTIL."""
    if count < 1:
        raise ValueError(f"Recurrence COUNT must be >= 1, got {count}")
    parts = [
        p for p in _rule_parts(rule) if not p.startswith(("UNTIL=", "COUNT="))
    ]
    parts.append(f"COUNT={count}")
    return ";".join(parts)


def _normalize_until(rule: str, zone: ZoneInfo | None) -> str:
    """Rewrite a floating UNTIL as UTC so it can be used with an aware DTSTART."""
    match = _UNTIL_PATTERN.search(rule)
    if match is None or match.group("utc"):
        return rule

    tz = zone if zone is not None else timezone.utc
    day = datetime.strptime(match.group("date"), _UNTIL_DATE_FORMAT)
    if match.group("time"):
        clock = datetime.strptime(match.group("time"), "T%H%M%S").time()
    else:
        # A DATE until includes every occurrence on that day
        clock = time(23, 59, 59)
    until = datetime.combine(day.date(), clock, tzinfo=tz)
    replacement = "UNTIL=" + to_instant(until).strftime(_UNTIL_DATETIME_FORMAT)
    return rule[: match.start()] + replacement + rule[match.end() :]


def rule_start(master: EventComponent, zone: ZoneInfo | None = None) -> datetime:
    """DTSTART used to expand ``master``: its start, with all-day at midnight."""
    tz = zone if zone is not None else timezone.utc
    if not isinstance(master.start, datetime):
        return datetime.combine(master.start, time.min, tzinfo=tz)
    if master.start.tzinfo is None:
        return master.start.replace(tzinfo=tz)
    return master.start


def build_rule(master: EventComponent, zone: ZoneInfo | None = None) -> rrule:
    """Build the bare dateutil rule (no EXDATEs) of a recurring master."""
    if master.rrule is None:
        raise ValueError(f"{master} has no recurrence rule")
    text = _normalize_until(master.rrule.removeprefix("RRULE:"), zone)
    return rrulestr(text, dtstart=rule_start(master, zone))


def build_rule_set(master: EventComponent, zone: ZoneInfo | None = None) -> rruleset:
    """Build the occurrence set of a recurring master, EXDATEs applied."""
    rules = rruleset()
    rules.rrule(build_rule(master, zone))
    for exdate in master.exdates:
        rules.exdate(to_instant(exdate, zone))
    return rules


def occurrences_before(
    master: EventComponent, instant: datetime, zone: ZoneInfo | None = None
) -> int:
    """Number of generated occurrences strictly before ``instant``.

    EXDATEs are not subtracted: RFC 5545 COUNT counts generated instances.
    """
    count = 0
    for occurrence in build_rule(master, zone):
        if occurrence >= instant:
            break
        count += 1
    return count


def fork_occurrence(
    master: EventComponent, occurrence: datetime, zone: ZoneInfo | None = None
) -> EventComponent:
    """Create the component for one generated occurrence of ``master``.

    The fork is linked to the master and its calendar object but is not
    stored on the object until it becomes a recurrence exception.
    """
    start: date | datetime
    if master.is_all_day():
        start = occurrence.astimezone(rule_start(master, zone).tzinfo).date()
    else:
        start = occurrence

    end: date | datetime | None = None
    if master.end is not None:
        length = master.occurrence_length()
        assert length is not None  # end is set
        if isinstance(start, datetime):
            end = start + length
        else:
            end = start + timedelta(days=length.days)

    return EventComponent(
        uid=master.uid,
        summary=master.summary,
        start=start,
        end=end,
        duration=master.duration,
        recurrence_id=start,
        master=master,
        calendar_object=master.calendar_object,
    )


@dataclass(frozen=True)
class SeriesSplit:
    """A recurring series cut in two at a modified occurrence.

    Attributes:
        head_rule: Rule of the original master, now ending before the
            occurrence; None if no occurrence precedes it
        head_exdates: EXDATEs the original master keeps
        tail: New master starting at the modified occurrence
    """

    head_rule: str | None
    head_exdates: list[date | datetime]
    tail: EventComponent


def split_series(
    occurrence: EventComponent, uid: str, zone: ZoneInfo | None = None
) -> SeriesSplit:
    """Split the series of ``occurrence`` so it and all later ones follow it.

    The occurrence has already been shifted; the offset between its original
    and new start is applied to every later occurrence, EXDATEs included.

    Args:
        occurrence: Forked or stored occurrence of a recurring master
        uid: UID for the new series
        zone: Timezone anchoring all-day rules

    Raises:
        ValueError: If the occurrence does not belong to a recurring master
    """
    master = occurrence.master
    if master is None or master.rrule is None or occurrence.recurrence_id is None:
        raise ValueError(f"{occurrence} is not an occurrence of a recurring event")

    original = occurrence.recurrence_id
    original_instant = to_instant(original, zone)
    offset = _as_offset(occurrence.start, original)

    count = parse_rule_count(master.rrule)
    before = occurrences_before(master, original_instant, zone)
    tail_rule = master.rrule.removeprefix("RRULE:")
    if count is not None:
        tail_rule = set_rule_count(tail_rule, count - before)

    tail = EventComponent(
        uid=uid,
        summary=occurrence.summary,
        start=occurrence.start,
        end=occurrence.end,
        duration=occurrence.duration,
        rrule=tail_rule,
        exdates=[
            exdate + offset
            for exdate in master.exdates
            if to_instant(exdate, zone) > original_instant
        ],
    )

    if before == 0:
        return SeriesSplit(head_rule=None, head_exdates=[], tail=tail)

    until: date | datetime
    if isinstance(original, datetime):
        until = original_instant - timedelta(seconds=1)
    else:
        until = original - timedelta(days=1)
    return SeriesSplit(
        head_rule=set_rule_until(master.rrule, until),
        head_exdates=[
            exdate
            for exdate in master.exdates
            if to_instant(exdate, zone) < original_instant
        ],
        tail=tail,
    )


def _as_offset(new: date | datetime, old: date | datetime) -> timedelta:
    if isinstance(new, datetime) and isinstance(old, datetime):
        return new - old
    if not isinstance(new, datetime) and not isinstance(old, datetime):
        return new - old
    raise ValueError(
        f"Occurrence start {new!r} and recurrence id {old!r} differ in kind"
    )


def get_object_at_recurrence_id(
    calendar_object: CalendarObject,
    instant: datetime,
    zone: ZoneInfo | None = None,
) -> EventComponent | None:
    """Find the component for the occurrence starting at ``instant``.

    Stored exceptions win over the master's rule. Unmodified occurrences of a
    recurring master are forked. All-day starts are compared as midnight in
    ``zone`` (UTC when not given).

    Returns:
        The matching component, or None if no occurrence starts at ``instant``
    """
    instant = to_instant(instant)

    exception = calendar_object.exception_at(instant, zone)
    if exception is not None:
        return exception

    master = calendar_object.master
    if master is None:
        return None

    if not master.is_recurring():
        return master if master.start_instant(zone) == instant else None

    matches = build_rule_set(master, zone).between(instant, instant, inc=True)
    if not matches:
        return None
    return fork_occurrence(master, matches[0], zone)


__all__ = [
    "build_rule",
    "build_rule_set",
    "fork_occurrence",
    "get_object_at_recurrence_id",
    "occurrences_before",
    "parse_rule_count",
    "recurrence_id_to_datetime",
    "rule_start",
    "set_rule_count",
    "set_rule_until",
    "split_series",
    "SeriesSplit",
]
