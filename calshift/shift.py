"""Apply a drop delta to one event component."""

from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from calshift.component import EventComponent
from calshift.duration import Duration
from calshift.errors import ShiftError


def _localize(value: datetime, zone: ZoneInfo) -> datetime:
    # Floating times are read in the calendar's timezone
    return value.replace(tzinfo=zone) if value.tzinfo is None else value


def _shift_date(value: date, delta: Duration) -> date:
    # Dates only move by whole days; the time part of the delta is ignored
    if isinstance(value, datetime):
        value = value.date()
    return value + timedelta(days=delta.day_span)


def _require_positive(default: Duration, kind: str) -> None:
    if default.total_seconds() <= 0:
        raise ShiftError(
            f"Default {kind} event duration must be positive, got {default}"
        )


def _shifted_values(
    component: EventComponent,
    delta: Duration,
    all_day: bool,
    zone: ZoneInfo,
    default_all_day: Duration,
    default_timed: Duration,
) -> tuple[date | datetime, date | datetime | None, timedelta | None]:
    """Compute the new start, end and duration without touching ``component``."""
    currently_all_day = component.is_all_day()
    start = component.start
    end = component.end
    duration = component.duration

    if currently_all_day and all_day:
        start = _shift_date(component.start, delta)
        if end is not None:
            end = _shift_date(end, delta)
        elif duration is None:
            _require_positive(default_all_day, "all-day")
            end = start + timedelta(days=max(default_all_day.day_span, 1))

    elif not currently_all_day and not all_day:
        assert isinstance(component.start, datetime)
        start = _localize(component.start, zone) + delta.to_timedelta()
        if isinstance(end, datetime):
            end = _localize(end, zone) + delta.to_timedelta()
        elif end is None and duration is None:
            _require_positive(default_timed, "timed")
            end = start + default_timed.to_timedelta()

    elif all_day:
        # Timed to all-day
        assert isinstance(component.start, datetime)
        _require_positive(default_all_day, "all-day")
        start = _shift_date(_localize(component.start, zone).date(), delta)
        end = start + timedelta(days=max(default_all_day.day_span, 1))
        duration = None

    else:
        # All-day to timed
        _require_positive(default_timed, "timed")
        midnight = datetime.combine(component.start, time.min, tzinfo=zone)
        start = midnight + delta.to_timedelta()
        end = start + default_timed.to_timedelta()
        duration = None

    return start, end, duration


def shift_by_duration(
    component: EventComponent,
    delta: Duration,
    all_day: bool,
    zone: ZoneInfo,
    default_all_day: Duration,
    default_timed: Duration,
) -> None:
    """Move ``component`` by ``delta``, possibly across the all-day boundary.

    When the all-day state is unchanged, start and end move together. When it
    changes, the component's own length cannot be carried over, so the end is
    rebuilt from the default duration of the new state. All new values are
    computed before any are assigned, so a failed shift leaves the component
    untouched.

    Args:
        component: Occurrence to mutate
        delta: Drop delta
        all_day: All-day state at the drop target
        zone: Timezone for floating times and for placing former all-day
            events on the clock
        default_all_day: Length of an all-day event with no end of its own
        default_timed: Length of a timed event with no end of its own

    Raises:
        ShiftError: If the shift would change the all-day state of a member of
            a recurrence set, needs a non-positive default, ends before it
            starts, or leaves the supported date range
    """
    currently_all_day = component.is_all_day()
    if currently_all_day != all_day and component.is_part_of_recurrence_set():
        raise ShiftError(
            f"Can't change the all-day state of {component}: "
            f"it is part of a recurrence set"
        )

    try:
        start, end, duration = _shifted_values(
            component, delta, all_day, zone, default_all_day, default_timed
        )
    except OverflowError as error:
        raise ShiftError(
            f"Shifting {component} by {delta} leaves the supported date range"
        ) from error

    if end is not None and type(end) is not type(start):
        raise ShiftError(
            f"Shift of {component} mixes date and date-time values: "
            f"start={start!r}, end={end!r}"
        )
    if end is not None and end < start:
        raise ShiftError(f"Shifted end {end} is before shifted start {start}")

    component.start = start
    component.end = end
    component.duration = duration


__all__ = ["shift_by_duration"]
