"""Calendar objects and the event components they own.

A CalendarObject is the persisted entity behind one calendar entry. It owns
a master component and, for recurring series, any number of recurrence
exceptions. Occurrences of a recurring master that have not been modified
are not stored; the recurrence locator forks them on demand.

Components use ``date`` values for all-day events and timezone-aware
``datetime`` values for timed events, mirroring RFC 5545 DATE and DATE-TIME.
"""

import copy
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from calshift.util import to_instant


@dataclass(kw_only=True)
class EventComponent:
    """One concrete occurrence within a calendar object.

    Attributes:
        uid: UID shared by the master and all of its exceptions
        summary: Event title
        start: Start date (all-day) or aware datetime (timed)
        end: Exclusive end, same type as start; None if ``duration`` is used
        duration: Own length when no end is stored
        rrule: RRULE value (``FREQ=WEEKLY;BYDAY=MO``) for recurring masters
        exdates: Excluded occurrence starts of a recurring master
        recurrence_id: Original start of an exception or forked occurrence
        master: Recurring master a forked occurrence was expanded from
        calendar_object: Owning calendar object
    """

    uid: str
    summary: str = ""
    start: date | datetime
    end: date | datetime | None = None
    duration: timedelta | None = None
    rrule: str | None = None
    exdates: list[date | datetime] = field(default_factory=list)
    recurrence_id: date | datetime | None = None
    master: "EventComponent | None" = field(default=None, repr=False, compare=False)
    calendar_object: "CalendarObject | None" = field(
        default=None, repr=False, compare=False
    )

    def __str__(self) -> str:
        end_str = str(self.end) if self.end is not None else f"+{self.duration}"
        return f"EventComponent('{self.summary}', {self.start}→{end_str})"

    def is_all_day(self) -> bool:
        return not isinstance(self.start, datetime)

    def is_recurring(self) -> bool:
        """True for a master that carries a recurrence rule."""
        return self.rrule is not None

    def is_recurrence_exception(self) -> bool:
        """True if this component is stored as an exception on its object."""
        if self.recurrence_id is None or self.calendar_object is None:
            return False
        return any(c is self for c in self.calendar_object.exceptions)

    def is_part_of_recurrence_set(self) -> bool:
        return self.is_recurring() or self.recurrence_id is not None

    def can_create_recurrence_exceptions(self) -> bool:
        """True for an occurrence forked from a master and not yet stored.

        Plain single events and existing exceptions cannot create one.
        """
        return self.master is not None and not self.is_recurrence_exception()

    def create_recurrence_exception(self) -> "EventComponent":
        """Store this occurrence on its calendar object as an exception.

        Returns:
            This component, now an exception of its calendar object

        Raises:
            ValueError: If the component cannot create an exception
        """
        if not self.can_create_recurrence_exceptions():
            raise ValueError(
                f"{self} is not an unmodified occurrence of a recurring event"
            )
        if self.calendar_object is None:
            raise ValueError(f"{self} is not attached to a calendar object")
        self.calendar_object.add_exception(self)
        return self

    def occurrence_length(self) -> timedelta | None:
        """Length of this component, or None if it has neither end nor duration."""
        if self.end is not None:
            return _as_comparable(self.end, self.start) - _as_comparable(
                self.start, self.start
            )
        return self.duration

    def start_instant(self, zone: ZoneInfo | None = None) -> datetime:
        """Start as an aware UTC datetime; all-day starts use midnight in ``zone``."""
        return to_instant(self.start, zone)

    def recurrence_instant(self, zone: ZoneInfo | None = None) -> datetime | None:
        if self.recurrence_id is None:
            return None
        return to_instant(self.recurrence_id, zone)


def _as_comparable(value: date | datetime, like: date | datetime) -> date | datetime:
    """Coerce ``value`` to the date/datetime kind of ``like`` for subtraction."""
    if isinstance(like, datetime) and not isinstance(value, datetime):
        return datetime.combine(value, datetime.min.time(), tzinfo=like.tzinfo)
    if not isinstance(like, datetime) and isinstance(value, datetime):
        return value.date()
    return value


@dataclass(kw_only=True)
class CalendarObject:
    """Persisted calendar entry owning one or more event components.

    Attributes:
        object_id: Identifier of the object in its store
        calendar_id: Calendar the object lives in
        components: Master first, then recurrence exceptions
    """

    object_id: str
    calendar_id: str
    components: list[EventComponent] = field(default_factory=list)

    def __post_init__(self) -> None:
        for component in self.components:
            component.calendar_object = self
        master = self.master
        if master is not None:
            for component in self.exceptions:
                component.master = master

    @property
    def master(self) -> EventComponent | None:
        for component in self.components:
            if component.recurrence_id is None:
                return component
        return None

    @property
    def exceptions(self) -> list[EventComponent]:
        return [c for c in self.components if c.recurrence_id is not None]

    def exception_at(
        self, instant: datetime, zone: ZoneInfo | None = None
    ) -> EventComponent | None:
        """Return the stored exception whose recurrence id is ``instant``."""
        for component in self.exceptions:
            if component.recurrence_instant(zone) == instant:
                return component
        return None

    def add_exception(self, component: EventComponent) -> None:
        """Attach ``component`` as an exception, replacing one with the same id."""
        if component.recurrence_id is None:
            raise ValueError(f"{component} has no recurrence id")
        self.components = [
            c
            for c in self.components
            if c.recurrence_id is None or c.recurrence_id != component.recurrence_id
        ]
        self.components.append(component)
        component.calendar_object = self

    def copy(self) -> "CalendarObject":
        """Deep copy, back references included."""
        return copy.deepcopy(self)


__all__ = ["CalendarObject", "EventComponent"]
