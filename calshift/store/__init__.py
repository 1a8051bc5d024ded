"""Calendar object stores.

This module provides the abstract base class for the stores drop resolution
reads from and writes to, along with the values exchanged with them. Backend
implementations live in the submodules.
"""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from functools import wraps
from typing import Any, TypeVar
from zoneinfo import ZoneInfo

from calshift.component import CalendarObject, EventComponent
from calshift.errors import CalendarObjectNotFound, InstanceContextError

# Type variable for write operation methods
_F = TypeVar("_F", bound=Callable[..., Awaitable["WriteResult"]])


@dataclass(frozen=True)
class WriteResult:
    """Result of a write operation.

    Attributes:
        success: True if the operation succeeded, False otherwise
        calendar_object: The written calendar object if successful, None if failed
        error: The exception that occurred if failed, None if successful
        created: Calendar objects the write created besides ``calendar_object``
    """

    success: bool
    calendar_object: CalendarObject | None
    error: Exception | None
    created: tuple[CalendarObject, ...] = ()


def _error_result(error: Exception) -> WriteResult:
    return WriteResult(success=False, calendar_object=None, error=error)


def _handle_write_errors(func: _F) -> _F:
    """Decorator to wrap async write operations with error handling.

    Catches all exceptions and converts them to a failed WriteResult, so
    backend errors reach callers as values instead of exceptions.
    """

    @wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> WriteResult:
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            return _error_result(e)

    return wrapper  # type: ignore[return-value]


class RecurrenceScope(Enum):
    """How far a change to one occurrence of a series reaches."""

    THIS_OCCURRENCE = "this"
    THIS_AND_FUTURE = "future"


@dataclass(frozen=True)
class DropDecision:
    """The user's answer to the drop recurrence question.

    A decision without a scope means the dialog was closed without choosing.
    """

    scope: RecurrenceScope | None

    @property
    def cancelled(self) -> bool:
        return self.scope is None

    @property
    def this_and_all_future(self) -> bool:
        return self.scope is RecurrenceScope.THIS_AND_FUTURE

    @classmethod
    def this_occurrence(cls) -> "DropDecision":
        return cls(RecurrenceScope.THIS_OCCURRENCE)

    @classmethod
    def this_and_future(cls) -> "DropDecision":
        return cls(RecurrenceScope.THIS_AND_FUTURE)

    @classmethod
    def closed_by_user(cls) -> "DropDecision":
        return cls(None)


@dataclass(frozen=True)
class EventInstance:
    """Display data for an occurrence staged for the recurrence dialog."""

    summary: str
    start: date | datetime
    end: date | datetime | None
    all_day: bool
    recurring: bool
    can_modify_all_day: bool


def map_event_component_to_instance(component: EventComponent) -> EventInstance:
    recurring = component.is_part_of_recurrence_set()
    return EventInstance(
        summary=component.summary,
        start=component.start,
        end=component.end,
        all_day=component.is_all_day(),
        recurring=recurring,
        can_modify_all_day=not recurring,
    )


@dataclass(frozen=True)
class InstanceContext:
    """An occurrence waiting for the user to pick a scope.

    Attributes:
        calendar_object: Object the occurrence belongs to
        component: The modified occurrence
        instance: Display mapping of ``component``
        object_id: Id of ``calendar_object``
        recurrence_id: Recurrence id the drop targeted (Unix seconds)
        zone: Timezone the drop was resolved in
    """

    calendar_object: CalendarObject
    component: EventComponent
    instance: EventInstance
    object_id: str
    recurrence_id: int
    zone: ZoneInfo | None = None


Chooser = Callable[[EventInstance], Awaitable[DropDecision]]


class CalendarStore(ABC):
    """Abstract base class for calendar object stores.

    Keeps the last persisted snapshot of every object it hands out, so
    speculative in-memory changes can be thrown away, and holds the instance
    staged for the recurrence dialog. Backends implement loading and writing.
    """

    def __init__(self, *, chooser: Chooser | None = None) -> None:
        """Initialize the store.

        Args:
            chooser: Coroutine function presenting the recurrence dialog;
                without one every question counts as closed by the user
        """
        self._chooser: Chooser | None = chooser
        self._sources: dict[str, CalendarObject] = {}
        self._instance_context: InstanceContext | None = None

    @property
    def instance_context(self) -> InstanceContext | None:
        return self._instance_context

    def _remember(self, calendar_object: CalendarObject) -> None:
        self._sources[calendar_object.object_id] = calendar_object.copy()

    async def fetch_calendar_object(self, object_id: str) -> CalendarObject:
        """Load a calendar object and record it as the source of truth.

        Raises:
            CalendarObjectNotFound: If no object has this id
        """
        calendar_object = await self._load_calendar_object(object_id)
        self._remember(calendar_object)
        return calendar_object

    def reset_calendar_object_to_source_of_truth(
        self, calendar_object: CalendarObject
    ) -> CalendarObject:
        """Discard in-memory changes to ``calendar_object``.

        Returns:
            A fresh copy of the last persisted state; use it in place of
            ``calendar_object``
        """
        source = self._sources.get(calendar_object.object_id)
        if source is None:
            raise CalendarObjectNotFound(calendar_object.object_id)
        return source.copy()

    @_handle_write_errors
    async def update_calendar_object(
        self, calendar_object: CalendarObject
    ) -> WriteResult:
        """Persist the whole calendar object."""
        result = await self._write_calendar_object(calendar_object)
        if result.success:
            self._remember(calendar_object)
        return result

    @_handle_write_errors
    async def save_calendar_object_instance(
        self, this_and_all_future: bool, calendar_id: str
    ) -> WriteResult:
        """Persist the staged instance with the chosen scope.

        Args:
            this_and_all_future: True to apply the change to this and every
                later occurrence, False for this occurrence only
            calendar_id: Calendar to save into
        """
        context = self._instance_context
        if context is None:
            raise InstanceContextError("No instance staged to save")

        if this_and_all_future:
            result = await self._save_future(context, calendar_id)
        else:
            result = await self._save_occurrence(context, calendar_id)

        if result.success:
            if result.calendar_object is not None:
                self._remember(result.calendar_object)
            for created in result.created:
                self._remember(created)
        return result

    async def present_drop_recurrence_choice(self) -> DropDecision:
        """Ask whether the staged change applies to one or all future occurrences."""
        context = self._instance_context
        if self._chooser is None or context is None:
            return DropDecision.closed_by_user()
        return await self._chooser(context.instance)

    def stage_instance_context(
        self,
        calendar_object: CalendarObject,
        component: EventComponent,
        object_id: str,
        recurrence_id: int,
        zone: ZoneInfo | None = None,
    ) -> InstanceContext:
        self._instance_context = InstanceContext(
            calendar_object=calendar_object,
            component=component,
            instance=map_event_component_to_instance(component),
            object_id=object_id,
            recurrence_id=recurrence_id,
            zone=zone,
        )
        return self._instance_context

    def clear_instance_context(self) -> None:
        self._instance_context = None

    @abstractmethod
    async def _load_calendar_object(self, object_id: str) -> CalendarObject:
        """Backend-specific: load the persisted state of one object.

        Raises:
            CalendarObjectNotFound: If no object has this id
        """
        pass

    @abstractmethod
    async def _write_calendar_object(
        self, calendar_object: CalendarObject
    ) -> WriteResult:
        """Backend-specific: persist every component of ``calendar_object``."""
        pass

    @abstractmethod
    async def _save_occurrence(
        self, context: InstanceContext, calendar_id: str
    ) -> WriteResult:
        """Backend-specific: persist the staged occurrence as an exception."""
        pass

    @abstractmethod
    async def _save_future(
        self, context: InstanceContext, calendar_id: str
    ) -> WriteResult:
        """Backend-specific: split the series at the staged occurrence."""
        pass


__all__ = [
    "CalendarStore",
    "Chooser",
    "DropDecision",
    "EventInstance",
    "InstanceContext",
    "RecurrenceScope",
    "WriteResult",
    "map_event_component_to_instance",
]
