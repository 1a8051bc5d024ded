"""In-memory calendar store.

This module provides MemoryStore, a store that keeps persisted calendar
objects in a dict. It's useful for testing, prototyping, and ephemeral
calendars.
"""

import uuid
from collections.abc import Iterable

from typing_extensions import override

from calshift.component import CalendarObject
from calshift.errors import CalendarObjectNotFound
from calshift.recurrence import split_series
from calshift.store import (
    CalendarStore,
    Chooser,
    InstanceContext,
    WriteResult,
    _handle_write_errors,
)


class MemoryStore(CalendarStore):
    """Calendar store backed by a dict of persisted objects.

    Objects handed out by ``fetch_calendar_object`` are copies; only writes
    change what is persisted.

    Attributes:
        writes: Number of successful writes, for inspection in tests
    """

    def __init__(
        self,
        objects: Iterable[CalendarObject] = (),
        *,
        chooser: Chooser | None = None,
    ) -> None:
        """Initialize an empty or pre-populated memory store.

        Args:
            objects: Initial persisted calendar objects
            chooser: Coroutine function presenting the recurrence dialog
        """
        super().__init__(chooser=chooser)
        self._persisted: dict[str, CalendarObject] = {}
        self.writes: int = 0

        for calendar_object in objects:
            self._persisted[calendar_object.object_id] = calendar_object.copy()

    def persisted(self, object_id: str) -> CalendarObject | None:
        """Return a copy of the persisted state of ``object_id``, if any."""
        calendar_object = self._persisted.get(object_id)
        return calendar_object.copy() if calendar_object is not None else None

    def object_ids(self) -> list[str]:
        return sorted(self._persisted)

    def _store(self, calendar_object: CalendarObject) -> None:
        self._persisted[calendar_object.object_id] = calendar_object.copy()
        self.writes += 1

    @override
    async def _load_calendar_object(self, object_id: str) -> CalendarObject:
        calendar_object = self._persisted.get(object_id)
        if calendar_object is None:
            raise CalendarObjectNotFound(object_id)
        return calendar_object.copy()

    @override
    @_handle_write_errors
    async def _write_calendar_object(
        self, calendar_object: CalendarObject
    ) -> WriteResult:
        if calendar_object.object_id not in self._persisted:
            return WriteResult(
                success=False,
                calendar_object=None,
                error=CalendarObjectNotFound(calendar_object.object_id),
            )
        self._store(calendar_object)
        return WriteResult(success=True, calendar_object=calendar_object, error=None)

    @override
    @_handle_write_errors
    async def _save_occurrence(
        self, context: InstanceContext, calendar_id: str
    ) -> WriteResult:
        """Store the staged occurrence as a recurrence exception."""
        calendar_object = context.calendar_object
        component = context.component
        if component.can_create_recurrence_exceptions():
            component.create_recurrence_exception()

        calendar_object.calendar_id = calendar_id
        self._store(calendar_object)
        return WriteResult(success=True, calendar_object=calendar_object, error=None)

    @override
    @_handle_write_errors
    async def _save_future(
        self, context: InstanceContext, calendar_id: str
    ) -> WriteResult:
        """End the series before the staged occurrence and start a new one at it.

        Exceptions at or after the occurrence are dropped; later occurrences
        follow the new series. If nothing precedes the occurrence the whole
        series moves and no new object is created.
        """
        calendar_object = context.calendar_object
        component = context.component
        master = component.master
        assert master is not None  # only occurrences of a series are staged

        split = split_series(component, uid=str(uuid.uuid4()), zone=context.zone)
        calendar_object.calendar_id = calendar_id

        if split.head_rule is None:
            # The occurrence was the first one: move the series as a whole
            master.start = split.tail.start
            master.end = split.tail.end
            master.duration = split.tail.duration
            master.rrule = split.tail.rrule
            master.exdates = split.tail.exdates
            calendar_object.components = [master]
            self._store(calendar_object)
            return WriteResult(
                success=True, calendar_object=calendar_object, error=None
            )

        cutoff = component.recurrence_instant(context.zone)
        master.rrule = split.head_rule
        master.exdates = split.head_exdates
        calendar_object.components = [master] + [
            c
            for c in calendar_object.exceptions
            if c.recurrence_instant(context.zone) < cutoff
        ]

        tail_object = CalendarObject(
            object_id=f"{split.tail.uid}.ics",
            calendar_id=calendar_id,
            components=[split.tail],
        )
        self._store(calendar_object)
        self._store(tail_object)
        return WriteResult(
            success=True,
            calendar_object=calendar_object,
            error=None,
            created=(tail_object,),
        )


def memory_store(*objects: CalendarObject) -> MemoryStore:
    """Create a memory store holding the given calendar objects.

    Example:
        >>> from datetime import datetime, timezone
        >>> from calshift.component import CalendarObject, EventComponent
        >>> from calshift.store.memory import memory_store
        >>>
        >>> store = memory_store(
        ...     CalendarObject(
        ...         object_id="standup.ics",
        ...         calendar_id="work",
        ...         components=[
        ...             EventComponent(
        ...                 uid="standup",
        ...                 summary="Standup",
        ...                 start=datetime(2025, 1, 6, 9, tzinfo=timezone.utc),
        ...                 end=datetime(2025, 1, 6, 9, 15, tzinfo=timezone.utc),
        ...                 rrule="FREQ=DAILY",
        ...             )
        ...         ],
        ...     )
        ... )
    """
    return MemoryStore(objects)


__all__ = ["MemoryStore", "memory_store"]
