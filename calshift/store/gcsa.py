"""Google Calendar integration for calendar stores.

This module provides GoogleCalendarStore, a CalendarStore that reads from
and writes to Google Calendar via the gcsa library.

Google keeps a recurring series as one master event plus one event per
modified instance. Instance ids are derived from the master id and the
original start (``<master>_20250106T090000Z``, or ``<master>_20250106`` for
all-day series), so instances are addressed without listing the series.
"""

import asyncio
import copy
import re
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from gcsa.event import Event as GcsaEvent
from gcsa.google_calendar import GoogleCalendar
from typing_extensions import override

from calshift.component import CalendarObject, EventComponent
from calshift.recurrence import split_series
from calshift.store import (
    CalendarStore,
    Chooser,
    InstanceContext,
    WriteResult,
    _error_result,
    _handle_write_errors,
)
from calshift.util import UTC_TIMEZONE, to_instant

# Constants
_UTC_DATETIME_FORMAT = "%Y%m%dT%H%M%SZ"
_DATE_FORMAT = "%Y%m%d"
_EXDATE_PATTERN = re.compile(r"^EXDATE(?P<params>;[^:]*)?:(?P<values>.+)$")


def _event_zone(gcsa_event: Any) -> ZoneInfo:
    """Return the event's own timezone, or UTC if it has none or an unknown one."""
    name = getattr(gcsa_event, "timezone", None)
    if name:
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            pass
    return ZoneInfo(UTC_TIMEZONE)


def _extract_datetime(value: Any, zone: ZoneInfo) -> date | datetime:
    """Extract a date or aware datetime from a gcsa start/end value.

    Google Calendar events have start.dateTime (timed) or start.date (all-day);
    gcsa usually unwraps them into plain datetime/date values.
    """
    if not isinstance(value, (date, datetime)):
        if getattr(value, "dateTime", None) is not None:
            value = value.dateTime
        elif getattr(value, "date", None) is not None:
            value = value.date
    if isinstance(value, datetime) and value.tzinfo is None:
        value = value.replace(tzinfo=zone)
    return value


def _parse_exdate_values(
    params: str, values: str, zone: ZoneInfo
) -> list[date | datetime]:
    tz = zone
    tzid = re.search(r"TZID=([^;:]+)", params)
    if tzid:
        tz = ZoneInfo(tzid.group(1))

    exdates: list[date | datetime] = []
    for raw in values.split(","):
        raw = raw.strip()
        if "VALUE=DATE" in params and "VALUE=DATE-TIME" not in params:
            exdates.append(datetime.strptime(raw, _DATE_FORMAT).date())
        elif raw.endswith("Z"):
            exdates.append(
                datetime.strptime(raw, _UTC_DATETIME_FORMAT).replace(
                    tzinfo=timezone.utc
                )
            )
        else:
            exdates.append(
                datetime.strptime(raw, "%Y%m%dT%H%M%S").replace(tzinfo=tz)
            )
    return exdates


def _parse_recurrence(
    lines: list[str] | None, zone: ZoneInfo
) -> tuple[str | None, list[date | datetime]]:
    """Split gcsa recurrence lines into an RRULE value and EXDATEs."""
    rule: str | None = None
    exdates: list[date | datetime] = []
    for line in lines or []:
        line = line.strip()
        if line.startswith("RRULE:"):
            rule = line.removeprefix("RRULE:")
            continue
        match = _EXDATE_PATTERN.match(line)
        if match:
            exdates.extend(
                _parse_exdate_values(
                    match.group("params") or "", match.group("values"), zone
                )
            )
    return rule, exdates


def _format_recurrence(component: EventComponent) -> list[str] | None:
    """Render a master's rule and EXDATEs as gcsa recurrence lines."""
    if component.rrule is None:
        return None
    lines = [f"RRULE:{component.rrule.removeprefix('RRULE:')}"]
    if component.exdates:
        if component.is_all_day():
            values = ",".join(
                (e.date() if isinstance(e, datetime) else e).strftime(_DATE_FORMAT)
                for e in component.exdates
            )
            lines.append(f"EXDATE;VALUE=DATE:{values}")
        else:
            values = ",".join(
                to_instant(e).strftime(_UTC_DATETIME_FORMAT)
                for e in component.exdates
            )
            lines.append(f"EXDATE:{values}")
    return lines


def _instance_id(master_id: str, recurrence_id: date | datetime) -> str:
    """Google's id for the instance of ``master_id`` originally at ``recurrence_id``."""
    if isinstance(recurrence_id, datetime):
        return f"{master_id}_{to_instant(recurrence_id).strftime(_UTC_DATETIME_FORMAT)}"
    return f"{master_id}_{recurrence_id.strftime(_DATE_FORMAT)}"


def _original_start(gcsa_event: Any, zone: ZoneInfo) -> date | datetime:
    """Original start of a modified instance, from the API's originalStartTime."""
    other = getattr(gcsa_event, "other", None) or {}
    original = other.get("originalStartTime") if isinstance(other, dict) else None
    if isinstance(original, dict):
        if original.get("dateTime"):
            return _extract_datetime(
                datetime.fromisoformat(original["dateTime"]), zone
            )
        if original.get("date"):
            return date.fromisoformat(original["date"])
    return _extract_datetime(gcsa_event.start, zone)


def _component_end(component: EventComponent) -> date | datetime:
    if component.end is not None:
        return component.end
    if component.duration is not None:
        return component.start + component.duration
    if component.is_all_day():
        return component.start + timedelta(days=1)
    return component.start


def _component_timezone(component: EventComponent) -> str | None:
    if component.is_all_day():
        return None
    assert isinstance(component.start, datetime)
    tzinfo = component.start.tzinfo
    return tzinfo.key if isinstance(tzinfo, ZoneInfo) else UTC_TIMEZONE


def _as_gcsa_value(value: date | datetime, zone_name: str | None) -> date | datetime:
    # gcsa pairs a dateTime with the event timezone; non-zoneinfo offsets go to UTC
    if isinstance(value, datetime) and zone_name == UTC_TIMEZONE:
        return value.astimezone(timezone.utc)
    return value


def _apply_component(gcsa_event: Any, component: EventComponent) -> Any:
    """Copy the temporal fields of ``component`` onto a gcsa event."""
    zone_name = _component_timezone(component)
    gcsa_event.start = _as_gcsa_value(component.start, zone_name)
    gcsa_event.end = _as_gcsa_value(_component_end(component), zone_name)
    if zone_name is not None:
        gcsa_event.timezone = zone_name
    if component.recurrence_id is None:
        gcsa_event.recurrence = _format_recurrence(component)
    return gcsa_event


class GoogleCalendarStore(CalendarStore):
    """Calendar store backed by the Google Calendar API using local credentials.

    Each calendar object is one Google event: a master (single or recurring)
    or a modified instance of a series.
    """

    def __init__(
        self,
        calendar_id: str = "primary",
        *,
        client: GoogleCalendar | None = None,
        chooser: Chooser | None = None,
    ) -> None:
        """Initialize a Google Calendar store.

        Args:
            calendar_id: Calendar ID string
            client: Optional GoogleCalendar client instance (for testing/reuse)
            chooser: Coroutine function presenting the recurrence dialog
        """
        super().__init__(chooser=chooser)
        self.calendar_id: str = calendar_id
        self.client: GoogleCalendar = (
            client if client is not None else GoogleCalendar(self.calendar_id)
        )

    @override
    def __str__(self) -> str:
        return f"GoogleCalendarStore(id='{self.calendar_id}')"

    def _to_calendar_object(self, gcsa_event: Any) -> CalendarObject:
        zone = _event_zone(gcsa_event)
        rule, exdates = _parse_recurrence(
            getattr(gcsa_event, "recurrence", None), zone
        )
        master_id = getattr(gcsa_event, "recurring_event_id", None)

        component = EventComponent(
            uid=master_id or gcsa_event.id,
            summary=gcsa_event.summary or "",
            start=_extract_datetime(gcsa_event.start, zone),
            end=_extract_datetime(gcsa_event.end, zone),
            rrule=rule,
            exdates=exdates,
            recurrence_id=_original_start(gcsa_event, zone) if master_id else None,
        )
        return CalendarObject(
            object_id=gcsa_event.id,
            calendar_id=self.calendar_id,
            components=[component],
        )

    async def _get_event(self, event_id: str) -> Any:
        return await asyncio.to_thread(
            self.client.get_event, event_id, calendar_id=self.calendar_id
        )

    async def _update_event(self, gcsa_event: Any) -> Any:
        return await asyncio.to_thread(
            self.client.update_event, gcsa_event, calendar_id=self.calendar_id
        )

    async def _write_component(
        self, event_id: str, component: EventComponent
    ) -> None:
        gcsa_event = await self._get_event(event_id)
        await self._update_event(_apply_component(gcsa_event, component))

    def _check_calendar(self, calendar_id: str) -> WriteResult | None:
        if calendar_id != self.calendar_id:
            return _error_result(
                ValueError(
                    f"Cannot save into calendar {calendar_id!r} "
                    f"from store for {self.calendar_id!r}"
                )
            )
        return None

    @override
    async def _load_calendar_object(self, object_id: str) -> CalendarObject:
        return self._to_calendar_object(await self._get_event(object_id))

    @override
    @_handle_write_errors
    async def _write_calendar_object(
        self, calendar_object: CalendarObject
    ) -> WriteResult:
        """Update the object's event, and the instance events of its exceptions.

        Events already updated are put back if a later update fails, so a
        failed write leaves Google as it was.
        """
        master = calendar_object.master
        previous_events: list[Any] = []
        try:
            for component in calendar_object.components:
                if component is master or master is None:
                    event_id = calendar_object.object_id
                else:
                    assert component.recurrence_id is not None  # not the master
                    event_id = _instance_id(
                        calendar_object.object_id, component.recurrence_id
                    )
                gcsa_event = await self._get_event(event_id)
                previous = copy.deepcopy(gcsa_event)
                await self._update_event(_apply_component(gcsa_event, component))
                previous_events.append(previous)
        except Exception:
            for previous in reversed(previous_events):
                await self._update_event(previous)
            raise
        return WriteResult(success=True, calendar_object=calendar_object, error=None)

    @override
    @_handle_write_errors
    async def _save_occurrence(
        self, context: InstanceContext, calendar_id: str
    ) -> WriteResult:
        """Update the single instance event the staged occurrence stands for."""
        error_result = self._check_calendar(calendar_id)
        if error_result:
            return error_result

        component = context.component
        assert component.recurrence_id is not None  # staged occurrences have one
        await self._write_component(
            _instance_id(context.object_id, component.recurrence_id), component
        )
        if component.can_create_recurrence_exceptions():
            component.create_recurrence_exception()
        return WriteResult(
            success=True, calendar_object=context.calendar_object, error=None
        )

    @override
    @_handle_write_errors
    async def _save_future(
        self, context: InstanceContext, calendar_id: str
    ) -> WriteResult:
        """Start a new series at the occurrence, then end the master before it.

        The new series is deleted again if the master cannot be truncated, so
        Google never ends up with the future occurrences missing.
        """
        error_result = self._check_calendar(calendar_id)
        if error_result:
            return error_result

        calendar_object = context.calendar_object
        master = context.component.master
        assert master is not None  # only occurrences of a series are staged

        split = split_series(
            context.component, uid=uuid.uuid4().hex, zone=context.zone
        )

        if split.head_rule is None:
            master.start = split.tail.start
            master.end = split.tail.end
            master.duration = split.tail.duration
            master.rrule = split.tail.rrule
            master.exdates = split.tail.exdates
            calendar_object.components = [master]
            await self._write_component(calendar_object.object_id, master)
            return WriteResult(
                success=True, calendar_object=calendar_object, error=None
            )

        tail = split.tail
        zone_name = _component_timezone(tail)
        created = await asyncio.to_thread(
            self.client.add_event,
            GcsaEvent(
                summary=tail.summary,
                start=_as_gcsa_value(tail.start, zone_name),
                end=_as_gcsa_value(_component_end(tail), zone_name),
                timezone=zone_name or UTC_TIMEZONE,
                recurrence=_format_recurrence(tail),
            ),
            calendar_id=self.calendar_id,
        )
        if not created.id:
            return _error_result(
                ValueError("Google Calendar did not return an event ID")
            )

        master.rrule = split.head_rule
        master.exdates = split.head_exdates
        try:
            await self._write_component(calendar_object.object_id, master)
        except Exception as error:
            await asyncio.to_thread(
                self.client.delete_event, created, calendar_id=self.calendar_id
            )
            return _error_result(error)

        tail.uid = created.id
        tail_object = CalendarObject(
            object_id=created.id, calendar_id=self.calendar_id, components=[tail]
        )
        return WriteResult(
            success=True,
            calendar_object=calendar_object,
            error=None,
            created=(tail_object,),
        )


__all__ = ["GoogleCalendarStore"]
