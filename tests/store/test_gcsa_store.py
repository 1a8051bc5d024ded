from __future__ import annotations

import copy
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from calshift.component import EventComponent
from calshift.drop import AbortReason, DropBranch, DropGesture, DropResolutionWorkflow
from calshift.errors import CalendarObjectNotFound
from calshift.settings import DropSettings
from calshift.store import DropDecision
from calshift.gcsa import GoogleCalendarStore

UTC = timezone.utc
SETTINGS = DropSettings(_env_file=None, time_zone="UTC")
ONE_HOUR = {"days": 0, "milliseconds": 3_600_000}


class _StubStart:
    """Stub for gcsa Event.start object with date/dateTime attributes.

    Google Calendar API:
    - All-day events: start.date is set, start.dateTime is None
    - Timed events: start.dateTime is set, start.date is None
    """

    def __init__(self, dt: datetime | date):
        if isinstance(dt, datetime):
            self.date = None
            self.dateTime = dt
        else:
            self.date = dt
            self.dateTime = None


class _StubEvent:
    """Stub for gcsa Event object."""

    def __init__(
        self,
        *,
        id: str,
        summary: str,
        start: datetime | date,
        end: datetime | date,
        timezone: str | None = "UTC",
        recurrence: list[str] | None = None,
        recurring_event_id: str | None = None,
        other: dict | None = None,
    ) -> None:
        self.id = id
        self.summary = summary
        self.start = _StubStart(start)
        self.end = end
        self.timezone = timezone
        self.recurrence = recurrence
        self.recurring_event_id = recurring_event_id
        self.other = other if other is not None else {}


class _StubGoogleCalendar:
    def __init__(
        self,
        events: list[_StubEvent],
        *,
        fail_add: bool = False,
        fail_update_ids: tuple[str, ...] = (),
    ):
        self._events = {event.id: event for event in events}
        self.fail_add = fail_add
        self.fail_update_ids = fail_update_ids
        self.deleted: list[str] = []
        self.calls: list[tuple[str, str, str | None]] = []
        self.updated: list[_StubEvent] = []
        self.added: list[_StubEvent] = []

    def get_event(self, event_id: str, calendar_id: str | None = None):
        self.calls.append(("get_event", event_id, calendar_id))
        if event_id not in self._events:
            raise CalendarObjectNotFound(event_id)
        # The API hands out a fresh object on every request
        return copy.deepcopy(self._events[event_id])

    def update_event(self, event, calendar_id: str | None = None):
        self.calls.append(("update_event", event.id, calendar_id))
        if event.id in self.fail_update_ids:
            raise ConnectionError(f"update of {event.id} failed")
        self.updated.append(event)
        self._events[event.id] = event
        return event

    def add_event(self, event, calendar_id: str | None = None):
        if self.fail_add:
            raise ConnectionError("insert failed")
        created = _StubEvent(
            id=f"added-{len(self.added) + 1}",
            summary=event.summary,
            start=event.start,
            end=event.end,
            timezone=event.timezone,
            recurrence=event.recurrence,
        )
        self.calls.append(("add_event", created.id, calendar_id))
        self.added.append(created)
        self._events[created.id] = created
        return created

    def delete_event(self, event, calendar_id: str | None = None):
        event_id = event if isinstance(event, str) else event.id
        self.calls.append(("delete_event", event_id, calendar_id))
        self.deleted.append(event_id)
        del self._events[event_id]


def _standup_events() -> list[_StubEvent]:
    return [
        _StubEvent(
            id="standup",
            summary="Standup",
            start=datetime(2025, 1, 6, 9, tzinfo=UTC),
            end=datetime(2025, 1, 6, 10, tzinfo=UTC),
            recurrence=["RRULE:FREQ=WEEKLY", "EXDATE:20250127T090000Z"],
        ),
        _StubEvent(
            id="standup_20250120T090000Z",
            summary="Standup",
            start=datetime(2025, 1, 20, 9, tzinfo=UTC),
            end=datetime(2025, 1, 20, 10, tzinfo=UTC),
            recurring_event_id="standup",
            other={"originalStartTime": {"dateTime": "2025-01-20T09:00:00+00:00"}},
        ),
    ]


def _chooser(decision: DropDecision):
    async def choose(instance):
        return decision

    return choose


class _Revert:
    def __init__(self) -> None:
        self.calls = 0

    def __call__(self) -> None:
        self.calls += 1


async def test_fetch_recurring_master():
    """Test recurrence lines become an RRULE value and EXDATEs."""
    client = _StubGoogleCalendar(_standup_events())
    store = GoogleCalendarStore("work", client=client)

    obj = await store.fetch_calendar_object("standup")

    assert obj.object_id == "standup"
    assert obj.calendar_id == "work"
    master = obj.master
    assert master.uid == "standup"
    assert master.start == datetime(2025, 1, 6, 9, tzinfo=UTC)
    assert master.rrule == "FREQ=WEEKLY"
    assert master.exdates == [datetime(2025, 1, 27, 9, tzinfo=UTC)]
    assert client.calls == [("get_event", "standup", "work")]


async def test_fetch_all_day_master_with_date_exdates():
    client = _StubGoogleCalendar(
        [
            _StubEvent(
                id="gym",
                summary="Gym",
                start=date(2025, 1, 6),
                end=date(2025, 1, 7),
                timezone=None,
                recurrence=["RRULE:FREQ=DAILY", "EXDATE;VALUE=DATE:20250108,20250110"],
            )
        ]
    )
    store = GoogleCalendarStore(client=client)

    master = (await store.fetch_calendar_object("gym")).master

    assert master.is_all_day()
    assert master.start == date(2025, 1, 6)
    assert master.exdates == [date(2025, 1, 8), date(2025, 1, 10)]


async def test_fetch_modified_instance():
    """Test a modified instance keeps its original start as recurrence id."""
    client = _StubGoogleCalendar(_standup_events())
    store = GoogleCalendarStore("work", client=client)

    obj = await store.fetch_calendar_object("standup_20250120T090000Z")

    [component] = obj.components
    assert component.uid == "standup"
    assert component.recurrence_id == datetime(2025, 1, 20, 9, tzinfo=UTC)
    assert obj.master is None


async def test_fetch_floating_times_use_event_timezone():
    berlin = ZoneInfo("Europe/Berlin")
    client = _StubGoogleCalendar(
        [
            _StubEvent(
                id="lunch",
                summary="Lunch",
                start=datetime(2025, 1, 6, 12),
                end=datetime(2025, 1, 6, 13),
                timezone="Europe/Berlin",
            )
        ]
    )
    store = GoogleCalendarStore(client=client)

    master = (await store.fetch_calendar_object("lunch")).master

    assert master.start == datetime(2025, 1, 6, 12, tzinfo=berlin)
    assert master.start.tzinfo == berlin


async def test_drop_single_event_updates_google_event():
    client = _StubGoogleCalendar(
        [
            _StubEvent(
                id="dentist",
                summary="Dentist",
                start=datetime(2025, 1, 6, 9, tzinfo=UTC),
                end=datetime(2025, 1, 6, 10, tzinfo=UTC),
            )
        ]
    )
    store = GoogleCalendarStore("personal", client=client)
    revert = _Revert()

    result = await DropResolutionWorkflow(store, SETTINGS).drop(
        DropGesture(
            object_id="dentist",
            recurrence_id=int(datetime(2025, 1, 6, 9, tzinfo=UTC).timestamp()),
            delta=ONE_HOUR,
            all_day=False,
            revert=revert,
        )
    )

    assert result.persisted
    assert result.branch is DropBranch.DIRECT
    assert revert.calls == 0
    [updated] = client.updated
    assert updated.id == "dentist"
    assert updated.start == datetime(2025, 1, 6, 10, tzinfo=UTC)
    assert updated.end == datetime(2025, 1, 6, 11, tzinfo=UTC)
    assert updated.timezone == "UTC"
    assert updated.recurrence is None


async def test_drop_this_occurrence_updates_instance_event():
    client = _StubGoogleCalendar(_standup_events())
    store = GoogleCalendarStore(
        "work", client=client, chooser=_chooser(DropDecision.this_occurrence())
    )

    result = await DropResolutionWorkflow(store, SETTINGS).drop(
        DropGesture(
            object_id="standup",
            recurrence_id=int(datetime(2025, 1, 20, 9, tzinfo=UTC).timestamp()),
            delta=ONE_HOUR,
            all_day=False,
            revert=_Revert(),
        )
    )

    assert result.persisted
    assert result.branch is DropBranch.INTERACTIVE
    [updated] = client.updated
    assert updated.id == "standup_20250120T090000Z"
    assert updated.start == datetime(2025, 1, 20, 10, tzinfo=UTC)
    assert len(result.calendar_object.exceptions) == 1


async def test_drop_this_and_future_splits_google_series():
    client = _StubGoogleCalendar(_standup_events())
    store = GoogleCalendarStore(
        "work", client=client, chooser=_chooser(DropDecision.this_and_future())
    )

    result = await DropResolutionWorkflow(store, SETTINGS).drop(
        DropGesture(
            object_id="standup",
            recurrence_id=int(datetime(2025, 1, 20, 9, tzinfo=UTC).timestamp()),
            delta=ONE_HOUR,
            all_day=False,
            revert=_Revert(),
        )
    )

    assert result.persisted
    [master] = client.updated
    assert master.id == "standup"
    assert master.recurrence == ["RRULE:FREQ=WEEKLY;UNTIL=20250120T085959Z"]

    [added] = client.added
    assert added.summary == "Standup"
    assert added.start.dateTime.astimezone(UTC) == datetime(2025, 1, 20, 10, tzinfo=UTC)
    # The excluded occurrence moves with the new series
    assert added.recurrence == ["RRULE:FREQ=WEEKLY", "EXDATE:20250127T100000Z"]
    assert ("add_event", "added-1", "work") in client.calls


async def test_failed_insert_leaves_series_untouched():
    """The master is only truncated once the new series exists."""
    client = _StubGoogleCalendar(_standup_events(), fail_add=True)
    store = GoogleCalendarStore(
        "work", client=client, chooser=_chooser(DropDecision.this_and_future())
    )
    revert = _Revert()

    result = await DropResolutionWorkflow(store, SETTINGS).drop(
        DropGesture(
            object_id="standup",
            recurrence_id=int(datetime(2025, 1, 20, 9, tzinfo=UTC).timestamp()),
            delta=ONE_HOUR,
            all_day=False,
            revert=revert,
        )
    )

    assert result.reason is AbortReason.PERSIST_FAILED
    assert revert.calls == 1
    assert result.calendar_object.master.rrule == "FREQ=WEEKLY"
    assert client.updated == []
    assert client.get_event("standup").recurrence == [
        "RRULE:FREQ=WEEKLY",
        "EXDATE:20250127T090000Z",
    ]


async def test_failed_truncation_deletes_new_series():
    client = _StubGoogleCalendar(_standup_events(), fail_update_ids=("standup",))
    store = GoogleCalendarStore(
        "work", client=client, chooser=_chooser(DropDecision.this_and_future())
    )
    revert = _Revert()

    result = await DropResolutionWorkflow(store, SETTINGS).drop(
        DropGesture(
            object_id="standup",
            recurrence_id=int(datetime(2025, 1, 20, 9, tzinfo=UTC).timestamp()),
            delta=ONE_HOUR,
            all_day=False,
            revert=revert,
        )
    )

    assert result.reason is AbortReason.PERSIST_FAILED
    assert revert.calls == 1
    assert client.deleted == ["added-1"]
    assert ("delete_event", "added-1", "work") in client.calls
    assert client.get_event("standup").recurrence == [
        "RRULE:FREQ=WEEKLY",
        "EXDATE:20250127T090000Z",
    ]


async def test_failed_update_restores_events_already_written():
    """Test a multi-event write puts back the events it changed before failing."""
    client = _StubGoogleCalendar(
        _standup_events(), fail_update_ids=("standup_20250120T090000Z",)
    )
    store = GoogleCalendarStore("work", client=client)
    obj = await store.fetch_calendar_object("standup")
    obj.master.start = datetime(2025, 1, 6, 11, tzinfo=UTC)
    obj.master.end = datetime(2025, 1, 6, 12, tzinfo=UTC)
    obj.add_exception(
        EventComponent(
            uid="standup",
            summary="Standup",
            start=datetime(2025, 1, 20, 10, tzinfo=UTC),
            end=datetime(2025, 1, 20, 11, tzinfo=UTC),
            recurrence_id=datetime(2025, 1, 20, 9, tzinfo=UTC),
        )
    )

    result = await store.update_calendar_object(obj)

    assert not result.success
    assert isinstance(result.error, ConnectionError)
    assert [event.id for event in client.updated] == ["standup", "standup"]
    master = client.get_event("standup")
    assert master.start.dateTime == datetime(2025, 1, 6, 9, tzinfo=UTC)
    assert master.end == datetime(2025, 1, 6, 10, tzinfo=UTC)

async def test_save_into_other_calendar_fails():
    client = _StubGoogleCalendar(_standup_events())
    store = GoogleCalendarStore("work", client=client)
    obj = await store.fetch_calendar_object("standup")
    store.stage_instance_context(obj, obj.master, object_id="standup", recurrence_id=0)

    result = await store.save_calendar_object_instance(False, "personal")

    assert not result.success
    assert isinstance(result.error, ValueError)
    assert client.updated == []


async def test_drop_on_missing_event_is_fetch_failure():
    client = _StubGoogleCalendar([])
    store = GoogleCalendarStore("work", client=client)
    revert = _Revert()

    result = await DropResolutionWorkflow(store, SETTINGS).drop(
        DropGesture(
            object_id="gone",
            recurrence_id=0,
            delta=ONE_HOUR,
            all_day=False,
            revert=revert,
        )
    )

    assert result.reason is AbortReason.FETCH_FAILED
    assert revert.calls == 1


def test_store_str():
    store = GoogleCalendarStore("team@example.com", client=_StubGoogleCalendar([]))

    assert str(store) == "GoogleCalendarStore(id='team@example.com')"
