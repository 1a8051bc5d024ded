"""Tests for MemoryStore."""

from datetime import date, datetime, timedelta, timezone

import pytest

from calshift.component import CalendarObject, EventComponent
from calshift.errors import CalendarObjectNotFound, InstanceContextError
from calshift.recurrence import get_object_at_recurrence_id
from calshift.store import DropDecision
from calshift.store.memory import MemoryStore, memory_store

UTC = timezone.utc


def _standup(rrule="FREQ=WEEKLY;COUNT=4", exceptions=()):
    return CalendarObject(
        object_id="standup.ics",
        calendar_id="work",
        components=[
            EventComponent(
                uid="standup",
                summary="Standup",
                start=datetime(2025, 1, 6, 9, tzinfo=UTC),
                end=datetime(2025, 1, 6, 10, tzinfo=UTC),
                rrule=rrule,
            ),
            *exceptions,
        ],
    )


def _exception(day: int) -> EventComponent:
    return EventComponent(
        uid="standup",
        summary="Standup (moved)",
        start=datetime(2025, 1, day, 14, tzinfo=UTC),
        end=datetime(2025, 1, day, 15, tzinfo=UTC),
        recurrence_id=datetime(2025, 1, day, 9, tzinfo=UTC),
    )


async def _stage(store, object_id, instant, shift=timedelta(hours=1)):
    """Fetch, locate and shift an occurrence, then stage it."""
    obj = await store.fetch_calendar_object(object_id)
    occurrence = get_object_at_recurrence_id(obj, instant)
    occurrence.start += shift
    occurrence.end += shift
    store.stage_instance_context(
        obj, occurrence, object_id=object_id, recurrence_id=int(instant.timestamp())
    )
    return obj, occurrence


async def test_fetch_returns_independent_copy():
    store = memory_store(_standup())

    fetched = await store.fetch_calendar_object("standup.ics")
    fetched.master.summary = "Changed"

    assert store.persisted("standup.ics").master.summary == "Standup"
    assert fetched.master.calendar_object is fetched


async def test_fetch_unknown_object_raises():
    store = MemoryStore()

    with pytest.raises(CalendarObjectNotFound) as excinfo:
        await store.fetch_calendar_object("nope.ics")

    assert excinfo.value.object_id == "nope.ics"


async def test_update_persists_whole_object():
    store = memory_store(_standup())
    obj = await store.fetch_calendar_object("standup.ics")
    obj.master.summary = "Daily sync"

    result = await store.update_calendar_object(obj)

    assert result.success
    assert result.calendar_object is obj
    assert store.writes == 1
    assert store.persisted("standup.ics").master.summary == "Daily sync"


async def test_update_unknown_object_is_failed_result():
    store = MemoryStore()

    result = await store.update_calendar_object(_standup())

    assert not result.success
    assert isinstance(result.error, CalendarObjectNotFound)
    assert store.writes == 0


async def test_reset_discards_in_memory_changes():
    store = memory_store(_standup())
    obj = await store.fetch_calendar_object("standup.ics")
    obj.master.start += timedelta(hours=3)

    reset = store.reset_calendar_object_to_source_of_truth(obj)

    assert reset is not obj
    assert reset == store.persisted("standup.ics")
    assert store.reset_calendar_object_to_source_of_truth(reset) == reset


async def test_reset_follows_successful_writes():
    store = memory_store(_standup())
    obj = await store.fetch_calendar_object("standup.ics")
    obj.master.summary = "Daily sync"
    await store.update_calendar_object(obj)
    obj.master.summary = "Scratch"

    reset = store.reset_calendar_object_to_source_of_truth(obj)

    assert reset.master.summary == "Daily sync"


def test_reset_of_never_fetched_object_raises():
    store = memory_store(_standup())

    with pytest.raises(CalendarObjectNotFound):
        store.reset_calendar_object_to_source_of_truth(_standup())


async def test_save_without_staged_instance_fails():
    store = memory_store(_standup())

    result = await store.save_calendar_object_instance(False, "work")

    assert not result.success
    assert isinstance(result.error, InstanceContextError)


async def test_save_occurrence_stores_exception():
    store = memory_store(_standup())
    instant = datetime(2025, 1, 13, 9, tzinfo=UTC)
    await _stage(store, "standup.ics", instant)

    result = await store.save_calendar_object_instance(False, "work")

    assert result.success
    persisted = store.persisted("standup.ics")
    [exception] = persisted.exceptions
    assert exception.recurrence_id == instant
    assert exception.start == datetime(2025, 1, 13, 10, tzinfo=UTC)
    assert exception.master is persisted.master
    assert persisted.master.rrule == "FREQ=WEEKLY;COUNT=4"


async def test_save_future_splits_series():
    store = memory_store(_standup(exceptions=[_exception(13), _exception(27)]))
    await _stage(
        store,
        "standup.ics",
        datetime(2025, 1, 20, 9, tzinfo=UTC),
        shift=timedelta(days=1),
    )

    result = await store.save_calendar_object_instance(True, "work")

    assert result.success
    [tail_object] = result.created
    assert store.object_ids() == sorted(["standup.ics", tail_object.object_id])

    head = store.persisted("standup.ics")
    assert head.master.rrule == "FREQ=WEEKLY;UNTIL=20250120T085959Z"
    # Exceptions from the split point on belong to the old future
    assert [e.recurrence_id for e in head.exceptions] == [
        datetime(2025, 1, 13, 9, tzinfo=UTC)
    ]

    tail = store.persisted(tail_object.object_id).master
    assert tail.rrule == "FREQ=WEEKLY;COUNT=2"
    assert tail.start == datetime(2025, 1, 21, 9, tzinfo=UTC)
    assert tail.uid != "standup"


async def test_save_future_at_first_occurrence_moves_series():
    store = memory_store(_standup())
    await _stage(store, "standup.ics", datetime(2025, 1, 6, 9, tzinfo=UTC))

    result = await store.save_calendar_object_instance(True, "work")

    assert result.success
    assert result.created == ()
    assert store.object_ids() == ["standup.ics"]
    master = store.persisted("standup.ics").master
    assert master.start == datetime(2025, 1, 6, 10, tzinfo=UTC)
    assert master.rrule == "FREQ=WEEKLY;COUNT=4"


async def test_save_future_all_day_series():
    store = memory_store(
        CalendarObject(
            object_id="gym.ics",
            calendar_id="personal",
            components=[
                EventComponent(
                    uid="gym",
                    start=date(2025, 1, 6),
                    end=date(2025, 1, 7),
                    rrule="FREQ=DAILY;COUNT=10",
                )
            ],
        )
    )
    await _stage(
        store, "gym.ics", datetime(2025, 1, 10, tzinfo=UTC), shift=timedelta(days=1)
    )

    result = await store.save_calendar_object_instance(True, "personal")

    assert result.success
    assert store.persisted("gym.ics").master.rrule == "FREQ=DAILY;UNTIL=20250109"
    tail = store.persisted(result.created[0].object_id).master
    assert tail.start == date(2025, 1, 11)
    assert tail.rrule == "FREQ=DAILY;COUNT=6"


async def test_choice_without_chooser_is_closed_by_user():
    store = memory_store(_standup())
    await _stage(store, "standup.ics", datetime(2025, 1, 13, 9, tzinfo=UTC))

    decision = await store.present_drop_recurrence_choice()

    assert decision.cancelled
    assert decision == DropDecision.closed_by_user()


async def test_chooser_sees_staged_instance():
    seen = []

    async def chooser(instance):
        seen.append(instance)
        return DropDecision.this_and_future()

    store = MemoryStore([_standup()], chooser=chooser)
    await _stage(store, "standup.ics", datetime(2025, 1, 13, 9, tzinfo=UTC))

    decision = await store.present_drop_recurrence_choice()

    assert decision.this_and_all_future
    [instance] = seen
    assert instance.summary == "Standup"
    assert instance.start == datetime(2025, 1, 13, 10, tzinfo=UTC)
    assert instance.recurring
    assert not instance.can_modify_all_day


async def test_chooser_is_not_asked_without_staged_instance():
    async def chooser(instance):
        raise AssertionError("should not be asked")

    store = MemoryStore([_standup()], chooser=chooser)

    assert (await store.present_drop_recurrence_choice()).cancelled


async def test_clear_instance_context():
    store = memory_store(_standup())
    await _stage(store, "standup.ics", datetime(2025, 1, 13, 9, tzinfo=UTC))
    assert store.instance_context is not None

    store.clear_instance_context()

    assert store.instance_context is None
