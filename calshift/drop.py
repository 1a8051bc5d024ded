"""Resolve an event drop into a persisted change or a full revert.

A drop arrives as a gesture: the calendar object and occurrence that were
dragged, the positional delta, the all-day state of the target slot, and a
callback that snaps the dragged element back. The workflow shifts the
occurrence, decides whether the user has to choose between changing one
occurrence or the whole future series, and persists through the store.

Every path ends in one of two states: the change is persisted and the
gesture stays where it was dropped, or the calendar object is back at its
persisted state and the gesture has been reverted exactly once.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog

from calshift.component import CalendarObject, EventComponent
from calshift.duration import resolve_durations
from calshift.errors import TimezoneConfigurationError
from calshift.recurrence import get_object_at_recurrence_id, recurrence_id_to_datetime
from calshift.settings import DropSettings, get_settings
from calshift.shift import shift_by_duration
from calshift.store import CalendarStore, DropDecision
from calshift.timezones import TimezoneProvider, TimezoneResolution, resolve_timezone

logger = structlog.get_logger(__name__)


class DropBranch(Enum):
    """How a shifted occurrence gets persisted."""

    INTERACTIVE = "interactive"
    DIRECT = "direct"
    DIRECT_WITH_EXCEPTION = "direct_with_exception"


def decide_branch(
    is_part_of_recurrence_set: bool, can_create_exception: bool
) -> DropBranch:
    """Pick the persistence path for an occurrence.

    Only an occurrence of a series that can still become an exception needs
    the user to pick a scope. Everything else is saved directly, creating
    the exception first when the occurrence allows it.
    """
    if is_part_of_recurrence_set and can_create_exception:
        return DropBranch.INTERACTIVE
    if can_create_exception:
        return DropBranch.DIRECT_WITH_EXCEPTION
    return DropBranch.DIRECT


class AbortReason(Enum):
    INVALID_DURATION = "invalid_duration"
    FETCH_FAILED = "fetch_failed"
    OCCURRENCE_NOT_FOUND = "occurrence_not_found"
    SHIFT_FAILED = "shift_failed"
    PERSIST_FAILED = "persist_failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class DropGesture:
    """A drag-and-drop of one event occurrence.

    Attributes:
        object_id: Calendar object the dragged event belongs to
        recurrence_id: Occurrence that was dragged, as Unix seconds
        delta: Positional delta (anything ``parse_duration`` accepts)
        all_day: All-day state of the slot the event was dropped on
        revert: Snaps the dragged element back to where it came from
        event_ref: The UI's own handle on the dragged event, passed through
    """

    object_id: str
    recurrence_id: int | float | str
    delta: Any
    all_day: bool
    revert: Callable[[], None]
    event_ref: Any = None


@dataclass(frozen=True)
class DropResult:
    """Outcome of one drop.

    Attributes:
        persisted: True if the change was saved and the gesture kept
        reason: Why the drop was reverted; None when persisted
        branch: Persistence path taken, once it was decided
        decision: The user's scope choice on the interactive path
        calendar_object: The saved object, or the reset one after a revert
        error: The exception behind a failed fetch, shift or write
    """

    persisted: bool
    reason: AbortReason | None = None
    branch: DropBranch | None = None
    decision: DropDecision | None = None
    calendar_object: CalendarObject | None = None
    error: Exception | None = None


class _RevertOnce:
    """Calls the gesture's revert callback at most once."""

    def __init__(self, revert: Callable[[], None]) -> None:
        self._revert: Callable[[], None] = revert
        self.called: bool = False

    def __call__(self) -> None:
        if self.called:
            return
        self.called = True
        self._revert()


class DropResolutionWorkflow:
    """Turns drop gestures into persisted changes, or reverts them.

    Attributes:
        store: Where calendar objects are loaded from and saved to
        settings: Default durations and timezone of the calendar view
        timezone_provider: Timezone lookup; zoneinfo when None
    """

    def __init__(
        self,
        store: CalendarStore,
        settings: DropSettings | None = None,
        *,
        timezone_provider: TimezoneProvider | None = None,
    ) -> None:
        self.store: CalendarStore = store
        self.settings: DropSettings = (
            settings if settings is not None else get_settings()
        )
        self.timezone_provider: TimezoneProvider | None = timezone_provider

    async def drop(self, gesture: DropGesture) -> DropResult:
        """Resolve one drop gesture.

        Never raises for expected failures; they come back as a DropResult
        with ``persisted=False`` after the gesture has been reverted.
        """
        revert = _RevertOnce(gesture.revert)
        log = logger.bind(
            object_id=gesture.object_id, recurrence_id=gesture.recurrence_id
        )

        try:
            timezone = resolve_timezone(
                self.settings.time_zone, self.timezone_provider
            )
        except TimezoneConfigurationError:
            revert()
            raise
        durations = resolve_durations(
            gesture.delta,
            self.settings.default_all_day_event_duration,
            self.settings.default_timed_event_duration,
        )
        if durations is None:
            log.debug("drop.invalid_duration", delta=repr(gesture.delta))
            return self._abort(revert, AbortReason.INVALID_DURATION)

        try:
            calendar_object = await self.store.fetch_calendar_object(
                gesture.object_id
            )
        except Exception as error:
            log.debug("drop.fetch_failed", error=str(error))
            return self._abort(revert, AbortReason.FETCH_FAILED, error=error)

        component = self._locate(calendar_object, gesture, timezone)
        if component is None:
            log.debug("drop.occurrence_not_found")
            return self._abort(
                revert,
                AbortReason.OCCURRENCE_NOT_FOUND,
                calendar_object=calendar_object,
            )

        try:
            shift_by_duration(
                component,
                durations.delta,
                gesture.all_day,
                timezone.zone,
                durations.default_all_day,
                durations.default_timed,
            )
        except (ValueError, TypeError) as error:
            calendar_object = self.store.reset_calendar_object_to_source_of_truth(
                calendar_object
            )
            log.debug("drop.shift_failed", error=str(error))
            return self._abort(
                revert,
                AbortReason.SHIFT_FAILED,
                calendar_object=calendar_object,
                error=error,
            )

        branch = decide_branch(
            component.is_part_of_recurrence_set(),
            component.can_create_recurrence_exceptions(),
        )
        if branch is DropBranch.INTERACTIVE:
            return await self._drop_interactive(
                revert, gesture, calendar_object, component, timezone
            )
        return await self._drop_direct(revert, calendar_object, component, branch)

    def _locate(
        self,
        calendar_object: CalendarObject,
        gesture: DropGesture,
        timezone: TimezoneResolution,
    ) -> EventComponent | None:
        try:
            instant = recurrence_id_to_datetime(gesture.recurrence_id)
            return get_object_at_recurrence_id(
                calendar_object, instant, timezone.zone
            )
        except (ValueError, TypeError, OverflowError, OSError) as error:
            # Unreadable recurrence ids and rules count as stale ids
            logger.debug("drop.recurrence_id_unreadable", error=str(error))
            return None

    async def _drop_direct(
        self,
        revert: _RevertOnce,
        calendar_object: CalendarObject,
        component: EventComponent,
        branch: DropBranch,
    ) -> DropResult:
        """Persist the whole object; no user interaction needed."""
        try:
            if branch is DropBranch.DIRECT_WITH_EXCEPTION:
                component.create_recurrence_exception()
            result = await self.store.update_calendar_object(calendar_object)
            error = result.error
            success = result.success
        except Exception as e:
            error, success = e, False

        if success:
            return DropResult(
                persisted=True, branch=branch, calendar_object=calendar_object
            )

        calendar_object = self.store.reset_calendar_object_to_source_of_truth(
            calendar_object
        )
        logger.error(
            "drop.persist_failed",
            object_id=calendar_object.object_id,
            branch=branch.value,
            error=str(error),
        )
        return self._abort(
            revert,
            AbortReason.PERSIST_FAILED,
            branch=branch,
            calendar_object=calendar_object,
            error=error,
        )

    async def _drop_interactive(
        self,
        revert: _RevertOnce,
        gesture: DropGesture,
        calendar_object: CalendarObject,
        component: EventComponent,
        timezone: TimezoneResolution,
    ) -> DropResult:
        """Ask the user for a scope, then save the staged instance with it."""
        branch = DropBranch.INTERACTIVE
        try:
            decision: DropDecision | None = None
            error: Exception | None = None
            try:
                self.store.stage_instance_context(
                    calendar_object,
                    component,
                    object_id=gesture.object_id,
                    recurrence_id=int(float(gesture.recurrence_id)),
                    zone=timezone.zone,
                )
                decision = await self.store.present_drop_recurrence_choice()
                if not decision.cancelled:
                    result = await self.store.save_calendar_object_instance(
                        this_and_all_future=decision.this_and_all_future,
                        calendar_id=calendar_object.calendar_id,
                    )
                    if result.success:
                        return DropResult(
                            persisted=True,
                            branch=branch,
                            decision=decision,
                            calendar_object=calendar_object,
                        )
                    error = result.error
            except Exception as e:
                error = e

            calendar_object = self.store.reset_calendar_object_to_source_of_truth(
                calendar_object
            )
            if decision is not None and decision.cancelled:
                logger.debug("drop.cancelled", object_id=gesture.object_id)
                reason = AbortReason.CANCELLED
            else:
                logger.error(
                    "drop.persist_failed",
                    object_id=gesture.object_id,
                    branch=branch.value,
                    error=str(error),
                )
                reason = AbortReason.PERSIST_FAILED
            return self._abort(
                revert,
                reason,
                branch=branch,
                decision=decision,
                calendar_object=calendar_object,
                error=error,
            )
        finally:
            self.store.clear_instance_context()

    def _abort(
        self,
        revert: _RevertOnce,
        reason: AbortReason,
        *,
        branch: DropBranch | None = None,
        decision: DropDecision | None = None,
        calendar_object: CalendarObject | None = None,
        error: Exception | None = None,
    ) -> DropResult:
        revert()
        return DropResult(
            persisted=False,
            reason=reason,
            branch=branch,
            decision=decision,
            calendar_object=calendar_object,
            error=error,
        )


def event_drop(
    store: CalendarStore, settings: DropSettings | None = None
) -> Callable[[DropGesture], Awaitable[DropResult]]:
    """Create a drop handler bound to a store.

    Example:
        >>> handler = event_drop(store)
        >>> result = await handler(
        ...     DropGesture(
        ...         object_id="standup.ics",
        ...         recurrence_id=1736154000,
        ...         delta={"days": 0, "milliseconds": 3600000},
        ...         all_day=False,
        ...         revert=element.snap_back,
        ...     )
        ... )
    """
    return DropResolutionWorkflow(store, settings).drop


__all__ = [
    "AbortReason",
    "DropBranch",
    "DropGesture",
    "DropResolutionWorkflow",
    "DropResult",
    "decide_branch",
    "event_drop",
]
