from .component import CalendarObject, EventComponent
from .drop import (
    AbortReason,
    DropBranch,
    DropGesture,
    DropResolutionWorkflow,
    DropResult,
    decide_branch,
    event_drop,
)
from .duration import Duration, parse_duration, resolve_durations
from .errors import (
    CalendarObjectNotFound,
    CalShiftError,
    InstanceContextError,
    ShiftError,
    TimezoneConfigurationError,
)
from .recurrence import get_object_at_recurrence_id, recurrence_id_to_datetime
from .settings import DropSettings, get_settings
from .shift import shift_by_duration
from .store import CalendarStore, DropDecision, RecurrenceScope, WriteResult
from .store.memory import MemoryStore, memory_store
from .timezones import TimezoneProvider, ZoneInfoProvider, resolve_timezone

__all__ = [
    "CalendarObject",
    "EventComponent",
    "Duration",
    "parse_duration",
    "resolve_durations",
    "TimezoneProvider",
    "ZoneInfoProvider",
    "resolve_timezone",
    "get_object_at_recurrence_id",
    "recurrence_id_to_datetime",
    "shift_by_duration",
    "DropBranch",
    "decide_branch",
    "DropGesture",
    "DropResult",
    "AbortReason",
    "DropResolutionWorkflow",
    "event_drop",
    "CalendarStore",
    "DropDecision",
    "RecurrenceScope",
    "WriteResult",
    "MemoryStore",
    "memory_store",
    "DropSettings",
    "get_settings",
    "CalShiftError",
    "ShiftError",
    "CalendarObjectNotFound",
    "TimezoneConfigurationError",
    "InstanceContextError",
]
