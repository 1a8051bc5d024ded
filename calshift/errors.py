"""Exception types raised by calshift."""


class CalShiftError(Exception):
    """Base class for calshift errors."""


class ShiftError(CalShiftError, ValueError):
    """Raised when a duration shift cannot be applied to an event component."""


class CalendarObjectNotFound(CalShiftError, LookupError):
    """Raised by stores when no calendar object exists for an object id."""

    def __init__(self, object_id: str) -> None:
        super().__init__(f"Calendar object not found: {object_id!r}")
        self.object_id: str = object_id


class TimezoneConfigurationError(CalShiftError, RuntimeError):
    """Raised when not even the UTC fallback timezone can be resolved."""


class InstanceContextError(CalShiftError, RuntimeError):
    """Raised when an instance is saved without a staged instance context."""
