"""Timezone lookup with a UTC fallback."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog
from typing_extensions import override

from calshift.errors import TimezoneConfigurationError
from calshift.util import UTC_TIMEZONE

logger = structlog.get_logger(__name__)


class TimezoneProvider(ABC):
    """Source of timezone objects, keyed by identifier."""

    @abstractmethod
    def resolve(self, identifier: str) -> ZoneInfo | None:
        """Return the timezone for ``identifier``, or None if it is unknown."""
        pass


class ZoneInfoProvider(TimezoneProvider):
    """Timezone provider backed by the IANA database through ``zoneinfo``."""

    @override
    def resolve(self, identifier: str) -> ZoneInfo | None:
        if not identifier:
            return None
        try:
            return ZoneInfo(identifier)
        except (ZoneInfoNotFoundError, ValueError):
            # ValueError covers malformed keys such as absolute paths
            return None


@dataclass(frozen=True)
class TimezoneResolution:
    """A resolved timezone and whether it is the UTC fallback.

    Attributes:
        zone: The timezone to use
        requested: The identifier that was asked for
        fell_back: True if ``requested`` was unknown and UTC was used instead
    """

    zone: ZoneInfo
    requested: str
    fell_back: bool = False


def resolve_timezone(
    identifier: str, provider: TimezoneProvider | None = None
) -> TimezoneResolution:
    """Resolve a configured timezone identifier, falling back to UTC.

    Emits a single warning when the fallback is used.

    Raises:
        TimezoneConfigurationError: If UTC itself cannot be resolved
    """
    provider = provider if provider is not None else ZoneInfoProvider()

    zone = provider.resolve(identifier)
    if zone is not None:
        return TimezoneResolution(zone=zone, requested=identifier)

    zone = provider.resolve(UTC_TIMEZONE)
    if zone is None:
        raise TimezoneConfigurationError(
            f"Timezone {identifier!r} not found and the {UTC_TIMEZONE} "
            f"fallback could not be resolved either"
        )

    logger.warning(
        "timezone.fallback", timezone=identifier, fallback=UTC_TIMEZONE
    )
    return TimezoneResolution(zone=zone, requested=identifier, fell_back=True)


__all__ = [
    "TimezoneProvider",
    "ZoneInfoProvider",
    "TimezoneResolution",
    "resolve_timezone",
]
