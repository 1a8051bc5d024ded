"""Configuration for drop resolution."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class DropSettings(BaseSettings):
    """Calendar view options that drop resolution depends on.

    Durations stay raw strings: a malformed value must abort the drop that
    uses it, not the process that loads it.
    """

    model_config = SettingsConfigDict(
        env_prefix="CALSHIFT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    default_all_day_event_duration: str = "P1D"
    default_timed_event_duration: str = "PT1H"
    time_zone: str = "UTC"


@lru_cache
def get_settings() -> DropSettings:
    """Return the process-wide settings, loaded once."""
    return DropSettings()


__all__ = ["DropSettings", "get_settings"]
