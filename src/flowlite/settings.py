from __future__ import annotations

import threading
from dataclasses import dataclass

from flowlite.exceptions import ConfigurationError

_GLOBAL_FLOWLITE_SETTINGS: FlowliteSettings | None = None
_SETTINGS_LOCK = threading.RLock()


@dataclass(frozen=True)
class FlowliteSettings:
    """Configuration settings for flowlite."""

    max_retries: int = 3
    """
    Maximum number of attempts for a task's body and middleware sequence.

    This bounds the total number of attempts, so a value of 1 disables retries.
    """

    retry_delay: float = 1000.0
    """Fixed delay between two attempts of the same task, in milliseconds."""

    def __post_init__(self) -> None:
        validate_retry_options(self.max_retries, self.retry_delay)


def validate_retry_options(max_retries: int, retry_delay: float) -> None:
    """
    Check retry options, raising `ConfigurationError` for out-of-range values.

    Args:
        max_retries (int): Total number of attempts, must be a positive integer.
        retry_delay (float): Delay in milliseconds, must be non-negative.
    """
    if isinstance(max_retries, bool) or not isinstance(max_retries, int) or max_retries < 1:
        raise ConfigurationError(f"max_retries must be a positive integer, got {max_retries!r}")
    if isinstance(retry_delay, bool) or not isinstance(retry_delay, (int, float)):
        raise ConfigurationError(f"retry_delay must be a number, got {retry_delay!r}")
    if retry_delay < 0:
        raise ConfigurationError(f"retry_delay must be non-negative, got {retry_delay!r}")


def get_global_settings() -> FlowliteSettings:
    """
    Get the global flowlite settings instance (thread-safe).

    If no global settings have been set, returns a default instance.
    """
    with _SETTINGS_LOCK:
        global _GLOBAL_FLOWLITE_SETTINGS
        if _GLOBAL_FLOWLITE_SETTINGS is None:
            _GLOBAL_FLOWLITE_SETTINGS = FlowliteSettings()
        return _GLOBAL_FLOWLITE_SETTINGS


def set_global_settings(settings: FlowliteSettings) -> None:
    """
    Set the global flowlite settings instance (thread-safe).

    Note: Workflows read the global settings when they are constructed. Changing the
    settings afterwards does not affect workflows that already exist.

    Args:
        settings (FlowliteSettings): Settings to set as global.
    """
    with _SETTINGS_LOCK:
        global _GLOBAL_FLOWLITE_SETTINGS
        _GLOBAL_FLOWLITE_SETTINGS = settings
