"""Process-wide control of the engine's diagnostic log.

The engine keeps one log switch for the whole process: changing it here
affects every live Toolkit at once. Messages go either to standard error or,
with ``to_buffer=True``, into a buffer each Toolkit reads via ``get_log()``.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum

from engravekit import _native
from engravekit.errors import InitializationError

logger = logging.getLogger(__name__)


class LogLevel(Enum):
    """Engine log verbosity, from silent to everything."""

    OFF = "LOG_OFF"
    ERROR = "LOG_ERROR"
    WARNING = "LOG_WARNING"
    INFO = "LOG_INFO"
    DEBUG = "LOG_DEBUG"


@dataclass(frozen=True)
class NativeLogSettings:
    level: LogLevel = LogLevel.WARNING
    to_buffer: bool = False

    @property
    def enabled(self) -> bool:
        return self.level is not LogLevel.OFF


DEFAULT_SETTINGS = NativeLogSettings()

_lock = threading.Lock()
_current = DEFAULT_SETTINGS


def _apply(settings: NativeLogSettings) -> None:
    try:
        engine = _native.import_engine()
    except ImportError as exc:
        raise InitializationError("the verovio package is not installed") from exc

    # Older bindings take a plain on/off flag instead of a level constant.
    level = getattr(engine, settings.level.value, settings.enabled)
    engine.enableLog(level)
    engine.enableLogToBuffer(settings.to_buffer)


def configure_native_log(settings: NativeLogSettings) -> NativeLogSettings:
    """Apply ``settings`` to the engine and return the settings they replaced."""
    global _current
    with _lock:
        _apply(settings)
        previous, _current = _current, settings
    logger.debug("native log set to %s (buffer=%s)", settings.level.name, settings.to_buffer)
    return previous


def enable_native_log(
    level: LogLevel = LogLevel.WARNING, *, to_buffer: bool = False
) -> NativeLogSettings:
    """Turn engine logging on. Returns the previous settings."""
    return configure_native_log(NativeLogSettings(level=level, to_buffer=to_buffer))


def disable_native_log() -> NativeLogSettings:
    """Silence the engine. Returns the previous settings."""
    return configure_native_log(NativeLogSettings(level=LogLevel.OFF, to_buffer=False))


def reset_native_log() -> NativeLogSettings:
    """Restore the default: warnings and errors to standard error."""
    return configure_native_log(DEFAULT_SETTINGS)


def native_log_settings() -> NativeLogSettings:
    """The settings most recently applied through this module."""
    with _lock:
        return _current
