"""Error taxonomy for engine, render, query and file failures."""

from __future__ import annotations

from pathlib import Path
from typing import ClassVar


class EngraveError(Exception):
    """
    Base class for every failure the engine or the filesystem reports.

    Attributes:
        message:    Human-readable description of the failure.
        native_log: Diagnostic text fetched from the engine right after the
                    failing call. Empty when logging is disabled or the engine
                    recorded nothing.
    """

    prefix: ClassVar[str] = "engine error"

    def __init__(self, message: str, native_log: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.native_log = native_log

    def __str__(self) -> str:
        text = f"{self.prefix}: {self.message}"
        if self.native_log.strip():
            text = f"{text}\n{self.native_log.strip()}"
        return text


class InitializationError(EngraveError):
    """The native toolkit could not be constructed."""

    prefix = "failed to initialize toolkit"


class LoadError(EngraveError):
    """The engine rejected the notation data."""

    prefix = "failed to load data"


class OptionsError(EngraveError):
    """An option payload could not be built or was rejected by the engine."""

    prefix = "invalid options"


class RenderError(EngraveError):
    """A render or export call failed."""

    prefix = "failed to render"


class PageRangeError(RenderError):
    """A page number or page range falls outside the loaded document."""

    def __init__(self, message: str, page_count: int, native_log: str = "") -> None:
        super().__init__(message, native_log)
        self.page_count = page_count


class UnsupportedFormatError(RenderError):
    """An output format could not be inferred from a file path."""


class QueryError(EngraveError):
    """A read-only lookup against the loaded document failed."""

    prefix = "query failed"


class ElementNotFoundError(QueryError):
    """The referenced element id does not exist in the loaded document."""

    def __init__(self, xml_id: str, native_log: str = "") -> None:
        super().__init__(f"no element with id '{xml_id}'", native_log)
        self.xml_id = xml_id


class ResourceError(EngraveError):
    """Bundled resources could not be located or staged."""

    prefix = "resource error"


class FileAccessError(EngraveError):
    """
    Reading or writing a file failed.

    Kept apart from LoadError and RenderError so callers can tell "could not
    read the file" from "the engine rejected its content". The originating
    OSError is chained as ``__cause__``.
    """

    prefix = "I/O error"

    def __init__(self, message: str, path: str | Path) -> None:
        super().__init__(message)
        self.path = Path(path)


# ── Defects ─────────────────────────────────────────────────────────────────


class HandleReleasedError(RuntimeError):
    """A Toolkit was used after close()."""


class ConcurrentAccessError(RuntimeError):
    """A Toolkit was entered from a thread that does not own it."""
