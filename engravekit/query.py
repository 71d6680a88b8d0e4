"""Queries: a closed set of read-only lookups, each with its own result type.

    page = toolkit.get(Page.of("note-1"))        # int, 1-based
    onset = toolkit.get(Time.of("note-1"))       # float, milliseconds
    attrs = toolkit.get(Attrs.of("note-1"))      # JSON text
    sounding = toolkit.get(Elements.at(1500))    # JSON text

JSON results are validated and passed through as text; interpreting them is
left to the caller.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from engravekit._native import NativeHandle, to_native_str
from engravekit.errors import ElementNotFoundError, QueryError
from engravekit.options import FeaturesOptions

T = TypeVar("T")


def _require_document(handle: NativeHandle) -> None:
    if handle.page_count() == 0:
        raise QueryError("no document loaded", handle.log())


def _json_result(handle: NativeHandle, call: Callable[[], str | None], what: str) -> str:
    try:
        result = call()
    except ValueError as exc:
        raise QueryError(f"engine returned malformed {what}: {exc}", handle.log()) from exc
    if result is None:
        raise QueryError(f"engine returned no {what}", handle.log())
    return result


class QueryFormat(ABC, Generic[T]):
    """
    Abstract query. Like the render formats, the set is closed to this module.
    """

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if cls.__module__ != __name__:
            raise TypeError("QueryFormat is a closed set; it cannot be extended")

    @abstractmethod
    def query(self, handle: NativeHandle) -> T:
        """Run the native call and return the typed result."""


@dataclass(frozen=True)
class _ElementQuery(QueryFormat[T]):
    """A query keyed by an element's xml:id."""

    xml_id: str

    def __post_init__(self) -> None:
        to_native_str(self.xml_id, QueryError, "element id")
        if not self.xml_id:
            raise QueryError("element id must not be empty")

    @classmethod
    def of(cls, xml_id: str) -> Any:
        return cls(xml_id)

    def query(self, handle: NativeHandle) -> T:
        _require_document(handle)
        return self._lookup(handle)

    @abstractmethod
    def _lookup(self, handle: NativeHandle) -> T:
        pass


# ── Element queries ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Page(_ElementQuery[int]):
    """The 1-based page holding the element."""

    def _lookup(self, handle: NativeHandle) -> int:
        page = handle.page_with_element(self.xml_id)
        if page < 1:
            raise ElementNotFoundError(self.xml_id, handle.log())
        return page


@dataclass(frozen=True)
class Attrs(_ElementQuery[str]):
    """The element's attributes as a JSON object."""

    def _lookup(self, handle: NativeHandle) -> str:
        return _json_result(handle, lambda: handle.element_attr(self.xml_id), "attributes")


@dataclass(frozen=True)
class Time(_ElementQuery[float]):
    """Onset of the element in milliseconds."""

    def _lookup(self, handle: NativeHandle) -> float:
        return handle.time_for_element(self.xml_id)


@dataclass(frozen=True)
class Times(_ElementQuery[str]):
    """All onset/offset times of the element as JSON."""

    def _lookup(self, handle: NativeHandle) -> str:
        return _json_result(handle, lambda: handle.times_for_element(self.xml_id), "times")


@dataclass(frozen=True)
class ExpansionIds(_ElementQuery[str]):
    """Ids the element expands to when repeats are unfolded, as JSON."""

    def _lookup(self, handle: NativeHandle) -> str:
        return _json_result(
            handle, lambda: handle.expansion_ids_for_element(self.xml_id), "expansion ids"
        )


@dataclass(frozen=True)
class MidiValues(_ElementQuery[str]):
    """Pitch, duration and timing the element contributes to MIDI, as JSON."""

    def _lookup(self, handle: NativeHandle) -> str:
        return _json_result(
            handle, lambda: handle.midi_values_for_element(self.xml_id), "MIDI values"
        )


@dataclass(frozen=True)
class NotatedId(_ElementQuery[str]):
    """
    The id of the notated element an expanded element was copied from.

    Like the other per-element queries this passes the engine's answer
    through: verovio echoes an id it does not know back unchanged and logs
    a warning. Only an empty answer raises ``ElementNotFoundError``. Use
    ``Page`` to check that an id exists.
    """

    def _lookup(self, handle: NativeHandle) -> str:
        notated = handle.notated_id_for_element(self.xml_id)
        if notated is None:
            raise ElementNotFoundError(self.xml_id, handle.log())
        return notated


# ── Time and document queries ───────────────────────────────────────────────


@dataclass(frozen=True)
class Elements(QueryFormat[str]):
    """Ids of the elements sounding at a point in time, as JSON."""

    millisec: int

    def __post_init__(self) -> None:
        if isinstance(self.millisec, bool) or not isinstance(self.millisec, int):
            raise TypeError(f"millisec must be int, got {type(self.millisec).__name__}")
        if self.millisec < 0:
            raise QueryError(f"time must not be negative, got {self.millisec}")

    @classmethod
    def at(cls, millisec: int) -> Elements:
        return cls(millisec)

    def query(self, handle: NativeHandle) -> str:
        _require_document(handle)
        return _json_result(handle, lambda: handle.elements_at_time(self.millisec), "elements")


@dataclass(frozen=True)
class Features(QueryFormat[str]):
    """Descriptive features of the whole document, as JSON."""

    options: FeaturesOptions | None = None

    @classmethod
    def with_options(cls, **entries: str) -> Features:
        return cls(FeaturesOptions(entries=tuple(entries.items())))

    def query(self, handle: NativeHandle) -> str:
        _require_document(handle)
        payload = self.options.to_dict() if self.options is not None else {}
        return _json_result(handle, lambda: handle.descriptive_features(payload), "features")


QUERY_FORMATS: tuple[type[QueryFormat[Any]], ...] = (
    Page,
    Attrs,
    Time,
    Times,
    ExpansionIds,
    MidiValues,
    NotatedId,
    Elements,
    Features,
)
