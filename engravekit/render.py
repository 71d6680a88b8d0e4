"""Render formats: one closed set of output specifiers, each with its own result type.

    svg = toolkit.render(Svg.page(1))            # str
    pages = toolkit.render(Svg.all_pages())      # list[str]
    midi = toolkit.render(Midi())                # bytes (Standard MIDI File)
    timemap = toolkit.render(Timemap(TimemapOptions(include_rests=True)))

Every format validates its selector against the loaded document before the
first native call, so an invalid page never produces a partial result.
"""

from __future__ import annotations

import base64
import binascii
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, ClassVar, Generic, TypeVar

from engravekit import raster, sink
from engravekit._native import NativeHandle
from engravekit.errors import PageRangeError, RenderError, UnsupportedFormatError
from engravekit.options import MeiOptions, PngOptions, TimemapOptions

T = TypeVar("T")

MIDI_HEADER = b"MThd"


class ResultShape(Enum):
    """What a render format hands back, and therefore how it is written."""

    TEXT = "text"
    TEXT_PAGES = "text-pages"
    BYTES = "bytes"
    BYTES_PAGES = "bytes-pages"

    @property
    def paginated(self) -> bool:
        return self in (ResultShape.TEXT_PAGES, ResultShape.BYTES_PAGES)


# ── Shared checks ───────────────────────────────────────────────────────────


def _require(result: str | None, handle: NativeHandle, what: str) -> str:
    if result is None:
        raise RenderError(f"failed to render {what}", handle.log())
    return result


def _require_document(handle: NativeHandle) -> int:
    count = handle.page_count()
    if count == 0:
        raise RenderError("no document loaded", handle.log())
    return count


def _check_page_number(page: Any) -> None:
    if isinstance(page, bool) or not isinstance(page, int):
        raise TypeError(f"page numbers must be int, got {type(page).__name__}")


def _validate_pages(handle: NativeHandle, start: int, end: int) -> list[int]:
    """Return ``start..end`` after checking it against the document's pages."""
    if start < 1:
        raise PageRangeError(f"page {start} out of range (pages are numbered from 1)", 0)
    count = _require_document(handle)
    if start > end:
        raise PageRangeError(f"invalid page range {start}-{end}: start is after end", count)
    if end > count:
        raise PageRangeError(
            f"page {end} out of range (document has {count} pages)", count
        )
    return list(range(start, end + 1))


# ── Base ────────────────────────────────────────────────────────────────────


class RenderFormat(ABC, Generic[T]):
    """
    Abstract render format.

    The set of formats is closed: subclasses may only be declared in this
    module, so every format the Toolkit can receive is listed here.
    """

    shape: ClassVar[ResultShape]
    suffix: ClassVar[str]

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if cls.__module__ != __name__:
            raise TypeError("RenderFormat is a closed set; it cannot be extended")

    @abstractmethod
    def render(self, handle: NativeHandle) -> T:
        """Run the native call(s) and return the typed result."""

    def write(self, handle: NativeHandle, path: Path) -> list[Path]:
        """Render and write to ``path``. Returns the files written."""
        return [sink.write_single(path, self.render(handle))]  # type: ignore[arg-type]


class _PagedFormat(RenderFormat[list[T]]):
    """A format producing one result per page, written into a page directory."""

    def write(self, handle: NativeHandle, path: Path) -> list[Path]:
        pages = self.page_numbers(handle)
        contents = self._render_pages(handle, pages)
        return sink.write_pages(path, pages, contents, self.suffix)

    def render(self, handle: NativeHandle) -> list[T]:
        return self._render_pages(handle, self.page_numbers(handle))

    @abstractmethod
    def page_numbers(self, handle: NativeHandle) -> list[int]:
        """Validated page numbers this format covers, in page order."""

    @abstractmethod
    def _render_pages(self, handle: NativeHandle, pages: list[int]) -> list[T]:
        pass


# ── SVG ─────────────────────────────────────────────────────────────────────


def _render_svg(handle: NativeHandle, page: int, declaration: bool) -> str:
    return _require(handle.render_svg(page, declaration), handle, f"SVG page {page}")


@dataclass(frozen=True)
class SvgPage(RenderFormat[str]):
    """One page as SVG text. Pages are 1-based."""

    shape = ResultShape.TEXT
    suffix = ".svg"

    page: int
    declaration: bool = False

    def __post_init__(self) -> None:
        _check_page_number(self.page)

    def with_declaration(self) -> SvgPage:
        """Include the ``<?xml ...?>`` declaration in the output."""
        return SvgPage(self.page, declaration=True)

    def render(self, handle: NativeHandle) -> str:
        _validate_pages(handle, self.page, self.page)
        return _render_svg(handle, self.page, self.declaration)


@dataclass(frozen=True)
class SvgPages(_PagedFormat[str]):
    """An inclusive page range as SVG texts, one per page."""

    shape = ResultShape.TEXT_PAGES
    suffix = ".svg"

    start: int
    end: int
    declaration: bool = False

    def __post_init__(self) -> None:
        _check_page_number(self.start)
        _check_page_number(self.end)

    def with_declaration(self) -> SvgPages:
        return SvgPages(self.start, self.end, declaration=True)

    def page_numbers(self, handle: NativeHandle) -> list[int]:
        return _validate_pages(handle, self.start, self.end)

    def _render_pages(self, handle: NativeHandle, pages: list[int]) -> list[str]:
        return [_render_svg(handle, page, self.declaration) for page in pages]


@dataclass(frozen=True)
class SvgAllPages(_PagedFormat[str]):
    """Every page of the document as SVG texts."""

    shape = ResultShape.TEXT_PAGES
    suffix = ".svg"

    declaration: bool = False

    def with_declaration(self) -> SvgAllPages:
        return SvgAllPages(declaration=True)

    def page_numbers(self, handle: NativeHandle) -> list[int]:
        return list(range(1, _require_document(handle) + 1))

    def _render_pages(self, handle: NativeHandle, pages: list[int]) -> list[str]:
        return [_render_svg(handle, page, self.declaration) for page in pages]


class Svg:
    """Constructors for the SVG formats."""

    @staticmethod
    def page(n: int) -> SvgPage:
        return SvgPage(n)

    @staticmethod
    def pages(start: int, end: int) -> SvgPages:
        return SvgPages(start, end)

    @staticmethod
    def all_pages() -> SvgAllPages:
        return SvgAllPages()


# ── PNG ─────────────────────────────────────────────────────────────────────


def _render_png(handle: NativeHandle, page: int, options: PngOptions | None) -> bytes:
    return raster.svg_to_png(_render_svg(handle, page, False), options)


@dataclass(frozen=True)
class PngPage(RenderFormat[bytes]):
    """One page rasterized to PNG via its SVG rendering."""

    shape = ResultShape.BYTES
    suffix = ".png"

    page: int
    options: PngOptions | None = None

    def __post_init__(self) -> None:
        _check_page_number(self.page)

    def render(self, handle: NativeHandle) -> bytes:
        _validate_pages(handle, self.page, self.page)
        return _render_png(handle, self.page, self.options)


@dataclass(frozen=True)
class PngPages(_PagedFormat[bytes]):
    shape = ResultShape.BYTES_PAGES
    suffix = ".png"

    start: int
    end: int
    options: PngOptions | None = None

    def __post_init__(self) -> None:
        _check_page_number(self.start)
        _check_page_number(self.end)

    def page_numbers(self, handle: NativeHandle) -> list[int]:
        return _validate_pages(handle, self.start, self.end)

    def _render_pages(self, handle: NativeHandle, pages: list[int]) -> list[bytes]:
        return [_render_png(handle, page, self.options) for page in pages]


@dataclass(frozen=True)
class PngAllPages(_PagedFormat[bytes]):
    shape = ResultShape.BYTES_PAGES
    suffix = ".png"

    options: PngOptions | None = None

    def page_numbers(self, handle: NativeHandle) -> list[int]:
        return list(range(1, _require_document(handle) + 1))

    def _render_pages(self, handle: NativeHandle, pages: list[int]) -> list[bytes]:
        return [_render_png(handle, page, self.options) for page in pages]


class Png:
    """Constructors for the PNG formats."""

    @staticmethod
    def page(n: int, options: PngOptions | None = None) -> PngPage:
        return PngPage(n, options)

    @staticmethod
    def pages(start: int, end: int, options: PngOptions | None = None) -> PngPages:
        return PngPages(start, end, options)

    @staticmethod
    def all_pages(options: PngOptions | None = None) -> PngAllPages:
        return PngAllPages(options)


# ── Whole-document exports ──────────────────────────────────────────────────


@dataclass(frozen=True)
class Midi(RenderFormat[bytes]):
    """
    The document as a Standard MIDI File.

    The engine hands MIDI over base64-encoded; this format always returns the
    decoded bytes, which start with the ``MThd`` header.
    """

    shape = ResultShape.BYTES
    suffix = ".mid"

    def render(self, handle: NativeHandle) -> bytes:
        _require_document(handle)
        encoded = _require(handle.render_midi(), handle, "MIDI")
        try:
            data = base64.b64decode("".join(encoded.split()), validate=True)
        except (binascii.Error, ValueError) as exc:
            raise RenderError(f"engine returned undecodable MIDI data: {exc}", handle.log()) from exc
        if not data.startswith(MIDI_HEADER):
            raise RenderError("engine returned MIDI data without an MThd header", handle.log())
        return data


@dataclass(frozen=True)
class Mei(RenderFormat[str]):
    """MEI export, with optional export settings."""

    shape = ResultShape.TEXT
    suffix = ".mei"

    options: MeiOptions | None = None

    @classmethod
    def with_options(cls, **settings: Any) -> Mei:
        return cls(MeiOptions(**settings))

    def render(self, handle: NativeHandle) -> str:
        _require_document(handle)
        payload = self.options.to_dict() if self.options is not None else {}
        return _require(handle.get_mei(payload), handle, "MEI")


@dataclass(frozen=True)
class Humdrum(RenderFormat[str]):
    shape = ResultShape.TEXT
    suffix = ".krn"

    def render(self, handle: NativeHandle) -> str:
        _require_document(handle)
        return _require(handle.get_humdrum(), handle, "Humdrum")


@dataclass(frozen=True)
class Pae(RenderFormat[str]):
    """Plaine & Easie code."""

    shape = ResultShape.TEXT
    suffix = ".pae"

    def render(self, handle: NativeHandle) -> str:
        _require_document(handle)
        return _require(handle.render_pae(), handle, "PAE")


@dataclass(frozen=True)
class Timemap(RenderFormat[str]):
    """Timemap as JSON text: onsets and offsets of every sounding element."""

    shape = ResultShape.TEXT
    suffix = ".json"

    options: TimemapOptions | None = None

    @classmethod
    def with_options(cls, **settings: Any) -> Timemap:
        return cls(TimemapOptions(**settings))

    def render(self, handle: NativeHandle) -> str:
        _require_document(handle)
        payload = self.options.to_dict() if self.options is not None else {}
        try:
            result = handle.render_timemap(payload)
        except ValueError as exc:
            raise RenderError(f"engine returned malformed timemap: {exc}", handle.log()) from exc
        return _require(result, handle, "timemap")


@dataclass(frozen=True)
class ExpansionMap(RenderFormat[str]):
    """Expansion map as JSON text: how repeats unfold into played ids."""

    shape = ResultShape.TEXT
    suffix = ".json"

    def render(self, handle: NativeHandle) -> str:
        _require_document(handle)
        try:
            result = handle.render_expansion_map()
        except ValueError as exc:
            raise RenderError(f"engine returned malformed expansion map: {exc}", handle.log()) from exc
        return _require(result, handle, "expansion map")


RENDER_FORMATS: tuple[type[RenderFormat[Any]], ...] = (
    SvgPage,
    SvgPages,
    SvgAllPages,
    PngPage,
    PngPages,
    PngAllPages,
    Midi,
    Mei,
    Humdrum,
    Pae,
    Timemap,
    ExpansionMap,
)


# ── Format inference ────────────────────────────────────────────────────────

_EXTENSION_FORMATS: dict[str, RenderFormat[Any]] = {
    "svg": SvgPage(1),
    "mid": Midi(),
    "midi": Midi(),
    "mei": Mei(),
    "krn": Humdrum(),
    "hmd": Humdrum(),
    "pae": Pae(),
    "png": PngPage(1),
}


def infer_format(path: str | Path) -> RenderFormat[Any]:
    """
    Pick a render format from a file extension.

    Raises:
        UnsupportedFormatError: For ``.json`` (timemap or expansion map, so the
            caller must choose), unknown extensions, and paths without one.
    """
    suffix = Path(path).suffix.lower().lstrip(".")
    if not suffix:
        raise UnsupportedFormatError("file path has no extension")
    if suffix == "json":
        raise UnsupportedFormatError(
            "ambiguous .json extension: use render_to_as() with Timemap or ExpansionMap"
        )
    try:
        return _EXTENSION_FORMATS[suffix]
    except KeyError:
        raise UnsupportedFormatError(f"unsupported file extension: .{suffix}") from None
