"""Options: typed surface over the engine's JSON option protocol.

Only populated fields are serialized, so anything left unset falls back to the
engine's own default. Values are immutable; ``set()`` returns a new value.
"""

from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any

from engravekit._native import NUL
from engravekit.errors import OptionsError


class BreakMode(str, Enum):
    """How the engine places system and page breaks."""

    AUTO = "auto"
    NONE = "none"
    ENCODED = "encoded"
    LINE = "line"
    SMART = "smart"


class CondenseMode(str, Enum):
    """Whether empty staves are hidden in systems."""

    NONE = "none"
    AUTO = "auto"
    ENCODED = "encoded"


class HeaderMode(str, Enum):
    NONE = "none"
    AUTO = "auto"
    ENCODED = "encoded"


class FooterMode(str, Enum):
    NONE = "none"
    AUTO = "auto"
    ENCODED = "encoded"
    ALWAYS = "always"


def _opt(protocol: str, kind: type) -> Any:
    """An optional field mapped to ``protocol`` in the JSON message."""
    return field(default=None, metadata={"protocol": protocol, "kind": kind})


def _coerce(name: str, kind: type, value: Any) -> Any:
    if issubclass(kind, Enum):
        try:
            return kind(value)
        except ValueError:
            allowed = ", ".join(member.value for member in kind)
            raise OptionsError(f"{name}: '{value}' is not one of {allowed}") from None
    if kind is bool:
        if isinstance(value, bool):
            return value
    elif kind is int:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
    elif kind is float:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
    elif kind is str:
        if isinstance(value, str):
            if NUL in value:
                raise OptionsError(f"{name} contains a NUL character")
            return value
    raise OptionsError(f"{name} expects {kind.__name__}, got {type(value).__name__} {value!r}")


class ProtocolMessage:
    """
    Shared behaviour for frozen dataclasses whose fields map onto engine
    protocol keys via ``_opt``.
    """

    def __post_init__(self) -> None:
        for item in fields(self):  # type: ignore[arg-type]
            value = getattr(self, item.name)
            if value is None or "kind" not in item.metadata:
                continue
            object.__setattr__(self, item.name, _coerce(item.name, item.metadata["kind"], value))

    def to_dict(self) -> dict[str, Any]:
        """Populated fields only, keyed by protocol name."""
        payload: dict[str, Any] = {}
        for item in fields(self):  # type: ignore[arg-type]
            value = getattr(self, item.name)
            if value is None or "protocol" not in item.metadata:
                continue
            payload[item.metadata["protocol"]] = value.value if isinstance(value, Enum) else value
        return payload

    def to_protocol(self) -> str:
        """Compact JSON text of ``to_dict()``."""
        return json.dumps(self.to_dict(), separators=(",", ":"))

    def set(self, **changes: Any) -> Any:
        """Return a copy with ``changes`` applied; every other field is kept."""
        try:
            return dataclasses.replace(self, **changes)  # type: ignore[type-var]
        except TypeError as exc:
            raise OptionsError(str(exc)) from exc

    def is_empty(self) -> bool:
        return not self.to_dict()


@dataclass(frozen=True)
class Options(ProtocolMessage):
    """
    Layout and output configuration for a Toolkit.

    Build with keywords, ``Options(scale=40, breaks=BreakMode.SMART)``, and
    derive variations with ``set()``. Enum fields also accept their protocol
    token (``breaks="smart"``).
    """

    # Page geometry
    scale: int | None = _opt("scale", int)
    page_width: int | None = _opt("pageWidth", int)
    page_height: int | None = _opt("pageHeight", int)
    adjust_page_height: bool | None = _opt("adjustPageHeight", bool)
    scale_to_page_size: bool | None = _opt("scaleToPageSize", bool)
    page_margin_top: int | None = _opt("pageMarginTop", int)
    page_margin_bottom: int | None = _opt("pageMarginBottom", int)
    page_margin_left: int | None = _opt("pageMarginLeft", int)
    page_margin_right: int | None = _opt("pageMarginRight", int)

    # Fonts
    font: str | None = _opt("font", str)
    lyric_size: float | None = _opt("lyricSize", float)

    # Layout modes
    breaks: BreakMode | None = _opt("breaks", BreakMode)
    condense: CondenseMode | None = _opt("condense", CondenseMode)
    condense_first_page: bool | None = _opt("condenseFirstPage", bool)
    condense_tempo_pages: bool | None = _opt("condenseTempoPages", bool)
    header: HeaderMode | None = _opt("header", HeaderMode)
    footer: FooterMode | None = _opt("footer", FooterMode)

    # Spacing
    even_note_spacing: bool | None = _opt("evenNoteSpacing", bool)
    min_measure_width: int | None = _opt("measureMinWidth", int)
    spacing_staff: int | None = _opt("spacingStaff", int)
    spacing_system: int | None = _opt("spacingSystem", int)
    spacing_linear: float | None = _opt("spacingLinear", float)
    spacing_non_linear: float | None = _opt("spacingNonLinear", float)

    # SVG output
    svg_bounding_boxes: bool | None = _opt("svgBoundingBoxes", bool)
    svg_view_box: bool | None = _opt("svgViewBox", bool)
    svg_remove_xlink: bool | None = _opt("svgRemoveXlink", bool)
    svg_css: str | None = _opt("svgCss", str)
    svg_format_raw: bool | None = _opt("svgFormatRaw", bool)
    svg_html5: bool | None = _opt("svgHtml5", bool)

    # MIDI output
    midi_tempo_adjustment: float | None = _opt("midiTempoAdjustment", float)
    midi_no_cue: bool | None = _opt("midiNoCue", bool)

    # Input selection and transposition
    input_from: str | None = _opt("inputFrom", str)
    mdiv_x_path_query: str | None = _opt("mdivXPathQuery", str)
    expand: str | None = _opt("expand", str)
    transpose: str | None = _opt("transpose", str)
    transpose_selected_only: bool | None = _opt("transposeSelectedOnly", bool)
    transpose_to_sounding_pitch: bool | None = _opt("transposeToSoundingPitch", bool)

    @classmethod
    def from_protocol(cls, text: str) -> Options:
        """
        Parse a protocol message. Keys this version does not model are
        ignored so newer engines can report extra options.

        Raises:
            OptionsError: If ``text`` is not a JSON object or a known key
                carries a value of the wrong type.
        """
        try:
            payload = json.loads(text)
        except ValueError as exc:
            raise OptionsError(f"malformed option message: {exc}") from exc
        return cls.from_dict(payload)

    @classmethod
    def from_dict(cls, payload: Any) -> Options:
        if not isinstance(payload, dict):
            raise OptionsError("option message must be a JSON object")
        by_protocol = {item.metadata["protocol"]: item.name for item in fields(cls)}
        known = {by_protocol[key]: value for key, value in payload.items() if key in by_protocol}
        return cls(**known)

    def merged(self, other: Options) -> Options:
        """Overlay the populated fields of ``other`` onto this value."""
        overrides = {
            item.name: getattr(other, item.name)
            for item in fields(other)
            if getattr(other, item.name) is not None
        }
        return self.set(**overrides)


# ── Per-format payloads ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class TimemapOptions(ProtocolMessage):
    include_measures: bool | None = _opt("includeMeasures", bool)
    include_rests: bool | None = _opt("includeRests", bool)


@dataclass(frozen=True)
class MeiOptions(ProtocolMessage):
    remove_ids: bool | None = _opt("removeIds", bool)
    page_based: bool | None = _opt("pageBasedMei", bool)
    score_based: bool | None = _opt("scoreBasedMei", bool)


@dataclass(frozen=True)
class FeaturesOptions(ProtocolMessage):
    """
    Free-form options for the descriptive-features query. The engine defines
    the keys; values are passed through as strings.
    """

    entries: tuple[tuple[str, str], ...] = ()

    def option(self, key: str, value: str) -> FeaturesOptions:
        return FeaturesOptions(entries=self.entries + ((key, value),))

    def to_dict(self) -> dict[str, Any]:
        return dict(self.entries)


@dataclass(frozen=True)
class PngOptions(ProtocolMessage):
    """
    Raster settings for PNG output. These never reach the engine; they drive
    the SVG to PNG conversion step.

    Attributes:
        width:      Output width in pixels; height follows the aspect ratio
                    unless also given.
        height:     Output height in pixels.
        scale:      Zoom factor applied to the SVG's intrinsic size.
        background: CSS colour painted behind the page, e.g. ``"white"``.
    """

    width: int | None = _opt("width", int)
    height: int | None = _opt("height", int)
    scale: float | None = _opt("scale", float)
    background: str | None = _opt("background", str)

    def __post_init__(self) -> None:
        super().__post_init__()
        for name in ("width", "height", "scale"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise OptionsError(f"{name} must be positive, got {value}")
