"""engravekit: safe, typed access to the verovio music engraving engine."""

from engravekit.diagnostics import (
    LogLevel,
    NativeLogSettings,
    disable_native_log,
    enable_native_log,
    native_log_settings,
    reset_native_log,
)
from engravekit.errors import (
    ConcurrentAccessError,
    ElementNotFoundError,
    EngraveError,
    FileAccessError,
    HandleReleasedError,
    InitializationError,
    LoadError,
    OptionsError,
    PageRangeError,
    QueryError,
    RenderError,
    ResourceError,
    UnsupportedFormatError,
)
from engravekit.options import (
    BreakMode,
    CondenseMode,
    FeaturesOptions,
    FooterMode,
    HeaderMode,
    MeiOptions,
    Options,
    PngOptions,
    TimemapOptions,
)
from engravekit.query import (
    Attrs,
    Elements,
    ExpansionIds,
    Features,
    MidiValues,
    NotatedId,
    Page,
    Time,
    Times,
)
from engravekit.render import (
    ExpansionMap,
    Humdrum,
    Mei,
    Midi,
    Pae,
    Png,
    PngAllPages,
    PngPage,
    PngPages,
    ResultShape,
    Svg,
    SvgAllPages,
    SvgPage,
    SvgPages,
    Timemap,
    infer_format,
)
from engravekit.toolkit import Toolkit

__version__ = "0.1.0"

__all__ = [
    "Attrs",
    "BreakMode",
    "ConcurrentAccessError",
    "CondenseMode",
    "ElementNotFoundError",
    "Elements",
    "EngraveError",
    "ExpansionIds",
    "ExpansionMap",
    "Features",
    "FeaturesOptions",
    "FileAccessError",
    "FooterMode",
    "HandleReleasedError",
    "HeaderMode",
    "Humdrum",
    "InitializationError",
    "LoadError",
    "LogLevel",
    "Mei",
    "MeiOptions",
    "Midi",
    "MidiValues",
    "NativeLogSettings",
    "NotatedId",
    "Options",
    "OptionsError",
    "Pae",
    "Page",
    "PageRangeError",
    "Png",
    "PngAllPages",
    "PngOptions",
    "PngPage",
    "PngPages",
    "QueryError",
    "RenderError",
    "ResourceError",
    "ResultShape",
    "Svg",
    "SvgAllPages",
    "SvgPage",
    "SvgPages",
    "Time",
    "Timemap",
    "TimemapOptions",
    "Times",
    "Toolkit",
    "UnsupportedFormatError",
    "disable_native_log",
    "enable_native_log",
    "infer_format",
    "native_log_settings",
    "reset_native_log",
]
