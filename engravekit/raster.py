"""SVG to PNG conversion for the PNG render formats."""

from __future__ import annotations

from typing import Any

from engravekit.errors import RenderError
from engravekit.options import PngOptions


def svg_to_png(svg: str, options: PngOptions | None = None) -> bytes:
    """
    Rasterize one SVG page with cairosvg.

    Raises:
        RenderError: If cairosvg is missing or cannot convert the document.
    """
    try:
        import cairosvg
    except (ImportError, OSError) as exc:
        raise RenderError(
            "PNG output needs cairosvg; install engravekit[png]"
        ) from exc

    options = options or PngOptions()
    kwargs: dict[str, Any] = {"bytestring": svg.encode("utf-8")}
    if options.width is not None:
        kwargs["output_width"] = options.width
    if options.height is not None:
        kwargs["output_height"] = options.height
    if options.scale is not None:
        kwargs["scale"] = options.scale
    if options.background is not None:
        kwargs["background_color"] = options.background

    try:
        png = cairosvg.svg2png(**kwargs)
    except Exception as exc:
        raise RenderError(f"PNG conversion failed: {exc}") from exc
    if not png:
        raise RenderError("PNG conversion produced no data")
    return bytes(png)
