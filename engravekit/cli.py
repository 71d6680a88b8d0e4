"""engravekit CLI entry point."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import click

from engravekit import __version__
from engravekit.errors import EngraveError
from engravekit.options import Options, PngOptions
from engravekit.render import (
    ExpansionMap,
    Humdrum,
    Mei,
    Midi,
    Pae,
    PngAllPages,
    PngPage,
    RenderFormat,
    SvgAllPages,
    SvgPage,
    Timemap,
    infer_format,
)
from engravekit.resources import available_fonts, default_font
from engravekit.toolkit import Toolkit

# Layout defaults in engine units (~0.1 mm): A4 portrait, 40% scale.
PAGE_WIDTH = 2100
PAGE_HEIGHT = 2970
SCALE = 40
PAGE_MARGIN = 100

FORMAT_SUFFIXES: dict[str, str] = {
    "svg": ".svg",
    "png": ".png",
    "midi": ".mid",
    "mei": ".mei",
    "humdrum": ".krn",
    "pae": ".pae",
    "timemap": ".json",
    "expansionmap": ".json",
}

_INFERRED_NAMES: dict[type, str] = {
    SvgPage: "svg",
    PngPage: "png",
    Midi: "midi",
    Mei: "mei",
    Humdrum: "humdrum",
    Pae: "pae",
}


def default_options() -> Options:
    return Options(
        page_width=PAGE_WIDTH,
        page_height=PAGE_HEIGHT,
        scale=SCALE,
        page_margin_top=PAGE_MARGIN,
        page_margin_bottom=PAGE_MARGIN,
        page_margin_left=PAGE_MARGIN,
        page_margin_right=PAGE_MARGIN,
        adjust_page_height=True,
    )


def build_format(
    name: str, page: int, all_pages: bool, png_options: PngOptions | None = None
) -> RenderFormat[Any]:
    """Map a CLI format name plus page selection to a render format."""
    if name == "svg":
        return SvgAllPages() if all_pages else SvgPage(page)
    if name == "png":
        return PngAllPages(png_options) if all_pages else PngPage(page, png_options)
    simple: dict[str, RenderFormat[Any]] = {
        "midi": Midi(),
        "mei": Mei(),
        "humdrum": Humdrum(),
        "pae": Pae(),
        "timemap": Timemap(),
        "expansionmap": ExpansionMap(),
    }
    return simple[name]


def _open_toolkit(resource_path: str | None) -> Toolkit:
    return Toolkit(resource_path) if resource_path else Toolkit()


# ── CLI group ──────────────────────────────────────────────────────────────────

@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__, prog_name="engravekit")
def main() -> None:
    """engravekit: render and inspect music notation with verovio."""


# ── render subcommand ──────────────────────────────────────────────────────────

@main.command()
@click.argument("input_file", type=click.Path(exists=True, dir_okay=False, readable=True))
@click.option(
    "--output",
    "-o",
    default=None,
    metavar="PATH",
    help="Destination file. Defaults to the input path with the format's extension.",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(sorted(FORMAT_SUFFIXES), case_sensitive=False),
    default=None,
    help="Output format. Inferred from --output when omitted (svg if neither is given).",
)
@click.option("--page", type=click.IntRange(min=1), default=1, show_default=True, help="Page to render.")
@click.option(
    "--all-pages",
    is_flag=True,
    help="Render every page into a directory named after the output file.",
)
@click.option("--scale", type=click.IntRange(1, 1000), default=None, help=f"Scale in percent [default: {SCALE}].")
@click.option("--font", default=None, metavar="NAME", help="Music font, e.g. Leipzig or Bravura.")
@click.option(
    "--resource-path",
    type=click.Path(exists=True, file_okay=False),
    default=None,
    help="Engine resource directory. Defaults to the bundled resources.",
)
@click.option("--width", type=click.IntRange(min=1), default=None, help="PNG width in pixels.")
@click.option("--height", type=click.IntRange(min=1), default=None, help="PNG height in pixels.")
@click.option("--background", default=None, metavar="COLOR", help="PNG background colour.")
def render(
    input_file: str,
    output: str | None,
    output_format: str | None,
    page: int,
    all_pages: bool,
    scale: int | None,
    font: str | None,
    resource_path: str | None,
    width: int | None,
    height: int | None,
    background: str | None,
) -> None:
    """
    Render a notation file (MEI, MusicXML, Humdrum, ABC, PAE, ...).

    INPUT_FILE is loaded as-is; the engine detects its format.

    \b
    Examples:
      engravekit render score.mei
      engravekit render score.musicxml -o score.png --width 1200
      engravekit render score.mei -o pages.svg --all-pages --font Bravura
      engravekit render score.mei --format timemap -o timemap.json
    """
    try:
        if output_format is None:
            output_format = (
                _INFERRED_NAMES[type(infer_format(output))] if output is not None else "svg"
            )
        output_format = output_format.lower()
        resolved_output = output or str(
            Path(input_file).with_suffix(FORMAT_SUFFIXES[output_format])
        )
        png_options = PngOptions(width=width, height=height, background=background)
        spec = build_format(output_format, page, all_pages, png_options)
    except EngraveError as exc:
        click.echo(f"  ERROR: {exc}", err=True)
        sys.exit(1)

    options = default_options().merged(Options(scale=scale, font=font))

    click.echo(f"engravekit v{__version__}")
    click.echo(f"  Input  : {input_file}")
    click.echo(f"  Format : {output_format}")
    click.echo(f"  Output : {resolved_output}")
    click.echo()

    try:
        with _open_toolkit(resource_path) as toolkit:
            click.echo("[1/3] Loading notation...")
            toolkit.set_options(options)
            toolkit.load_file(input_file)
            click.echo(f"      Pages : {toolkit.page_count()}")

            click.echo(f"[2/3] Rendering {output_format}...")
            click.echo("[3/3] Writing output...")
            written = toolkit.render_to_as(resolved_output, spec)
    except EngraveError as exc:
        click.echo(f"  ERROR: {exc}", err=True)
        sys.exit(1)

    click.echo()
    for path in written:
        click.echo(f"  wrote {path}")
    click.echo(f"Done!  {len(written)} file(s) written.")


# ── info subcommand ────────────────────────────────────────────────────────────

@main.command()
@click.argument(
    "input_file",
    required=False,
    type=click.Path(exists=True, dir_okay=False, readable=True),
)
@click.option(
    "--resource-path",
    type=click.Path(exists=True, file_okay=False),
    default=None,
    help="Engine resource directory. Defaults to the bundled resources.",
)
def info(input_file: str | None, resource_path: str | None) -> None:
    """
    Show the engine version and resources, and the page count of INPUT_FILE.
    """
    try:
        with _open_toolkit(resource_path) as toolkit:
            resources = toolkit.get_resource_path()
            click.echo(f"engravekit v{__version__}")
            click.echo(f"  Engine    : verovio {toolkit.version()}")
            click.echo(f"  Resources : {resources}")
            click.echo(f"  Fonts     : {', '.join(available_fonts(resources)) or 'none'}")
            click.echo(f"  Default   : {default_font(resources)}")
            if input_file is not None:
                toolkit.load_file(input_file)
                click.echo(f"  Pages     : {toolkit.page_count()}")
    except EngraveError as exc:
        click.echo(f"  ERROR: {exc}", err=True)
        sys.exit(1)
