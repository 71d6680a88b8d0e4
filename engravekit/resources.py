"""Resource provisioning: locate or stage the engine's font and metadata files."""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Final

from engravekit import _native
from engravekit.errors import InitializationError, ResourceError

logger = logging.getLogger(__name__)

BUNDLED_DATA_DIRNAME: Final[str] = "data"

# Music fonts the engine knows how to load; Bravura is its baseline.
KNOWN_FONTS: Final[tuple[str, ...]] = ("Bravura", "Gootville", "Leipzig", "Leland", "Petaluma")
BASELINE_FONT: Final[str] = "Bravura"
PREFERRED_FONT: Final[str] = "Leipzig"


def bundled_resource_dir() -> Path:
    """
    Return the resource directory shipped inside the installed verovio package.

    Raises:
        ResourceError: If verovio is not installed or ships no data directory.
    """
    try:
        engine = _native.import_engine()
    except ImportError as exc:
        raise ResourceError("the verovio package is not installed") from exc

    data_dir = Path(engine.__file__).resolve().parent / BUNDLED_DATA_DIRNAME
    if not data_dir.is_dir():
        raise ResourceError(f"no bundled resources found at '{data_dir}'")
    return data_dir


def resolve_resource_path(path: str | os.PathLike[str]) -> Path:
    """
    Validate a caller-supplied resource directory. No staging happens; the
    caller keeps ownership of the directory.

    Raises:
        InitializationError: If the path does not name an existing directory.
    """
    resolved = Path(path)
    if not resolved.is_dir():
        raise InitializationError(f"resource path '{resolved}' is not a directory")
    return resolved


def available_fonts(resource_dir: str | os.PathLike[str]) -> list[str]:
    """List the music fonts present in a resource directory, baseline first."""
    root = Path(resource_dir)
    fonts = [name for name in KNOWN_FONTS if (root / f"{name}.xml").is_file()]
    if BASELINE_FONT in fonts:
        fonts.remove(BASELINE_FONT)
        fonts.insert(0, BASELINE_FONT)
    return fonts


def default_font(resource_dir: str | os.PathLike[str]) -> str:
    """Leipzig when the resource directory carries it, Bravura otherwise."""
    if PREFERRED_FONT in available_fonts(resource_dir):
        return PREFERRED_FONT
    return BASELINE_FONT


class StagedResources:
    """
    A private temporary copy of the bundled resources.

    The engine reads fonts lazily on load and render calls, so the copy must
    outlive the toolkit that points at it. Ownership belongs to that toolkit,
    which calls ``cleanup()`` after releasing its native handle.

    Usage on its own:

        with StagedResources() as staged:
            fonts = available_fonts(staged.path)
    """

    def __init__(self, source: str | os.PathLike[str] | None = None) -> None:
        source_dir = Path(source) if source is not None else bundled_resource_dir()
        if not source_dir.is_dir():
            raise ResourceError(f"resource source '{source_dir}' is not a directory")

        try:
            self._temp_dir = tempfile.TemporaryDirectory(prefix="engravekit_")
        except OSError as exc:
            raise ResourceError(f"failed to create temporary directory: {exc}") from exc

        try:
            shutil.copytree(source_dir, self._temp_dir.name, dirs_exist_ok=True)
        except OSError as exc:
            self._temp_dir.cleanup()
            raise ResourceError(f"failed to stage resources from '{source_dir}': {exc}") from exc

        self._path = Path(self._temp_dir.name)
        self._removed = False
        logger.debug("staged resources from %s to %s", source_dir, self._path)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def removed(self) -> bool:
        return self._removed

    def cleanup(self) -> None:
        """Remove the staged directory. Safe to call more than once."""
        if self._removed:
            return
        self._temp_dir.cleanup()
        self._removed = True
        logger.debug("removed staged resources at %s", self._path)

    def __enter__(self) -> "StagedResources":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.cleanup()
