"""File sink: writes render results to a single file or a page directory."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Final

from engravekit.errors import FileAccessError

logger = logging.getLogger(__name__)

PAGE_FILE_TEMPLATE: Final[str] = "page-{page:03d}{suffix}"


def page_directory(path: Path) -> Path:
    """``out/score.svg`` -> ``out/score``: the directory for paginated output."""
    return path.with_name(path.stem)


def page_file_name(page: int, suffix: str) -> str:
    return PAGE_FILE_TEMPLATE.format(page=page, suffix=suffix)


def write_single(path: Path, content: str | bytes) -> Path:
    """
    Write one text or binary result to ``path``.

    Raises:
        FileAccessError: If the file cannot be written.
    """
    try:
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
    except OSError as exc:
        raise FileAccessError(f"could not write '{path}': {exc}", path) from exc
    logger.debug("wrote %s", path)
    return path


def write_pages(
    path: Path,
    pages: Sequence[int],
    contents: Sequence[str] | Sequence[bytes],
    default_suffix: str,
) -> list[Path]:
    """
    Write one file per page into a directory named after ``path``'s stem.

    Files are named ``page-001.svg``, ``page-002.svg``, ... using the real
    page numbers, so a range starting at page 3 begins with ``page-003``.

    Raises:
        FileAccessError: If the directory or any page file cannot be written.
    """
    if len(pages) != len(contents):
        raise ValueError("pages and contents must have the same length")

    directory = page_directory(path)
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise FileAccessError(f"could not create '{directory}': {exc}", directory) from exc

    suffix = path.suffix or default_suffix
    return [
        write_single(directory / page_file_name(page, suffix), content)
        for page, content in zip(pages, contents)
    ]
