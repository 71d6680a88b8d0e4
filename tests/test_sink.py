"""Unit tests for the file sink."""

from pathlib import Path

import pytest

from engravekit.errors import FileAccessError
from engravekit.sink import page_directory, page_file_name, write_pages, write_single


def test_page_directory_is_named_after_stem() -> None:
    assert page_directory(Path("out/score.svg")) == Path("out/score")


def test_page_file_name_is_zero_padded() -> None:
    assert page_file_name(7, ".svg") == "page-007.svg"
    assert page_file_name(1234, ".png") == "page-1234.png"


def test_write_single_text_and_bytes(tmp_path: Path) -> None:
    text_path = write_single(tmp_path / "a.svg", "<svg/>")
    bytes_path = write_single(tmp_path / "a.mid", b"MThd")
    assert text_path.read_text(encoding="utf-8") == "<svg/>"
    assert bytes_path.read_bytes() == b"MThd"


def test_write_single_into_missing_directory_raises(tmp_path: Path) -> None:
    target = tmp_path / "missing" / "a.svg"
    with pytest.raises(FileAccessError) as excinfo:
        write_single(target, "<svg/>")
    assert excinfo.value.path == target
    assert isinstance(excinfo.value.__cause__, OSError)


def test_write_pages_uses_real_page_numbers(tmp_path: Path) -> None:
    written = write_pages(tmp_path / "score.svg", [3, 4], ["<svg>3</svg>", "<svg>4</svg>"], ".svg")
    assert written == [tmp_path / "score" / "page-003.svg", tmp_path / "score" / "page-004.svg"]
    assert written[1].read_text(encoding="utf-8") == "<svg>4</svg>"


def test_write_pages_falls_back_to_default_suffix(tmp_path: Path) -> None:
    written = write_pages(tmp_path / "pages", [1], [b"\x89PNG"], ".png")
    assert written == [tmp_path / "pages" / "page-001.png"]


def test_write_pages_length_mismatch_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        write_pages(tmp_path / "score.svg", [1, 2], ["<svg/>"], ".svg")


def test_write_pages_directory_blocked_by_file(tmp_path: Path) -> None:
    (tmp_path / "score").write_text("in the way", encoding="utf-8")
    with pytest.raises(FileAccessError, match="could not create"):
        write_pages(tmp_path / "score.svg", [1], ["<svg/>"], ".svg")
