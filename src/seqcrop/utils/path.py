"""
Path and file system utilities for seqcrop.

This module handles all path-related functionality including:
- Listing the image files of a sequence directory
- Digit-run detection in file names
- Output directory creation and write probing
- Path containment checking
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from pathlib import Path

from ..config import WRITE_PROBE_NAME
from ..core.errors import WritePermissionError

_DIGIT_RUN = re.compile(r"(\d+)")


def is_path_inside(child: Path, parent: Path) -> bool:
    """Return True if `child` is the same as or nested under `parent`.

    Args:
        child (Path): Path to test for containment.
        parent (Path): Parent directory to test against.

    Returns:
        bool: True when `child` is inside `parent`, else False.
    """
    try:
        child.relative_to(parent)
        return True
    except ValueError:
        return False


def first_digit_run(stem: str) -> str | None:
    """Return the first maximal run of decimal digits in a name.

    Examples:
        "IMG_0042_v2" -> "0042"
        "0001" -> "0001"
        "cover" -> None
    """
    match = _DIGIT_RUN.search(stem)
    return match.group(1) if match else None


def infer_numbering_width(names: Iterable[str], default: int = 4) -> int:
    """Padding width for frame numbers, inferred from file stems.

    Takes the longest of the first digit runs across all names. Returns
    ``default`` when the input is empty or no name contains a digit.

    Args:
        names: File stems (extension already stripped).
        default: Width used when nothing matches.

    Returns:
        int: Number of digits to zero-pad frame numbers to.
    """
    lengths = [len(run) for run in (first_digit_run(n) for n in names) if run]
    return max(lengths) if lengths else default


def list_image_files(directory: Path, extensions: set[str]) -> list[Path]:
    """List the image files directly inside ``directory``, sorted by name.

    Sorting is plain string ordering of the file names, which is only the
    numeric order when all names share the same zero-padded width.

    Raises:
        OSError: When the directory does not exist or cannot be listed.
    """
    if not directory.is_dir():
        if not directory.exists():
            raise FileNotFoundError(f"Source directory not found: {directory}")
        raise NotADirectoryError(f"Source path is not a directory: {directory}")

    files = [p for p in directory.iterdir() if p.is_file() and p.suffix.lower() in extensions]
    files.sort(key=lambda p: p.name)
    return files


def probe_writable(directory: Path) -> None:
    """Write and remove a marker file to prove ``directory`` accepts writes.

    Raises:
        WritePermissionError: When the marker cannot be written or removed.
    """
    probe = directory / WRITE_PROBE_NAME
    try:
        probe.write_text("test", encoding="utf-8")
        probe.unlink()
    except OSError as e:
        raise WritePermissionError(f"Cannot write to output directory {directory}: {e}") from e


def ensure_output_directory(directory: Path) -> Path:
    """Create ``directory`` if needed and verify it is writable.

    Raises:
        WritePermissionError: When it cannot be created or written to.
    """
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise WritePermissionError(f"Cannot create output directory {directory}: {e}") from e
    probe_writable(directory)
    return directory
