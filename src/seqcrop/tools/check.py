"""
External tool validation utilities for seqcrop.

Video renders shell out to ffmpeg; these checks let the CLI fail early with a
clear message instead of at encoder session open.
"""

from __future__ import annotations

from shutil import which

from ..config import OutputFormat
from ..utils.subprocess import run_subprocess

REQUIRED_ENCODERS = {
    OutputFormat.MP4: "libx264",
    OutputFormat.PRORES: "prores_ks",
}


def list_ffmpeg_encoders() -> set[str]:
    """Names of the video encoders the local ffmpeg build provides."""
    code, output = run_subprocess(["ffmpeg", "-hide_banner", "-encoders"], timeout=30)
    if code != 0:
        return set()
    names = set()
    for line in output.splitlines():
        parts = line.split()
        # Encoder rows look like " V....D libx264   libx264 H.264 ..."
        if len(parts) >= 2 and parts[0].startswith("V"):
            names.add(parts[1])
    return names


def check_tools(formats: tuple[OutputFormat, ...] = (OutputFormat.MP4, OutputFormat.PRORES)) -> tuple[bool, list[str]]:
    """Check availability of ffmpeg and the encoders behind the video formats.

    Returns:
        Tuple[bool, List[str]]: (all_ok, problems). If `all_ok` is False, problems lists the issues.
    """
    problems: list[str] = []
    if which("ffmpeg") is None:
        problems.append("ffmpeg not found in PATH")
        return False, problems

    encoders = list_ffmpeg_encoders()
    for fmt in formats:
        needed = REQUIRED_ENCODERS.get(fmt)
        if needed and needed not in encoders:
            problems.append(f"ffmpeg lacks the {needed} encoder needed for {fmt.value} output")
    return (len(problems) == 0, problems)
