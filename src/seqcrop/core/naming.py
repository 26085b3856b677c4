"""
Output file naming for rendered sequences and videos.

Names are built from the source folder, the aspect and resolution labels, the
1-based in/out frame numbers and the active overlays, e.g.::

    holiday_16x9_HD_in0003-out0008_frameNum_frame_0005.png
    holiday_16x9_HD_in0003-out0008_frameNum.mp4
"""

from __future__ import annotations

from collections.abc import Iterable

from ..config import AspectRatio, OutputFormat, OutputResolution, OverlayKind, OVERLAY_ORDER


def zero_pad(value: int, width: int) -> str:
    """Format a non-negative number with at least ``width`` digits."""
    return f"{value:0{width}d}"


def frame_label(frame_number: int, width: int) -> str:
    """Text drawn by the frame number overlay."""
    return f"FRAME: {zero_pad(frame_number, width)}"


def output_stem(
    source_name: str,
    aspect: AspectRatio,
    resolution: OutputResolution,
    in_point: int,
    out_point: int,
    width: int,
    overlays: Iterable[OverlayKind] = (),
) -> str:
    """Shared stem of every output of one render.

    ``in_point`` and ``out_point`` are 0-based indices; the name carries them
    1-based.
    """
    active = set(overlays)
    tags = [kind.value for kind in OVERLAY_ORDER if kind in active]
    overlay_part = "_" + "_".join(tags) if tags else ""
    folder = source_name or "output"
    return (
        f"{folder}_{aspect.label}_{resolution.label}"
        f"_in{zero_pad(in_point + 1, width)}-out{zero_pad(out_point + 1, width)}"
        f"{overlay_part}"
    )


def frame_file_name(stem: str, index: int, width: int, fmt: OutputFormat = OutputFormat.IMAGE_SEQUENCE) -> str:
    """File name of one frame of a sequence render (``index`` is 0-based)."""
    return f"{stem}_frame_{zero_pad(index + 1, width)}.{fmt.extension}"


def video_file_name(stem: str, fmt: OutputFormat) -> str:
    """File name of a video render."""
    return f"{stem}.{fmt.extension}"
