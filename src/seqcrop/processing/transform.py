"""
Per-frame transform pipeline: crop, optional resize, optional overlays.

Each stage takes a BGR raster and returns a new one; disabled stages are not
run at all.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from pathlib import Path

import cv2
import numpy as np

from ..config import OutputSpec, OverlayKind, OverlaySettings, app_config
from ..core.errors import FrameGeometryError
from ..core.geometry import Rect, flip_vertical
from ..core.naming import frame_label
from ..core.types import Frame
from .image import resolve_frame_timestamp
from .overlay import draw_date_time, draw_frame_number

TimestampResolver = Callable[[Path], datetime | None]


def crop_raster(image: np.ndarray, crop: Rect) -> np.ndarray:
    """Cut ``crop`` out of a frame.

    The crop's y axis points up from the bottom edge; raster rows count down
    from the top, so the rect is flipped before slicing.

    Raises:
        FrameGeometryError: When the crop is empty or leaves the frame.
    """
    h, w = image.shape[:2]
    x, y, cw, ch = crop.to_pixels()
    if cw <= 0 or ch <= 0:
        raise FrameGeometryError(f"Empty crop rectangle {crop}")
    top = int(flip_vertical(Rect(x, y, cw, ch), h).y)
    if x < 0 or top < 0 or x + cw > w or top + ch > h:
        raise FrameGeometryError(f"Crop {cw}x{ch}+{x}+{y} does not fit a {w}x{h} frame")
    return image[top:top + ch, x:x + cw].copy()


def resize_raster(image: np.ndarray, size: tuple[int, int]) -> np.ndarray:
    """Stretch a raster to exactly ``size`` (width, height)."""
    width, height = size
    if image.shape[1] == width and image.shape[0] == height:
        return image
    return cv2.resize(image, (width, height), interpolation=cv2.INTER_LINEAR)


class FramePipeline:
    """Composes the stages configured for one render."""

    def __init__(
        self,
        crop: Rect,
        spec: OutputSpec,
        numbering_width: int,
        overlay_settings: OverlaySettings | None = None,
        timestamp_resolver: TimestampResolver = resolve_frame_timestamp,
    ) -> None:
        self.crop = crop
        self.spec = spec
        self.numbering_width = numbering_width
        self.overlay_settings = overlay_settings or app_config.overlay
        self.timestamp_resolver = timestamp_resolver

    @property
    def output_size(self) -> tuple[int, int]:
        """(width, height) of every frame this pipeline produces."""
        fixed = self.spec.resolution.size
        if fixed is not None:
            return fixed
        _, _, w, h = self.crop.to_pixels()
        return w, h

    def apply(self, image: np.ndarray, frame: Frame) -> np.ndarray:
        out = crop_raster(image, self.crop)
        fixed = self.spec.resolution.size
        if fixed is not None:
            out = resize_raster(out, fixed)
        if self.spec.has_overlay(OverlayKind.FRAME_NUMBER):
            out = draw_frame_number(out, frame_label(frame.index + 1, self.numbering_width), self.overlay_settings)
        if self.spec.has_overlay(OverlayKind.DATE_TIME):
            out = draw_date_time(out, self.timestamp_resolver(frame.path), self.overlay_settings)
        return out
