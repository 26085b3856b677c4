"""
Text overlays burned into rendered frames.

Both overlays draw white text with a dark outline on a translucent rounded
box. Rasters come in and go out as OpenCV BGR arrays; drawing happens on a
Pillow RGBA layer that is alpha-composited over the frame.
"""

from __future__ import annotations

from datetime import datetime
from functools import lru_cache
from pathlib import Path

import cv2
import numpy as np
from PIL import Image, ImageDraw, ImageFont

from ..config import OverlaySettings

TEXT_FILL = (255, 255, 255, 255)
STROKE_FILL = (0, 0, 0, 255)
MONOSPACE_FONTS = ("DejaVuSansMono.ttf", "Menlo.ttc", "cour.ttf")


@lru_cache(maxsize=32)
def load_font(size: int, font_path: Path | None = None) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """Return a font of ``size`` pixels, preferring a monospaced face."""
    if font_path is not None:
        return ImageFont.truetype(str(font_path), size)
    for name in MONOSPACE_FONTS:
        try:
            return ImageFont.truetype(name, size)
        except OSError:
            continue
    return ImageFont.load_default(size=size)


def format_timestamp(moment: datetime) -> str:
    """Format like ``Thursday, August 7, 2025 08:54PM``."""
    meridiem = "AM" if moment.hour < 12 else "PM"
    return f"{moment:%A}, {moment:%B} {moment.day}, {moment.year} {moment:%I}:{moment:%M}{meridiem}"


def _draw_label(image: np.ndarray, text: str, font_size: int, settings: OverlaySettings, place) -> np.ndarray:
    """Composite one boxed label onto a BGR frame.

    ``place(frame_w, frame_h, text_w, text_h)`` returns the top-left corner of
    the text bounds.
    """
    h, w = image.shape[:2]
    font = load_font(max(1, font_size), settings.font_path)
    stroke = max(1, round(font_size * settings.stroke_ratio))

    base = Image.fromarray(cv2.cvtColor(image, cv2.COLOR_BGR2RGB)).convert("RGBA")
    layer = Image.new("RGBA", base.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(layer)

    left, top, right, bottom = draw.textbbox((0, 0), text, font=font, stroke_width=stroke)
    text_w, text_h = right - left, bottom - top
    x, y = place(w, h, text_w, text_h)

    padding = font_size * settings.padding_ratio
    box = (x - padding / 2, y - padding / 2, x + text_w + padding / 2, y + text_h + padding / 2)
    draw.rounded_rectangle(
        box,
        radius=padding * settings.corner_ratio,
        fill=(0, 0, 0, round(255 * settings.box_opacity)),
    )
    draw.text(
        (x - left, y - top),
        text,
        font=font,
        fill=TEXT_FILL,
        stroke_width=stroke,
        stroke_fill=STROKE_FILL,
    )

    out = Image.alpha_composite(base, layer).convert("RGB")
    return cv2.cvtColor(np.asarray(out), cv2.COLOR_RGB2BGR)


def draw_frame_number(image: np.ndarray, text: str, settings: OverlaySettings) -> np.ndarray:
    """Centered label whose top sits ``frame_number_top_ratio`` down the frame."""
    h = image.shape[0]
    font_size = round(h * settings.frame_number_font_ratio)

    def place(fw, fh, tw, th):
        return (fw - tw) / 2, fh * settings.frame_number_top_ratio

    return _draw_label(image, text, font_size, settings, place)


def draw_date_time(image: np.ndarray, moment: datetime | None, settings: OverlaySettings) -> np.ndarray:
    """Right-aligned capture time near the bottom edge. No timestamp, no label."""
    if moment is None:
        return image
    h = image.shape[0]
    font_size = round(h * settings.date_time_font_ratio)

    def place(fw, fh, tw, th):
        return fw - fw * settings.date_time_right_ratio - tw, fh - fh * settings.date_time_bottom_ratio - th

    return _draw_label(image, format_timestamp(moment), font_size, settings, place)
