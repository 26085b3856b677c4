"""
Image I/O for seqcrop.

This module handles:
- Decoding input frames to BGR rasters (OpenCV)
- Lossless PNG encoding of rendered frames
- Capture timestamp lookup (EXIF via Pillow, file times as fallback)
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import cv2
import numpy as np
from PIL import Image

from ..core.errors import DecodeError, EncodeError

# EXIF tags
EXIF_IFD_POINTER = 0x8769
EXIF_DATETIME_ORIGINAL = 0x9003
EXIF_DATE_FORMAT = "%Y:%m:%d %H:%M:%S"


def decode_image(path: Path) -> np.ndarray:
    """Load an image as a 3-channel BGR uint8 array.

    Raises:
        DecodeError: When OpenCV cannot read the file.
    """
    img = cv2.imread(str(path), cv2.IMREAD_COLOR)
    if img is None:
        raise DecodeError(f"Failed to load image at: {path}")
    return img


def encode_png(image: np.ndarray) -> bytes:
    """Encode a raster as PNG bytes.

    Raises:
        EncodeError: When OpenCV refuses the buffer.
    """
    ok, buf = cv2.imencode(".png", image)
    if not ok:
        raise EncodeError("Failed to convert image to PNG")
    return buf.tobytes()


def write_png(path: Path, image: np.ndarray) -> int:
    """Encode and write a frame, returning the number of bytes written.

    Raises:
        EncodeError: When encoding or writing fails.
    """
    data = encode_png(image)
    try:
        path.write_bytes(data)
    except OSError as e:
        raise EncodeError(f"Failed to write frame to {path}: {e}") from e
    return len(data)


def read_capture_time(path: Path) -> datetime | None:
    """Return the EXIF DateTimeOriginal of an image, or None when absent.

    Notes:
        - The tag lives in the Exif sub-IFD; Pillow exposes it through
          ``Exif.get_ifd``.
        - PNGs rarely carry EXIF; those fall through to None.
    """
    try:
        with Image.open(path) as im:
            exif = im.getexif()
            raw = exif.get_ifd(EXIF_IFD_POINTER).get(EXIF_DATETIME_ORIGINAL)
    except (OSError, SyntaxError, ValueError):
        # Unreadable or malformed EXIF block
        return None
    if not raw:
        return None
    if isinstance(raw, bytes):
        raw = raw.decode("ascii", errors="ignore")
    try:
        return datetime.strptime(str(raw).strip("\x00 "), EXIF_DATE_FORMAT)
    except ValueError:
        return None


def file_creation_time(path: Path) -> datetime | None:
    """Creation time of a file, or its modification time where the platform
    does not record one."""
    try:
        st = path.stat()
    except OSError:
        return None
    stamp = getattr(st, "st_birthtime", None)
    if stamp is None:
        stamp = st.st_mtime
    return datetime.fromtimestamp(stamp)


def resolve_frame_timestamp(path: Path) -> datetime | None:
    """Capture time for the date/time overlay: EXIF first, then file time."""
    return read_capture_time(path) or file_creation_time(path)
