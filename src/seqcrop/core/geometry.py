"""
Coordinate mapping between a letterboxed preview and image pixel space.

A preview shows the image fitted inside a container; the crop rectangle the
user drags lives in container coordinates and has to be carried over to the
source image's pixel grid (and back, to draw the selection). Everything here
is pure and works on floats; rounding to whole pixels happens in
:meth:`Rect.to_pixels` when a frame is actually sampled.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Size:
    """A width/height pair."""

    width: float
    height: float

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    @property
    def aspect(self) -> float:
        return self.width / self.height if self.height else 0.0


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle given by its origin corner and size."""

    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    @classmethod
    def zero(cls) -> Rect:
        return cls()

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    @property
    def min_x(self) -> float:
        return self.x

    @property
    def min_y(self) -> float:
        return self.y

    @property
    def max_x(self) -> float:
        return self.x + self.width

    @property
    def max_y(self) -> float:
        return self.y + self.height

    @property
    def mid_x(self) -> float:
        return self.x + self.width / 2

    @property
    def mid_y(self) -> float:
        return self.y + self.height / 2

    @property
    def size(self) -> Size:
        return Size(self.width, self.height)

    def intersection(self, other: Rect) -> Rect:
        """Overlap of two rects; the empty rect when they do not overlap."""
        x0 = max(self.min_x, other.min_x)
        y0 = max(self.min_y, other.min_y)
        x1 = min(self.max_x, other.max_x)
        y1 = min(self.max_y, other.max_y)
        if x1 <= x0 or y1 <= y0:
            return Rect.zero()
        return Rect(x0, y0, x1 - x0, y1 - y0)

    def contains(self, other: Rect, tolerance: float = 1e-6) -> bool:
        return (
            other.min_x >= self.min_x - tolerance
            and other.min_y >= self.min_y - tolerance
            and other.max_x <= self.max_x + tolerance
            and other.max_y <= self.max_y + tolerance
        )

    def to_pixels(self) -> tuple[int, int, int, int]:
        """Round to whole pixels as (x, y, width, height).

        Size is rounded on its own so every frame cut from the same rect has
        identical dimensions regardless of the origin's fractional part.
        """
        return round(self.x), round(self.y), round(self.width), round(self.height)


def display_rect(image: Size, container: Size) -> Rect:
    """Letterbox-fit ``image`` inside ``container``, centered.

    Args:
        image: Native image size.
        container: Size of the area the image is shown in.

    Returns:
        Rect: The region of the container the image occupies, or the empty
        rect when either size is degenerate.
    """
    if image.is_empty or container.is_empty:
        return Rect.zero()

    if image.aspect > container.aspect:
        # Image is wider than the container
        width = container.width
        height = container.width * image.height / image.width
    else:
        height = container.height
        width = container.height * image.width / image.height

    return Rect(
        (container.width - width) / 2,
        (container.height - height) / 2,
        width,
        height,
    )


def to_image_space(screen_rect: Rect, display_frame: Rect, image: Size) -> Rect:
    """Map a rect drawn over the display frame to image pixel coordinates."""
    if display_frame.is_empty or image.is_empty:
        return Rect.zero()
    scale_x = image.width / display_frame.width
    scale_y = image.height / display_frame.height
    return Rect(
        (screen_rect.x - display_frame.x) * scale_x,
        (screen_rect.y - display_frame.y) * scale_y,
        screen_rect.width * scale_x,
        screen_rect.height * scale_y,
    )


def to_screen_space(image_rect: Rect, display_frame: Rect, image: Size) -> Rect:
    """Inverse of :func:`to_image_space`."""
    if display_frame.is_empty or image.is_empty:
        return Rect.zero()
    scale_x = display_frame.width / image.width
    scale_y = display_frame.height / image.height
    return Rect(
        display_frame.x + image_rect.x * scale_x,
        display_frame.y + image_rect.y * scale_y,
        image_rect.width * scale_x,
        image_rect.height * scale_y,
    )


def constrain_to_aspect(raw: Rect, ratio: float | None, bounds: Rect) -> Rect:
    """Force a freehand drag rect to ``ratio`` (width / height) inside ``bounds``.

    The drag is clipped to ``bounds`` first; a drag entirely outside gives the
    empty rect. The shorter side then grows around the center until the ratio
    matches. If that overflows ``bounds`` the rect is first shifted back inside, then
    scaled down around its center, so the ratio survives the fit.
    """
    raw = raw.intersection(bounds)
    if ratio is None:
        return raw
    if raw.is_empty or ratio <= 0:
        return Rect.zero()

    width, height = raw.width, raw.height
    if width / height > ratio:
        # Too wide, grow height
        height = width / ratio
    else:
        width = height * ratio

    # Shrink uniformly when the grown rect cannot fit at all
    scale = min(1.0, bounds.width / width, bounds.height / height)
    width *= scale
    height *= scale

    x = raw.mid_x - width / 2
    y = raw.mid_y - height / 2
    x = min(max(x, bounds.min_x), bounds.max_x - width)
    y = min(max(y, bounds.min_y), bounds.max_y - height)
    return Rect(x, y, width, height)


def flip_vertical(rect: Rect, height: float) -> Rect:
    """Mirror a rect between bottom-origin and top-origin coordinates."""
    return Rect(rect.x, height - rect.y - rect.height, rect.width, rect.height)
