"""
Session state for one sequence: loaded catalog, cursor, in/out range, crop and
output options.

The session is the only mutable object in the render path. A render never
reads it directly; :meth:`Session.snapshot` copies what the job needs into an
immutable :class:`~seqcrop.core.types.RenderJob`.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import numpy as np

from ..config import AppConfig, AspectRatio, OutputFormat, OutputResolution, OutputSpec, OverlayKind, app_config
from ..output.logger import SimpleLogger
from ..processing.image import decode_image
from ..utils.path import probe_writable
from .catalog import load_catalog
from .errors import ConfigurationError, FrameError, WritePermissionError
from .geometry import Rect, Size, constrain_to_aspect, display_rect, to_image_space
from .types import RangeSelection, RenderJob, SequenceCatalog


class Session:
    """Range & crop model driven by a caller (the CLI, or a UI).

    Args:
        config: Catalog settings used by :meth:`load`.
        logger: Receives decode warnings for the current frame.
        decoder: Loads the frame under the cursor.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        logger: SimpleLogger | None = None,
        decoder: Callable[[Path], np.ndarray] = decode_image,
    ) -> None:
        self.config = config or app_config
        self.logger = logger or SimpleLogger(quiet=True)
        self.decoder = decoder

        self.source_directory: Path | None = None
        self.output_directory: Path | None = None
        self.catalog = SequenceCatalog.empty(self.config.catalog.default_numbering_width)
        self.cursor = 0
        self.current_image: np.ndarray | None = None
        self.selection = RangeSelection()

        self.crop = Rect.zero()
        self.aspect = AspectRatio.FREE
        self.output_format = OutputFormat.IMAGE_SEQUENCE
        self.output_resolution = OutputResolution.NATIVE
        self.overlays: set[OverlayKind] = set()

    # ---------------
    # Catalog and cursor
    # ---------------
    def load(self, directory: Path) -> SequenceCatalog:
        """Load the frames of ``directory`` and show the first one.

        Raises:
            OSError: When the directory cannot be listed.
        """
        self.catalog = load_catalog(directory, self.config.catalog)
        self.source_directory = directory
        self.cursor = 0
        self.selection.reset()
        self.current_image = None
        if not self.catalog.is_empty:
            self._decode_current()
        self.logger.info(
            f"loaded {self.catalog.count} frames from {directory} "
            f"(numbering width {self.catalog.numbering_width})"
        )
        return self.catalog

    def _decode_current(self) -> None:
        frame = self.catalog[self.cursor]
        try:
            self.current_image = self.decoder(frame.path)
        except FrameError as e:
            self.current_image = None
            self.logger.warning(f"cannot display frame {self.cursor + 1}: {e}")

    @property
    def count(self) -> int:
        return self.catalog.count

    def seek(self, index: int) -> bool:
        """Move the cursor to ``index``. Out-of-range indices are ignored."""
        if not 0 <= index < self.count:
            return False
        self.cursor = index
        self._decode_current()
        return True

    def next_frame(self) -> bool:
        return self.seek(self.cursor + 1)

    def previous_frame(self) -> bool:
        return self.seek(self.cursor - 1)

    # ---------------
    # In/out range
    # ---------------
    def _clamp(self, index: int) -> int:
        return min(max(index, 0), self.count - 1)

    @property
    def in_point(self) -> int:
        return self.selection.in_point

    @property
    def out_point(self) -> int | None:
        return self.selection.out_point

    @property
    def resolved_out_point(self) -> int:
        return self.selection.resolved_out_point(self.count)

    def set_in_point(self, index: int | None = None) -> None:
        """Mark the first frame of the range (the cursor when omitted).

        An in-point past the out-point drags the out-point along.
        """
        if self.count == 0:
            return
        value = self._clamp(self.cursor if index is None else index)
        self.selection.in_point = value
        if value > self.resolved_out_point:
            self.selection.out_point = value

    def set_out_point(self, index: int | None = None) -> None:
        """Mark the last frame of the range (the cursor when omitted).

        An out-point before the in-point drags the in-point along.
        """
        if self.count == 0:
            return
        value = self._clamp(self.cursor if index is None else index)
        self.selection.out_point = value
        if value < self.selection.in_point:
            self.selection.in_point = value

    def reset_range(self) -> None:
        self.selection.reset()

    # ---------------
    # Crop and output options
    # ---------------
    @property
    def image_size(self) -> Size | None:
        if self.current_image is None:
            return None
        h, w = self.current_image.shape[:2]
        return Size(w, h)

    def set_crop(self, rect: Rect) -> None:
        """Store a crop given in image space (y measured up from the bottom)."""
        self.crop = rect

    def crop_from_display(self, screen_rect: Rect, container: Size) -> Rect:
        """Map a rect dragged over a letterboxed preview to an image-space crop.

        ``screen_rect`` uses the preview's y-up convention: Y is measured up
        from the container's bottom edge, so the resulting crop keeps the
        image-space y-up convention without a flip. Top-down preview
        coordinates must be flipped with
        :func:`~seqcrop.core.geometry.flip_vertical` first.

        The drag is clipped to the displayed image and constrained to the
        session's aspect ratio before it is mapped.

        Raises:
            ConfigurationError: When no frame is loaded to map against.
        """
        image = self.image_size
        if image is None:
            raise ConfigurationError("Cannot map crop: no image loaded.")
        frame = display_rect(image, container)
        constrained = constrain_to_aspect(screen_rect, self.aspect.ratio, frame)
        self.crop = to_image_space(constrained, frame, image)
        return self.crop

    @property
    def output_spec(self) -> OutputSpec:
        return OutputSpec(
            format=self.output_format,
            resolution=self.output_resolution,
            overlays=frozenset(self.overlays),
        )

    def select_output_directory(self, directory: Path) -> Path:
        """Use ``directory`` for renders after proving it accepts writes.

        Raises:
            WritePermissionError: When the probe file cannot be written.
        """
        try:
            probe_writable(directory)
        except WritePermissionError:
            self.output_directory = None
            raise
        self.output_directory = directory
        return directory

    # ---------------
    # Render readiness
    # ---------------
    def is_renderable(self) -> bool:
        count = self.count
        if count == 0 or self.crop.is_empty:
            return False
        return 0 <= self.in_point <= self.resolved_out_point < count

    def validate(self, destination: Path | None = None) -> None:
        """Check the session can be rendered into ``destination``.

        Raises:
            ConfigurationError: With a message naming the first problem.
        """
        if self.source_directory is None:
            raise ConfigurationError("Cannot render: No source directory selected.")
        if (destination or self.output_directory) is None:
            raise ConfigurationError("Cannot render: No output directory selected.")
        if self.crop.is_empty:
            raise ConfigurationError("Cannot render: No crop area selected.")
        if self.count == 0:
            raise ConfigurationError("Cannot render: No images loaded.")
        if not self.is_renderable():
            raise ConfigurationError(
                f"Cannot render: In/Out points are invalid "
                f"(in: {self.in_point + 1}, out: {self.resolved_out_point + 1})."
            )

    def snapshot(self, destination: Path | None = None) -> RenderJob:
        """Freeze the current state into a job.

        Raises:
            ConfigurationError: When :meth:`validate` fails.
        """
        self.validate(destination)
        target = destination or self.output_directory
        source = self.source_directory
        if target is None or source is None:
            raise ConfigurationError("Cannot render: source and output directories must be selected.")
        return RenderJob(
            catalog=self.catalog,
            in_point=self.in_point,
            out_point=self.resolved_out_point,
            crop=self.crop,
            spec=self.output_spec,
            destination=target,
            aspect=self.aspect,
            source_name=source.name or "output",
        )
