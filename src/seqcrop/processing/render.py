"""
Render driver for seqcrop jobs.

Walks the job's frame range in order, runs every frame through the transform
pipeline and hands the result to one of two sinks:
- a PNG frame sequence, one file per rendered frame
- a single video track fed through an encoder session at a fixed frame rate

Per-frame failures (decode, crop geometry, PNG encode/write) are logged and
the frame is skipped. Setup failures and encoder session failures end the job.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from fractions import Fraction
from pathlib import Path

import numpy as np

from ..config import AppConfig, app_config
from ..core.errors import FrameError, SessionError, WritePermissionError
from ..core.naming import frame_file_name, output_stem, video_file_name
from ..core.types import RenderJob
from ..output.logger import SimpleLogger
from ..utils.path import ensure_output_directory
from .encoder import EncoderSession, SessionFactory, open_ffmpeg_session
from .image import decode_image, resolve_frame_timestamp, write_png
from .transform import FramePipeline, TimestampResolver

ProgressCallback = Callable[[float], None]
Decoder = Callable[[Path], np.ndarray]


@dataclass
class RenderResult:
    """Outcome of one render. ``progress`` is the last reported fraction."""

    requested: int
    output_paths: list[Path] = field(default_factory=list)
    rendered: int = 0
    skipped: int = 0
    cancelled: bool = False
    bytes_written: int = 0

    @property
    def progress(self) -> float:
        return self.rendered / self.requested if self.requested else 0.0


class SequenceRenderer:
    """Runs :class:`RenderJob` snapshots against the frame or video sink.

    Args:
        config: Render, overlay and catalog settings.
        logger: Destination for skip and status messages.
        decoder: Loads one input frame as a BGR raster.
        session_factory: Opens the encoder session for video jobs.
        timestamp_resolver: Capture time lookup for the date/time overlay.
        sleep: Used between encoder readiness polls.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        logger: SimpleLogger | None = None,
        decoder: Decoder = decode_image,
        session_factory: SessionFactory = open_ffmpeg_session,
        timestamp_resolver: TimestampResolver = resolve_frame_timestamp,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config or app_config
        self.logger = logger or SimpleLogger(quiet=True)
        self.decoder = decoder
        self.session_factory = session_factory
        self.timestamp_resolver = timestamp_resolver
        self.sleep = sleep

    def render(
        self,
        job: RenderJob,
        progress: ProgressCallback | None = None,
        stop_event: threading.Event | None = None,
    ) -> RenderResult:
        """Render ``job`` with the sink its output format selects."""
        if job.spec.format.is_video:
            return self.render_video(job, progress, stop_event)
        return self.render_frame_sequence(job, progress, stop_event)

    # ---------------
    # Shared helpers
    # ---------------
    def _pipeline(self, job: RenderJob) -> FramePipeline:
        return FramePipeline(
            job.crop,
            job.spec,
            job.numbering_width,
            overlay_settings=self.config.overlay,
            timestamp_resolver=self.timestamp_resolver,
        )

    @staticmethod
    def _stem(job: RenderJob) -> str:
        return output_stem(
            job.source_name,
            job.aspect,
            job.spec.resolution,
            job.in_point,
            job.out_point,
            job.numbering_width,
            job.spec.overlays,
        )

    def _produce(self, job: RenderJob, pipeline: FramePipeline, index: int) -> np.ndarray | None:
        """Decode and transform one frame, or None when it has to be skipped."""
        frame = job.catalog[index]
        try:
            return pipeline.apply(self.decoder(frame.path), frame)
        except FrameError as e:
            self.logger.frame_skipped(index, str(e))
            return None

    @staticmethod
    def _stopped(stop_event: threading.Event | None) -> bool:
        return stop_event is not None and stop_event.is_set()

    # ---------------
    # Frame sequence sink
    # ---------------
    def render_frame_sequence(
        self,
        job: RenderJob,
        progress: ProgressCallback | None = None,
        stop_event: threading.Event | None = None,
    ) -> RenderResult:
        """Write one lossless PNG per rendered frame into ``job.destination``.

        Raises:
            WritePermissionError: When the destination cannot be created or
            written to.
        """
        ensure_output_directory(job.destination)
        pipeline = self._pipeline(job)
        stem = self._stem(job)
        result = RenderResult(requested=job.frame_count)

        for index in job.indices:
            if self._stopped(stop_event):
                result.cancelled = True
                self.logger.warning(f"render cancelled after {result.rendered} of {result.requested} frames")
                break

            image = self._produce(job, pipeline, index)
            if image is None:
                result.skipped += 1
                continue

            path = job.destination / frame_file_name(stem, index, job.numbering_width)
            try:
                result.bytes_written += write_png(path, image)
            except FrameError as e:
                self.logger.frame_skipped(index, str(e))
                result.skipped += 1
                continue

            result.rendered += 1
            result.output_paths.append(path)
            self.logger.debug(f"wrote {path.name}")
            if progress is not None:
                progress(result.progress)

        if not result.cancelled:
            self.logger.success(
                f"{result.rendered}/{result.requested} frames written to {job.destination}"
                + (f" ({result.skipped} skipped)" if result.skipped else "")
            )
        return result

    # ---------------
    # Video sink
    # ---------------
    def _prepare_video_path(self, job: RenderJob) -> Path:
        ensure_output_directory(job.destination)
        out_path = job.destination / video_file_name(self._stem(job), job.spec.format)
        if out_path.exists():
            try:
                out_path.unlink()
            except OSError as e:
                raise WritePermissionError(f"Cannot replace existing output {out_path}: {e}") from e
        return out_path

    def _wait_until_ready(self, session: EncoderSession, stop_event: threading.Event | None) -> bool:
        """Poll the session until it takes more data. False when cancelled."""
        interval = self.config.render.readiness_poll_interval
        while not session.is_ready_for_more_data():
            if self._stopped(stop_event):
                return False
            self.sleep(interval)
        return True

    def render_video(
        self,
        job: RenderJob,
        progress: ProgressCallback | None = None,
        stop_event: threading.Event | None = None,
    ) -> RenderResult:
        """Encode the range into one video file at the configured frame rate.

        Presentation times count appended frames only, so skipped frames
        leave no gap in the timeline.

        Raises:
            WritePermissionError: When the destination is not writable or an
            old output cannot be replaced.
            SessionError: When the encoder cannot be opened, fails while
            encoding, or leaves no output behind.
        """
        out_path = self._prepare_video_path(job)
        pipeline = self._pipeline(job)
        width, height = pipeline.output_size
        fps = self.config.render.frame_rate

        self.logger.info(f"opening {job.spec.format.value} session {width}x{height} @ {fps} fps -> {out_path.name}")
        session = self.session_factory(out_path, (width, height), job.spec.format, self.config.render, self.logger)

        result = RenderResult(requested=job.frame_count)
        appended = 0
        try:
            for index in job.indices:
                if self._stopped(stop_event):
                    result.cancelled = True
                    break

                image = self._produce(job, pipeline, index)
                if image is None:
                    result.skipped += 1
                    continue
                buffer = np.ascontiguousarray(image, dtype=np.uint8)

                if not self._wait_until_ready(session, stop_event):
                    result.cancelled = True
                    break

                if not session.append(buffer, Fraction(appended, fps)):
                    if session.error is not None:
                        raise session.error
                    self.logger.frame_skipped(index, "encoder did not accept the frame")
                    result.skipped += 1
                    continue

                appended += 1
                result.rendered += 1
                if progress is not None:
                    progress(result.progress)
        except BaseException:
            session.cancel()
            raise

        if result.cancelled:
            session.cancel()
            self.logger.warning(f"render cancelled after {result.rendered} of {result.requested} frames")
            return result

        self.logger.info(f"finalizing {out_path.name} ({appended} frames)")
        session.mark_finished()
        session.finish()

        if not out_path.exists():
            raise SessionError(f"Video file was not created at {out_path}")
        size = out_path.stat().st_size
        if size == 0:
            raise SessionError(f"Video file is empty: {out_path}")

        result.output_paths.append(out_path)
        result.bytes_written = size
        self.logger.success(f"{out_path.name} written ({size} bytes, {appended}/{result.requested} frames)")
        return result
