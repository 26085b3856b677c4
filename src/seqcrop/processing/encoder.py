"""
Video encoder session backed by an ffmpeg subprocess.

Frames are raw BGR24 buffers piped to ffmpeg's stdin at a fixed rate. A
bounded queue sits between the caller and a writer thread, so the session can
report "not ready" while ffmpeg is still chewing on earlier frames instead of
blocking the render loop inside a pipe write.
"""

from __future__ import annotations

import contextlib
import queue
import subprocess
import tempfile
import threading
from collections.abc import Callable
from fractions import Fraction
from pathlib import Path
from shutil import which
from typing import Protocol

import numpy as np

from ..config import OutputFormat, RenderSettings, app_config
from ..core.errors import SessionError
from ..output.logger import SimpleLogger
from ..utils.subprocess import pretty_command

_END_OF_TRACK = None
STDERR_TAIL_CHARS = 2000


class EncoderSession(Protocol):
    """What the video sink needs from an encoder."""

    @property
    def error(self) -> SessionError | None: ...

    def is_ready_for_more_data(self) -> bool: ...

    def append(self, frame: np.ndarray, timestamp: Fraction) -> bool: ...

    def mark_finished(self) -> None: ...

    def finish(self) -> None: ...

    def cancel(self) -> None: ...


SessionFactory = Callable[[Path, tuple[int, int], OutputFormat, RenderSettings, SimpleLogger], EncoderSession]


class FFmpegCommandBuilder:
    """Builder class for constructing FFmpeg commands."""

    @staticmethod
    def build_video_cmd(out_path: Path, width: int, height: int, fmt: OutputFormat, frame_rate: int) -> list[str]:
        """Create an ffmpeg command reading raw BGR24 frames from stdin."""
        base = [
            "ffmpeg",
            "-hide_banner",
            "-loglevel", "error",
            "-y",
            "-f", "rawvideo",
            "-pix_fmt", "bgr24",
            "-s", f"{width}x{height}",
            "-r", str(frame_rate),
            "-i", "pipe:0",
            "-an",
        ]
        return base + fmt.video_codec_args(width, height) + [str(out_path)]


class FFmpegSession:
    """One output file, one video track.

    Presentation times must start at zero and advance by exactly one frame
    period per appended frame; ffmpeg stamps frames by arrival order at the
    fixed input rate, so anything else would desynchronize the file.
    """

    def __init__(
        self,
        output_path: Path,
        size: tuple[int, int],
        fmt: OutputFormat,
        frame_rate: int = 30,
        queue_size: int = 8,
        finish_timeout: int | None = None,
        logger: SimpleLogger | None = None,
    ) -> None:
        self.output_path = output_path
        self.size = size
        self.fmt = fmt
        self.frame_rate = frame_rate
        self.finish_timeout = finish_timeout
        self.logger = logger or SimpleLogger(quiet=True)
        self.presentation_times: list[Fraction] = []

        self._queue: queue.Queue[bytes | None] = queue.Queue(maxsize=queue_size)
        self._lock = threading.Lock()
        self._error: SessionError | None = None
        self._finished = False
        self._proc: subprocess.Popen | None = None
        self._writer: threading.Thread | None = None
        self._stderr_file = None

    @classmethod
    def open(
        cls,
        output_path: Path,
        size: tuple[int, int],
        fmt: OutputFormat,
        settings: RenderSettings | None = None,
        logger: SimpleLogger | None = None,
    ) -> FFmpegSession:
        """Start ffmpeg for ``output_path``.

        Raises:
            SessionError: When the profile cannot encode at ``size`` or
            ffmpeg cannot be started.
        """
        settings = settings or app_config.render
        session = cls(
            output_path,
            size,
            fmt,
            frame_rate=settings.frame_rate,
            queue_size=settings.encoder_queue_size,
            finish_timeout=settings.finish_timeout_sec,
            logger=logger,
        )
        session.start()
        return session

    # ---------------
    # Lifecycle
    # ---------------
    def start(self) -> None:
        width, height = self.size
        if not self.fmt.is_video:
            raise SessionError(f"{self.fmt.value} is not a video format")
        if width <= 0 or height <= 0:
            raise SessionError(f"Invalid video size {width}x{height}")
        if self.fmt == OutputFormat.PRORES and width % 2:
            raise SessionError(f"ProRes 422 requires an even frame width, got {width}")
        if which("ffmpeg") is None:
            raise SessionError("Failed to create video writer: ffmpeg not found in PATH")

        cmd = FFmpegCommandBuilder.build_video_cmd(self.output_path, width, height, self.fmt, self.frame_rate)
        self.logger.debug(f"[ffmpeg] {pretty_command(cmd)}")

        # stderr goes to a file so a chatty encoder cannot fill a pipe and stall
        self._stderr_file = tempfile.TemporaryFile()
        try:
            self._proc = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.DEVNULL,
                stderr=self._stderr_file,
            )
        except OSError as e:
            self._stderr_file.close()
            raise SessionError(f"Failed to create video writer: {e}") from e

        self._writer = threading.Thread(target=self._drain, name="ffmpeg-writer", daemon=True)
        self._writer.start()

    @property
    def error(self) -> SessionError | None:
        return self._error

    def _fail(self, message: str) -> None:
        with self._lock:
            if self._error is None:
                self._error = SessionError(message)

    def _stderr_tail(self) -> str:
        if self._stderr_file is None or self._stderr_file.closed:
            return ""
        self._stderr_file.seek(0)
        text = self._stderr_file.read().decode(errors="replace").strip()
        return text[-STDERR_TAIL_CHARS:]

    def _drain(self) -> None:
        """Writer thread: move queued buffers into ffmpeg's stdin."""
        stdin = self._proc.stdin if self._proc is not None else None
        if stdin is None:
            return
        while True:
            item = self._queue.get()
            if item is _END_OF_TRACK:
                return
            if self._error is not None:
                continue
            try:
                stdin.write(item)
            except OSError as e:
                self._fail(f"ffmpeg stopped accepting frames ({e}): {self._stderr_tail()}")

    # ---------------
    # Track API
    # ---------------
    def is_ready_for_more_data(self) -> bool:
        """True when ``append`` will not be refused for lack of capacity.

        A failed or finished session reports ready so callers waiting on it
        reach ``append`` and see the error instead of waiting forever.
        """
        if self._error is not None or self._finished:
            return True
        if self._proc is not None and self._proc.poll() is not None:
            self._fail(f"ffmpeg exited early with code {self._proc.returncode}: {self._stderr_tail()}")
            return True
        return not self._queue.full()

    def append(self, frame: np.ndarray, timestamp: Fraction) -> bool:
        """Queue one frame at ``timestamp`` seconds.

        Returns False when the frame was not accepted. ``error`` is set when
        the refusal is fatal for the session; otherwise only this frame was
        rejected.
        """
        if self._error is not None:
            return False
        if self._finished:
            self._fail("Cannot append after the video track was marked finished")
            return False

        expected = Fraction(len(self.presentation_times), self.frame_rate)
        if timestamp != expected:
            self._fail(f"Presentation time {timestamp} is out of sequence, expected {expected}")
            return False

        width, height = self.size
        if frame.dtype != np.uint8 or frame.shape != (height, width, 3):
            self.logger.warning(f"pixel buffer {frame.shape} does not match the {width}x{height} track")
            return False

        try:
            self._queue.put_nowait(np.ascontiguousarray(frame).tobytes())
        except queue.Full:
            return False
        self.presentation_times.append(timestamp)
        return True

    def mark_finished(self) -> None:
        """No more frames will be appended.

        Waits up to ``finish_timeout`` for room in the queue; a stalled
        encoder is killed and the session fails.
        """
        if self._finished:
            return
        self._finished = True
        try:
            self._queue.put(_END_OF_TRACK, timeout=self.finish_timeout)
        except queue.Full:
            self._fail(f"ffmpeg did not take queued frames within {self.finish_timeout}s: {self._stderr_tail()}")
            self._abort()

    def finish(self) -> None:
        """Flush queued frames, close the pipe and wait for ffmpeg to exit.

        Flushing and exiting are each bounded by ``finish_timeout``.

        Raises:
            SessionError: When the session failed at any point.
        """
        self.mark_finished()
        if self._writer is not None:
            self._writer.join(timeout=self.finish_timeout)
            if self._writer.is_alive():
                self._fail(f"ffmpeg did not take queued frames within {self.finish_timeout}s: {self._stderr_tail()}")
                self._abort()
                self._writer.join(timeout=5)
        if self._proc is not None:
            if self._proc.stdin is not None:
                try:
                    self._proc.stdin.close()
                except OSError as e:
                    self._fail(f"ffmpeg pipe could not be closed ({e}): {self._stderr_tail()}")
            try:
                code = self._proc.wait(timeout=self.finish_timeout)
            except subprocess.TimeoutExpired:
                self._proc.kill()
                self._proc.wait()
                self._fail(f"ffmpeg did not finish within {self.finish_timeout}s")
            else:
                if code != 0:
                    self._fail(f"ffmpeg exited with code {code}: {self._stderr_tail()}")
        self._close_stderr()
        if self._error is not None:
            raise self._error

    def cancel(self) -> None:
        """Abort the encode and remove the partial output."""
        self._finished = True
        self._abort()
        if self._writer is not None:
            self._writer.join(timeout=5)
        self._close_stderr()
        self.output_path.unlink(missing_ok=True)

    def _abort(self) -> None:
        """Kill ffmpeg and unblock the writer thread."""
        if self._proc is not None and self._proc.poll() is None:
            self._proc.kill()
            self._proc.wait()
        with contextlib.suppress(queue.Empty):
            while True:
                self._queue.get_nowait()
        self._queue.put(_END_OF_TRACK)

    def _close_stderr(self) -> None:
        if self._stderr_file is not None and not self._stderr_file.closed:
            self._stderr_file.close()


def open_ffmpeg_session(
    output_path: Path,
    size: tuple[int, int],
    fmt: OutputFormat,
    settings: RenderSettings,
    logger: SimpleLogger,
) -> EncoderSession:
    """Default :data:`SessionFactory`."""
    return FFmpegSession.open(output_path, size, fmt, settings, logger)
