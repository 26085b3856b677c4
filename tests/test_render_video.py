from __future__ import annotations

import sys
import threading
import time
from fractions import Fraction
from pathlib import Path

import cv2
import numpy as np
import pytest

from seqcrop.config import OutputFormat, OutputResolution
from seqcrop.core.errors import SessionError
from seqcrop.core.geometry import Rect
from seqcrop.core.session import Session
from seqcrop.output.logger import SimpleLogger
from seqcrop.processing import encoder
from seqcrop.processing.encoder import FFmpegCommandBuilder, FFmpegSession
from seqcrop.processing.render import SequenceRenderer
from seqcrop.tools.check import check_tools


class FakeSession:
    """In-memory encoder session recording what the renderer feeds it."""

    def __init__(self, path: Path, size, fmt, busy_polls: int = 0, reject_at=(), fail_at=None, write_output=True):
        self.path = path
        self.size = size
        self.fmt = fmt
        self.busy_polls = busy_polls
        self.reject_at = set(reject_at)
        self.fail_at = fail_at
        self.write_output = write_output
        self.frames: list[np.ndarray] = []
        self.timestamps: list[Fraction] = []
        self.calls = 0
        self.polls = 0
        self.finished = False
        self.cancelled = False
        self._error: SessionError | None = None

    @property
    def error(self):
        return self._error

    def is_ready_for_more_data(self) -> bool:
        self.polls += 1
        if self.busy_polls > 0:
            self.busy_polls -= 1
            return False
        return True

    def append(self, frame, timestamp) -> bool:
        call = self.calls
        self.calls += 1
        if call == self.fail_at:
            self._error = SessionError("encoder exploded")
            return False
        if call in self.reject_at:
            return False
        self.frames.append(frame)
        self.timestamps.append(timestamp)
        return True

    def mark_finished(self) -> None:
        self.finished = True

    def finish(self) -> None:
        if self.write_output:
            self.path.write_bytes(b"video")

    def cancel(self) -> None:
        self.cancelled = True


class FakeFactory:
    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.session: FakeSession | None = None

    def __call__(self, path, size, fmt, settings, logger):
        self.session = FakeSession(path, size, fmt, **self.kwargs)
        return self.session


def video_job(src: Path, out: Path, resolution=OutputResolution.NATIVE, fmt=OutputFormat.MP4):
    session = Session(logger=SimpleLogger(quiet=True))
    session.load(src)
    session.set_crop(Rect(0, 0, 32, 24))
    session.set_in_point(2)
    session.set_out_point(7)
    session.output_format = fmt
    session.output_resolution = resolution
    return session.snapshot(out)


def make_renderer(factory, sleeps: list[float] | None = None, logger: SimpleLogger | None = None):
    record = sleeps if sleeps is not None else []
    return SequenceRenderer(
        logger=logger or SimpleLogger(quiet=True),
        session_factory=factory,
        sleep=record.append,
    )


def test_timestamps_step_by_one_frame(make_sequence, tmp_path: Path):
    factory = FakeFactory()
    job = video_job(make_sequence(10), tmp_path / "out")

    result = make_renderer(factory).render(job)

    fake = factory.session
    assert fake.timestamps == [Fraction(i, 30) for i in range(6)]
    assert all(f.shape == (24, 32, 3) and f.dtype == np.uint8 and f.flags["C_CONTIGUOUS"] for f in fake.frames)
    assert fake.finished
    assert result.output_paths == [tmp_path / "out" / "shots_free_native_in0003-out0008.mp4"]
    assert result.rendered == 6


def test_fixed_resolution_sets_session_size(make_sequence, tmp_path: Path):
    factory = FakeFactory()
    job = video_job(make_sequence(10), tmp_path / "out", resolution=OutputResolution.HD, fmt=OutputFormat.PRORES)

    result = make_renderer(factory).render(job)

    assert factory.session.size == (1920, 1080)
    assert factory.session.frames[0].shape == (1080, 1920, 3)
    assert result.output_paths[0].suffix == ".mov"


def test_skipped_frame_leaves_no_gap(make_sequence, tmp_path: Path):
    src = make_sequence(10)
    (src / "0004.png").write_bytes(b"garbage")
    factory = FakeFactory()
    progress: list[float] = []

    result = make_renderer(factory).render(video_job(src, tmp_path / "out"), progress.append)

    assert factory.session.timestamps == [Fraction(i, 30) for i in range(5)]
    assert result.skipped == 1
    assert progress[-1] < 1.0


def test_waits_for_encoder_readiness(make_sequence, tmp_path: Path):
    factory = FakeFactory(busy_polls=3)
    sleeps: list[float] = []

    make_renderer(factory, sleeps).render(video_job(make_sequence(10), tmp_path / "out"))

    assert sleeps == [0.01, 0.01, 0.01]
    assert len(factory.session.frames) == 6


def test_rejected_append_without_error_skips_frame(make_sequence, tmp_path: Path):
    factory = FakeFactory(reject_at={1})
    logger = SimpleLogger(quiet=True)

    result = make_renderer(factory, logger=logger).render(video_job(make_sequence(10), tmp_path / "out"))

    assert result.rendered == 5
    assert result.skipped == 1
    assert factory.session.timestamps == [Fraction(i, 30) for i in range(5)]
    assert logger.warnings == 1


def test_append_with_session_error_is_fatal(make_sequence, tmp_path: Path):
    factory = FakeFactory(fail_at=2)

    with pytest.raises(SessionError, match="encoder exploded"):
        make_renderer(factory).render(video_job(make_sequence(10), tmp_path / "out"))

    assert factory.session.cancelled
    assert not factory.session.finished


def test_existing_output_is_replaced_before_open(make_sequence, tmp_path: Path):
    out = tmp_path / "out"
    out.mkdir()
    stale = out / "shots_free_native_in0003-out0008.mp4"
    stale.write_bytes(b"old")

    def failing_factory(path, size, fmt, settings, logger):
        assert not path.exists()
        raise SessionError("Failed to create video writer: no encoder")

    with pytest.raises(SessionError, match="Failed to create video writer"):
        make_renderer(failing_factory).render(video_job(make_sequence(10), out))
    assert not stale.exists()


def test_missing_output_after_finish_is_an_error(make_sequence, tmp_path: Path):
    factory = FakeFactory(write_output=False)
    with pytest.raises(SessionError, match="not created"):
        make_renderer(factory).render(video_job(make_sequence(10), tmp_path / "out"))


def test_cancel_during_readiness_wait(make_sequence, tmp_path: Path):
    factory = FakeFactory(busy_polls=10_000)
    stop = threading.Event()
    renderer = SequenceRenderer(logger=SimpleLogger(quiet=True), session_factory=factory, sleep=lambda s: stop.set())

    result = renderer.render(video_job(make_sequence(10), tmp_path / "out"), stop_event=stop)

    assert result.cancelled
    assert factory.session.cancelled
    assert factory.session.frames == []


# ---------------
# FFmpegSession without a running encoder
# ---------------
def test_command_reads_raw_bgr_from_stdin(tmp_path: Path):
    cmd = FFmpegCommandBuilder.build_video_cmd(tmp_path / "a.mp4", 1920, 1080, OutputFormat.MP4, 30)
    assert cmd[0] == "ffmpeg"
    assert cmd[cmd.index("-pix_fmt") + 1] == "bgr24"
    assert cmd[cmd.index("-s") + 1] == "1920x1080"
    assert cmd[cmd.index("-r") + 1] == "30"
    assert "libx264" in cmd
    assert cmd[-1] == str(tmp_path / "a.mp4")


def test_session_rejects_out_of_order_timestamp(tmp_path: Path):
    session = FFmpegSession(tmp_path / "a.mp4", (4, 2), OutputFormat.MP4)
    frame = np.zeros((2, 4, 3), dtype=np.uint8)
    assert session.append(frame, Fraction(0, 30))
    assert not session.append(frame, Fraction(2, 30))
    assert isinstance(session.error, SessionError)
    assert not session.append(frame, Fraction(1, 30))


def test_session_rejects_wrong_buffer_without_error(tmp_path: Path):
    session = FFmpegSession(tmp_path / "a.mp4", (4, 2), OutputFormat.MP4)
    assert not session.append(np.zeros((4, 4, 3), dtype=np.uint8), Fraction(0))
    assert session.error is None
    assert session.append(np.zeros((2, 4, 3), dtype=np.uint8), Fraction(0))


def test_session_reports_not_ready_when_queue_is_full(tmp_path: Path):
    session = FFmpegSession(tmp_path / "a.mp4", (4, 2), OutputFormat.MP4, queue_size=1)
    frame = np.zeros((2, 4, 3), dtype=np.uint8)
    assert session.is_ready_for_more_data()
    assert session.append(frame, Fraction(0))
    assert not session.is_ready_for_more_data()
    assert not session.append(frame, Fraction(1, 30))
    assert session.error is None
    assert session.presentation_times == [Fraction(0)]


def test_prores_needs_even_width(tmp_path: Path):
    session = FFmpegSession(tmp_path / "a.mov", (33, 24), OutputFormat.PRORES)
    with pytest.raises(SessionError, match="even frame width"):
        session.start()


# ---------------
# FFmpegSession against a stand-in encoder process
# ---------------
COPY_STDIN = "import shutil, sys\nwith open(sys.argv[1], 'wb') as f:\n    shutil.copyfileobj(sys.stdin.buffer, f)\n"
READ_THEN_FAIL = "import sys\nsys.stdin.buffer.read()\nsys.stderr.write('codec exploded')\nsys.exit(3)\n"
EXIT_AT_ONCE = "import sys\nsys.stderr.write('unknown option')\nsys.exit(3)\n"
WRITE_PARTIAL_THEN_HANG = (
    "import sys, time\nwith open(sys.argv[1], 'wb') as f:\n    f.write(b'partial')\ntime.sleep(30)\n"
)
NEVER_READ = "import time\ntime.sleep(30)\n"


@pytest.fixture
def stand_in(monkeypatch):
    """Run a Python one-liner instead of ffmpeg; it gets the output path as argv[1]."""

    def _use(script: str) -> None:
        monkeypatch.setattr(encoder, "which", lambda name: sys.executable)
        monkeypatch.setattr(
            FFmpegCommandBuilder,
            "build_video_cmd",
            staticmethod(lambda out_path, width, height, fmt, frame_rate: [sys.executable, "-c", script, str(out_path)]),
        )

    return _use


def wait_until(condition, timeout: float = 10.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return False


def test_session_pipes_frames_in_order(stand_in, tmp_path: Path):
    stand_in(COPY_STDIN)
    path = tmp_path / "a.mp4"
    session = FFmpegSession(path, (4, 2), OutputFormat.MP4)
    session.start()
    frames = [np.full((2, 4, 3), i, dtype=np.uint8) for i in range(3)]

    for i, frame in enumerate(frames):
        assert wait_until(session.is_ready_for_more_data)
        assert session.append(frame, Fraction(i, 30))
    session.finish()

    assert session.error is None
    assert path.read_bytes() == b"".join(f.tobytes() for f in frames)


def test_nonzero_exit_reports_code_and_stderr(stand_in, tmp_path: Path):
    stand_in(READ_THEN_FAIL)
    session = FFmpegSession(tmp_path / "a.mp4", (4, 2), OutputFormat.MP4)
    session.start()
    assert session.append(np.zeros((2, 4, 3), dtype=np.uint8), Fraction(0))

    with pytest.raises(SessionError, match="code 3: codec exploded"):
        session.finish()


def test_early_exit_is_seen_by_readiness_poll(stand_in, tmp_path: Path):
    stand_in(EXIT_AT_ONCE)
    session = FFmpegSession(tmp_path / "a.mp4", (4, 2), OutputFormat.MP4)
    session.start()

    assert wait_until(lambda: session.is_ready_for_more_data() and session.error is not None)
    assert "exited early with code 3" in str(session.error)
    assert "unknown option" in str(session.error)
    assert not session.append(np.zeros((2, 4, 3), dtype=np.uint8), Fraction(0))
    with pytest.raises(SessionError, match="exited early"):
        session.finish()


def test_cancel_kills_encoder_and_removes_partial_file(stand_in, tmp_path: Path):
    stand_in(WRITE_PARTIAL_THEN_HANG)
    path = tmp_path / "a.mp4"
    session = FFmpegSession(path, (4, 2), OutputFormat.MP4)
    session.start()
    assert wait_until(path.exists)

    started = time.monotonic()
    session.cancel()

    assert time.monotonic() - started < 10
    assert not path.exists()


def test_finish_gives_up_on_encoder_that_stops_reading(stand_in, tmp_path: Path):
    stand_in(NEVER_READ)
    # One frame is larger than a pipe buffer, so the writer thread blocks
    session = FFmpegSession(tmp_path / "a.mp4", (512, 512), OutputFormat.MP4, finish_timeout=1)
    session.start()
    assert session.append(np.zeros((512, 512, 3), dtype=np.uint8), Fraction(0))

    started = time.monotonic()
    with pytest.raises(SessionError, match="within 1s"):
        session.finish()
    assert time.monotonic() - started < 10


def test_mark_finished_gives_up_when_queue_stays_full(stand_in, tmp_path: Path):
    stand_in(NEVER_READ)
    session = FFmpegSession(tmp_path / "a.mp4", (512, 512), OutputFormat.MP4, queue_size=1, finish_timeout=1)
    session.start()
    frame = np.zeros((512, 512, 3), dtype=np.uint8)
    assert session.append(frame, Fraction(0))
    # Writer took the first frame and is stuck in the pipe write
    assert wait_until(session.is_ready_for_more_data)
    assert session.append(frame, Fraction(1, 30))

    session.mark_finished()

    assert session.error is not None
    assert "within 1s" in str(session.error)
    with pytest.raises(SessionError, match="within 1s"):
        session.finish()


# ---------------
# Real encode
# ---------------
ffmpeg_ok, _ = check_tools((OutputFormat.MP4,))


@pytest.mark.skipif(not ffmpeg_ok, reason="ffmpeg with libx264 not available")
def test_mp4_render_at_hd(make_sequence, tmp_path: Path):
    sessions: list[FFmpegSession] = []

    def factory(path, size, fmt, settings, logger):
        session = FFmpegSession.open(path, size, fmt, settings, logger)
        sessions.append(session)
        return session

    job = video_job(make_sequence(10), tmp_path / "out", resolution=OutputResolution.HD)
    result = make_renderer(factory).render(job)

    path = result.output_paths[0]
    assert path.exists()
    assert path.stat().st_size > 0
    assert sessions[0].presentation_times == [Fraction(i, 30) for i in range(6)]

    cap = cv2.VideoCapture(str(path))
    try:
        assert cap.isOpened()
        assert int(cap.get(cv2.CAP_PROP_FRAME_WIDTH)) == 1920
        assert int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT)) == 1080
        assert cap.get(cv2.CAP_PROP_FPS) == pytest.approx(30, abs=0.5)
    finally:
        cap.release()
