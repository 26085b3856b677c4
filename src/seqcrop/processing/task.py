"""Background execution of a render with a progress channel and cancellation."""

from __future__ import annotations

import concurrent.futures as futures
import queue
import threading
from collections.abc import Iterator

from ..core.types import RenderJob
from .render import RenderResult, SequenceRenderer


class RenderTask:
    """Runs one job on a worker thread.

    Progress fractions are pushed onto ``progress`` as the renderer reports
    them; the caller drains it from its own thread. The result, or the
    exception that ended the job, comes back through the future.
    """

    def __init__(self, job: RenderJob, renderer: SequenceRenderer | None = None) -> None:
        self.job = job
        self.renderer = renderer or SequenceRenderer()
        self.progress: queue.Queue[float] = queue.Queue()
        self.future: futures.Future[RenderResult] | None = None
        self._stop = threading.Event()

    def start(self) -> futures.Future[RenderResult]:
        if self.future is not None:
            raise RuntimeError("Render task already started")
        pool = futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="seqcrop-render")
        self.future = pool.submit(self.renderer.render, self.job, self.progress.put, self._stop)
        # The worker keeps running the submitted job after shutdown
        pool.shutdown(wait=False)
        return self.future

    def cancel(self) -> None:
        """Ask the render to stop before its next frame."""
        self._stop.set()

    @property
    def cancel_requested(self) -> bool:
        return self._stop.is_set()

    def drain(self) -> list[float]:
        """Return the progress values queued since the last drain."""
        values: list[float] = []
        while True:
            try:
                values.append(self.progress.get_nowait())
            except queue.Empty:
                return values

    def iter_progress(self, poll_interval: float = 0.1) -> Iterator[float]:
        """Yield progress values until the job has ended and the queue is empty."""
        if self.future is None:
            raise RuntimeError("Render task not started")
        while True:
            try:
                yield self.progress.get(timeout=poll_interval)
            except queue.Empty:
                if self.future.done():
                    yield from self.drain()
                    return

    def result(self, timeout: float | None = None) -> RenderResult:
        if self.future is None:
            raise RuntimeError("Render task not started")
        return self.future.result(timeout=timeout)
