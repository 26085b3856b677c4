"""
Console and file logging for seqcrop renders.
"""

from __future__ import annotations

import sys
import time
from datetime import datetime
from pathlib import Path
from typing import TextIO


class SimpleLogger:
    """Timestamped line logger writing to the console and an optional file.

    Args:
        log_file: Append every line here as well, after a session header.
        verbose: Emit ``debug`` lines.
        quiet: Suppress console output (the file still receives everything).
    """

    def __init__(self, log_file: Path | None = None, verbose: bool = False, quiet: bool = False) -> None:
        self.log_file = log_file
        self.verbose = verbose
        self.quiet = quiet
        self.start_time = time.time()
        self.warnings = 0
        self.errors = 0

        if self.log_file:
            self.log_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.log_file, "a", encoding="utf-8") as f:
                f.write(f"\n{'=' * 60}\n")
                f.write(f"Render session started: {datetime.now().isoformat()}\n")
                f.write(f"{'=' * 60}\n")

    def log(self, message: str, prefix: str = "", error: bool = False) -> None:
        """Write one line.

        Args:
            message: Text to log.
            prefix: Level tag such as [INFO] or [WARNING].
            error: Route the console copy to stderr.
        """
        timestamp = datetime.now().strftime("%H:%M:%S")
        formatted = f"[{timestamp}] {prefix} {message}" if prefix else f"[{timestamp}] {message}"

        if not self.quiet:
            stream: TextIO = sys.stderr if error else sys.stdout
            print(formatted, file=stream, flush=True)

        if self.log_file:
            try:
                with open(self.log_file, "a", encoding="utf-8") as f:
                    f.write(formatted + "\n")
            except OSError as e:
                # Keep rendering; report the broken log file once and stop using it
                print(f"[{timestamp}] [WARNING] log file disabled: {e}", file=sys.stderr, flush=True)
                self.log_file = None

    def debug(self, message: str) -> None:
        if self.verbose:
            self.log(message, prefix="[DEBUG]")

    def info(self, message: str) -> None:
        self.log(message, prefix="[INFO]")

    def success(self, message: str) -> None:
        self.log(message, prefix="[SUCCESS]")

    def warning(self, message: str) -> None:
        self.warnings += 1
        self.log(message, prefix="[WARNING]", error=True)

    def error(self, message: str) -> None:
        self.errors += 1
        self.log(message, prefix="[ERROR]", error=True)

    def frame_skipped(self, index: int, reason: str) -> None:
        """Record a frame dropped from the render (``index`` is 0-based)."""
        self.warning(f"frame {index + 1} skipped: {reason}")

    @property
    def elapsed(self) -> float:
        return time.time() - self.start_time
