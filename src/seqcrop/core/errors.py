"""Exception types shared by the session, the transform pipeline and the sinks."""

from __future__ import annotations


class SeqcropError(Exception):
    """Base class for seqcrop errors."""


class ConfigurationError(SeqcropError):
    """The render cannot start: missing directory, empty crop or bad range."""


class WritePermissionError(SeqcropError):
    """The output directory cannot be created or written to."""


class SessionError(SeqcropError):
    """The video encoder session failed. Fatal for the running job."""


class FrameError(SeqcropError):
    """A single frame could not be produced. The sinks skip it and continue."""

    def __init__(self, message: str, index: int | None = None) -> None:
        super().__init__(message)
        self.index = index


class DecodeError(FrameError):
    """An input image could not be decoded."""


class EncodeError(FrameError):
    """A rendered frame could not be encoded or written."""


class FrameGeometryError(FrameError):
    """The crop rectangle does not fit inside the frame."""
