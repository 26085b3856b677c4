"""
Core data types for seqcrop.

These are the records the session owns and the render borrows: the frame
catalog, the in/out selection and the frozen job handed to a sink.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from ..config import AspectRatio, OutputSpec
from .geometry import Rect


@dataclass(frozen=True)
class Frame:
    """One input image, identified by its position in the sorted catalog."""

    index: int
    path: Path
    digits: int = 0  # length of the first digit run in the stem, 0 if none


@dataclass(frozen=True)
class SequenceCatalog:
    """An ordered, immutable set of frames loaded from one directory."""

    directory: Path | None
    frames: tuple[Frame, ...] = ()
    numbering_width: int = 4

    def __len__(self) -> int:
        return len(self.frames)

    def __getitem__(self, index: int) -> Frame:
        return self.frames[index]

    @property
    def count(self) -> int:
        return len(self.frames)

    @property
    def is_empty(self) -> bool:
        return not self.frames

    @classmethod
    def empty(cls, numbering_width: int = 4) -> SequenceCatalog:
        return cls(directory=None, frames=(), numbering_width=numbering_width)


@dataclass
class RangeSelection:
    """Inclusive in/out frame indices. ``out_point`` None means the last frame."""

    in_point: int = 0
    out_point: int | None = None

    def resolved_out_point(self, count: int) -> int:
        return self.out_point if self.out_point is not None else count - 1

    def reset(self) -> None:
        self.in_point = 0
        self.out_point = None


@dataclass(frozen=True)
class RenderJob:
    """Everything one render needs, copied out of the session at start.

    ``out_point`` is already resolved, so the job never looks back at the
    catalog size.
    """

    catalog: SequenceCatalog
    in_point: int
    out_point: int
    crop: Rect
    spec: OutputSpec
    destination: Path
    aspect: AspectRatio = AspectRatio.FREE
    source_name: str = "output"
    indices: tuple[int, ...] = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "indices", tuple(range(self.in_point, self.out_point + 1)))

    @property
    def frame_count(self) -> int:
        return len(self.indices)

    @property
    def numbering_width(self) -> int:
        return self.catalog.numbering_width
