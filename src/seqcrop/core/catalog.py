"""Discovery of the input frames of a sequence directory."""

from __future__ import annotations

from pathlib import Path

from ..config import CatalogSettings, app_config
from ..utils.path import first_digit_run, infer_numbering_width, list_image_files
from .types import Frame, SequenceCatalog


def load_catalog(directory: Path, settings: CatalogSettings | None = None) -> SequenceCatalog:
    """Build the frame catalog of ``directory``.

    Args:
        directory: Folder holding the still images.
        settings: Extension allow-list and default padding width.

    Returns:
        SequenceCatalog: Frames in file-name order with the inferred
        numbering width.

    Raises:
        OSError: When the directory cannot be listed.
    """
    settings = settings or app_config.catalog
    paths = list_image_files(directory, settings.supported_image_exts)

    frames = tuple(
        Frame(index=i, path=p, digits=len(first_digit_run(p.stem) or ""))
        for i, p in enumerate(paths)
    )
    width = infer_numbering_width((p.stem for p in paths), default=settings.default_numbering_width)
    return SequenceCatalog(directory=directory, frames=frames, numbering_width=width)
