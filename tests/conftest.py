from __future__ import annotations

from pathlib import Path

import cv2
import numpy as np
import pytest


def write_image(path: Path, array: np.ndarray) -> None:
    ok = cv2.imwrite(str(path), array)
    assert ok, f"failed to write {path}"


def gradient_frame(width: int, height: int, seed: int = 0) -> np.ndarray:
    """BGR frame whose rows are distinguishable (row r has blue value r % 256)."""
    img = np.zeros((height, width, 3), dtype=np.uint8)
    img[:, :, 0] = (np.arange(height, dtype=np.uint16)[:, None] % 256).astype(np.uint8)
    img[:, :, 1] = seed % 256
    img[:, :, 2] = 128
    return img


@pytest.fixture
def make_sequence(tmp_path: Path):
    """Factory writing ``count`` PNG frames named ``0000.png``, ``0001.png``..."""

    def _make(count: int = 10, width: int = 64, height: int = 48, name: str = "shots", digits: int = 4) -> Path:
        directory = tmp_path / name
        directory.mkdir()
        for i in range(count):
            write_image(directory / f"{i:0{digits}d}.png", gradient_frame(width, height, seed=i))
        return directory

    return _make
