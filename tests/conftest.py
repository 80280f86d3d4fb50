"""
Shared fixtures: small synthetic LAS files written with laspy.

Every point carries a unique id in gps_time so tests can follow individual
points from their input to the tile they end up in.
"""

import sys
from pathlib import Path
from typing import Dict, Optional, Sequence

import laspy
import numpy as np
import pytest

sys.path.append(str(Path(__file__).parent.parent / "src"))


def write_cloud(
    path: Path,
    xyz: np.ndarray,
    *,
    ids: Optional[Sequence[float]] = None,
    point_format: int = 3,
    version: str = "1.2",
    scales=(0.001, 0.001, 0.001),
    offsets=(0.0, 0.0, 0.0),
) -> Path:
    xyz = np.asarray(xyz, dtype=np.float64).reshape(-1, 3)
    header = laspy.LasHeader(point_format=point_format, version=version)
    header.scales = np.array(scales, dtype=np.float64)
    header.offsets = np.array(offsets, dtype=np.float64)
    las = laspy.LasData(header)
    las.x = xyz[:, 0]
    las.y = xyz[:, 1]
    las.z = xyz[:, 2]
    if ids is None:
        ids = np.arange(len(xyz), dtype=np.float64)
    las.gps_time = np.asarray(ids, dtype=np.float64)
    las.intensity = np.arange(len(xyz), dtype=np.uint16)
    path.parent.mkdir(parents=True, exist_ok=True)
    las.write(str(path))
    return path


def read_tiles(directory: Path) -> Dict[str, laspy.LasData]:
    """All tile files in a directory, keyed by stem (e.g. 'tile_0_0')."""
    return {p.stem: laspy.read(str(p)) for p in sorted(Path(directory).glob("tile_*.*"))}


@pytest.fixture
def make_cloud():
    return write_cloud


@pytest.fixture
def load_tiles():
    return read_tiles


@pytest.fixture
def rng():
    return np.random.default_rng(0)
