"""
Input Discovery and Header Scanning

This module finds the point-cloud inputs of a retiling run and reads their
headers (bounds, point count, point format) without decoding any points:

input_dir/
├── 33-1-466-136-14.laz
├── 33-1-466-136-15.laz
├── notes.txt          <- skipped, unrecognized extension
└── ...

Inputs are sorted by file name and given stable integer IDs in that order.
The full list is fixed before any output is written.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Sequence

import laspy

from ..errors import InvalidInputError
from ..utils.las_io import read_header
from ..utils.logging import setup_logger

logger = setup_logger(__name__)

DEFAULT_EXTENSIONS = ("las", "laz")


@dataclass(frozen=True)
class Bounds3D:
    """Closed axis-aligned 3D bounding box.

    Attributes:
        min_x: Minimum X coordinate
        min_y: Minimum Y coordinate
        min_z: Minimum Z coordinate
        max_x: Maximum X coordinate
        max_y: Maximum Y coordinate
        max_z: Maximum Z coordinate
    """
    min_x: float
    min_y: float
    min_z: float
    max_x: float
    max_y: float
    max_z: float

    @classmethod
    def from_header(cls, header: laspy.LasHeader) -> "Bounds3D":
        mins = header.mins
        maxs = header.maxs
        return cls(
            float(mins[0]), float(mins[1]), float(mins[2]),
            float(maxs[0]), float(maxs[1]), float(maxs[2]),
        )

    def union(self, other: "Bounds3D") -> "Bounds3D":
        return Bounds3D(
            min_x=min(self.min_x, other.min_x),
            min_y=min(self.min_y, other.min_y),
            min_z=min(self.min_z, other.min_z),
            max_x=max(self.max_x, other.max_x),
            max_y=max(self.max_y, other.max_y),
            max_z=max(self.max_z, other.max_z),
        )

    @property
    def size(self) -> tuple:
        return (self.max_x - self.min_x, self.max_y - self.min_y, self.max_z - self.min_z)


@dataclass(frozen=True)
class InputFile:
    """A scanned input: identity, location and header metadata."""
    id: int
    path: Path
    bounds: Bounds3D
    point_count: int
    header: laspy.LasHeader = field(compare=False, hash=False, repr=False)

    @property
    def name(self) -> str:
        return self.path.name


def overall_bounds(inputs: Iterable[InputFile]) -> Bounds3D:
    """Union of the bounds of all inputs."""
    result = None
    for f in inputs:
        result = f.bounds if result is None else result.union(f.bounds)
    if result is None:
        raise InvalidInputError("At least one input file is required")
    return result


class HeaderScanner:
    """
    Discovers LAS/LAZ inputs in a directory and reads their headers.

    Every header is read before this returns, so a broken file anywhere in
    the directory aborts the run before any output is produced.
    """

    def __init__(self, extensions: Sequence[str] = DEFAULT_EXTENSIONS):
        """
        Args:
            extensions: Recognized file extensions, without dot, case-insensitive
        """
        self.extensions = {e.lower().lstrip(".") for e in extensions}

    def list_inputs(self, directory: str | Path) -> List[Path]:
        """Regular files in directory with a recognized extension, sorted by name."""
        directory = Path(directory)
        if not directory.is_dir():
            raise InvalidInputError(f"Input directory does not exist: {directory}")

        paths = [
            p for p in directory.iterdir()
            if p.is_file() and p.suffix.lower().lstrip(".") in self.extensions
        ]
        return sorted(paths, key=lambda p: p.name)

    def scan(self, directory: str | Path) -> List[InputFile]:
        """
        Scan a directory and return one InputFile per recognized file.

        Raises:
            InvalidInputError: Missing directory, no inputs, or an unreadable header
        """
        paths = self.list_inputs(directory)
        if not paths:
            raise InvalidInputError(
                f"No input files with extensions {sorted(self.extensions)} found in {directory}"
            )

        inputs: List[InputFile] = []
        for i, path in enumerate(paths):
            header = read_header(path)
            inputs.append(InputFile(
                id=i,
                path=path,
                bounds=Bounds3D.from_header(header),
                point_count=int(header.point_count),
                header=header,
            ))
            logger.debug(f"Scanned {path.name}: {int(header.point_count):,} points")

        self._log_summary(inputs)
        return inputs

    @staticmethod
    def _log_summary(inputs: List[InputFile]) -> None:
        total_points = sum(f.point_count for f in inputs)
        bounds = overall_bounds(inputs)
        sx, sy, sz = bounds.size
        logger.info(
            f"Found {len(inputs)} input files with a total {total_points / 1_000_000:.1f}M points."
        )
        logger.info(
            f"Overall bounds: min=({bounds.min_x:.3f}, {bounds.min_y:.3f}, {bounds.min_z:.3f}), "
            f"max=({bounds.max_x:.3f}, {bounds.max_y:.3f}, {bounds.max_z:.3f})"
        )
        logger.info(f"Overall size: x={sx:.3f}, y={sy:.3f}, z={sz:.3f}")
