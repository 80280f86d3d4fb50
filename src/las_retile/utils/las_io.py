"""
LAS/LAZ Reading and Writing

Thin wrappers around laspy that give the retiling engine exactly what it
needs from the point-cloud format:

- LasInputReader: header access plus batch reads of raw point records
- TileWriter: sequential appends to one output tile, with an explicit close

Point records are passed through untouched; only x/y/z are ever looked at.
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Optional

import laspy
import numpy as np

from ..errors import InternalInvariantViolation, InvalidInputError, RetileIOError
from .logging import setup_logger

logger = setup_logger(__name__)


def read_header(path: str | Path) -> laspy.LasHeader:
    """
    Read only the header of a LAS/LAZ file.

    Raises:
        InvalidInputError: If the file cannot be opened or its header is corrupt
    """
    try:
        with laspy.open(str(path)) as reader:
            return reader.header
    except Exception as e:
        # Truncated headers surface as struct/EOF errors, not only LaspyException
        raise InvalidInputError(f"Cannot read header of {path}: {e}") from e


def cleared_header(template: laspy.LasHeader) -> laspy.LasHeader:
    """
    Derive an output header from a template with counts and statistics cleared.

    Scales, offsets, point format, VLRs (CRS included) are kept; the point
    count, per-return counts and bounds are reset because the new file's
    content is not known yet. laspy fills them in again on close.
    """
    header = copy.deepcopy(template)
    header.partial_reset()
    return header


def batch_capacity(point_format: laspy.PointFormat, memory_bytes: int) -> int:
    """Number of point records that fit in the given memory budget (at least 1)."""
    record_size = max(1, int(point_format.size))
    return max(1, int(memory_bytes) // record_size)


class LasInputReader:
    """
    Streaming reader over a single LAS/LAZ file.

    Use as a context manager; each read_batch() call decodes at most n
    points and returns an empty record once the file is exhausted.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._reader: Optional[laspy.LasReader] = None

    def __enter__(self) -> "LasInputReader":
        try:
            self._reader = laspy.open(str(self.path))
        except (OSError, laspy.LaspyException, ValueError) as e:
            raise RetileIOError(f"Cannot open {self.path} for reading: {e}") from e
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def header(self) -> laspy.LasHeader:
        if self._reader is None:
            raise RuntimeError(f"Reader for {self.path} is not open")
        return self._reader.header

    def read_batch(self, n: int) -> laspy.ScaleAwarePointRecord:
        """Decode up to n points; a zero-length record signals exhaustion."""
        if self._reader is None:
            raise RuntimeError(f"Reader for {self.path} is not open")
        try:
            return self._reader.read_points(int(n))
        except (OSError, laspy.LaspyException, ValueError) as e:
            raise RetileIOError(f"Failed reading points from {self.path}: {e}") from e

    def close(self) -> None:
        if self._reader is not None:
            self._reader.close()
            self._reader = None


class TileWriter:
    """
    Append-only writer for one output tile.

    Attributes:
        path: Output file path (compression follows the extension)
        header: The cleared header the file was created with
        points_written: Number of points appended so far
    """

    def __init__(self, path: str | Path, header_template: laspy.LasHeader):
        self.path = Path(path)
        self.header = cleared_header(header_template)
        self.points_written = 0
        self._closed = False
        try:
            self._writer = laspy.open(str(self.path), mode="w", header=self.header)
        except (OSError, laspy.LaspyException, ValueError) as e:
            raise RetileIOError(f"Cannot create tile {self.path}: {e}") from e
        logger.debug(f"Opened tile writer {self.path}")

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_quantization(self, points: laspy.ScaleAwarePointRecord) -> None:
        # Raw integer coordinates are copied as-is; they only mean the same
        # position under the tile's own scale/offset.
        if not (np.array_equal(points.scales, self.header.scales)
                and np.array_equal(points.offsets, self.header.offsets)):
            raise InternalInvariantViolation(
                f"Points with scales {list(points.scales)} / offsets {list(points.offsets)} "
                f"cannot be copied into {self.path} (scales {list(self.header.scales)} / "
                f"offsets {list(self.header.offsets)})"
            )

    def write(self, points: laspy.ScaleAwarePointRecord) -> None:
        """Append points in the order given."""
        if self._closed:
            raise RetileIOError(f"Write to closed tile {self.path}")
        if len(points) == 0:
            return
        self._check_quantization(points)
        try:
            self._writer.write_points(points)
        except (OSError, laspy.LaspyException, ValueError) as e:
            raise RetileIOError(f"Failed writing {len(points)} points to {self.path}: {e}") from e
        self.points_written += len(points)

    def close(self) -> None:
        """Flush buffered points and finalize the header."""
        if self._closed:
            return
        self._closed = True
        try:
            self._writer.close()
        except (OSError, laspy.LaspyException, ValueError) as e:
            raise RetileIOError(f"Failed to close tile {self.path}: {e}") from e
        logger.debug(f"Closed tile {self.path} ({self.points_written:,} points)")
