"""
Tile Planning

Computes, from header bounds alone, which grid tiles each input may deposit
points into and, in reverse, which inputs contribute to each tile.

The plan is a conservative overapproximation: an input is registered against
every tile its bounding box touches, even if its actual points never land
there. Tiles planned this way simply close without producing a file.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Set, Tuple

import numpy as np

from ..errors import InvalidInputError
from ..preprocessing.header_scan import InputFile
from ..utils.logging import setup_logger

logger = setup_logger(__name__)

TileIndex = Tuple[int, int]


def validate_tile_size(tile_size: float) -> float:
    tile_size = float(tile_size)
    if not math.isfinite(tile_size) or tile_size <= 0:
        raise ValueError(f"tile_size must be a positive finite number, got {tile_size}")
    return tile_size


def tile_index_for(x: float, y: float, tile_size: float) -> TileIndex:
    """Grid tile of a single coordinate: (floor(x / tile_size), floor(y / tile_size))."""
    return (math.floor(x / tile_size), math.floor(y / tile_size))


def tile_indices(x: np.ndarray, y: np.ndarray, tile_size: float) -> Tuple[np.ndarray, np.ndarray]:
    """Vectorized tile_index_for over coordinate arrays.

    Returns:
        (tx, ty) int64 arrays of the same length as x and y
    """
    tx = np.floor(np.asarray(x, dtype=np.float64) / tile_size).astype(np.int64)
    ty = np.floor(np.asarray(y, dtype=np.float64) / tile_size).astype(np.int64)
    return tx, ty


@dataclass
class RetilePlan:
    """Result of planning.

    Attributes:
        tile_size: Grid cell size in data units
        tiles_by_input: Input ID -> tiles its bounds touch (row-major order)
        contributors: Tile -> IDs of the inputs planned into it
    """
    tile_size: float
    tiles_by_input: Dict[int, List[TileIndex]] = field(default_factory=dict)
    contributors: Dict[TileIndex, Set[int]] = field(default_factory=dict)

    @property
    def tile_count(self) -> int:
        return len(self.contributors)


class TilePlanner:
    """Plans the tile -> contributor mapping for a fixed tile size."""

    def __init__(self, tile_size: float):
        self.tile_size = validate_tile_size(tile_size)

    def tile_range(self, f: InputFile) -> Tuple[TileIndex, TileIndex]:
        """Inclusive (min_tile, max_tile) rectangle touched by an input's bounds."""
        b = f.bounds
        return (
            tile_index_for(b.min_x, b.min_y, self.tile_size),
            tile_index_for(b.max_x, b.max_y, self.tile_size),
        )

    def plan(self, inputs: Sequence[InputFile]) -> RetilePlan:
        plan = RetilePlan(tile_size=self.tile_size)
        for f in inputs:
            (min_tx, min_ty), (max_tx, max_ty) = self.tile_range(f)
            tiles = [
                (tx, ty)
                for ty in range(min_ty, max_ty + 1)
                for tx in range(min_tx, max_tx + 1)
            ]
            plan.tiles_by_input[f.id] = tiles
            for tile in tiles:
                plan.contributors.setdefault(tile, set()).add(f.id)

        logger.info(
            f"Output files to create: {plan.tile_count} "
            f"(tile size {self.tile_size:g}, {len(inputs)} inputs)"
        )
        return plan


def _format_signature(f: InputFile) -> Tuple[int, Tuple[str, ...]]:
    pf = f.header.point_format
    return (int(pf.id), tuple(pf.dimension_names))


def _quantization(f: InputFile) -> Tuple[Tuple[float, ...], Tuple[float, ...]]:
    h = f.header
    return (tuple(float(s) for s in h.scales), tuple(float(o) for o in h.offsets))


def validate_point_formats(inputs: Sequence[InputFile], plan: RetilePlan) -> None:
    """
    Check that inputs sharing a tile have the same point format and quantization.

    Point records are copied verbatim, raw integer coordinates included, into
    a tile whose header comes from its lowest-ID contributor. Re-quantizing
    to another scale/offset could move a point across a tile edge, so every
    contributor must match the reference exactly.

    Raises:
        InvalidInputError: Naming the first tile with mismatched contributors
    """
    by_id = {f.id: f for f in inputs}
    for tile, ids in plan.contributors.items():
        if len(ids) < 2:
            continue
        members = sorted(ids)
        reference = by_id[members[0]]
        for other_id in members[1:]:
            other = by_id[other_id]
            if _format_signature(other) != _format_signature(reference):
                raise InvalidInputError(
                    f"Inputs {reference.name} (point format {reference.header.point_format.id}) and "
                    f"{other.name} (point format {other.header.point_format.id}) share tile "
                    f"{tile} but have incompatible point formats"
                )
            if _quantization(other) != _quantization(reference):
                (ref_scales, ref_offsets), (scales, offsets) = _quantization(reference), _quantization(other)
                raise InvalidInputError(
                    f"Inputs {reference.name} (scales {ref_scales}, offsets {ref_offsets}) and "
                    f"{other.name} (scales {scales}, offsets {offsets}) share tile {tile} "
                    f"but have different scales/offsets"
                )
