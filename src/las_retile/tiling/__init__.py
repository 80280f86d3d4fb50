"""
Tiling Module

Planning and streaming of the retiling pass:
- TilePlanner: header bounds -> tile/contributor plan
- TileOutputRegistry: lifecycle of output tile writers
- RetileEngine: batched streaming of inputs into tiles
"""

from .planner import (
    TileIndex,
    TilePlanner,
    RetilePlan,
    tile_index_for,
    tile_indices,
    validate_point_formats,
)
from .registry import TileOutputRegistry, OutputTile, TileState, tile_filename
from .engine import RetileEngine, RetileSummary, retile_directory, split_runs

__all__ = [
    "TileIndex",
    "TilePlanner",
    "RetilePlan",
    "tile_index_for",
    "tile_indices",
    "validate_point_formats",
    "TileOutputRegistry",
    "OutputTile",
    "TileState",
    "tile_filename",
    "RetileEngine",
    "RetileSummary",
    "retile_directory",
    "split_runs",
]
