"""
Output Tile Registry

Owns the state of every planned output tile for the duration of a run:

    PLANNED --first write--> OPENED --last contributor removed--> CLOSED
    PLANNED --last contributor removed--> CLOSED   (no file is created)

CLOSED is terminal. A tile's entry disappears from the registry as soon as
it closes, so an empty registry at the end of a run means every planned tile
was accounted for.

Not thread-safe: exactly one caller may own a registry at a time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Set

import laspy

from ..errors import InternalInvariantViolation
from ..utils.las_io import TileWriter
from ..utils.logging import setup_logger
from .planner import TileIndex

logger = setup_logger(__name__)

WriterFactory = Callable[[Path, laspy.LasHeader], TileWriter]


class TileState(Enum):
    PLANNED = "planned"
    OPENED = "opened"
    CLOSED = "closed"


@dataclass
class OutputTile:
    """Bookkeeping for one output tile.

    Attributes:
        index: Tile index (tx, ty)
        path: Deterministic output path for this tile
        contributors: IDs of inputs that have not finished yet
        writer: Open writer, None until the first write
        state: Lifecycle state
    """
    index: TileIndex
    path: Path
    contributors: Set[int] = field(default_factory=set)
    writer: Optional[TileWriter] = None
    state: TileState = TileState.PLANNED

    @property
    def points_written(self) -> int:
        return self.writer.points_written if self.writer is not None else 0


def tile_filename(tile_index: TileIndex, extension: str = "laz") -> str:
    tx, ty = tile_index
    return f"tile_{tx}_{ty}.{extension.lstrip('.')}"


class TileOutputRegistry:
    """
    Registry of output tiles keyed by tile index.

    Example:
        registry = TileOutputRegistry(out_dir, plan.contributors)
        writer = registry.get_or_create_writer((0, 0), input_file.header)
        writer.write(points)
        registry.remove_contributor((0, 0), input_file.id)
    """

    def __init__(
        self,
        output_dir: str | Path,
        contributors: Dict[TileIndex, Iterable[int]],
        *,
        extension: str = "laz",
        writer_factory: WriterFactory = TileWriter,
    ):
        """
        Args:
            output_dir: Directory receiving tile files (must exist before the first write)
            contributors: Planned tile -> contributing input IDs
            extension: Output file extension; laspy compresses when it is 'laz'
            writer_factory: Callable creating a writer for (path, header_template)
        """
        self.output_dir = Path(output_dir)
        self.extension = extension.lstrip(".")
        self._writer_factory = writer_factory
        self._tiles: Dict[TileIndex, OutputTile] = {
            index: OutputTile(index=index, path=self.tile_path(index), contributors=set(ids))
            for index, ids in contributors.items()
        }
        self.completed: List[Path] = []
        self.points_written = 0
        self.closed_empty = 0

    def __len__(self) -> int:
        return len(self._tiles)

    def __contains__(self, tile_index: object) -> bool:
        return tile_index in self._tiles

    def tile_path(self, tile_index: TileIndex) -> Path:
        """Output path of a tile; depends only on the index and the output directory."""
        return self.output_dir / tile_filename(tile_index, self.extension)

    def tile(self, tile_index: TileIndex) -> OutputTile:
        try:
            return self._tiles[tile_index]
        except KeyError:
            raise InternalInvariantViolation(
                f"Tile {tile_index} is not in the registry (never planned or already closed)"
            ) from None

    def indices(self) -> List[TileIndex]:
        return sorted(self._tiles)

    def open_tiles(self) -> List[OutputTile]:
        return [t for t in self._tiles.values() if t.state is TileState.OPENED]

    def get_or_create_writer(self, tile_index: TileIndex, header_template: laspy.LasHeader) -> TileWriter:
        """
        Return the writer of a tile, creating its file on first use.

        The new file's header is derived from header_template with counts
        and statistics cleared.
        """
        tile = self.tile(tile_index)
        if tile.state is TileState.OPENED:
            return tile.writer
        if tile.state is TileState.CLOSED:
            raise InternalInvariantViolation(f"Tile {tile_index} was reopened after closing")

        tile.writer = self._writer_factory(tile.path, header_template)
        tile.state = TileState.OPENED
        logger.debug(f"Opened tile {tile_index} -> {tile.path.name}")
        return tile.writer

    def remove_contributor(self, tile_index: TileIndex, input_id: int) -> bool:
        """
        Retire an input from a tile; close and drop the tile when none remain.

        Returns:
            True if the tile was closed by this call

        Raises:
            InternalInvariantViolation: Unknown tile, or input not a contributor
        """
        tile = self.tile(tile_index)
        if input_id not in tile.contributors:
            raise InternalInvariantViolation(
                f"Input {input_id} is not a contributor of tile {tile_index} "
                f"(remaining: {sorted(tile.contributors)})"
            )
        tile.contributors.discard(input_id)
        if tile.contributors:
            return False

        self._close(tile)
        del self._tiles[tile_index]
        return True

    def _close(self, tile: OutputTile) -> None:
        if tile.state is TileState.CLOSED:
            raise InternalInvariantViolation(f"Tile {tile.index} closed twice")

        if tile.state is TileState.OPENED:
            tile.writer.close()
            self.completed.append(tile.path)
            self.points_written += tile.points_written
            logger.debug(f"Closed tile {tile.index}: {tile.points_written:,} points")
        else:
            # Planned from bounds but never received a point
            self.closed_empty += 1
            logger.debug(f"Tile {tile.index} received no points; no file created")
        tile.state = TileState.CLOSED

    def abort(self, delete_incomplete: bool = False) -> List[Path]:
        """
        Release every open writer after a failed run.

        Tiles that were still open are incomplete: other inputs had yet to
        contribute. They are kept on disk unless delete_incomplete is set.

        Returns:
            Paths of the incomplete tiles
        """
        incomplete = []
        for tile in self.open_tiles():
            incomplete.append(tile.path)
            try:
                tile.writer.close()
            except Exception as e:
                logger.warning(f"Could not close incomplete tile {tile.path}: {e}")
            tile.state = TileState.CLOSED
            if delete_incomplete:
                tile.path.unlink(missing_ok=True)
        self._tiles.clear()

        if incomplete:
            action = "Deleted" if delete_incomplete else "Left"
            logger.warning(f"{action} {len(incomplete)} incomplete tile(s) after failure:")
            for p in incomplete:
                logger.warning(f"  {p}")
        return incomplete
