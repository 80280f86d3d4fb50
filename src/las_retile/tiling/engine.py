"""
Retiling Engine

Streams every input once, in scan order, and redistributes its points into
grid-aligned output tiles:

1. pull a batch of at most BATCH_CAP points (bounded memory);
2. split the batch into maximal runs of consecutive points in the same tile;
3. append each run to its tile's writer (one registry lookup per run);
4. once the input is exhausted, retire it from every tile it was planned
   into, which closes tiles that have no contributors left.

With n_workers > 1, inputs are decoded by a pool of reader threads that hand
batches over a bounded queue to the calling thread, which remains the only
owner of the registry and of every writer.
"""

from __future__ import annotations

import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from multiprocessing import cpu_count
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set

import laspy
import numpy as np

from ..errors import InternalInvariantViolation, InvalidInputError, RetileIOError
from ..preprocessing.header_scan import HeaderScanner, InputFile
from ..preprocessing.overlap import validate_no_overlaps
from ..utils.config import AppConfig
from ..utils.las_io import LasInputReader, TileWriter, batch_capacity
from ..utils.logging import setup_logger
from .planner import RetilePlan, TileIndex, TilePlanner, tile_indices, validate_point_formats
from .registry import TileOutputRegistry, WriterFactory

logger = setup_logger(__name__)

# 200 MiB of buffered point records per batch
DEFAULT_BATCH_MEMORY_BYTES = 200 * 1024 * 1024


@dataclass
class RetileSummary:
    """Outcome of a completed run."""
    inputs: int
    points_read: int
    points_written: int
    tiles_planned: int
    tiles_written: int
    tiles_empty: int
    elapsed_s: float
    tile_paths: List[Path] = field(default_factory=list)


def split_runs(tx: np.ndarray, ty: np.ndarray) -> List[tuple]:
    """
    Maximal runs of consecutive equal (tx, ty) pairs.

    Returns:
        List of (start, end, (tx, ty)) with end exclusive, covering [0, n)
    """
    n = len(tx)
    if n == 0:
        return []
    breaks = np.flatnonzero((tx[1:] != tx[:-1]) | (ty[1:] != ty[:-1])) + 1
    starts = np.concatenate(([0], breaks)).tolist()
    ends = np.concatenate((breaks, [n])).tolist()
    return [(s, e, (int(tx[s]), int(ty[s]))) for s, e in zip(starts, ends)]


class _Progress:
    """Progress logging in files and points with rate and ETA."""

    def __init__(self, inputs: Sequence[InputFile]):
        self.n_files = len(inputs)
        self.total_points = sum(f.point_count for f in inputs)
        self.files_done = 0
        self.points = 0
        self.start_time = time.time()

    def advance(self, n: int) -> None:
        self.points += n

    def file_done(self, f: InputFile) -> None:
        self.files_done += 1
        elapsed = max(time.time() - self.start_time, 1e-9)
        rate = self.points / elapsed
        eta = (self.total_points - self.points) / rate if rate > 0 else 0
        pct = 100 * self.points / self.total_points if self.total_points else 100.0
        logger.info(
            f"Progress: {self.files_done}/{self.n_files} files ({f.name} done) - "
            f"{self.points:,}/{self.total_points:,} points ({pct:.1f}%) - "
            f"Rate: {rate:,.0f} pts/s - ETA: {eta:.1f}s"
        )


class RetileEngine:
    """
    Drives one retiling pass over a validated, planned set of inputs.

    Example:
        engine = RetileEngine(inputs, plan, "out/", batch_points=1_000_000)
        summary = engine.run()
    """

    def __init__(
        self,
        inputs: Sequence[InputFile],
        plan: RetilePlan,
        output_dir: str | Path,
        *,
        batch_points: Optional[int] = None,
        batch_memory_bytes: int = DEFAULT_BATCH_MEMORY_BYTES,
        extension: str = "laz",
        delete_incomplete_on_failure: bool = False,
        n_workers: int = 1,
        queue_batches: int = 4,
        writer_factory: WriterFactory = TileWriter,
    ):
        """
        Args:
            inputs: Scanned inputs, in processing order
            plan: Tile plan computed for exactly these inputs
            output_dir: Directory for tile files (created if missing)
            batch_points: Fixed batch size in points; overrides batch_memory_bytes
            batch_memory_bytes: Budget for one batch of point records
            extension: Output extension ('laz' or 'las')
            delete_incomplete_on_failure: Remove tiles left open by a failure
            n_workers: Reader threads; 1 processes inputs strictly sequentially
            queue_batches: Batches allowed to wait between readers and the writer
            writer_factory: Creates tile writers (path, header_template)
        """
        self.inputs = list(inputs)
        self.plan = plan
        self.output_dir = Path(output_dir)
        self.batch_points = batch_points
        self.batch_memory_bytes = int(batch_memory_bytes)
        self.extension = extension
        self.delete_incomplete_on_failure = delete_incomplete_on_failure
        self.n_workers = max(1, int(n_workers))
        self.queue_batches = max(1, int(queue_batches))
        self._writer_factory = writer_factory
        self._by_id: Dict[int, InputFile] = {f.id: f for f in self.inputs}

        missing = [f.id for f in self.inputs if f.id not in plan.tiles_by_input]
        if missing:
            raise InternalInvariantViolation(f"Inputs {missing} have no tile plan")

    def batch_cap(self, f: InputFile) -> int:
        """Points pulled per read for one input."""
        if self.batch_points is not None:
            return max(1, int(self.batch_points))
        return batch_capacity(f.header.point_format, self.batch_memory_bytes)

    def header_template(self, tile: TileIndex) -> laspy.LasHeader:
        """Header a tile is created from: that of its lowest-ID contributor.

        Independent of which input happens to write first, so parallel runs
        produce the same tile headers as sequential ones.
        """
        return self._by_id[min(self.plan.contributors[tile])].header

    def run(self) -> RetileSummary:
        """
        Execute the pass.

        Raises:
            InvalidInputError: Points found outside their input's header bounds
            RetileIOError: Read or write failure, or the output directory cannot be created
            InternalInvariantViolation: Lifecycle bookkeeping broke
        """
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise RetileIOError(f"Cannot create output directory {self.output_dir}: {e}") from e
        registry = TileOutputRegistry(
            self.output_dir,
            self.plan.contributors,
            extension=self.extension,
            writer_factory=self._writer_factory,
        )
        progress = _Progress(self.inputs)

        try:
            if self.n_workers > 1 and len(self.inputs) > 1:
                logger.info(f"Reading inputs with {self.n_workers} reader threads")
                self._run_parallel(registry, progress)
            else:
                self._run_sequential(registry, progress)

            if len(registry) != 0:
                leftover = registry.indices()
                raise InternalInvariantViolation(
                    f"{len(leftover)} tile(s) still registered after the last input: {leftover[:10]}"
                )
        except BaseException:
            registry.abort(delete_incomplete=self.delete_incomplete_on_failure)
            raise

        summary = RetileSummary(
            inputs=len(self.inputs),
            points_read=progress.points,
            points_written=registry.points_written,
            tiles_planned=self.plan.tile_count,
            tiles_written=len(registry.completed),
            tiles_empty=registry.closed_empty,
            elapsed_s=time.time() - progress.start_time,
            tile_paths=sorted(registry.completed),
        )
        logger.info(
            f"Done: {summary.points_written:,} points written to {summary.tiles_written} tiles "
            f"({summary.tiles_empty} planned tiles stayed empty) in {summary.elapsed_s:.1f}s"
        )
        return summary

    # ------------------------------------------------------------------
    # Per-input steps shared by both modes
    # ------------------------------------------------------------------

    def _dispatch(
        self,
        registry: TileOutputRegistry,
        f: InputFile,
        points: laspy.ScaleAwarePointRecord,
        planned: Set[TileIndex],
    ) -> None:
        tx, ty = tile_indices(points.x, points.y, self.plan.tile_size)
        for start, end, tile in split_runs(tx, ty):
            if tile not in planned:
                raise InvalidInputError(
                    f"{f.name} has points in tile {tile}, outside the tiles covered by its "
                    f"header bounds; the header is inconsistent with the point data"
                )
            writer = registry.get_or_create_writer(tile, self.header_template(tile))
            writer.write(points[start:end])

    def _retire(self, registry: TileOutputRegistry, f: InputFile) -> None:
        # Every planned tile, including those this input never wrote to
        for tile in self.plan.tiles_by_input[f.id]:
            registry.remove_contributor(tile, f.id)

    # ------------------------------------------------------------------
    # Sequential mode
    # ------------------------------------------------------------------

    def _run_sequential(self, registry: TileOutputRegistry, progress: _Progress) -> None:
        for f in self.inputs:
            cap = self.batch_cap(f)
            planned = set(self.plan.tiles_by_input[f.id])
            logger.debug(f"Streaming {f.name} in batches of {cap:,} points")
            with LasInputReader(f.path) as reader:
                while True:
                    points = reader.read_batch(cap)
                    if len(points) == 0:
                        break
                    self._dispatch(registry, f, points, planned)
                    progress.advance(len(points))
            self._retire(registry, f)
            progress.file_done(f)

    # ------------------------------------------------------------------
    # Parallel readers, single registry owner
    # ------------------------------------------------------------------

    def _run_parallel(self, registry: TileOutputRegistry, progress: _Progress) -> None:
        messages: "queue.Queue[tuple]" = queue.Queue(maxsize=self.queue_batches)
        stop = threading.Event()

        def put(message: tuple) -> None:
            while not stop.is_set():
                try:
                    messages.put(message, timeout=0.1)
                    return
                except queue.Full:
                    continue

        def produce(f: InputFile) -> None:
            if stop.is_set():
                return
            try:
                cap = self.batch_cap(f)
                with LasInputReader(f.path) as reader:
                    while not stop.is_set():
                        points = reader.read_batch(cap)
                        if len(points) == 0:
                            break
                        put(("batch", f.id, points))
                put(("done", f.id, None))
            except BaseException as e:
                put(("error", f.id, e))

        planned = {f.id: set(self.plan.tiles_by_input[f.id]) for f in self.inputs}
        remaining = len(self.inputs)

        pool = ThreadPoolExecutor(max_workers=self.n_workers, thread_name_prefix="retile-reader")
        try:
            for f in self.inputs:
                pool.submit(produce, f)

            while remaining:
                kind, input_id, payload = messages.get()
                f = self._by_id[input_id]
                if kind == "error":
                    raise payload
                if kind == "batch":
                    self._dispatch(registry, f, payload, planned[input_id])
                    progress.advance(len(payload))
                else:
                    self._retire(registry, f)
                    progress.file_done(f)
                    remaining -= 1
        finally:
            stop.set()
            pool.shutdown(wait=True, cancel_futures=True)


def resolve_workers(cfg: AppConfig) -> int:
    """Reader thread count implied by the parallel config section."""
    if not cfg.parallel.enabled:
        return 1
    if cfg.parallel.n_workers is None:
        return max(1, cpu_count() - 1)
    return max(1, int(cfg.parallel.n_workers))


def retile_directory(
    input_dir: str | Path,
    output_dir: str | Path,
    tile_size: float,
    config: Optional[AppConfig] = None,
) -> RetileSummary:
    """
    Scan, validate, plan and retile a directory of LAS/LAZ files.

    All validation happens before the output directory is created, so a
    rejected run leaves no files behind.
    """
    cfg = config if config is not None else AppConfig()

    planner = TilePlanner(tile_size)
    inputs = HeaderScanner(cfg.input.extensions).scan(input_dir)
    validate_no_overlaps(inputs)
    plan = planner.plan(inputs)
    validate_point_formats(inputs, plan)

    engine = RetileEngine(
        inputs,
        plan,
        output_dir,
        batch_points=cfg.streaming.batch_points,
        batch_memory_bytes=int(cfg.streaming.batch_memory_mb * 1024 * 1024),
        extension=cfg.output.extension,
        delete_incomplete_on_failure=cfg.output.delete_incomplete_on_failure,
        n_workers=resolve_workers(cfg),
        queue_batches=cfg.parallel.queue_batches,
    )
    return engine.run()
