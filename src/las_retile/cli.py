"""
Command-line entry point.

    las-retile INPUT_DIR OUTPUT_DIR TILE_SIZE [options]

Exit status: 0 on success, 1 when the run fails, 2 on a usage error.
"""

import argparse
import logging
import math
import sys
from typing import List, Optional

from .errors import RetileError, UsageError
from .tiling.engine import retile_directory
from .utils.config import AppConfig, load_config
from .utils.logging import configure_package_logging, setup_logger

logger = setup_logger(__name__)


class _RaisingArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that raises UsageError instead of exiting."""

    def error(self, message: str):
        raise UsageError(message)


def _tile_size(value: str) -> float:
    try:
        size = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"tile size must be a number, got {value!r}")
    if not math.isfinite(size) or size <= 0:
        raise argparse.ArgumentTypeError(f"tile size must be a positive number, got {value!r}")
    return size


def build_parser() -> argparse.ArgumentParser:
    parser = _RaisingArgumentParser(
        prog="las-retile",
        description="Re-tile disjoint LAS/LAZ files into a regular grid of output tiles",
    )
    parser.add_argument("input_dir", help="Directory containing the input .las/.laz files")
    parser.add_argument("output_dir", help="Directory receiving tile_<tx>_<ty> files")
    parser.add_argument("tile_size", type=_tile_size, help="Tile edge length in data units (> 0)")
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to YAML configuration file (defaults to config/default.yaml)",
    )
    parser.add_argument(
        "--batch-memory-mb",
        type=float,
        default=None,
        help="Override streaming.batch_memory_mb (memory budget of one point batch)",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Read inputs with this many threads (enables parallel reading when > 1)",
    )
    parser.add_argument(
        "--delete-incomplete",
        action="store_true",
        help="Delete tiles left incomplete when the run fails",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Override logging.level from the config",
    )
    return parser


def apply_overrides(cfg: AppConfig, args: argparse.Namespace) -> AppConfig:
    """Fold command-line options into a loaded configuration."""
    if args.batch_memory_mb is not None:
        if args.batch_memory_mb <= 0:
            raise UsageError("--batch-memory-mb must be positive")
        cfg.streaming.batch_memory_mb = args.batch_memory_mb
    if args.workers is not None:
        if args.workers < 1:
            raise UsageError("--workers must be at least 1")
        cfg.parallel.enabled = args.workers > 1
        cfg.parallel.n_workers = args.workers
    if args.delete_incomplete:
        cfg.output.delete_incomplete_on_failure = True
    if args.log_level is not None:
        cfg.logging.level = args.log_level
    return cfg


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main function to run a retiling job from the command line.
    """
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
        try:
            cfg = load_config(args.config, allow_missing=args.config is None)
        except (FileNotFoundError, ValueError) as e:
            raise UsageError(str(e)) from e
        cfg = apply_overrides(cfg, args)
    except UsageError as e:
        parser.print_usage(sys.stderr)
        print(f"{parser.prog}: error: {e}", file=sys.stderr)
        return 2

    log_level = getattr(logging, cfg.logging.level.upper(), logging.INFO)
    configure_package_logging(log_level, cfg.logging.file)

    logger.info("LAS Retile")
    logger.info("==========")
    logger.info(f"Input directory: {args.input_dir}")
    logger.info(f"Output directory: {args.output_dir}")
    logger.info(f"Tile size: {args.tile_size:g}")

    try:
        summary = retile_directory(args.input_dir, args.output_dir, args.tile_size, cfg)
    except RetileError as e:
        logger.error(f"Retiling failed: {e}")
        return 1

    logger.info(
        f"Wrote {summary.tiles_written} tiles with {summary.points_written:,} points "
        f"from {summary.inputs} inputs"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
