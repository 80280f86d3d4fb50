"""
Utility Functions Module

Common utilities used across the retiling project:
- Logging setup
- Configuration loading
- LAS/LAZ reading and tile writing
"""

from .logging import setup_logger, configure_package_logging
from .config import AppConfig, load_config
from .las_io import LasInputReader, TileWriter, read_header, cleared_header, batch_capacity

__all__ = [
    "setup_logger",
    "configure_package_logging",
    "AppConfig",
    "load_config",
    "LasInputReader",
    "TileWriter",
    "read_header",
    "cleared_header",
    "batch_capacity",
]
