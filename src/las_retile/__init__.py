"""
LAS Retile Package

Re-tiles a directory of spatially disjoint LAS/LAZ point-cloud files into a
regular XY grid of output tiles, streaming points in bounded batches so the
dataset never has to fit in memory.
"""

__version__ = "0.1.0"

from .errors import *
from .preprocessing import *
from .tiling import *
from .utils import *

__all__ = [
    "errors",
    "preprocessing",
    "tiling",
    "utils",
]
