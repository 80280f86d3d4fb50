"""
Input Preprocessing Module

Everything that happens before a single point is read:
- Discovery of LAS/LAZ inputs and header-only scanning
- Validation that input bounding boxes do not overlap
"""

from .header_scan import HeaderScanner, InputFile, Bounds3D, overall_bounds
from .overlap import bounds_intersect, find_overlaps, validate_no_overlaps

__all__ = [
    "HeaderScanner",
    "InputFile",
    "Bounds3D",
    "overall_bounds",
    "bounds_intersect",
    "find_overlaps",
    "validate_no_overlaps",
]
