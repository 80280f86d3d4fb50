"""
Input Overlap Validation

Retiling streams each input once and retires it from its tiles afterwards,
which is only correct when no two inputs share space. This module checks
that precondition on header bounds before anything is written.
"""

from typing import List, Sequence, Tuple

from ..errors import OverlappingInputsError
from ..utils.logging import setup_logger
from .header_scan import Bounds3D, InputFile

logger = setup_logger(__name__)


def bounds_intersect(a: Bounds3D, b: Bounds3D) -> bool:
    """Check if two 3D bounding boxes intersect (inclusive edges)."""
    return not (
        a.min_x > b.max_x or a.max_x < b.min_x
        or a.min_y > b.max_y or a.max_y < b.min_y
        or a.min_z > b.max_z or a.max_z < b.min_z
    )


def find_overlaps(inputs: Sequence[InputFile]) -> List[Tuple[InputFile, InputFile]]:
    """
    Return every pair of inputs whose bounds intersect.

    O(n^2) over unordered pairs; pairs are reported in scan order (a.id < b.id).
    """
    conflicts = []
    for i, a in enumerate(inputs):
        for b in inputs[i + 1:]:
            if bounds_intersect(a.bounds, b.bounds):
                conflicts.append((a, b))
    return conflicts


def validate_no_overlaps(inputs: Sequence[InputFile]) -> None:
    """
    Fail if any two inputs overlap, after checking all pairs.

    Raises:
        OverlappingInputsError: Carrying the complete list of conflicting pairs
    """
    conflicts = find_overlaps(inputs)
    if not conflicts:
        logger.info(f"No overlaps between {len(inputs)} input files")
        return

    for a, b in conflicts:
        logger.error(f"Input files {a.path} and {b.path} have overlapping bounds")
    raise OverlappingInputsError(conflicts)
