"""
Error Taxonomy

Every failure surfaces as a subclass of RetileError so the CLI can report it
and exit non-zero. Nothing in the package absorbs these silently.
"""

from typing import List, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from .preprocessing.header_scan import InputFile


class RetileError(Exception):
    """Base class for all retiling failures."""


class UsageError(RetileError):
    """Malformed invocation; raised before any file is touched."""


class InvalidInputError(RetileError):
    """An input file cannot be opened, has an unreadable header, or lies about its bounds."""


class OverlappingInputsError(RetileError):
    """
    One or more pairs of inputs have intersecting bounding boxes.

    Attributes:
        conflicts: Every conflicting (a, b) pair found, in scan order
    """

    def __init__(self, conflicts: List[Tuple["InputFile", "InputFile"]]):
        self.conflicts = list(conflicts)
        lines = [f"{a.path.name} <-> {b.path.name}" for a, b in self.conflicts]
        super().__init__(
            f"{len(self.conflicts)} overlapping input pair(s) found: " + "; ".join(lines)
        )


class RetileIOError(RetileError):
    """Read or write failure while streaming points."""


class InternalInvariantViolation(RetileError):
    """Tile lifecycle bookkeeping went wrong. Always a bug, always fatal."""


__all__ = [
    "RetileError",
    "UsageError",
    "InvalidInputError",
    "OverlappingInputsError",
    "RetileIOError",
    "InternalInvariantViolation",
]
