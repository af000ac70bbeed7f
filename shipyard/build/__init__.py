"""
Build execution and output organization.
"""

from .runner import BuildRunner, BuildTarget, BuildOutcome, build_targets
from .organizer import OrganizeResult, organize_output

__all__ = [
    "BuildRunner",
    "BuildTarget",
    "BuildOutcome",
    "build_targets",
    "OrganizeResult",
    "organize_output",
]
