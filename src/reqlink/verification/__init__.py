"""Verification state, orphan detection and dependency checks."""

from reqlink.verification.dependencies import check_dependencies, find_dependency_cycles
from reqlink.verification.engine import (
    build_extracted_index,
    check_requirements,
    compute_orphans,
    compute_status,
)

__all__ = [
    "build_extracted_index",
    "check_dependencies",
    "check_requirements",
    "compute_orphans",
    "compute_status",
    "find_dependency_cycles",
]
