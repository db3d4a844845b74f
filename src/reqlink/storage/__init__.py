"""Local file storage for requirements, the ignore-list and the test cache."""

from reqlink.storage.cache import TestCache
from reqlink.storage.ignored import ignored_keys, load_ignored_tests
from reqlink.storage.requirements import (
    RequirementValidationError,
    load_all_requirements,
    load_requirement,
    write_requirement,
)

__all__ = [
    "RequirementValidationError",
    "TestCache",
    "ignored_keys",
    "load_all_requirements",
    "load_ignored_tests",
    "load_requirement",
    "write_requirement",
]
