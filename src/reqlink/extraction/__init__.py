"""Test extraction, fingerprinting and discovery."""

from reqlink.extraction.discovery import discover_tests, find_test
from reqlink.extraction.extractor import extract_test_body, find_test_declarations
from reqlink.extraction.hasher import hash_test_body

__all__ = [
    "discover_tests",
    "extract_test_body",
    "find_test",
    "find_test_declarations",
    "hash_test_body",
]
