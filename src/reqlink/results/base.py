"""Shared pieces of the test result parsers."""

from collections.abc import Iterable
from typing import Protocol

from reqlink.core.models import ParsedResults, RunSummary, TestResult


class ResultFormatError(ValueError):
    """No registered parser recognizes a results document."""


class ResultParseError(ValueError):
    """A parser claimed a results document but could not read it."""

    def __init__(self, format_name: str, message: str) -> None:
        super().__init__(f"Invalid {format_name} results: {message}")
        self.format_name = format_name


class ResultParser(Protocol):
    """A results format: content sniffing plus parsing."""

    name: str

    def can_parse(self, content: str) -> bool:
        """Return True if ``content`` looks like this format."""
        ...

    def parse(self, content: str) -> ParsedResults:
        """Parse ``content`` into normalized results.

        Raises:
            ResultParseError: If the content is malformed.
        """
        ...


def summarize(results: Iterable[TestResult]) -> RunSummary:
    """Count results by status in one pass. Errors count as failures."""
    summary = RunSummary()
    for result in results:
        summary.total += 1
        if result.status == "passed":
            summary.passed += 1
        elif result.status in ("failed", "error"):
            summary.failed += 1
        elif result.status == "skipped":
            summary.skipped += 1
    return summary
