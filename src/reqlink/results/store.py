"""Persisted test results and their attachment to test links."""

import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path

from reqlink.core.models import Requirement, TestLink, TestResult, TestRun
from reqlink.results import parse_results
from reqlink.results.base import ResultFormatError

logger = logging.getLogger("reqlink")

TEST_RESULTS_FILE = "test-results.xml"


def save_test_results(source: Path, req_dir: Path, filename: str = TEST_RESULTS_FILE) -> Path:
    """Copy a results artifact into the requirements directory.

    The raw file is kept rather than a parsed form so it can be re-read
    with any parser later.

    Returns:
        The destination path.
    """
    req_dir.mkdir(parents=True, exist_ok=True)
    dest = req_dir / filename
    shutil.copyfile(source, dest)
    return dest


def load_test_results(path: Path) -> TestRun | None:
    """Load and parse a stored results artifact.

    Args:
        path: Path to the stored artifact.

    Returns:
        The parsed run, or None if the file does not exist or its format is
        not recognized.

    Raises:
        ResultParseError: If the file is in a known format but malformed.
    """
    try:
        content = path.read_text(encoding="utf-8")
        mtime = path.stat().st_mtime
    except FileNotFoundError:
        return None

    try:
        parsed = parse_results(content)
    except ResultFormatError as e:
        logger.warning("Ignoring test results in %s: %s", path, e)
        return None

    return TestRun(
        imported_at=datetime.fromtimestamp(mtime, timezone.utc).isoformat(),
        source_file=path.name,
        format=parsed.format,
        summary=parsed.summary,
        results=parsed.results,
    )


def normalize_path(path: str) -> str:
    """Normalize a file path for matching: no ``./``, forward slashes, lowercase."""
    path = path.replace("\\", "/")
    if path.startswith("./"):
        path = path[2:]
    return path.lower()


def normalize_identifier(identifier: str) -> str:
    """Trim an identifier and collapse internal whitespace."""
    return " ".join(identifier.split())


def _basename(path: str) -> str:
    return path.rsplit("/", 1)[-1]


def match_result_to_link(link: TestLink, results: list[TestResult]) -> TestResult | None:
    """Find the result for a test link.

    An exact normalized path and identifier match wins. Otherwise the file
    name alone is compared, since runners often report paths relative to a
    different directory.
    """
    file = normalize_path(link.file)
    identifier = normalize_identifier(link.identifier)

    for result in results:
        if normalize_path(result.file) == file and normalize_identifier(result.identifier) == identifier:
            return result

    name = _basename(file)
    for result in results:
        if _basename(normalize_path(result.file)) == name and normalize_identifier(result.identifier) == identifier:
            return result

    return None


def annotate_test_links(requirements: list[Requirement], run: TestRun) -> int:
    """Set ``last_result`` and ``last_run_at`` on every link with a result.

    Previous values are overwritten. Links without a matching result in
    this run have both fields cleared.

    Returns:
        Number of links annotated.
    """
    count = 0
    for requirement in requirements:
        for link in requirement.tests:
            match = match_result_to_link(link, run.results)
            if match is None:
                link.last_result = None
                link.last_run_at = None
                continue
            link.last_result = match.status
            link.last_run_at = run.imported_at
            count += 1
    return count
