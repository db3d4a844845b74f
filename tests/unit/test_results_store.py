"""Tests for reqlink.results.store module."""

import logging

import pytest

from reqlink.core.models import Requirement, RunSummary, TestLink, TestResult, TestRun
from reqlink.results.base import ResultParseError
from reqlink.results.store import (
    TEST_RESULTS_FILE,
    annotate_test_links,
    load_test_results,
    match_result_to_link,
    normalize_identifier,
    normalize_path,
    save_test_results,
)

JUNIT = """<?xml version="1.0"?>
<testsuites>
  <testsuite name="math" file="src/math.test.ts">
    <testcase name="adds numbers" time="0.001"/>
    <testcase name="subtracts numbers"><failure message="nope"/></testcase>
  </testsuite>
</testsuites>
"""


def _run(results: list[TestResult]) -> TestRun:
    return TestRun(
        imported_at="2026-03-01T12:00:00+00:00",
        source_file=TEST_RESULTS_FILE,
        format="junit-xml",
        summary=RunSummary(total=len(results)),
        results=results,
    )


class TestNormalization:
    """Tests for path and identifier normalization."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("./src/A.test.ts", "src/a.test.ts"),
            ("src\\auth\\Login.test.ts", "src/auth/login.test.ts"),
            ("src/x.test.ts", "src/x.test.ts"),
        ],
    )
    def test_normalize_path(self, raw, expected):
        """Test that paths lose ./, use forward slashes and are lowercased."""
        assert normalize_path(raw) == expected

    def test_normalize_identifier(self):
        """Test that identifiers are trimmed with whitespace collapsed."""
        assert normalize_identifier("  adds \t  numbers \n") == "adds numbers"


class TestMatchResultToLink:
    """Tests for match_result_to_link function."""

    def test_exact_match(self):
        """Test matching on normalized path and identifier."""
        link = TestLink(file="./src/Math.test.ts", identifier="adds  numbers", hash="h")
        result = TestResult(file="src/math.test.ts", identifier="adds numbers", status="passed")

        assert match_result_to_link(link, [result]) is result

    def test_basename_fallback(self):
        """Test that a differing directory still matches on file name."""
        link = TestLink(file="packages/core/src/math.test.ts", identifier="adds numbers", hash="h")
        result = TestResult(file="src/math.test.ts", identifier="adds numbers", status="failed")

        assert match_result_to_link(link, [result]) is result

    def test_exact_match_preferred_over_basename(self):
        """Test that an exact path match beats an earlier basename match."""
        link = TestLink(file="src/math.test.ts", identifier="adds numbers", hash="h")
        other = TestResult(file="lib/math.test.ts", identifier="adds numbers", status="failed")
        exact = TestResult(file="src/math.test.ts", identifier="adds numbers", status="passed")

        assert match_result_to_link(link, [other, exact]) is exact

    def test_no_match(self):
        """Test that a different identifier does not match."""
        link = TestLink(file="src/math.test.ts", identifier="adds numbers", hash="h")
        result = TestResult(file="src/math.test.ts", identifier="adds", status="passed")

        assert match_result_to_link(link, [result]) is None


class TestAnnotateTestLinks:
    """Tests for annotate_test_links function."""

    def test_sets_and_overwrites_results(self):
        """Test that matching links get the latest result and run time."""
        link = TestLink(
            file="src/math.test.ts",
            identifier="adds numbers",
            hash="h",
            last_result="passed",
            last_run_at="2026-01-01T00:00:00+00:00",
        )
        req = Requirement(path="REQ_x.yml", tests=[link])

        count = annotate_test_links(
            [req], _run([TestResult(file="src/math.test.ts", identifier="adds numbers", status="failed")])
        )

        assert count == 1
        assert link.last_result == "failed"
        assert link.last_run_at == "2026-03-01T12:00:00+00:00"

    def test_links_missing_from_run_are_cleared(self):
        """Test that a result from an earlier run does not survive a newer run."""
        present = TestLink(
            file="src/math.test.ts",
            identifier="adds numbers",
            hash="h",
            last_result="failed",
            last_run_at="2026-01-01T00:00:00+00:00",
        )
        absent = TestLink(
            file="src/math.test.ts",
            identifier="subtracts numbers",
            hash="h",
            last_result="failed",
            last_run_at="2026-01-01T00:00:00+00:00",
        )
        req = Requirement(path="REQ_x.yml", tests=[present, absent])

        count = annotate_test_links(
            [req], _run([TestResult(file="src/math.test.ts", identifier="adds numbers", status="passed")])
        )

        assert count == 1
        assert (present.last_result, present.last_run_at) == ("passed", "2026-03-01T12:00:00+00:00")
        assert absent.last_result is None
        assert absent.last_run_at is None


class TestSaveAndLoad:
    """Tests for save_test_results and load_test_results."""

    def test_save_copies_raw_file(self, tmp_path):
        """Test that the artifact is copied byte for byte."""
        source = tmp_path / "out.xml"
        source.write_text(JUNIT)
        req_dir = tmp_path / ".requirements"

        dest = save_test_results(source, req_dir)

        assert dest == req_dir / TEST_RESULTS_FILE
        assert dest.read_text() == JUNIT

    def test_load_parses_stored_file(self, tmp_path):
        """Test that a stored artifact loads as a TestRun."""
        path = tmp_path / TEST_RESULTS_FILE
        path.write_text(JUNIT)

        run = load_test_results(path)

        assert run is not None
        assert run.format == "junit-xml"
        assert run.source_file == TEST_RESULTS_FILE
        assert run.summary == RunSummary(total=2, passed=1, failed=1, skipped=0)
        assert run.imported_at.endswith("+00:00")

    def test_load_missing_returns_none(self, tmp_path):
        """Test that no stored results is None rather than an error."""
        assert load_test_results(tmp_path / TEST_RESULTS_FILE) is None

    def test_load_unrecognized_returns_none_with_warning(self, tmp_path, caplog):
        """Test that an unrecognized stored file is logged and ignored."""
        path = tmp_path / TEST_RESULTS_FILE
        path.write_text("not results")

        with caplog.at_level(logging.WARNING, logger="reqlink"):
            assert load_test_results(path) is None

        assert any("Ignoring test results" in r.getMessage() for r in caplog.records)

    def test_load_malformed_raises(self, tmp_path):
        """Test that a claimed but broken file propagates the parse error."""
        path = tmp_path / TEST_RESULTS_FILE
        path.write_text("<testsuites><testsuite>")

        with pytest.raises(ResultParseError):
            load_test_results(path)
