"""Tests for reqlink.verification.engine module."""

import pytest

from reqlink.core.models import AIAssessment, Dependency, ExtractedTest, Requirement, TestLink
from reqlink.verification.engine import (
    build_extracted_index,
    check_requirements,
    compute_orphans,
    compute_status,
    find_stale_links,
    linked_keys,
)

HASH_A = "a" * 64
HASH_B = "b" * 64


def _link(identifier: str, hash: str = HASH_A, file: str = "src/math.test.ts") -> TestLink:
    return TestLink(file=file, identifier=identifier, hash=hash)


def _extracted(identifier: str, hash: str = HASH_A, file: str = "src/math.test.ts") -> ExtractedTest:
    return ExtractedTest(file=file, identifier=identifier, hash=hash)


class TestBuildExtractedIndex:
    """Tests for build_extracted_index function."""

    def test_maps_keys_to_hashes(self):
        """Test that the index maps (file, identifier) to hash."""
        index = build_extracted_index([_extracted("a"), _extracted("b", HASH_B)])

        assert index == {("src/math.test.ts", "a"): HASH_A, ("src/math.test.ts", "b"): HASH_B}


class TestComputeStatus:
    """Tests for compute_status function."""

    def test_no_links_is_not_applicable(self):
        """Test that a requirement without links is n/a, assessment or not."""
        req = Requirement(path="REQ_x.yml", status="done", ai_assessment=AIAssessment(sufficient=True))

        assert compute_status(req, {}) == "n/a"

    def test_current_links_without_assessment_unverified(self, linked_requirement):
        """Test that matching hashes without an assessment are unverified."""
        index = {("src/math.test.ts", "adds numbers"): HASH_A}

        assert compute_status(linked_requirement, index) == "unverified"

    def test_current_links_with_assessment_verified(self, assessed_requirement):
        """Test that matching hashes with an assessment are verified."""
        index = {("src/math.test.ts", "adds numbers"): HASH_A}

        assert compute_status(assessed_requirement, index) == "verified"

    def test_changed_hash_is_stale_even_with_assessment(self, assessed_requirement):
        """Test that a changed hash is stale regardless of the assessment."""
        index = {("src/math.test.ts", "adds numbers"): HASH_B}

        assert compute_status(assessed_requirement, index) == "stale"

    def test_changed_hash_is_stale_without_assessment(self, linked_requirement):
        """Test that a changed hash takes precedence over a missing assessment."""
        index = {("src/math.test.ts", "adds numbers"): HASH_B}

        assert compute_status(linked_requirement, index) == "stale"

    def test_missing_test_is_stale(self, assessed_requirement):
        """Test that a link to a test absent from the scan is stale."""
        assert compute_status(assessed_requirement, {}) == "stale"

    def test_one_stale_link_among_many(self, assessed_requirement):
        """Test that any single stale link makes the requirement stale."""
        assessed_requirement.tests.append(_link("subtracts numbers"))
        index = {
            ("src/math.test.ts", "adds numbers"): HASH_A,
            ("src/math.test.ts", "subtracts numbers"): HASH_B,
        }

        assert compute_status(assessed_requirement, index) == "stale"
        assert [t.identifier for t in find_stale_links(assessed_requirement, index)] == ["subtracts numbers"]

    def test_unchanged_scan_is_deterministic(self, assessed_requirement):
        """Test that repeated computation over the same scan agrees."""
        index = {("src/math.test.ts", "adds numbers"): HASH_A}

        results = {compute_status(assessed_requirement, index) for _ in range(3)}

        assert results == {"verified"}


class TestComputeOrphans:
    """Tests for compute_orphans and linked_keys."""

    def test_orphans_exclude_linked_and_ignored(self):
        """Test that only unlinked, unignored tests are orphans."""
        extracted = [_extracted("linked"), _extracted("ignored"), _extracted("orphan")]

        orphans = compute_orphans(
            extracted,
            {("src/math.test.ts", "linked")},
            {("src/math.test.ts", "ignored")},
        )

        assert [o.identifier for o in orphans] == ["orphan"]

    def test_linked_by_any_requirement_is_not_orphan(self):
        """Test that a test linked by a second requirement is not orphaned."""
        reqs = [
            Requirement(path="REQ_a.yml", tests=[_link("one")]),
            Requirement(path="REQ_b.yml", tests=[_link("two")]),
        ]
        extracted = [_extracted("one"), _extracted("two"), _extracted("three")]

        orphans = compute_orphans(extracted, linked_keys(reqs), set())

        assert [o.identifier for o in orphans] == ["three"]

    def test_same_name_in_different_files_distinct(self):
        """Test that orphan keys include the file."""
        extracted = [_extracted("t", file="a.test.ts"), _extracted("t", file="b.test.ts")]

        orphans = compute_orphans(extracted, {("a.test.ts", "t")}, set())

        assert [o.file for o in orphans] == ["b.test.ts"]


class TestCheckRequirements:
    """Tests for check_requirements function."""

    @pytest.fixture
    def scan(self) -> list[ExtractedTest]:
        return [
            _extracted("adds numbers"),
            _extracted("subtracts numbers", HASH_B),
            _extracted("orphan"),
            _extracted("ignored"),
        ]

    @pytest.fixture
    def requirements(self) -> list[Requirement]:
        return [
            Requirement(
                path="math/REQ_add.yml",
                status="done",
                priority="high",
                tests=[_link("adds numbers")],
                ai_assessment=AIAssessment(sufficient=True),
            ),
            Requirement(
                path="math/REQ_sub.yml",
                status="done",
                priority="critical",
                tests=[_link("subtracts numbers", HASH_A)],
                ai_assessment=AIAssessment(sufficient=False),
                questions=[{"question": "negatives?"}, {"question": "zero?", "answer": "yes"}],
            ),
            Requirement(
                path="REQ_top.yml",
                status="done",
                dependencies=[Dependency(path="REQ_future.yml")],
                nfrs=[{"category": "perf", "verified": False}, {"category": "sec", "verified": True}],
            ),
            Requirement(path="REQ_future.yml", status="planned", tests=[_link("adds numbers")]),
        ]

    def test_groups_by_folder(self, requirements, scan):
        """Test that rows are grouped by folder with a (root) group."""
        report = check_requirements(requirements, scan)

        assert list(report.groups) == ["(root)", "math/"]
        assert [r.path for r in report.groups["(root)"]] == ["REQ_future.yml", "REQ_top.yml"]
        assert [r.path for r in report.groups["math/"]] == ["math/REQ_add.yml", "math/REQ_sub.yml"]

    def test_row_fields(self, requirements, scan):
        """Test per-requirement verification and counts."""
        report = check_requirements(requirements, scan)
        rows = {r.path: r for r in report.requirements}

        assert rows["math/REQ_add.yml"].verification == "verified"
        assert rows["math/REQ_add.yml"].coverage_sufficient is True
        assert rows["math/REQ_sub.yml"].verification == "stale"
        assert [t.identifier for t in rows["math/REQ_sub.yml"].stale_tests] == ["subtracts numbers"]
        assert rows["math/REQ_sub.yml"].unanswered_questions == 1
        assert rows["REQ_top.yml"].verification == "n/a"
        assert rows["REQ_top.yml"].unverified_nfrs == 1
        assert rows["REQ_top.yml"].dependency_issues == ["REQ_future.yml"]
        assert rows["REQ_future.yml"].verification == "unverified"

    def test_summary_excludes_planned_from_verification(self, requirements, scan):
        """Test that planned requirements only count towards planned."""
        summary = check_requirements(requirements, scan).summary

        assert summary.total_requirements == 4
        assert summary.planned == 1
        assert summary.done == 3
        assert summary.tested == 2
        assert summary.untested == 1
        assert summary.verified == 1
        assert summary.stale == 1
        assert summary.unverified == 0
        assert summary.unanswered_questions == 1
        assert summary.unverified_nfrs == 1
        assert summary.blocked_requirements == 1
        assert summary.by_priority == {"critical": 1, "high": 1, "medium": 0, "low": 0, "unset": 2}

    def test_orphans_and_ignored(self, requirements, scan):
        """Test orphan reporting against the whole requirement set."""
        report = check_requirements(requirements, scan, ignored={("src/math.test.ts", "ignored")})

        assert [o.identifier for o in report.orphaned_tests] == ["orphan"]
        assert report.summary.orphaned_tests == 1
        assert report.total_tests == 4

    def test_empty_inputs(self):
        """Test that no requirements and no tests give an empty report."""
        report = check_requirements([], [])

        assert report.groups == {}
        assert report.summary.total_requirements == 0
        assert report.orphaned_tests == []
