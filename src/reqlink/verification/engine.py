"""Verification state of requirements and orphan-test detection.

Everything here is a pure function of the current requirements and the
latest discovery scan. Results are recomputed on every call and never
stored, so they cannot drift from the underlying hashes.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field

from reqlink.core.models import (
    PRIORITIES,
    DependencyIssue,
    ExtractedTest,
    Requirement,
    TestKey,
    TestLink,
    VerificationStatus,
)
from reqlink.verification.dependencies import check_dependencies


def build_extracted_index(tests: Iterable[ExtractedTest]) -> dict[TestKey, str]:
    """Map ``(file, identifier)`` to the current hash.

    Built once per scan and shared by every requirement in that pass.
    """
    return {t.key: t.hash for t in tests}


def find_stale_links(requirement: Requirement, index: dict[TestKey, str]) -> list[TestLink]:
    """Return links whose stored hash differs from the current one.

    A link whose test is missing from the index (deleted or renamed) is
    stale as well.
    """
    return [link for link in requirement.tests if index.get(link.key) != link.hash]


def compute_status(requirement: Requirement, index: dict[TestKey, str]) -> VerificationStatus:
    """Classify a requirement's verification state.

    * no test links: ``"n/a"``
    * any link stale: ``"stale"``, whether or not an assessment exists
    * no AI assessment: ``"unverified"``
    * otherwise: ``"verified"``

    Args:
        requirement: The requirement to classify.
        index: Current hashes from :func:`build_extracted_index`.

    Returns:
        The verification status.
    """
    if not requirement.tests:
        return "n/a"
    if find_stale_links(requirement, index):
        return "stale"
    if requirement.ai_assessment is None:
        return "unverified"
    return "verified"


def linked_keys(requirements: Iterable[Requirement]) -> set[TestKey]:
    """Return every ``(file, identifier)`` referenced by any requirement."""
    return {link.key for r in requirements for link in r.tests}


def compute_orphans(
    all_extracted: Iterable[ExtractedTest],
    all_linked_keys: set[TestKey],
    ignored_keys: set[TestKey],
) -> list[ExtractedTest]:
    """Return discovered tests that no requirement links and none are ignored.

    Runs over the whole discovered population, so a test linked by any
    requirement is never reported.
    """
    return [t for t in all_extracted if t.key not in all_linked_keys and t.key not in ignored_keys]


@dataclass
class RequirementReport:
    """Per-requirement row of a check report."""

    path: str
    status: str
    verification: VerificationStatus
    test_count: int
    stale_tests: list[TestLink] = field(default_factory=list)
    coverage_sufficient: bool | None = None
    unanswered_questions: int = 0
    unverified_nfrs: int = 0
    priority: str | None = None
    dependency_issues: list[str] = field(default_factory=list)


@dataclass
class CheckSummary:
    """Roll-up counts across a check report.

    Verification counts (``tested``, ``untested``, ``verified``,
    ``unverified``, ``stale``) cover done requirements only; planned ones
    are counted in ``planned`` and nowhere else in the roll-up.
    """

    total_requirements: int = 0
    planned: int = 0
    done: int = 0
    tested: int = 0
    untested: int = 0
    verified: int = 0
    unverified: int = 0
    stale: int = 0
    orphaned_tests: int = 0
    blocked_requirements: int = 0
    unanswered_questions: int = 0
    unverified_nfrs: int = 0
    by_priority: dict[str, int] = field(default_factory=lambda: {p: 0 for p in (*PRIORITIES, "unset")})


@dataclass
class CheckReport:
    """Result of checking every requirement against one discovery scan."""

    summary: CheckSummary
    groups: dict[str, list[RequirementReport]] = field(default_factory=dict)
    orphaned_tests: list[ExtractedTest] = field(default_factory=list)
    dependency_issues: list[DependencyIssue] = field(default_factory=list)
    total_tests: int = 0

    @property
    def requirements(self) -> list[RequirementReport]:
        """Return every requirement row, in group order."""
        return [row for rows in self.groups.values() for row in rows]


def check_requirements(
    requirements: list[Requirement],
    extracted: list[ExtractedTest],
    ignored: set[TestKey] | None = None,
) -> CheckReport:
    """Check every requirement against a discovery scan.

    Args:
        requirements: The active requirement set.
        extracted: Output of one discovery pass.
        ignored: Keys excluded from orphan reporting.

    Returns:
        CheckReport with per-requirement rows grouped by folder, the
        summary, orphaned tests and dependency issues.
    """
    index = build_extracted_index(extracted)
    dependency_issues = check_dependencies(requirements)
    blocked_by = {issue.requirement: issue.blocked_by for issue in dependency_issues}

    summary = CheckSummary(total_requirements=len(requirements))
    groups: dict[str, list[RequirementReport]] = {}

    for requirement in sorted(requirements, key=lambda r: (r.folder, r.path)):
        verification = compute_status(requirement, index)
        unanswered = sum(1 for q in requirement.questions if not q.get("answer"))
        unverified_nfrs = sum(1 for n in requirement.nfrs if not n.get("verified"))

        if requirement.status == "planned":
            summary.planned += 1
        else:
            summary.done += 1
            if requirement.tests:
                summary.tested += 1
            else:
                summary.untested += 1
            if verification == "verified":
                summary.verified += 1
            elif verification == "unverified":
                summary.unverified += 1
            elif verification == "stale":
                summary.stale += 1

        priority = requirement.priority if requirement.priority in PRIORITIES else "unset"
        summary.by_priority[priority] += 1
        summary.unanswered_questions += unanswered
        summary.unverified_nfrs += unverified_nfrs

        assessment = requirement.ai_assessment
        groups.setdefault(requirement.folder or "(root)", []).append(
            RequirementReport(
                path=requirement.path,
                status=requirement.status,
                verification=verification,
                test_count=len(requirement.tests),
                stale_tests=find_stale_links(requirement, index),
                coverage_sufficient=assessment.sufficient if assessment is not None else None,
                unanswered_questions=unanswered,
                unverified_nfrs=unverified_nfrs,
                priority=requirement.priority,
                dependency_issues=blocked_by.get(requirement.path, []),
            )
        )

    orphans = compute_orphans(extracted, linked_keys(requirements), ignored or set())
    summary.orphaned_tests = len(orphans)
    summary.blocked_requirements = len(dependency_issues)

    return CheckReport(
        summary=summary,
        groups=groups,
        orphaned_tests=orphans,
        dependency_issues=dependency_issues,
        total_tests=len(extracted),
    )
