"""Domain models for requirement-to-test traceability."""

from dataclasses import dataclass, field
from typing import Any, Literal

ImplementationStatus = Literal["planned", "done"]
VerificationStatus = Literal["n/a", "unverified", "stale", "verified"]
TestResultStatus = Literal["passed", "failed", "error", "skipped"]

IMPLEMENTATION_STATUSES = ("planned", "done")
PRIORITIES = ("critical", "high", "medium", "low")

TestKey = tuple[str, str]


@dataclass(frozen=True)
class ExtractedTest:
    """A test found in a source file during a discovery scan.

    Attributes:
        file (str): Test file path relative to the project root, using
            forward slashes.
        identifier (str): The test name as written in the declaration.
        hash (str): Fingerprint of the test body at scan time.
    """

    file: str
    identifier: str
    hash: str

    @property
    def key(self) -> TestKey:
        """Return the ``(file, identifier)`` lookup key."""
        return (self.file, self.identifier)


@dataclass
class TestLink:
    """A stored reference from a requirement to one concrete test."""

    __test__ = False

    file: str
    identifier: str
    hash: str
    last_result: str | None = None  # "passed", "failed", "error", "skipped"
    last_run_at: str | None = None

    @property
    def key(self) -> TestKey:
        """Return the ``(file, identifier)`` lookup key."""
        return (self.file, self.identifier)


@dataclass
class Dependency:
    """A requirement-to-requirement reference."""

    path: str
    blocking: bool = True


@dataclass
class AIAssessment:
    """Review of a requirement's test coverage.

    The verification engine only cares whether an assessment exists;
    the fields are carried so they survive a load/save round trip.
    """

    sufficient: bool | None = None
    notes: str = ""
    assessed_at: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class Requirement:
    """A requirement record loaded from the requirement store.

    Attributes:
        path (str): Unique id, the file path relative to the requirements
            directory (e.g. ``"auth/REQ_login.yml"``).
        status (str): ``"planned"`` or ``"done"``.
        tests (list[TestLink]): Linked tests with their stored fingerprints.
        dependencies (list[Dependency]): Other requirements this one relies on.
        nfrs (list[dict]): Non-functional requirement entries, opaque except
            for their ``verified`` flag.
        ai_assessment (AIAssessment | None): Coverage assessment, if any.
        priority (str | None): Passthrough priority label.
        questions (list[dict]): Open questions; an entry without ``answer``
            is unanswered.
        extra (dict): Any other keys from the file, preserved verbatim.
    """

    path: str
    status: ImplementationStatus = "planned"
    tests: list[TestLink] = field(default_factory=list)
    dependencies: list[Dependency] = field(default_factory=list)
    nfrs: list[dict[str, Any]] = field(default_factory=list)
    ai_assessment: AIAssessment | None = None
    priority: str | None = None
    questions: list[dict[str, Any]] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def folder(self) -> str:
        """Return the folder portion of the path, with a trailing slash."""
        head, sep, _ = self.path.rpartition("/")
        return head + sep

    def find_test(self, file: str, identifier: str) -> TestLink | None:
        """Return the link for ``(file, identifier)``, or None."""
        for link in self.tests:
            if link.file == file and link.identifier == identifier:
                return link
        return None


@dataclass
class IgnoredTest:
    """A test deliberately excluded from orphan reporting."""

    file: str
    identifier: str
    reason: str = ""
    ignored_at: str | None = None

    @property
    def key(self) -> TestKey:
        """Return the ``(file, identifier)`` lookup key."""
        return (self.file, self.identifier)


@dataclass
class DependencyIssue:
    """A requirement with blocking dependencies that are not done."""

    requirement: str
    blocked_by: list[str] = field(default_factory=list)


@dataclass
class TestResult:
    """One test outcome normalized from a runner's results file."""

    __test__ = False

    file: str
    identifier: str
    status: TestResultStatus
    duration: float | None = None  # milliseconds
    error_message: str | None = None

    @property
    def key(self) -> TestKey:
        """Return the ``(file, identifier)`` lookup key."""
        return (self.file, self.identifier)


@dataclass
class RunSummary:
    """Counts over a list of test results. ``failed`` includes errors."""

    total: int = 0
    passed: int = 0
    failed: int = 0
    skipped: int = 0


@dataclass
class ParsedResults:
    """Output of a result parser."""

    format: str
    results: list[TestResult] = field(default_factory=list)
    summary: RunSummary = field(default_factory=RunSummary)


@dataclass
class TestRun:
    """A results artifact loaded from disk."""

    __test__ = False

    imported_at: str
    source_file: str
    format: str
    summary: RunSummary
    results: list[TestResult] = field(default_factory=list)
