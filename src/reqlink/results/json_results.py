"""Parser for JSON test results.

Two shapes are accepted. The Jest/Vitest reporter shape::

    {"testResults": [{"name": "src/auth.test.ts",
                      "assertionResults": [{"fullName": "logs in",
                                            "status": "passed",
                                            "duration": 12,
                                            "failureMessages": []}]}]}

and a flat shape::

    {"tests": [{"file": "src/auth.test.ts", "name": "logs in",
                "status": "pass", "duration": 12,
                "error": {"message": "..."}}]}
"""

import json
from typing import Any

from reqlink.core.models import ParsedResults, TestResult, TestResultStatus
from reqlink.results.base import ResultParseError, summarize

FORMAT_NAME = "json"

_STATUS_MAP: dict[str, TestResultStatus] = {
    "passed": "passed",
    "pass": "passed",
    "failed": "failed",
    "fail": "failed",
    "skipped": "skipped",
    "skip": "skipped",
    "pending": "skipped",
    "todo": "skipped",
    "disabled": "skipped",
    "error": "error",
}


def normalize_status(status: Any) -> TestResultStatus:
    """Map a runner's status word onto the normalized statuses.

    Unknown statuses count as failures.
    """
    return _STATUS_MAP.get(str(status).lower(), "failed")


def _duration(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    return float(value)


def _parse_jest(data: dict[str, Any]) -> list[TestResult]:
    results: list[TestResult] = []
    for test_file in data["testResults"]:
        if not isinstance(test_file, dict):
            continue
        file = test_file.get("name") or test_file.get("testFilePath") or "unknown"
        for assertion in test_file.get("assertionResults") or []:
            if not isinstance(assertion, dict):
                continue
            messages = assertion.get("failureMessages") or []
            results.append(
                TestResult(
                    file=str(file),
                    identifier=str(assertion.get("fullName") or assertion.get("title") or "unknown"),
                    status=normalize_status(assertion.get("status")),
                    duration=_duration(assertion.get("duration")),
                    error_message="\n".join(str(m) for m in messages) or None,
                )
            )
    return results


def _parse_flat(data: dict[str, Any]) -> list[TestResult]:
    results: list[TestResult] = []
    for test in data["tests"]:
        if not isinstance(test, dict) or not test.get("file"):
            continue
        error = test.get("error")
        error_message = error.get("message") if isinstance(error, dict) else None
        results.append(
            TestResult(
                file=str(test["file"]),
                identifier=str(test.get("name") or test.get("identifier") or "unknown"),
                status=normalize_status(test.get("status")),
                duration=_duration(test.get("duration")),
                error_message=error_message or test.get("errorMessage") or None,
            )
        )
    return results


def _load(content: str) -> Any:
    try:
        return json.loads(content)
    except json.JSONDecodeError:
        return None


def _shape(data: Any) -> str | None:
    if not isinstance(data, dict):
        return None
    if isinstance(data.get("testResults"), list):
        return "jest"
    if isinstance(data.get("tests"), list):
        return "flat"
    return None


class JSONResultsParser:
    """JSON results parser for Jest/Vitest and flat reporters."""

    name = FORMAT_NAME

    def can_parse(self, content: str) -> bool:
        if not content.lstrip().startswith("{"):
            return False
        return _shape(_load(content)) is not None

    def parse(self, content: str) -> ParsedResults:
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise ResultParseError(self.name, str(e)) from e

        shape = _shape(data)
        if shape == "jest":
            results = _parse_jest(data)
        elif shape == "flat":
            results = _parse_flat(data)
        else:
            raise ResultParseError(self.name, "expected a 'testResults' or 'tests' array")

        return ParsedResults(format=self.name, results=results, summary=summarize(results))
