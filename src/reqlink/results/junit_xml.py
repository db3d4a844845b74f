"""Parser for JUnit XML test results.

Handles the schema produced by Bun (``--reporter=junit``), jest-junit,
Vitest, pytest and others::

    <testsuites>
      <testsuite name="..." file="...">
        <testsuite name="describe block">
          <testcase name="..." classname="..." time="0.01">
            <failure message="...">stack trace</failure>
          </testcase>
        </testsuite>
      </testsuite>
    </testsuites>

Some runners represent ``describe`` blocks as nested suites, so suites are
flattened recursively.
"""

import xml.etree.ElementTree as ET

from reqlink.core.models import ParsedResults, TestResult, TestResultStatus
from reqlink.results.base import ResultParseError, summarize

FORMAT_NAME = "junit-xml"


def classname_to_file(classname: str) -> str:
    """Guess a test file path from a testcase classname.

    * path-like (``src/auth.test.ts``): used as is
    * dotted with a trailing ``test``/``spec`` part (``src.auth.test``):
      ``src/auth/test.ts``
    * other dotted names (``tests.auth``): ``tests/auth.test.ts``
    """
    if "/" in classname or "\\" in classname:
        return classname
    if "." in classname:
        parts = classname.split(".")
        if parts[-1].lower() in ("test", "spec"):
            return "/".join(parts) + ".ts"
        return "/".join(parts) + ".test.ts"
    return classname


def _message(element: ET.Element) -> str | None:
    """Combine an element's ``message`` attribute and text content."""
    message = element.get("message") or None
    text = (element.text or "").strip() or None
    if message and text:
        return f"{message}\n{text}"
    return message or text


def _parse_testcase(testcase: ET.Element, suite_file: str | None) -> TestResult:
    name = testcase.get("name") or "unknown"
    classname = testcase.get("classname") or ""

    duration: float | None = None
    time_str = testcase.get("time")
    if time_str:
        try:
            duration = float(time_str) * 1000
        except ValueError:
            duration = None

    status: TestResultStatus = "passed"
    error_message: str | None = None
    failure = testcase.find("failure")
    error = testcase.find("error")
    if failure is not None:
        status = "failed"
        error_message = _message(failure)
    elif error is not None:
        status = "error"
        error_message = _message(error)
    elif testcase.find("skipped") is not None:
        status = "skipped"

    return TestResult(
        file=suite_file or classname_to_file(classname),
        identifier=name,
        status=status,
        duration=duration,
        error_message=error_message,
    )


def _collect(suite: ET.Element, parent_file: str | None, results: list[TestResult]) -> None:
    """Append results for every testcase under ``suite``, depth first."""
    suite_file = suite.get("file") or parent_file
    for child in suite:
        if child.tag == "testcase":
            results.append(_parse_testcase(child, suite_file))
        elif child.tag == "testsuite":
            _collect(child, suite_file, results)


class JUnitXMLParser:
    """JUnit XML results parser."""

    name = FORMAT_NAME

    def can_parse(self, content: str) -> bool:
        trimmed = content.lstrip()
        return trimmed.startswith(("<?xml", "<testsuites", "<testsuite"))

    def parse(self, content: str) -> ParsedResults:
        try:
            root = ET.fromstring(content.strip())
        except ET.ParseError as e:
            raise ResultParseError(self.name, str(e)) from e

        if root.tag == "testsuites":
            suites = [child for child in root if child.tag == "testsuite"]
        elif root.tag == "testsuite":
            suites = [root]
        else:
            raise ResultParseError(self.name, f"unexpected root element <{root.tag}>")

        results: list[TestResult] = []
        for suite in suites:
            _collect(suite, None, results)

        return ParsedResults(format=self.name, results=results, summary=summarize(results))
