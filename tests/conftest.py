"""Shared fixtures for reqlink tests."""

import contextlib
import os
import warnings
from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner

from reqlink.cli.commands import cli
from reqlink.core.models import AIAssessment, ExtractedTest, Requirement, TestLink

# =============================================================================
# Warning Suppression Utilities
# =============================================================================


@contextlib.contextmanager
def expect_user_warning(match: str | None = None):
    """Context manager for code that is expected to emit UserWarning.

    Args:
        match: Optional regex pattern to match against warning message.
              If provided, asserts that at least one warning matches.
    """
    with warnings.catch_warnings(record=True) as recorded:
        warnings.simplefilter("always", UserWarning)
        yield recorded
        if match is not None:
            import re

            matched = any(re.search(match, str(w.message)) for w in recorded)
            if not matched:
                got = [str(w.message) for w in recorded]
                msg = f"Expected UserWarning matching '{match}', got: {got}"
                raise AssertionError(msg)


# =============================================================================
# Shared Test Helpers
# =============================================================================


def _invoke(runner: CliRunner, args: list[str], *, cwd: Path | None = None):
    """Invoke CLI, optionally inside *cwd*.  Returns the Click result."""
    if cwd is not None:
        old = os.getcwd()
        os.chdir(cwd)
        try:
            return runner.invoke(cli, args, catch_exceptions=False)
        finally:
            os.chdir(old)
    return runner.invoke(cli, args, catch_exceptions=False)


def _read_yaml(path: Path) -> dict:
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _write_yaml(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)


# =============================================================================
# Test File Content
# =============================================================================

AUTH_TEST_SOURCE = """\
import { describe, expect, it } from "bun:test";

describe("auth", () => {
  it("validates login", async () => {
    const user = await login("alice", "secret");
    expect(user.name).toBe("alice");
  });

  it("rejects bad password", () => {
    expect(() => login("alice", "nope")).toThrow();
  });
});
"""

MATH_TEST_SOURCE = """\
import { test, expect } from "bun:test";

test("adds numbers", () => {
  expect(1 + 1).toBe(2);
});

test("subtracts numbers", () => {
  expect(3 - 1).toBe(2);
});
"""


# =============================================================================
# Model Fixtures
# =============================================================================


@pytest.fixture
def extracted_test() -> ExtractedTest:
    """An ExtractedTest as produced by discovery."""
    return ExtractedTest(file="src/math.test.ts", identifier="adds numbers", hash="a" * 64)


@pytest.fixture
def linked_requirement() -> Requirement:
    """A done requirement with one linked test and no assessment."""
    return Requirement(
        path="math/REQ_add.yml",
        status="done",
        tests=[TestLink(file="src/math.test.ts", identifier="adds numbers", hash="a" * 64)],
    )


@pytest.fixture
def assessed_requirement(linked_requirement) -> Requirement:
    """The linked requirement after a sufficient AI assessment."""
    linked_requirement.ai_assessment = AIAssessment(sufficient=True, notes="Covers addition")
    return linked_requirement


# =============================================================================
# Project Fixtures
# =============================================================================


@pytest.fixture
def project(tmp_path) -> Path:
    """A project root with two test files and an empty requirements directory."""
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "auth.test.ts").write_text(AUTH_TEST_SOURCE)
    (tmp_path / "src" / "math.test.ts").write_text(MATH_TEST_SOURCE)
    (tmp_path / ".requirements").mkdir()
    return tmp_path


@pytest.fixture
def req_dir(project) -> Path:
    """The requirements directory of the project fixture."""
    return project / ".requirements"


@pytest.fixture
def runner() -> CliRunner:
    """A Click test runner."""
    return CliRunner()
