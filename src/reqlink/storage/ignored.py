"""Ignore-list of tests excluded from orphan reporting."""

import warnings
from datetime import datetime, timezone
from pathlib import Path

import yaml

from reqlink.core.models import IgnoredTest, TestKey
from reqlink.storage.requirements import write_yaml_atomic

IGNORED_TESTS_FILE = "ignored-tests.yml"


def load_ignored_tests(req_dir: Path) -> list[IgnoredTest]:
    """Read the ignore-list from the requirements directory.

    A missing or empty file is an empty list. Entries without ``file`` and
    ``identifier`` are skipped with a warning.

    Raises:
        ValueError: If the file contains invalid YAML.
    """
    path = req_dir / IGNORED_TESTS_FILE
    if not path.exists():
        return []
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in file {path}: {e}") from e

    if not isinstance(data, dict):
        return []

    ignored: list[IgnoredTest] = []
    for entry in data.get("tests") or []:
        if not isinstance(entry, dict) or not entry.get("file") or not entry.get("identifier"):
            warnings.warn(f"Malformed ignored test entry: {entry!r}. Skipping.", stacklevel=2)
            continue
        ignored.append(
            IgnoredTest(
                file=str(entry["file"]),
                identifier=str(entry["identifier"]),
                reason=str(entry.get("reason") or ""),
                ignored_at=entry.get("ignoredAt"),
            )
        )
    return ignored


def save_ignored_tests(req_dir: Path, ignored: list[IgnoredTest]) -> None:
    """Write the ignore-list to the requirements directory."""
    tests = []
    for t in ignored:
        entry = {"file": t.file, "identifier": t.identifier, "reason": t.reason}
        if t.ignored_at:
            entry["ignoredAt"] = t.ignored_at
        tests.append(entry)
    write_yaml_atomic({"tests": tests}, req_dir / IGNORED_TESTS_FILE)


def ignored_keys(ignored: list[IgnoredTest]) -> set[TestKey]:
    """Return the ``(file, identifier)`` keys of an ignore-list."""
    return {t.key for t in ignored}


def add_ignored_test(req_dir: Path, file: str, identifier: str, reason: str) -> bool:
    """Add a test to the ignore-list.

    Returns:
        False if the test was already ignored, True otherwise.
    """
    ignored = load_ignored_tests(req_dir)
    if (file, identifier) in ignored_keys(ignored):
        return False
    ignored.append(
        IgnoredTest(
            file=file,
            identifier=identifier,
            reason=reason,
            ignored_at=datetime.now(timezone.utc).isoformat(),
        )
    )
    save_ignored_tests(req_dir, ignored)
    return True


def remove_ignored_test(req_dir: Path, file: str, identifier: str) -> bool:
    """Remove a test from the ignore-list.

    Returns:
        True if an entry was removed.
    """
    ignored = load_ignored_tests(req_dir)
    remaining = [t for t in ignored if t.key != (file, identifier)]
    if len(remaining) == len(ignored):
        return False
    save_ignored_tests(req_dir, remaining)
    return True
