"""Requirement reading and writing for the YAML requirement store.

Requirements live under the requirements directory as ``REQ_*.yml`` files,
optionally nested in folders. A requirement's id is its path relative to
that directory, e.g. ``auth/REQ_login.yml``.
"""

import os
import re
import tempfile
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Any

import yaml

from reqlink.core.models import (
    IMPLEMENTATION_STATUSES,
    AIAssessment,
    Dependency,
    Requirement,
    TestLink,
)

REQUIREMENTS_DIR = ".requirements"
REQUIREMENT_FILE_RE = re.compile(r"^REQ_[^/\\]+\.yml$")

_STANDARD_FIELDS = {
    "status",
    "tests",
    "dependencies",
    "nfrs",
    "aiAssessment",
    "priority",
    "questions",
}


class RequirementValidationError(ValueError):
    """A requirement file exists but does not satisfy the store schema."""

    def __init__(self, req_path: str, message: str) -> None:
        super().__init__(f"{req_path}: {message}")
        self.req_path = req_path


@dataclass
class LoadResult:
    """Requirements loaded from a directory plus the files that failed."""

    requirements: list[Requirement] = field(default_factory=list)
    errors: list[RequirementValidationError] = field(default_factory=list)


class _BlockScalarDumper(yaml.SafeDumper):
    """YAML dumper that uses literal block scalar style for multiline strings."""


def _str_representer(dumper: _BlockScalarDumper, data: str) -> yaml.ScalarNode:
    if "\n" in data:
        return dumper.represent_scalar("tag:yaml.org,2002:str", data, style="|")
    return dumper.represent_scalar("tag:yaml.org,2002:str", data)


_BlockScalarDumper.add_representer(str, _str_representer)


def dump_yaml(data: dict[str, Any], stream: IO[str], **kwargs: Any) -> None:
    """Dump YAML using block scalar style for multiline strings.

    Args:
        data: The dictionary to serialize as YAML.
        stream: A writable file-like object for the YAML output.
        **kwargs: Additional keyword arguments passed to ``yaml.dump``.
    """
    kwargs.setdefault("default_flow_style", False)
    kwargs.setdefault("sort_keys", False)
    kwargs.setdefault("allow_unicode", True)
    yaml.dump(data, stream, Dumper=_BlockScalarDumper, **kwargs)


def write_yaml_atomic(data: dict[str, Any], path: Path) -> None:
    """Write ``data`` to ``path`` through a temp file and rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(suffix=".yml", prefix=".tmp_", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            dump_yaml(data, f)
        Path(tmp_path).replace(path)  # Atomic on POSIX
    except BaseException:
        Path(tmp_path).unlink(missing_ok=True)
        raise


def is_valid_requirement_path(req_path: str) -> bool:
    """Return True if the last path segment looks like ``REQ_<name>.yml``."""
    filename = req_path.replace("\\", "/").rsplit("/", 1)[-1]
    return bool(REQUIREMENT_FILE_RE.match(filename))


def _parse_test_links(raw: Any, req_path: str) -> list[TestLink]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        warnings.warn(
            f"Requirement '{req_path}' has 'tests' field that is not a list. Got: {type(raw).__name__}",
            stacklevel=3,
        )
        return []

    links: list[TestLink] = []
    for entry in raw:
        if not isinstance(entry, dict) or not entry.get("file") or not entry.get("identifier"):
            warnings.warn(
                f"Test link in requirement '{req_path}' needs 'file' and 'identifier': {entry!r}. Skipping.",
                stacklevel=3,
            )
            continue
        links.append(
            TestLink(
                file=str(entry["file"]),
                identifier=str(entry["identifier"]),
                hash=str(entry.get("hash") or ""),
                last_result=entry.get("lastResult"),
                last_run_at=entry.get("lastRunAt"),
            )
        )
    return links


def _parse_dependencies(raw: Any, req_path: str) -> list[Dependency]:
    if not isinstance(raw, list):
        return []

    dependencies: list[Dependency] = []
    for entry in raw:
        if isinstance(entry, str):
            dependencies.append(Dependency(path=entry))
        elif isinstance(entry, dict) and entry.get("path"):
            # Anything other than an explicit false keeps the default
            dependencies.append(Dependency(path=str(entry["path"]), blocking=entry.get("blocking") is not False))
        else:
            warnings.warn(
                f"Dependency in requirement '{req_path}' has no 'path': {entry!r}. Skipping.",
                stacklevel=3,
            )
    return dependencies


def _parse_assessment(raw: Any) -> AIAssessment | None:
    if not isinstance(raw, dict):
        return None
    return AIAssessment(
        sufficient=raw.get("sufficient"),
        notes=str(raw.get("notes") or ""),
        assessed_at=raw.get("assessedAt"),
        extra={k: v for k, v in raw.items() if k not in {"sufficient", "notes", "assessedAt"}},
    )


def requirement_from_dict(data: dict[str, Any], req_path: str) -> Requirement:
    """Build a Requirement from a parsed YAML mapping.

    Raises:
        RequirementValidationError: If ``status`` is missing or invalid.
    """
    status = data.get("status")
    if status not in IMPLEMENTATION_STATUSES:
        raise RequirementValidationError(
            req_path,
            'Missing or invalid "status" field. Must be "planned" or "done".',
        )

    nfrs = data.get("nfrs") or []
    questions = data.get("questions") or []

    return Requirement(
        path=req_path,
        status=status,
        tests=_parse_test_links(data.get("tests"), req_path),
        dependencies=_parse_dependencies(data.get("dependencies"), req_path),
        nfrs=[n for n in nfrs if isinstance(n, dict)] if isinstance(nfrs, list) else [],
        ai_assessment=_parse_assessment(data.get("aiAssessment")),
        priority=data.get("priority") or None,
        questions=[q for q in questions if isinstance(q, dict)] if isinstance(questions, list) else [],
        extra={k: v for k, v in data.items() if k not in _STANDARD_FIELDS},
    )


def requirement_to_dict(requirement: Requirement) -> dict[str, Any]:
    """Serialize a Requirement back to its YAML mapping.

    Unknown keys captured in ``extra`` come first, in their original order,
    so hand-written fields such as ``gherkin`` keep their place.
    """
    output: dict[str, Any] = dict(requirement.extra)

    tests = []
    for link in requirement.tests:
        entry: dict[str, Any] = {"file": link.file, "identifier": link.identifier, "hash": link.hash}
        if link.last_result is not None:
            entry["lastResult"] = link.last_result
        if link.last_run_at is not None:
            entry["lastRunAt"] = link.last_run_at
        tests.append(entry)
    output["tests"] = tests
    output["status"] = requirement.status

    if requirement.priority:
        output["priority"] = requirement.priority
    if requirement.dependencies:
        output["dependencies"] = [
            {"path": d.path} if d.blocking else {"path": d.path, "blocking": False} for d in requirement.dependencies
        ]
    if requirement.nfrs:
        output["nfrs"] = requirement.nfrs
    if requirement.questions:
        output["questions"] = requirement.questions

    assessment = requirement.ai_assessment
    if assessment is not None:
        assessment_data: dict[str, Any] = {"sufficient": assessment.sufficient, "notes": assessment.notes}
        if assessment.assessed_at is not None:
            assessment_data["assessedAt"] = assessment.assessed_at
        assessment_data.update(assessment.extra)
        output["aiAssessment"] = assessment_data

    return output


def read_requirement(path: Path, req_dir: Path) -> Requirement:
    """Read a requirement YAML file.

    Args:
        path: Path to the ``REQ_*.yml`` file.
        req_dir: The requirements directory, used to derive the id.

    Returns:
        The parsed Requirement.

    Raises:
        OSError: If the file cannot be read.
        ValueError: If the file contains invalid YAML.
        RequirementValidationError: If the status field is missing or invalid.
    """
    req_path = path.relative_to(req_dir).as_posix()
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise OSError(f"Failed to read file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in file {path}: {e}") from e

    if not isinstance(data, dict):
        data = {}
    return requirement_from_dict(data, req_path)


def write_requirement(requirement: Requirement, req_dir: Path) -> Path:
    """Write a requirement to ``req_dir / requirement.path``.

    Returns:
        The path written.

    Raises:
        ValueError: If the requirement path is not a ``REQ_*.yml`` name.
    """
    if not is_valid_requirement_path(requirement.path):
        raise ValueError(f"Invalid requirement path: {requirement.path}")
    path = req_dir / requirement.path
    write_yaml_atomic(requirement_to_dict(requirement), path)
    return path


def load_requirement(req_dir: Path, req_path: str) -> Requirement | None:
    """Load one requirement by id.

    Returns:
        The Requirement, or None if the path is not a requirement name or
        the file does not exist.

    Raises:
        RequirementValidationError: If the file exists but is invalid.
    """
    if not is_valid_requirement_path(req_path):
        return None
    path = req_dir / req_path
    if not path.is_file():
        return None
    return read_requirement(path, req_dir)


def load_all_requirements(req_dir: Path, path_filter: str | None = None) -> LoadResult:
    """Load every ``REQ_*.yml`` under the requirements directory.

    Invalid files are collected in ``LoadResult.errors`` instead of aborting
    the load.

    Args:
        req_dir: The requirements directory.
        path_filter: Optional id prefix (``"auth/"``) to restrict results.

    Returns:
        LoadResult with requirements sorted by path.
    """
    result = LoadResult()
    if not req_dir.is_dir():
        return result

    for path in sorted(req_dir.rglob("REQ_*.yml")):
        if not path.is_file():
            continue
        req_path = path.relative_to(req_dir).as_posix()
        if path_filter and not req_path.startswith(path_filter):
            continue
        try:
            result.requirements.append(read_requirement(path, req_dir))
        except RequirementValidationError as e:
            result.errors.append(e)
        except (OSError, ValueError) as e:
            result.errors.append(RequirementValidationError(req_path, str(e)))

    result.requirements.sort(key=lambda r: r.path)
    return result
