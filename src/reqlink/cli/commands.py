"""CLI commands for reqlink."""

from __future__ import annotations

import functools
import json
import logging
import sys
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeVar

import click
import yaml

if TYPE_CHECKING:
    from reqlink.config.loader import ReqlinkConfig
    from reqlink.core.models import ExtractedTest, Requirement
    from reqlink.verification.engine import CheckReport

F = TypeVar("F", bound=Callable[..., Any])

_STATUS_COLORS = {
    "verified": "green",
    "unverified": "yellow",
    "stale": "red",
    "n/a": None,
}


def _cli_error_handler(f: F) -> F:
    """Decorator that catches common CLI errors and exits cleanly."""

    @functools.wraps(f)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return f(*args, **kwargs)
        except click.Abort:
            click.echo("Aborted.")
            sys.exit(1)
        except (ValueError, FileNotFoundError, OSError, yaml.YAMLError) as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
        except Exception as e:
            # Catch-all for unexpected errors with type info for debugging
            click.echo(f"Unexpected error: {type(e).__name__}: {e}", err=True)
            sys.exit(1)

    return wrapper  # type: ignore[return-value]


def _root_option(f: F) -> F:
    return click.option(
        "--root",
        type=click.Path(exists=True, file_okay=False, path_type=Path),
        help="Project root directory (defaults to the current directory)",
    )(f)


def _load_project(root: Path | None) -> tuple[Path, ReqlinkConfig, Path]:
    """Resolve the project root, its config and its requirements directory.

    Raises:
        FileNotFoundError: If the requirements directory does not exist.
    """
    from reqlink.config.loader import load_config

    root = (root or Path.cwd()).resolve()
    config = load_config(root / "pyproject.toml")
    req_dir = config.requirements_path(root)
    if not req_dir.is_dir():
        raise FileNotFoundError(f"Requirements directory not found: {req_dir}. Run 'reqlink init' first.")
    return root, config, req_dir


def _parse_test_spec(spec: str) -> tuple[str, str]:
    """Split a ``file:identifier`` test spec on its first colon.

    Raises:
        ValueError: If either side is empty.
    """
    file, sep, identifier = spec.partition(":")
    if not sep or not file or not identifier:
        raise ValueError(f"Invalid test spec '{spec}'. Use format file:identifier, e.g. src/auth.test.ts:logs in")
    return file, identifier


def _discover(root: Path, config: ReqlinkConfig, req_dir: Path, no_cache: bool = False) -> list[ExtractedTest]:
    from reqlink.extraction.discovery import discover_tests, discover_tests_with_cache_file
    from reqlink.storage.cache import CACHE_FILE

    if config.cache:
        return discover_tests_with_cache_file(
            root,
            config.test_glob,
            req_dir / CACHE_FILE,
            bypass_cache=no_cache,
            exclude=config.exclude_patterns,
        )
    return discover_tests(root, config.test_glob, exclude=config.exclude_patterns)


def _load_requirement_or_fail(req_dir: Path, req_path: str) -> Requirement:
    from reqlink.storage.requirements import load_requirement

    requirement = load_requirement(req_dir, req_path)
    if requirement is None:
        raise FileNotFoundError(f"Requirement not found: {req_path}")
    return requirement


@click.group()
@click.version_option(package_name="reqlink")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """reqlink - keep requirements linked to the tests that verify them."""
    if verbose:
        logging.basicConfig(format="%(levelname)s %(name)s: %(message)s")
        logging.getLogger("reqlink").setLevel(logging.DEBUG)


# =============================================================================
# Init
# =============================================================================


@cli.command()
@click.option("--test-glob", default=None, help="Glob selecting test files")
@click.option("--requirements-dir", default=None, help="Directory for requirement files")
@click.option("--force", is_flag=True, help="Overwrite an existing [tool.reqlink] section")
@_root_option
@_cli_error_handler
def init(test_glob: str | None, requirements_dir: str | None, force: bool, root: Path | None) -> None:
    r"""Initialize reqlink in a project.

    Creates the requirements directory and writes a [tool.reqlink] section
    to pyproject.toml, creating the file if needed.

    \b
    Examples::

        reqlink init
        reqlink init --test-glob "src/**/*.spec.ts"
    """
    from reqlink.config.loader import ReqlinkConfig

    root = (root or Path.cwd()).resolve()
    config = ReqlinkConfig()
    if test_glob:
        config.test_glob = test_glob
    if requirements_dir:
        config.requirements_dir = requirements_dir

    req_dir = config.requirements_path(root)
    if req_dir.is_dir():
        click.echo(f"Requirements directory already exists: {req_dir}")
    else:
        req_dir.mkdir(parents=True)
        click.echo(f"Created directory: {req_dir}")

    _add_reqlink_config_to_pyproject(root / "pyproject.toml", config, force)

    click.echo("\nInitialization complete!")
    click.echo("Link a test with: reqlink link <REQ_path.yml> <file:identifier>")


def _add_reqlink_config_to_pyproject(pyproject_path: Path, config: ReqlinkConfig, force: bool) -> None:
    """Add a [tool.reqlink] section to pyproject.toml.

    Existing formatting and comments in the file are preserved.

    Args:
        pyproject_path: Path to the pyproject.toml file.
        config: Values to write.
        force: Replace an existing [tool.reqlink] section.
    """
    from typing import cast

    import tomlkit
    from tomlkit.items import Table

    if pyproject_path.exists():
        doc = tomlkit.parse(pyproject_path.read_text(encoding="utf-8"))
    else:
        doc = tomlkit.document()

    if "tool" in doc and "reqlink" in cast(Table, doc["tool"]) and not force:
        click.echo("pyproject.toml already has [tool.reqlink] configuration, skipping.")
        return

    if "tool" not in doc:
        doc["tool"] = tomlkit.table(is_super_table=True)

    reqlink_config = tomlkit.table()
    reqlink_config["test_glob"] = config.test_glob
    reqlink_config["requirements_dir"] = config.requirements_dir
    reqlink_config["results_file"] = config.results_file
    cast(Table, doc["tool"])["reqlink"] = reqlink_config

    pyproject_path.write_text(tomlkit.dumps(doc), encoding="utf-8")
    click.echo("Added [tool.reqlink] configuration to pyproject.toml")


# =============================================================================
# Check
# =============================================================================


def _report_to_dict(report: CheckReport, cycles: list[str]) -> dict[str, Any]:
    s = report.summary
    return {
        "summary": {
            "totalRequirements": s.total_requirements,
            "planned": s.planned,
            "done": s.done,
            "tested": s.tested,
            "untested": s.untested,
            "verified": s.verified,
            "unverified": s.unverified,
            "stale": s.stale,
            "orphanedTestCount": s.orphaned_tests,
            "blockedRequirements": s.blocked_requirements,
            "unansweredQuestions": s.unanswered_questions,
            "unverifiedNFRs": s.unverified_nfrs,
            "byPriority": s.by_priority,
            "totalTests": report.total_tests,
        },
        "groups": [
            {
                "path": group,
                "requirements": [
                    {
                        "id": row.path,
                        "status": row.status,
                        "verification": row.verification,
                        "testCount": row.test_count,
                        "staleTests": [{"file": t.file, "identifier": t.identifier} for t in row.stale_tests],
                        "coverageSufficient": row.coverage_sufficient,
                        "unansweredQuestions": row.unanswered_questions,
                        "unverifiedNFRs": row.unverified_nfrs,
                        "priority": row.priority,
                        "blockedBy": row.dependency_issues,
                    }
                    for row in rows
                ],
            }
            for group, rows in report.groups.items()
        ],
        "orphanedTests": [{"file": t.file, "identifier": t.identifier} for t in report.orphaned_tests],
        "dependencyIssues": [
            {"requirement": issue.requirement, "blockedBy": issue.blocked_by} for issue in report.dependency_issues
        ],
        "dependencyCycles": cycles,
    }


def _print_report(report: CheckReport, show_orphans: bool) -> None:
    s = report.summary
    click.echo(f"Requirements: {s.total_requirements} ({s.done} done, {s.planned} planned)")
    click.echo(f"Tests found: {report.total_tests}")
    click.echo(f"  Tested: {s.tested}  Untested: {s.untested}")
    click.echo(f"  Verified: {s.verified}  Unverified: {s.unverified}  Stale: {s.stale}")

    for group, rows in report.groups.items():
        click.echo(f"\n{group}")
        for row in rows:
            label = click.style(row.verification, fg=_STATUS_COLORS.get(row.verification))
            click.echo(f"  {row.path} [{row.status}] {label} ({row.test_count} tests)")
            for link in row.stale_tests:
                click.echo(click.style(f"    stale: {link.file}:{link.identifier}", fg="red"))

    if report.dependency_issues:
        click.echo(click.style(f"\nBlocked requirements: {len(report.dependency_issues)}", fg="yellow", bold=True))
        for issue in report.dependency_issues:
            click.echo(f"  {issue.requirement} blocked by {', '.join(issue.blocked_by)}")

    click.echo(f"\nOrphaned tests: {s.orphaned_tests}")
    if show_orphans:
        for test in report.orphaned_tests:
            click.echo(f"  {test.file}:{test.identifier}")


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output the report as JSON")
@click.option("--no-cache", is_flag=True, help="Rescan every test file, ignoring the discovery cache")
@click.option("--orphans", is_flag=True, help="List every orphaned test")
@_root_option
@_cli_error_handler
def check(as_json: bool, no_cache: bool, orphans: bool, root: Path | None) -> None:
    """Check every requirement's verification state.

    Scans the test tree, compares each linked test's stored hash with its
    current one, and reports stale links, orphaned tests and unmet
    dependencies. Exits with status 1 when any requirement is stale or a
    requirement file is invalid.
    """
    from reqlink.storage.ignored import ignored_keys, load_ignored_tests
    from reqlink.storage.requirements import load_all_requirements
    from reqlink.verification.dependencies import find_dependency_cycles
    from reqlink.verification.engine import check_requirements

    root, config, req_dir = _load_project(root)
    for warning in config.validate(root):
        click.echo(f"Warning: {warning}", err=True)

    loaded = load_all_requirements(req_dir)
    for error in loaded.errors:
        click.echo(f"Error: {error}", err=True)

    extracted = _discover(root, config, req_dir, no_cache=no_cache)
    ignored = ignored_keys(load_ignored_tests(req_dir))
    report = check_requirements(loaded.requirements, extracted, ignored)
    cycles = find_dependency_cycles(loaded.requirements)

    if as_json:
        click.echo(json.dumps(_report_to_dict(report, cycles), indent=2))
    else:
        _print_report(report, orphans)
        for cycle in cycles:
            click.echo(click.style(cycle, fg="red"), err=True)

    if loaded.errors or report.summary.stale:
        sys.exit(1)


# =============================================================================
# Links
# =============================================================================


@cli.command()
@click.argument("req_path")
@click.argument("test_spec")
@_root_option
@_cli_error_handler
def link(req_path: str, test_spec: str, root: Path | None) -> None:
    r"""Link a test to a requirement.

    REQ_PATH is the requirement id, e.g. auth/REQ_login.yml. TEST_SPEC is
    file:identifier. The test's current hash is stored with the link.

    \b
    Examples::

        reqlink link auth/REQ_login.yml "src/auth.test.ts:validates login"
    """
    from reqlink.extraction.discovery import find_test
    from reqlink.storage.links import link_test
    from reqlink.storage.requirements import write_requirement

    root, _config, req_dir = _load_project(root)
    requirement = _load_requirement_or_fail(req_dir, req_path)
    file, identifier = _parse_test_spec(test_spec)

    extracted = find_test(root, file, identifier)
    if extracted is None:
        raise ValueError(f"Test not found: {file}:{identifier}")

    added = link_test(requirement, extracted)
    write_requirement(requirement, req_dir)
    verb = "Linked" if added else "Re-linked"
    click.echo(f"{verb}: {extracted.file}:{extracted.identifier} -> {req_path}")
    click.echo(f"Requirement now has {len(requirement.tests)} test(s) linked.")


@cli.command()
@click.argument("req_path")
@click.argument("test_spec")
@_root_option
@_cli_error_handler
def unlink(req_path: str, test_spec: str, root: Path | None) -> None:
    """Remove a test link from a requirement."""
    from reqlink.storage.links import unlink_test
    from reqlink.storage.requirements import write_requirement

    _root, _config, req_dir = _load_project(root)
    requirement = _load_requirement_or_fail(req_dir, req_path)
    file, identifier = _parse_test_spec(test_spec)

    if not unlink_test(requirement, file, identifier):
        raise ValueError(f"Test {file}:{identifier} is not linked to {req_path}")
    write_requirement(requirement, req_dir)
    click.echo(f"Unlinked: {file}:{identifier} from {req_path}")


@cli.command()
@click.argument("req_paths", nargs=-1, required=True)
@click.option("--no-cache", is_flag=True, help="Rescan every test file, ignoring the discovery cache")
@_root_option
@_cli_error_handler
def accept(req_paths: tuple[str, ...], no_cache: bool, root: Path | None) -> None:
    r"""Accept the current content of stale tests.

    Re-snapshots every stale link of each REQ_PATH to the test's current
    hash. The AI assessment is cleared, so the requirement returns to
    unverified until it is re-assessed. Links to tests that no longer exist
    are left stale.

    \b
    Examples::

        reqlink accept auth/REQ_login.yml
    """
    from reqlink.storage.links import accept_current_hashes
    from reqlink.storage.requirements import write_requirement
    from reqlink.verification.engine import build_extracted_index

    root, config, req_dir = _load_project(root)
    requirements = [_load_requirement_or_fail(req_dir, p) for p in req_paths]
    index = build_extracted_index(_discover(root, config, req_dir, no_cache=no_cache))

    for requirement in requirements:
        updated = accept_current_hashes(requirement, index)
        if not updated:
            click.echo(f"{requirement.path}: nothing to accept")
            continue
        write_requirement(requirement, req_dir)
        click.echo(f"{requirement.path}: accepted {len(updated)} test(s)")
        for test_link in updated:
            click.echo(f"  {test_link.file}:{test_link.identifier}")


# =============================================================================
# Ignore list
# =============================================================================


@cli.command("ignore-test")
@click.argument("test_spec")
@click.option("--reason", required=True, help="Why the test needs no requirement")
@_root_option
@_cli_error_handler
def ignore_test(test_spec: str, reason: str, root: Path | None) -> None:
    """Exclude a test from orphan reporting."""
    from reqlink.storage.ignored import add_ignored_test

    _root, _config, req_dir = _load_project(root)
    file, identifier = _parse_test_spec(test_spec)
    if add_ignored_test(req_dir, file, identifier, reason):
        click.echo(f"Ignored: {file}:{identifier}")
    else:
        click.echo(f"Test is already ignored: {file}:{identifier}")


@cli.command("unignore-test")
@click.argument("test_spec")
@_root_option
@_cli_error_handler
def unignore_test(test_spec: str, root: Path | None) -> None:
    """Remove a test from the ignore-list."""
    from reqlink.storage.ignored import remove_ignored_test

    _root, _config, req_dir = _load_project(root)
    file, identifier = _parse_test_spec(test_spec)
    if not remove_ignored_test(req_dir, file, identifier):
        raise ValueError(f"Test is not ignored: {file}:{identifier}")
    click.echo(f"Unignored: {file}:{identifier}")


# =============================================================================
# Test results
# =============================================================================


@cli.command("import-results")
@click.argument("results_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--format",
    "format_name",
    type=click.Choice(["junit-xml", "json"]),
    default=None,
    help="Results format (detected from content by default)",
)
@_root_option
@_cli_error_handler
def import_results(results_path: Path, format_name: str | None, root: Path | None) -> None:
    r"""Import a test-runner results file.

    The file is stored in the requirements directory and every linked test
    with a matching result gets its last result and run time updated.

    \b
    Examples::

        bun test --reporter=junit --reporter-outfile=results.xml
        reqlink import-results results.xml
    """
    from reqlink.results import parse_results
    from reqlink.results.store import annotate_test_links, load_test_results, save_test_results
    from reqlink.storage.requirements import load_all_requirements, write_requirement

    _root, config, req_dir = _load_project(root)

    parsed = parse_results(results_path.read_text(encoding="utf-8"), format_name)
    dest = save_test_results(results_path, req_dir, config.results_file)
    run = load_test_results(dest)
    if run is None:
        raise ValueError(f"Could not read stored results: {dest}")

    loaded = load_all_requirements(req_dir)
    for error in loaded.errors:
        click.echo(f"Warning: skipping invalid requirement {error}", err=True)
    annotated = 0
    for requirement in loaded.requirements:
        before = [(t.last_result, t.last_run_at) for t in requirement.tests]
        annotated += annotate_test_links([requirement], run)
        if [(t.last_result, t.last_run_at) for t in requirement.tests] != before:
            write_requirement(requirement, req_dir)

    s = parsed.summary
    click.echo(f"Imported {s.total} {parsed.format} test results from {results_path}")
    click.echo(f"  Passed: {s.passed}")
    click.echo(f"  Failed: {s.failed}")
    click.echo(f"  Skipped: {s.skipped}")
    click.echo(f"Updated {annotated} linked test(s)")


# =============================================================================
# Requirement status
# =============================================================================


@cli.command()
@click.argument("req_path")
@click.option("--done", "new_status", flag_value="done", help="Mark the requirement done")
@click.option("--planned", "new_status", flag_value="planned", help="Mark the requirement planned")
@_root_option
@_cli_error_handler
def status(req_path: str, new_status: str | None, root: Path | None) -> None:
    """Show or set a requirement's implementation status."""
    from reqlink.storage.requirements import write_requirement

    _root, _config, req_dir = _load_project(root)
    requirement = _load_requirement_or_fail(req_dir, req_path)

    if new_status is None:
        click.echo(f"{req_path}: {requirement.status}")
        return

    if requirement.status == new_status:
        click.echo(f"{req_path} is already {new_status}")
        return

    if new_status == "done" and not requirement.tests:
        click.echo("Warning: Marking as done without any linked tests.")

    previous = requirement.status
    requirement.status = new_status  # type: ignore[assignment]
    write_requirement(requirement, req_dir)
    click.echo(f"Status updated: {req_path}")
    click.echo(f"  {previous} -> {new_status}")


@cli.command()
@_root_option
@_cli_error_handler
def deps(root: Path | None) -> None:
    """Report unmet blocking dependencies and dependency cycles."""
    from reqlink.storage.requirements import load_all_requirements
    from reqlink.verification.dependencies import check_dependencies, find_dependency_cycles

    _root, _config, req_dir = _load_project(root)
    loaded = load_all_requirements(req_dir)
    for error in loaded.errors:
        click.echo(f"Error: {error}", err=True)
    requirements = loaded.requirements

    issues = check_dependencies(requirements)
    cycles = find_dependency_cycles(requirements)

    for issue in issues:
        click.echo(f"{issue.requirement} blocked by {', '.join(issue.blocked_by)}")
    for cycle in cycles:
        click.echo(click.style(cycle, fg="red"), err=True)

    if not issues and not cycles:
        click.echo(f"All dependencies of {len(requirements)} requirements are met.")
    if loaded.errors or issues or cycles:
        sys.exit(1)


@cli.command("hash")
@click.argument("test_spec")
@_root_option
@_cli_error_handler
def hash_cmd(test_spec: str, root: Path | None) -> None:
    """Print the current fingerprint of one test."""
    from reqlink.extraction.discovery import find_test

    root = (root or Path.cwd()).resolve()
    file, identifier = _parse_test_spec(test_spec)
    extracted = find_test(root, file, identifier)
    if extracted is None:
        raise ValueError(f"Test not found: {file}:{identifier}")
    click.echo(extracted.hash)
