"""Blocking-dependency checks across requirements."""

from collections import deque

from reqlink.core.models import DependencyIssue, Requirement


def check_dependencies(requirements: list[Requirement]) -> list[DependencyIssue]:
    """Find requirements whose blocking dependencies are not done.

    A blocking dependency is unmet when no requirement has its path or
    when that requirement's status is not ``"done"``. Only the status
    field is compared: a done-but-unverified dependency still satisfies
    the relationship.

    Args:
        requirements: The full active set of requirements.

    Returns:
        One DependencyIssue per blocked requirement, in input order.
    """
    status_by_path = {r.path: r.status for r in requirements}

    issues: list[DependencyIssue] = []
    for requirement in requirements:
        unmet = [
            dep.path
            for dep in requirement.dependencies
            if dep.blocking is not False and status_by_path.get(dep.path) != "done"
        ]
        if unmet:
            issues.append(DependencyIssue(requirement=requirement.path, blocked_by=unmet))
    return issues


def find_dependency_cycles(requirements: list[Requirement]) -> list[str]:
    """Check for cycles among dependencies between existing requirements.

    Dependencies on missing paths are ignored here; they are reported by
    :func:`check_dependencies`.

    Returns:
        List of error messages. Empty if no cycles.
    """
    paths = {r.path for r in requirements}
    in_degree: dict[str, int] = {p: 0 for p in paths}
    dependents: dict[str, list[str]] = {p: [] for p in paths}

    for requirement in requirements:
        for dep in requirement.dependencies:
            if dep.path in paths:
                in_degree[requirement.path] += 1
                dependents[dep.path].append(requirement.path)

    queue: deque[str] = deque(p for p, degree in in_degree.items() if degree == 0)
    visited: set[str] = set()
    while queue:
        node = queue.popleft()
        visited.add(node)
        for child in dependents[node]:
            in_degree[child] -= 1
            if in_degree[child] == 0:
                queue.append(child)

    cycle_nodes = paths - visited
    if cycle_nodes:
        return [f"Cycle detected among requirements: {', '.join(sorted(cycle_nodes))}"]
    return []
