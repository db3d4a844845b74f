"""Load reqlink configuration from pyproject.toml."""

import warnings
from dataclasses import dataclass, field
from pathlib import Path

try:
    import tomllib  # type: ignore[import-not-found]
except ImportError:
    import tomli as tomllib

from reqlink.extraction.discovery import DEFAULT_TEST_GLOB
from reqlink.results.store import TEST_RESULTS_FILE
from reqlink.storage.requirements import REQUIREMENTS_DIR

RECOGNIZED_KEYS = {
    "test_glob",
    "requirements_dir",
    "exclude_patterns",
    "results_file",
    "cache",
}


@dataclass
class ReqlinkConfig:
    """Configuration schema for reqlink.

    Attributes:
        test_glob (str): Glob selecting test files, relative to the project
            root. Supports ``{a,b}`` alternation.
        requirements_dir (str): Directory holding ``REQ_*.yml`` files, the
            ignore-list, the discovery cache and stored test results.
        exclude_patterns (list[str]): Glob patterns for test files to skip.
        results_file (str): Name of the stored results artifact inside
            ``requirements_dir``.
        cache (bool): Whether discovery reuses the on-disk test cache.

    Examples:
        Construct a config for a TypeScript-only project::

            >>> config = ReqlinkConfig(test_glob="src/**/*.test.ts")
            >>> config.requirements_dir
            '.requirements'
    """

    test_glob: str = DEFAULT_TEST_GLOB
    requirements_dir: str = REQUIREMENTS_DIR
    exclude_patterns: list[str] = field(default_factory=list)
    results_file: str = TEST_RESULTS_FILE
    cache: bool = True

    def requirements_path(self, root: Path) -> Path:
        """Return the requirements directory resolved against ``root``."""
        return root / self.requirements_dir

    def validate(self, root: Path) -> list[str]:
        """Validate configuration against a project root.

        Args:
            root: The project root directory.

        Returns:
            List of validation warning messages. Empty if no issues found.
        """
        validation_warnings: list[str] = []

        if not self.test_glob.strip():
            validation_warnings.append("test_glob is empty; no tests will be discovered")
        if Path(self.test_glob).is_absolute():
            validation_warnings.append(f"test_glob '{self.test_glob}' must be relative to the project root")

        req_dir = self.requirements_path(root)
        if not req_dir.is_dir():
            validation_warnings.append(f"requirements_dir '{self.requirements_dir}' does not exist")

        if "/" in self.results_file or "\\" in self.results_file:
            validation_warnings.append(f"results_file '{self.results_file}' should be a file name, not a path")

        return validation_warnings


def load_config(config_path: Path | None = None) -> ReqlinkConfig:
    """
    Load reqlink configuration from pyproject.toml.

    Looks for the [tool.reqlink] section. Missing keys take their defaults.

    Args:
        config_path: Optional path to pyproject.toml. If None, uses cwd.

    Returns:
        ReqlinkConfig with loaded values or defaults.

    Examples:
        Load from a specific path::

            >>> from pathlib import Path
            >>> config = load_config(Path("myproject/pyproject.toml"))
    """
    if config_path is None:
        config_path = Path.cwd() / "pyproject.toml"

    if not config_path.exists():
        return ReqlinkConfig()

    with open(config_path, "rb") as f:
        pyproject = tomllib.load(f)

    reqlink_config = pyproject.get("tool", {}).get("reqlink", {})

    unknown = set(reqlink_config.keys()) - RECOGNIZED_KEYS
    if unknown:
        warnings.warn(
            f"Unrecognized keys in [tool.reqlink]: {', '.join(sorted(unknown))}",
            stacklevel=2,
        )

    exclude_patterns = reqlink_config.get("exclude_patterns", [])
    if not isinstance(exclude_patterns, list):
        warnings.warn("[tool.reqlink] exclude_patterns must be a list; ignoring it", stacklevel=2)
        exclude_patterns = []

    return ReqlinkConfig(
        test_glob=reqlink_config.get("test_glob", DEFAULT_TEST_GLOB),
        requirements_dir=reqlink_config.get("requirements_dir", REQUIREMENTS_DIR),
        exclude_patterns=[str(p) for p in exclude_patterns],
        results_file=reqlink_config.get("results_file", TEST_RESULTS_FILE),
        cache=bool(reqlink_config.get("cache", True)),
    )
