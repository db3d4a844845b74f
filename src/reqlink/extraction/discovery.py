"""Filesystem discovery of tests and their fingerprints."""

import fnmatch
import logging
from pathlib import Path

from reqlink.core.models import ExtractedTest
from reqlink.extraction.extractor import extract_test_body, find_test_declarations
from reqlink.extraction.hasher import hash_test_body
from reqlink.storage.cache import TestCache

logger = logging.getLogger("reqlink")

DEFAULT_TEST_GLOB = "**/*.test.{ts,tsx,js,jsx}"
ALWAYS_EXCLUDED_DIRS = {"node_modules", ".git"}


def expand_braces(pattern: str) -> list[str]:
    """Expand ``{a,b}`` alternatives in a glob pattern.

    ``pathlib`` globbing has no brace syntax, so ``**/*.test.{ts,js}``
    becomes ``["**/*.test.ts", "**/*.test.js"]``. Nested groups expand
    recursively; an unmatched ``{`` is left as a literal.
    """
    start = pattern.find("{")
    if start == -1:
        return [pattern]

    depth = 0
    options: list[str] = []
    option_start = start + 1
    for i in range(start, len(pattern)):
        ch = pattern[i]
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                options.append(pattern[option_start:i])
                head, tail = pattern[:start], pattern[i + 1 :]
                expanded: list[str] = []
                for option in options:
                    for candidate in expand_braces(head + option + tail):
                        if candidate not in expanded:
                            expanded.append(candidate)
                return expanded
        elif ch == "," and depth == 1:
            options.append(pattern[option_start:i])
            option_start = i + 1

    return [pattern]


def resolve_test_files(root: Path, pattern: str, exclude: list[str] | None = None) -> list[Path]:
    """Resolve a glob pattern relative to ``root`` into a sorted file list.

    Args:
        root: Project root directory.
        pattern: Glob such as ``**/*.test.ts``; brace alternatives allowed.
        exclude: Optional fnmatch patterns, matched against the posix path
            relative to ``root``, for files to leave out.

    Returns:
        Unique matching files, sorted by path.
    """
    files: set[Path] = set()
    for expanded in expand_braces(pattern):
        for path in root.glob(expanded):
            if not path.is_file():
                continue
            relative = path.relative_to(root)
            if ALWAYS_EXCLUDED_DIRS.intersection(relative.parts[:-1]):
                continue
            rel = relative.as_posix()
            if exclude and any(fnmatch.fnmatch(rel, pat) for pat in exclude):
                continue
            files.add(path)
    return sorted(files)


def extract_tests_from_file(path: Path, root: Path) -> list[ExtractedTest]:
    """Extract and fingerprint every test declared in one file.

    Raises:
        OSError: If the file cannot be read.
        UnicodeDecodeError: If the file is not valid UTF-8.
    """
    content = path.read_text(encoding="utf-8")
    rel = path.relative_to(root).as_posix()
    return [
        ExtractedTest(file=rel, identifier=d.identifier, hash=hash_test_body(d.body))
        for d in find_test_declarations(content)
    ]


def discover_tests(
    root: Path,
    pattern: str = DEFAULT_TEST_GLOB,
    bypass_cache: bool = False,
    cache: TestCache | None = None,
    exclude: list[str] | None = None,
) -> list[ExtractedTest]:
    """Scan the test tree and fingerprint every test found.

    Files whose ``(mtime, size)`` signature matches their cache entry are
    not re-read. ``bypass_cache`` (or a pending :meth:`TestCache.invalidate`)
    rescans every file and refreshes the cache.

    A file that cannot be read is logged and contributes no tests; it never
    fails the scan.

    Args:
        root: Project root; the glob is resolved relative to it.
        pattern: Test file glob.
        bypass_cache: Rescan every matched file regardless of cache state.
        cache: Optional cache, updated in place.
        exclude: Optional fnmatch patterns for files to skip.

    Returns:
        One ExtractedTest per declaration, grouped by file in path order.

    Raises:
        FileNotFoundError: If root directory does not exist.
    """
    root = Path(root).resolve()
    if not root.is_dir():
        raise FileNotFoundError(f"Root directory not found: {root}")

    force = bypass_cache
    if cache is not None and cache.consume_invalidation():
        force = True

    tests: list[ExtractedTest] = []
    scanned: set[str] = set()
    reused = 0

    for path in resolve_test_files(root, pattern, exclude):
        rel = path.relative_to(root).as_posix()
        scanned.add(rel)
        try:
            stat = path.stat()
        except OSError as e:
            logger.warning("Skipping %s: %s", rel, e)
            continue

        if cache is not None and not force:
            cached = cache.lookup(rel, stat.st_mtime_ns, stat.st_size)
            if cached is not None:
                tests.extend(cached)
                reused += 1
                continue

        try:
            file_tests = extract_tests_from_file(path, root)
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Skipping %s: %s", rel, e)
            continue

        if cache is not None:
            cache.store(rel, stat.st_mtime_ns, stat.st_size, file_tests)
        tests.extend(file_tests)

    if cache is not None:
        cache.prune(scanned)

    logger.debug(
        "Discovered %d tests in %d files (%d served from cache)",
        len(tests),
        len(scanned),
        reused,
    )
    return tests


def discover_tests_with_cache_file(
    root: Path,
    pattern: str,
    cache_path: Path,
    bypass_cache: bool = False,
    exclude: list[str] | None = None,
) -> list[ExtractedTest]:
    """Run :func:`discover_tests` backed by an on-disk cache file.

    Failing to write the cache is logged; the scan result is still returned.
    """
    cache = TestCache.load(cache_path)
    tests = discover_tests(root, pattern, bypass_cache=bypass_cache, cache=cache, exclude=exclude)
    try:
        cache.save(cache_path)
    except OSError as e:
        logger.warning("Could not write test cache %s: %s", cache_path, e)
    return tests


def find_test(root: Path, file: str, identifier: str) -> ExtractedTest | None:
    """Fingerprint a single test by file and identifier.

    Args:
        root: Project root.
        file: Test file path, relative to ``root`` or absolute.
        identifier: Test name.

    Returns:
        The ExtractedTest, or None if the file cannot be read or does not
        declare the test.
    """
    root = Path(root).resolve()
    path = Path(file)
    if not path.is_absolute():
        path = root / path
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return None

    body = extract_test_body(content, identifier)
    if body is None:
        return None

    try:
        rel = path.resolve().relative_to(root).as_posix()
    except ValueError:
        rel = path.as_posix()
    return ExtractedTest(file=rel, identifier=identifier, hash=hash_test_body(body))
