"""Per-file memo of extracted tests for incremental discovery."""

import json
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from reqlink.core.models import ExtractedTest

logger = logging.getLogger("reqlink")

CACHE_FILE = ".test-cache.json"

CURRENT_VERSION = 1
SUPPORTED_VERSIONS = {1}


@dataclass
class CacheEntry:
    """Extraction results for one file, keyed by its stat signature.

    Attributes:
        mtime_ns (int): Modification time of the file when it was scanned.
        size (int): Size in bytes of the file when it was scanned.
        tests (dict[str, str]): Identifier to hash, in declaration order.
    """

    mtime_ns: int
    size: int
    tests: dict[str, str] = field(default_factory=dict)


class TestCache:
    """Cache of extracted tests keyed by file path and ``(mtime, size)``.

    A file is served from the cache only while its stat signature is
    unchanged. :meth:`invalidate` arms a one-shot flag that forces the next
    discovery pass to rescan every file; the pass consumes the flag, so one
    change notification causes exactly one full rescan.
    """

    __test__ = False

    def __init__(self, entries: dict[str, CacheEntry] | None = None) -> None:
        self.entries: dict[str, CacheEntry] = dict(entries or {})
        self._invalidated = False

    def invalidate(self) -> None:
        """Force the next discovery pass to rescan every file."""
        self._invalidated = True

    def consume_invalidation(self) -> bool:
        """Return whether a rescan was requested, and reset the request."""
        invalidated = self._invalidated
        self._invalidated = False
        return invalidated

    def lookup(self, file: str, mtime_ns: int, size: int) -> list[ExtractedTest] | None:
        """Return cached tests for ``file`` if its signature still matches."""
        entry = self.entries.get(file)
        if entry is None or entry.mtime_ns != mtime_ns or entry.size != size:
            return None
        return [ExtractedTest(file=file, identifier=identifier, hash=h) for identifier, h in entry.tests.items()]

    def store(self, file: str, mtime_ns: int, size: int, tests: list[ExtractedTest]) -> None:
        """Record the tests extracted from ``file`` at the given signature."""
        self.entries[file] = CacheEntry(
            mtime_ns=mtime_ns,
            size=size,
            tests={t.identifier: t.hash for t in tests},
        )

    def prune(self, keep: set[str]) -> None:
        """Drop entries for files not in ``keep`` (deleted or no longer matched)."""
        for file in list(self.entries):
            if file not in keep:
                del self.entries[file]

    def clear(self) -> None:
        """Remove every entry."""
        self.entries.clear()

    @classmethod
    def load(cls, path: Path) -> "TestCache":
        """Load a cache file, returning an empty cache when it is unusable.

        A missing, unreadable, corrupt or version-mismatched file is not an
        error; the cache simply starts cold.
        """
        if not path.exists():
            return cls()
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable test cache %s: %s", path, e)
            return cls()

        if not isinstance(data, dict) or data.get("version") not in SUPPORTED_VERSIONS:
            logger.debug("Ignoring test cache %s with unsupported version", path)
            return cls()

        entries: dict[str, CacheEntry] = {}
        for file, raw in data.get("files", {}).items():
            try:
                entries[file] = CacheEntry(
                    mtime_ns=int(raw["mtime_ns"]),
                    size=int(raw["size"]),
                    tests={str(k): str(v) for k, v in raw.get("tests", {}).items()},
                )
            except (KeyError, TypeError, ValueError, AttributeError):
                logger.debug("Dropping malformed cache entry for %s", file)
        return cls(entries)

    def save(self, path: Path) -> None:
        """Write the cache as JSON using a temp file and rename.

        Raises:
            OSError: If the cache file cannot be written.
        """
        data: dict[str, Any] = {
            "version": CURRENT_VERSION,
            "files": {
                file: {"mtime_ns": e.mtime_ns, "size": e.size, "tests": e.tests}
                for file, e in sorted(self.entries.items())
            },
        }
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(suffix=".tmp", prefix=".test-cache_", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(json.dumps(data, indent=2))
                f.flush()
                os.fsync(f.fileno())
            shutil.move(temp_path, path)
        except BaseException:
            Path(temp_path).unlink(missing_ok=True)
            raise
