"""Whitespace-insensitive fingerprints of test bodies."""

import hashlib
import re

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_body(body: str) -> str:
    """Collapse every whitespace run to a single space and strip the ends."""
    return _WHITESPACE_RE.sub(" ", body).strip()


def hash_test_body(body: str) -> str:
    """Compute the fingerprint of a test body for change detection.

    Bodies that differ only in whitespace or line breaks hash identically;
    any token change produces a different hash. The fingerprint is not a
    structural hash and is not meant for security.

    Args:
        body: Source text of a test, as returned by the extractor.

    Returns:
        Hex-encoded SHA-256 digest of the normalized body.
    """
    return hashlib.sha256(normalize_body(body).encode("utf-8")).hexdigest()
