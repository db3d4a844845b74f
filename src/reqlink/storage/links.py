"""Mutations of a requirement's test links.

Every mutation that changes what a requirement's tests are (or what they
contain) clears the AI assessment, since the assessment was made against
the old set.
"""

from reqlink.core.models import ExtractedTest, Requirement, TestKey, TestLink


def link_test(requirement: Requirement, extracted: ExtractedTest) -> bool:
    """Link a test to a requirement, snapshotting its current hash.

    Re-linking an already linked test refreshes the stored hash.

    Returns:
        True if a new link was added, False if an existing one was refreshed.
    """
    existing = requirement.find_test(extracted.file, extracted.identifier)
    requirement.ai_assessment = None
    if existing is not None:
        existing.hash = extracted.hash
        return False
    requirement.tests.append(TestLink(file=extracted.file, identifier=extracted.identifier, hash=extracted.hash))
    return True


def unlink_test(requirement: Requirement, file: str, identifier: str) -> bool:
    """Remove a test link.

    Returns:
        True if a link was removed.
    """
    remaining = [t for t in requirement.tests if not (t.file == file and t.identifier == identifier)]
    if len(remaining) == len(requirement.tests):
        return False
    requirement.tests = remaining
    requirement.ai_assessment = None
    return True


def accept_current_hashes(requirement: Requirement, index: dict[TestKey, str]) -> list[TestLink]:
    """Re-snapshot stale links to their current hashes.

    Links whose test no longer exists are left untouched; they stay stale
    until the test is restored or unlinked.

    Returns:
        The links that were updated.
    """
    updated: list[TestLink] = []
    for link in requirement.tests:
        current = index.get(link.key)
        if current is not None and current != link.hash:
            link.hash = current
            updated.append(link)
    if updated:
        requirement.ai_assessment = None
    return updated
