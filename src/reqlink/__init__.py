"""reqlink - requirement-to-test traceability with change detection."""

from reqlink._version import __version__
from reqlink.core.models import ExtractedTest, Requirement, TestLink

__all__ = ["ExtractedTest", "Requirement", "TestLink", "__version__"]
