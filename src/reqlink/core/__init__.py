"""Core domain models for reqlink."""

from reqlink.core.models import (
    AIAssessment,
    Dependency,
    DependencyIssue,
    ExtractedTest,
    IgnoredTest,
    Requirement,
    TestLink,
    TestResult,
)

__all__ = [
    "AIAssessment",
    "Dependency",
    "DependencyIssue",
    "ExtractedTest",
    "IgnoredTest",
    "Requirement",
    "TestLink",
    "TestResult",
]
