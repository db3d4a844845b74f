"""Test result parsers with content-based format detection.

Parsers are tried in registry order; the first whose ``can_parse``
accepts the content wins. New formats are added with
:func:`register_parser` without touching the dispatch.
"""

from reqlink.core.models import ParsedResults
from reqlink.results.base import ResultFormatError, ResultParseError, ResultParser, summarize
from reqlink.results.json_results import JSONResultsParser
from reqlink.results.junit_xml import JUnitXMLParser

PARSERS: list[ResultParser] = [JUnitXMLParser(), JSONResultsParser()]


def register_parser(parser: ResultParser, index: int | None = None) -> None:
    """Add a parser to the registry, at ``index`` or at the lowest priority."""
    if index is None:
        PARSERS.append(parser)
    else:
        PARSERS.insert(index, parser)


def get_parser(name: str) -> ResultParser:
    """Return the registered parser for a format name.

    Raises:
        ResultFormatError: If no parser has that name.
    """
    for parser in PARSERS:
        if parser.name == name:
            return parser
    known = ", ".join(p.name for p in PARSERS)
    raise ResultFormatError(f"Unknown results format '{name}'. Known formats: {known}")


def detect_format(content: str) -> str | None:
    """Return the name of the first parser that accepts ``content``."""
    for parser in PARSERS:
        if parser.can_parse(content):
            return parser.name
    return None


def parse_results(content: str, format: str | None = None) -> ParsedResults:
    """Parse a results document, detecting its format unless given.

    Raises:
        ResultFormatError: If no parser recognizes the content. An empty
            result is never returned in that case, since it would look like
            every test vanished.
        ResultParseError: If the detected parser cannot read the content.
    """
    name = format or detect_format(content)
    if name is None:
        known = " or ".join(p.name for p in PARSERS)
        raise ResultFormatError(f"Could not detect test results format: no format matched (expected {known})")
    return get_parser(name).parse(content)


__all__ = [
    "PARSERS",
    "JSONResultsParser",
    "JUnitXMLParser",
    "ResultFormatError",
    "ResultParseError",
    "ResultParser",
    "detect_format",
    "get_parser",
    "parse_results",
    "register_parser",
    "summarize",
]
