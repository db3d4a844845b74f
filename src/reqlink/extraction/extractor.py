"""Locate and slice the source of a named test out of a test file.

Recognizes call-style declarations such as::

    test("adds numbers", () => { ... })
    it.only('handles errors', async function () { ... })
    describe(`Session`, () => { ... })
    Bun.test("runs", () => { ... }, 5000)
    test.each([[1, 2]])("adds %i", (a, b) => { ... })

The scanner is a heuristic, not a parser. It knows enough about string
literals, template literals and comments to ignore braces inside them, and
counts ``{``/``}`` depth to find the end of the callback body.
"""

import re
from bisect import bisect_right
from collections.abc import Iterator
from dataclasses import dataclass

_HEAD_RE = re.compile(
    r"(?<![\w.$])(?:Bun\s*\.\s*test|test|it|describe)"
    r"(?:\s*\.\s*(?:only|skip|todo|failing|concurrent))*"
    r"(?P<each>\s*\.\s*each)?"
    r"\s*\("
)
_NON_CODE_START_RE = re.compile(r"[\"'`]|//|/\*")
_QUOTES = "\"'`"
_ESCAPED_QUOTE_RE = re.compile(r"\\([\\\"'`])")


@dataclass(frozen=True)
class DeclaredTest:
    """A test declaration located in file content.

    Attributes:
        identifier (str): Test name, exactly as written between the quotes.
        start (int): Offset of the callee (``test``, ``it``, ...).
        end (int): Offset just past the end of the call.
        body (str): ``content[start:end]``.
    """

    identifier: str
    start: int
    end: int
    body: str


def _skip_string(content: str, i: int) -> int:
    """Return the offset just past the string literal opening at ``i``.

    Single- and double-quoted strings end at the matching quote or at an
    unescaped newline. Template literals may span lines and contain
    ``${...}`` holes, which are skipped as code.
    """
    quote = content[i]
    n = len(content)
    i += 1
    while i < n:
        ch = content[i]
        if ch == "\\":
            i += 2
            continue
        if ch == quote:
            return i + 1
        if quote == "`" and ch == "$" and content.startswith("{", i + 1):
            i = _skip_template_hole(content, i + 2)
            continue
        if ch == "\n" and quote != "`":
            return i
        i += 1
    return n


def _skip_template_hole(content: str, i: int) -> int:
    """Return the offset just past the ``}`` closing a ``${`` hole."""
    depth = 1
    n = len(content)
    while i < n:
        skipped = _skip_non_code(content, i)
        if skipped != i:
            i = skipped
            continue
        ch = content[i]
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i + 1
        i += 1
    return n


def _skip_non_code(content: str, i: int) -> int:
    """Skip a string, template literal or comment starting at ``i``.

    Returns ``i`` unchanged when no such construct starts there.
    """
    ch = content[i]
    if ch in _QUOTES:
        return _skip_string(content, i)
    if ch == "/":
        if content.startswith("//", i):
            newline = content.find("\n", i)
            return len(content) if newline == -1 else newline
        if content.startswith("/*", i):
            close = content.find("*/", i + 2)
            return len(content) if close == -1 else close + 2
    return i


def _non_code_spans(content: str) -> list[tuple[int, int]]:
    """Return ``(start, end)`` spans of every string and comment in content."""
    spans: list[tuple[int, int]] = []
    i = 0
    while True:
        match = _NON_CODE_START_RE.search(content, i)
        if match is None:
            return spans
        start = match.start()
        end = _skip_non_code(content, start)
        spans.append((start, end))
        i = max(end, start + 1)


def _in_spans(spans: list[tuple[int, int]], starts: list[int], pos: int) -> bool:
    idx = bisect_right(starts, pos) - 1
    return idx >= 0 and spans[idx][1] > pos


def _skip_whitespace(content: str, i: int) -> int:
    n = len(content)
    while i < n and content[i].isspace():
        i += 1
    return i


def _match_paren(content: str, i: int) -> int:
    """Return the offset just past the ``)`` matching the ``(`` at ``i``, or -1."""
    depth = 0
    n = len(content)
    while i < n:
        skipped = _skip_non_code(content, i)
        if skipped != i:
            i = skipped
            continue
        ch = content[i]
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return i + 1
        i += 1
    return -1


def _call_end(content: str, i: int) -> int | None:
    """Find the end of a test call whose argument list continues at ``i``.

    ``i`` points just past the comma that follows the test name, so the
    call's own ``(`` is already open. Brace depth is counted across the
    callback body; the call ends at the ``)`` that closes the argument
    list once every brace is balanced.

    Returns:
        Offset just past the closing ``)``. When the body's braces close
        but the call never does (truncated file), the offset just past the
        closing ``}``. None when no balanced body can be found.
    """
    paren_depth = 1
    brace_depth = 0
    body_end: int | None = None
    n = len(content)
    while i < n:
        skipped = _skip_non_code(content, i)
        if skipped != i:
            i = skipped
            continue
        ch = content[i]
        if ch == "{":
            brace_depth += 1
        elif ch == "}":
            brace_depth -= 1
            if brace_depth < 0:
                break
            if brace_depth == 0:
                body_end = i + 1
        elif brace_depth == 0:
            if ch == "(":
                paren_depth += 1
            elif ch == ")":
                paren_depth -= 1
                if paren_depth == 0:
                    return i + 1
        i += 1
    return body_end


def _parse_declaration(content: str, head: re.Match[str]) -> DeclaredTest | None:
    """Parse the test name and extent of the call whose head matched."""
    i = head.end()
    if head.group("each"):
        # head ended at the "(" of the table argument; the name comes in a
        # second call: test.each(table)("name", fn)
        table_end = _match_paren(content, i - 1)
        if table_end == -1:
            return None
        i = _skip_whitespace(content, table_end)
        if not content.startswith("(", i):
            return None
        i += 1

    i = _skip_whitespace(content, i)
    if i >= len(content) or content[i] not in _QUOTES:
        return None
    name_end = _skip_string(content, i)
    if name_end <= i + 1 or content[name_end - 1] != content[i]:
        return None
    identifier = _ESCAPED_QUOTE_RE.sub(r"\1", content[i + 1 : name_end - 1])
    if not identifier:
        return None

    i = _skip_whitespace(content, name_end)
    if not content.startswith(",", i):
        return None

    end = _call_end(content, i + 1)
    if end is None:
        return None
    start = head.start()
    return DeclaredTest(identifier=identifier, start=start, end=end, body=content[start:end])


def iter_test_declarations(content: str) -> Iterator[DeclaredTest]:
    """Yield every test declaration in content, in source order.

    Declarations inside strings or comments are skipped, as are calls whose
    body never balances. Nested declarations (an ``it`` inside a
    ``describe``) are yielded separately.
    """
    spans = _non_code_spans(content)
    starts = [s for s, _ in spans]
    for head in _HEAD_RE.finditer(content):
        if _in_spans(spans, starts, head.start()):
            continue
        declaration = _parse_declaration(content, head)
        if declaration is not None:
            yield declaration


def find_test_declarations(content: str) -> list[DeclaredTest]:
    """Return all test declarations in content, keeping the first per name.

    A name declared twice (``it.only("x")`` and ``it("x")``) resolves to the
    first occurrence, matching :func:`extract_test_body`.
    """
    seen: set[str] = set()
    declarations: list[DeclaredTest] = []
    for declaration in iter_test_declarations(content):
        if declaration.identifier in seen:
            continue
        seen.add(declaration.identifier)
        declarations.append(declaration)
    return declarations


def extract_test_body(content: str, identifier: str) -> str | None:
    """Return the full source of the test named ``identifier``.

    The identifier is compared for exact equality with the quoted name, so
    names containing regex metacharacters (``()[]?``) match verbatim and a
    name that is a prefix of another does not match it. Escaped quotes and
    backslashes in the source name are unescaped before comparison.

    Args:
        content: Raw text of a test file.
        identifier: Test name to look for.

    Returns:
        The source from the callee through the end of the call, or None
        when no declaration with that name exists.
    """
    if not identifier:
        return None
    for declaration in iter_test_declarations(content):
        if declaration.identifier == identifier:
            return declaration.body
    return None
