"""
Quote- and comment-aware SQL segmenter.

Splits SQL text into consecutive segments so rewrite rules can touch only
executable code and leave string literals, quoted identifiers and comments
alone. Joining the segment texts always reproduces the input exactly.

Handles single-quoted (``'...'``, with ``''`` escapes), double-quoted and
backtick identifiers, dollar-quoted (``$$...$$``) literals, ``--`` line
comments and ``/* */`` block comments.

Backslash escapes inside ``'...'`` depend on the dialect. MySQL honours them
(``backslash_escapes=True``, the default). Postgres with
``standard_conforming_strings``, SQLite and Trino do not, except in
Postgres ``E'...'`` literals, which always honour them.
"""

from collections.abc import Callable
from enum import Enum
from typing import NamedTuple


class SegmentKind(str, Enum):
    CODE = "code"
    STRING = "string"
    IDENTIFIER = "identifier"
    DOLLAR = "dollar"
    LINE_COMMENT = "line_comment"
    BLOCK_COMMENT = "block_comment"


class Segment(NamedTuple):
    kind: SegmentKind
    text: str


def _scan_quoted(sql: str, start: int, backslash_escapes: bool = True) -> int:
    """Return the index just past the quoted run that opens at *start*."""
    quote = sql[start]
    i = start + 1
    length = len(sql)
    while i < length:
        c = sql[i]
        if c == quote:
            if i + 1 < length and sql[i + 1] == quote:
                i += 2
                continue
            return i + 1
        if c == "\\" and backslash_escapes and quote == "'" and i + 1 < length:
            i += 2
            continue
        i += 1
    return length


def _is_escape_string_prefix(sql: str, quote_at: int) -> bool:
    """True if the quote at *quote_at* opens a Postgres ``E'...'`` literal."""
    if quote_at == 0 or sql[quote_at - 1] not in "eE":
        return False
    before = sql[quote_at - 2] if quote_at > 1 else " "
    return not (before.isalnum() or before == "_")


def tokenize(sql: str, *, backslash_escapes: bool = True) -> list[Segment]:
    """Split *sql* into code / literal / comment segments (lossless)."""
    segments: list[Segment] = []
    code: list[str] = []
    i = 0
    length = len(sql)

    def flush_code() -> None:
        if code:
            segments.append(Segment(SegmentKind.CODE, "".join(code)))
            code.clear()

    while i < length:
        ch = sql[i]

        if ch in ("'", '"', "`"):
            flush_code()
            escapes = backslash_escapes or (
                ch == "'" and _is_escape_string_prefix(sql, i)
            )
            end = _scan_quoted(sql, i, escapes)
            kind = SegmentKind.STRING if ch == "'" else SegmentKind.IDENTIFIER
            segments.append(Segment(kind, sql[i:end]))
            i = end
            continue

        if ch == "$" and i + 1 < length and sql[i + 1] == "$":
            flush_code()
            tag_end = sql.find("$$", i + 2)
            end = length if tag_end == -1 else tag_end + 2
            segments.append(Segment(SegmentKind.DOLLAR, sql[i:end]))
            i = end
            continue

        if ch == "-" and i + 1 < length and sql[i + 1] == "-":
            flush_code()
            nl = sql.find("\n", i)
            end = length if nl == -1 else nl + 1
            segments.append(Segment(SegmentKind.LINE_COMMENT, sql[i:end]))
            i = end
            continue

        if ch == "/" and i + 1 < length and sql[i + 1] == "*":
            flush_code()
            close = sql.find("*/", i + 2)
            end = length if close == -1 else close + 2
            segments.append(Segment(SegmentKind.BLOCK_COMMENT, sql[i:end]))
            i = end
            continue

        code.append(ch)
        i += 1

    flush_code()
    return segments


def join_segments(segments: list[Segment]) -> str:
    return "".join(s.text for s in segments)


def rewrite_code(
    sql: str, fn: Callable[[str], str], *, backslash_escapes: bool = True
) -> str:
    """Apply *fn* to every code segment of *sql*; other segments are kept as-is."""
    return "".join(
        fn(s.text) if s.kind is SegmentKind.CODE else s.text
        for s in tokenize(sql, backslash_escapes=backslash_escapes)
    )


def ends_with_line_comment(sql: str, *, backslash_escapes: bool = True) -> bool:
    """True if the last non-blank segment of *sql* is an unterminated ``--`` comment."""
    for seg in reversed(tokenize(sql, backslash_escapes=backslash_escapes)):
        if seg.kind is SegmentKind.CODE and not seg.text.strip():
            continue
        return seg.kind is SegmentKind.LINE_COMMENT and not seg.text.endswith("\n")
    return False
