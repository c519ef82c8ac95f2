"""
Static checks for report SQL templates: reject anything that is not a
read-only SELECT before it reaches the store.

Two gates, applied in order by the template executor:

1. ``check_statement_type``: the trimmed template must start with SELECT
   (case-insensitive). Prefix check only; the SQL is not parsed.
2. ``check_dangerous_patterns``: the full template text is scanned for
   whole-word DDL/DML/privilege keywords and file-access patterns.

Known limitation: the denylist is textual. Keywords split by comments or
built from encoded strings are not detected, and keywords inside string
literals are rejected even though they are harmless. Run templates on a
read-only connection when a hard guarantee is required.
"""

import re

from reportsql.engines.sql.errors import (
    DangerousStatementError,
    InvalidStatementError,
)

DANGEROUS_KEYWORDS: tuple[str, ...] = (
    "DROP",
    "DELETE",
    "TRUNCATE",
    "UPDATE",
    "INSERT",
    "ALTER",
    "CREATE",
    "GRANT",
    "REVOKE",
    "EXEC",
    "EXECUTE",
)

DANGEROUS_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(rf"\b{kw}\b", re.IGNORECASE) for kw in DANGEROUS_KEYWORDS
) + (
    re.compile(r"INTO\s+OUTFILE", re.IGNORECASE),
    re.compile(r"INTO\s+DUMPFILE", re.IGNORECASE),
    re.compile(r"LOAD_FILE", re.IGNORECASE),
)


def check_statement_type(template: str) -> None:
    """Raise ``InvalidStatementError`` unless *template* is a non-empty SELECT."""
    if not template or not template.strip():
        raise InvalidStatementError("SQL query is required")
    if template.strip()[:6].upper() != "SELECT":
        raise InvalidStatementError("Only SELECT queries are allowed")


def find_dangerous_pattern(template: str) -> str | None:
    """Return the first denylisted pattern found in *template*, or None."""
    for pattern in DANGEROUS_PATTERNS:
        if pattern.search(template):
            return pattern.pattern
    return None


def check_dangerous_patterns(template: str) -> None:
    """Raise ``DangerousStatementError`` if *template* contains a denylisted pattern."""
    found = find_dangerous_pattern(template)
    if found is not None:
        raise DangerousStatementError(
            f"SQL contains a forbidden pattern: {found}", pattern=found
        )
