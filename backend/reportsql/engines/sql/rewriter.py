"""
Rewrite rules that turn a validated report template into positional SQL.

Each rule is a small pure function so it can be tested on its own; the
template executor composes them in a fixed order:

    substitute_table_prefix -> inject_safety_limit -> apply_limit_parameter
    -> to_positional (resolve_value per placeholder, incl. the ``days`` rule)
"""

import math
import re
import time
from collections.abc import Mapping
from typing import Any, NamedTuple

from reportsql.engines.sql.errors import MissingParameterError
from reportsql.engines.sql.tokenizer import (
    SegmentKind,
    ends_with_line_comment,
    rewrite_code,
    tokenize,
)

# Prefixes vendor templates are written with; replaced by the local prefix.
TEMPLATE_TABLE_PREFIXES: tuple[str, ...] = ("mdl_", "prefix_")

SECONDS_PER_DAY = 86400

_BRACE_TABLE = re.compile(r"\{([a-z_][a-z0-9_]*)\}", re.IGNORECASE)
_HAS_LIMIT = re.compile(r"\bLIMIT\s+(\d+|:\w+|\?)", re.IGNORECASE)
_LIMIT_PARAM = re.compile(r"\bLIMIT\s+:limit\b", re.IGNORECASE)
_TRAILING = re.compile(r"[\s;]+$")
# ``::type`` casts are not placeholders
_NAMED_PLACEHOLDER = re.compile(r"(?<![:\w]):(\w+)")

_PRIMITIVES = (str, int, float, bool, type(None))


class PreparedQuery(NamedTuple):
    """Final SQL with ``?`` markers and the values to bind, in order."""

    sql: str
    params: list[Any]


def is_numeric(value: Any) -> bool:
    """Numeric ints/floats or numeric strings such as ``"7"`` or ``" 2.5"``."""
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    if isinstance(value, float):
        return math.isfinite(value)
    if isinstance(value, str):
        try:
            f = float(value.strip())
        except ValueError:
            return False
        return math.isfinite(f)
    return False


def _to_int(value: Any) -> int:
    return value if isinstance(value, int) else int(float(value))


def substitute_table_prefix(
    sql: str, table_prefix: str, *, backslash_escapes: bool = True
) -> str:
    """
    Replace the generic ``mdl_`` / ``prefix_`` table prefixes with *table_prefix*
    (plain string replace) and expand brace notation ``{user}`` in SQL code
    to ``<table_prefix>user``.
    """
    for generic in TEMPLATE_TABLE_PREFIXES:
        sql = sql.replace(generic, table_prefix)
    return rewrite_code(
        sql,
        lambda code: _BRACE_TABLE.sub(lambda m: table_prefix + m.group(1), code),
        backslash_escapes=backslash_escapes,
    )


def has_limit_clause(sql: str) -> bool:
    return _HAS_LIMIT.search(sql) is not None


def inject_safety_limit(
    sql: str, limit_cap: int, *, backslash_escapes: bool = True
) -> str:
    """Append ``LIMIT <limit_cap>`` unless *sql* already has a LIMIT clause."""
    if has_limit_clause(sql):
        return sql
    sql = _TRAILING.sub("", sql)
    trailing_comment = ends_with_line_comment(sql, backslash_escapes=backslash_escapes)
    sep = "\n" if trailing_comment else " "
    return f"{sql}{sep}LIMIT {int(limit_cap)}"


def apply_limit_parameter(
    sql: str, params: Mapping[str, Any], limit_cap: int
) -> tuple[str, dict[str, Any]]:
    """
    Inline a numeric ``limit`` parameter at ``LIMIT :limit``, clamped to
    ``[0, limit_cap]``, and drop it from the returned parameter map.

    Not every dialect accepts a bound value in LIMIT, so it is never bound.
    """
    remaining = dict(params)
    if "limit" not in remaining or not is_numeric(remaining["limit"]):
        return sql, remaining
    value = _to_int(remaining.pop("limit"))
    value = max(0, min(value, int(limit_cap)))
    return _LIMIT_PARAM.sub(f"LIMIT {value}", sql), remaining


def resolve_value(
    name: str,
    params: Mapping[str, Any],
    *,
    strict: bool = False,
    now: float | None = None,
) -> Any:
    """
    Value bound for placeholder *name*.

    - missing: ``''`` (or ``MissingParameterError`` when *strict*)
    - ``days`` with a numeric value: Unix timestamp ``now - days * 86400``
    - primitives pass through; anything else is coerced to ``str``
    """
    if name not in params:
        if strict:
            raise MissingParameterError(name)
        return ""
    value = params[name]
    if name == "days" and is_numeric(value):
        current = int(time.time() if now is None else now)
        return current - _to_int(value) * SECONDS_PER_DAY
    if isinstance(value, _PRIMITIVES):
        return value
    return str(value)


def named_placeholders(sql: str, *, backslash_escapes: bool = True) -> list[str]:
    """Placeholder names in source order (code segments only, duplicates kept)."""
    names: list[str] = []
    for seg in tokenize(sql, backslash_escapes=backslash_escapes):
        if seg.kind is SegmentKind.CODE:
            names.extend(_NAMED_PLACEHOLDER.findall(seg.text))
    return names


def count_positional_markers(sql: str, *, backslash_escapes: bool = True) -> int:
    return sum(
        seg.text.count("?")
        for seg in tokenize(sql, backslash_escapes=backslash_escapes)
        if seg.kind is SegmentKind.CODE
    )


def to_positional(
    sql: str,
    params: Mapping[str, Any],
    *,
    strict: bool = False,
    now: float | None = None,
    backslash_escapes: bool = True,
) -> PreparedQuery:
    """
    Replace each ``:name`` with ``?`` in source order and collect the bound values.

    Templates written with ``?`` markers instead of names get the parameter
    values bound in mapping order.
    """
    values: list[Any] = []

    def _sub(m: re.Match[str]) -> str:
        values.append(resolve_value(m.group(1), params, strict=strict, now=now))
        return "?"

    if named_placeholders(sql, backslash_escapes=backslash_escapes):
        out = rewrite_code(
            sql,
            lambda code: _NAMED_PLACEHOLDER.sub(_sub, code),
            backslash_escapes=backslash_escapes,
        )
        return PreparedQuery(out, values)

    if params and count_positional_markers(sql, backslash_escapes=backslash_escapes):
        for name in params:
            values.append(resolve_value(name, params, strict=strict, now=now))
    return PreparedQuery(sql, values)
