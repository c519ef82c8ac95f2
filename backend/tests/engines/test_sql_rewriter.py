"""Unit tests for engines.sql.rewriter rewrite rules."""

from typing import Any

import pytest

from reportsql.engines.sql.errors import MissingParameterError
from reportsql.engines.sql.rewriter import (
    SECONDS_PER_DAY,
    apply_limit_parameter,
    count_positional_markers,
    has_limit_clause,
    inject_safety_limit,
    is_numeric,
    named_placeholders,
    resolve_value,
    substitute_table_prefix,
    to_positional,
)

NOW = 1_700_000_000


# --- is_numeric ---


@pytest.mark.parametrize("value", [7, 0, -3, 2.5, "7", " 14 ", "2.5", "-1", 10**400])
def test_is_numeric(value: Any) -> None:
    assert is_numeric(value)


@pytest.mark.parametrize(
    "value",
    [
        "",
        "abc",
        "7 days",
        None,
        True,
        False,
        [7],
        float("nan"),
        float("inf"),
        float("-inf"),
        "inf",
        "1e400",
    ],
)
def test_is_not_numeric(value: Any) -> None:
    assert not is_numeric(value)


# --- substitute_table_prefix ---


def test_mdl_prefix_replaced() -> None:
    assert (
        substitute_table_prefix("SELECT * FROM mdl_user", "moodle_")
        == "SELECT * FROM moodle_user"
    )


def test_generic_prefix_replaced() -> None:
    assert (
        substitute_table_prefix("SELECT * FROM prefix_course c", "m_")
        == "SELECT * FROM m_course c"
    )


def test_same_prefix_is_noop() -> None:
    sql = "SELECT * FROM mdl_user"
    assert substitute_table_prefix(sql, "mdl_") == sql


def test_prefix_replaced_inside_literals_too() -> None:
    out = substitute_table_prefix("SELECT 'mdl_x' FROM mdl_user", "p_")
    assert out == "SELECT 'p_x' FROM p_user"


def test_brace_tables_expanded() -> None:
    out = substitute_table_prefix(
        "SELECT * FROM {user} u JOIN {course_modules} cm ON 1=1", "mdl_"
    )
    assert out == "SELECT * FROM mdl_user u JOIN mdl_course_modules cm ON 1=1"


def test_brace_in_literal_untouched() -> None:
    out = substitute_table_prefix("SELECT '{user}' FROM {user}", "mdl_")
    assert out == "SELECT '{user}' FROM mdl_user"


def test_brace_after_trailing_backslash_literal() -> None:
    sql = r"SELECT 'C:\' AS p FROM {user}"
    # with backslash escapes the literal never closes
    assert substitute_table_prefix(sql, "mdl_") == sql
    assert (
        substitute_table_prefix(sql, "mdl_", backslash_escapes=False)
        == r"SELECT 'C:\' AS p FROM mdl_user"
    )


# --- inject_safety_limit ---


def test_appends_limit() -> None:
    assert inject_safety_limit("SELECT * FROM t", 10000) == "SELECT * FROM t LIMIT 10000"


def test_strips_trailing_semicolons_and_whitespace() -> None:
    assert (
        inject_safety_limit("SELECT * FROM t ;; \n", 100000)
        == "SELECT * FROM t LIMIT 100000"
    )


@pytest.mark.parametrize(
    "sql",
    [
        "SELECT * FROM t LIMIT 5",
        "SELECT * FROM t limit 5 OFFSET 10",
        "SELECT * FROM t LIMIT :limit",
        "SELECT * FROM t LIMIT ?",
        "SELECT * FROM t\nLIMIT\n20",
    ],
)
def test_existing_limit_kept(sql: str) -> None:
    assert has_limit_clause(sql)
    assert inject_safety_limit(sql, 10000) == sql


def test_non_literal_limit_expression_gets_cap() -> None:
    # ``LIMIT (5)`` does not match the accepted forms
    out = inject_safety_limit("SELECT * FROM t LIMIT (5)", 10)
    assert out.endswith("LIMIT 10")


def test_limit_after_trailing_line_comment() -> None:
    out = inject_safety_limit("SELECT * FROM t -- all rows", 50)
    assert out == "SELECT * FROM t -- all rows\nLIMIT 50"


# --- apply_limit_parameter ---


def test_limit_clamped_to_cap() -> None:
    sql, params = apply_limit_parameter(
        "SELECT * FROM t LIMIT :limit", {"limit": 999999}, 100000
    )
    assert sql == "SELECT * FROM t LIMIT 100000"
    assert "limit" not in params


def test_limit_within_cap() -> None:
    sql, params = apply_limit_parameter(
        "SELECT * FROM t LIMIT :limit", {"limit": "25", "a": 1}, 100
    )
    assert sql == "SELECT * FROM t LIMIT 25"
    assert params == {"a": 1}


def test_negative_limit_clamped_to_zero() -> None:
    sql, _ = apply_limit_parameter("SELECT * FROM t LIMIT :limit", {"limit": -5}, 100)
    assert sql == "SELECT * FROM t LIMIT 0"


def test_limit_site_is_case_insensitive() -> None:
    sql, _ = apply_limit_parameter("SELECT * FROM t limit  :limit", {"limit": 3}, 100)
    assert sql == "SELECT * FROM t LIMIT 3"


def test_non_numeric_limit_left_alone() -> None:
    sql, params = apply_limit_parameter(
        "SELECT * FROM t LIMIT :limit", {"limit": "all"}, 100
    )
    assert sql == "SELECT * FROM t LIMIT :limit"
    assert params == {"limit": "all"}


@pytest.mark.parametrize("value", [float("inf"), float("-inf"), float("nan")])
def test_non_finite_limit_left_alone(value: float) -> None:
    sql, params = apply_limit_parameter(
        "SELECT * FROM t LIMIT :limit", {"limit": value}, 100
    )
    assert sql == "SELECT * FROM t LIMIT :limit"
    assert "limit" in params


def test_huge_int_limit_clamped() -> None:
    sql, _ = apply_limit_parameter("SELECT * FROM t LIMIT :limit", {"limit": 10**400}, 100)
    assert sql == "SELECT * FROM t LIMIT 100"


def test_limit_removed_even_without_site() -> None:
    sql, params = apply_limit_parameter("SELECT * FROM t LIMIT 10", {"limit": 3}, 100)
    assert sql == "SELECT * FROM t LIMIT 10"
    assert params == {}


def test_limit_input_mapping_not_mutated() -> None:
    original = {"limit": 3}
    apply_limit_parameter("SELECT 1 LIMIT :limit", original, 100)
    assert original == {"limit": 3}


def test_limit_does_not_touch_limit_prefixed_names() -> None:
    sql, _ = apply_limit_parameter(
        "SELECT * FROM t WHERE a < :limitx LIMIT :limit", {"limit": 2}, 100
    )
    assert sql == "SELECT * FROM t WHERE a < :limitx LIMIT 2"


# --- resolve_value ---


def test_resolve_raw_value() -> None:
    assert resolve_value("uid", {"uid": 5}) == 5


def test_resolve_missing_permissive() -> None:
    assert resolve_value("missing", {}) == ""


def test_resolve_missing_strict() -> None:
    with pytest.raises(MissingParameterError) as exc:
        resolve_value("missing", {}, strict=True)
    assert exc.value.name == "missing"


def test_days_converted() -> None:
    assert resolve_value("days", {"days": 7}, now=NOW) == NOW - 7 * SECONDS_PER_DAY


def test_days_numeric_string() -> None:
    assert resolve_value("days", {"days": "30"}, now=NOW) == NOW - 30 * SECONDS_PER_DAY


def test_days_non_numeric_passthrough() -> None:
    assert resolve_value("days", {"days": "week"}, now=NOW) == "week"


@pytest.mark.parametrize("value", [float("inf"), float("nan")])
def test_days_non_finite_passthrough(value: float) -> None:
    out = resolve_value("days", {"days": value}, now=NOW)
    assert out is value


def test_days_rule_only_for_exact_name() -> None:
    assert resolve_value("day", {"day": 7}, now=NOW) == 7
    assert resolve_value("days_ago", {"days_ago": 7}, now=NOW) == 7


def test_non_primitive_coerced() -> None:
    assert resolve_value("ids", {"ids": [1, 2]}) == "[1, 2]"


def test_none_passthrough() -> None:
    assert resolve_value("x", {"x": None}) is None


# --- to_positional ---


def test_single_placeholder() -> None:
    sql, params = to_positional("SELECT * FROM mdl_user WHERE id = :uid", {"uid": 5})
    assert sql == "SELECT * FROM mdl_user WHERE id = ?"
    assert params == [5]
    assert ":uid" not in sql


def test_source_order_and_repeats() -> None:
    sql, params = to_positional(
        "SELECT * FROM t WHERE a = :b AND c = :a AND d = :b", {"a": 1, "b": 2}
    )
    assert sql == "SELECT * FROM t WHERE a = ? AND c = ? AND d = ?"
    assert params == [2, 1, 2]


def test_whole_identifier_match() -> None:
    sql, params = to_positional(
        "SELECT * FROM t WHERE x > :days AND y = :day", {"day": "D", "days": 1}, now=NOW
    )
    assert sql == "SELECT * FROM t WHERE x > ? AND y = ?"
    assert params == [NOW - SECONDS_PER_DAY, "D"]


def test_missing_binds_empty_string() -> None:
    sql, params = to_positional("SELECT * FROM t WHERE a = :missing", {})
    assert sql == "SELECT * FROM t WHERE a = ?"
    assert params == [""]


def test_missing_strict() -> None:
    with pytest.raises(MissingParameterError):
        to_positional("SELECT * FROM t WHERE a = :missing", {}, strict=True)


def test_literals_and_comments_skipped() -> None:
    sql, params = to_positional(
        "SELECT '10:30' AS t, \":col\" FROM x -- :c\nWHERE a = :a /* :b */",
        {"a": 1},
    )
    assert sql == "SELECT '10:30' AS t, \":col\" FROM x -- :c\nWHERE a = ? /* :b */"
    assert params == [1]


def test_placeholder_after_backslash_literal_without_escapes() -> None:
    template = r"SELECT * FROM t WHERE path = 'C:\' AND id = :id"
    sql, params = to_positional(template, {"id": 4}, backslash_escapes=False)
    assert sql == r"SELECT * FROM t WHERE path = 'C:\' AND id = ?"
    assert params == [4]


def test_placeholder_inside_escaped_literal_with_escapes() -> None:
    template = r"SELECT 'it\'s :id' FROM t WHERE id = :id"
    sql, params = to_positional(template, {"id": 4})
    assert sql == r"SELECT 'it\'s :id' FROM t WHERE id = ?"
    assert params == [4]


def test_casts_are_not_placeholders() -> None:
    sql, params = to_positional("SELECT a::text FROM t WHERE b = :b::int", {"b": "3"})
    assert sql == "SELECT a::text FROM t WHERE b = ?::int"
    assert params == ["3"]


def test_no_placeholders() -> None:
    assert to_positional("SELECT 1", {"a": 1}) == ("SELECT 1", [])


def test_positional_markers_bound_in_mapping_order() -> None:
    sql, params = to_positional(
        "SELECT * FROM t WHERE a = ? AND b > ?", {"a": "x", "days": 2}, now=NOW
    )
    assert sql == "SELECT * FROM t WHERE a = ? AND b > ?"
    assert params == ["x", NOW - 2 * SECONDS_PER_DAY]


def test_question_mark_in_literal_is_not_a_marker() -> None:
    assert count_positional_markers("SELECT '?' FROM t") == 0
    assert to_positional("SELECT '?' FROM t", {"a": 1}) == ("SELECT '?' FROM t", [])


def test_named_placeholders_helper() -> None:
    assert named_placeholders("SELECT :a, ':b', :c -- :d") == ["a", "c"]
