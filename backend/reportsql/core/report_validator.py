"""
Check report definitions against the local schema before running them.

A report is valid when every table it references in brace notation
(``{user}``, ``{course_modules}``) exists with the installation's prefix.
Database-specific functions only add a warning.
"""

import logging
import re
from collections.abc import Callable, Iterable
from typing import Any, NamedTuple

from reportsql.core.pool import get_pool_manager, table_exists
from reportsql.models import DataSource, ProductTypeEnum, ReportTemplate

_log = logging.getLogger(__name__)

_BRACE_TABLE = re.compile(r"\{([a-z_][a-z0-9_]*)\}", re.IGNORECASE)

DB_SPECIFIC_FUNCTIONS: dict[str, str] = {
    "DATE_FORMAT": "Date formatting function",
    "FROM_UNIXTIME": "Unix timestamp conversion",
    "UNIX_TIMESTAMP": "Timestamp conversion",
    "DATE_SUB": "Date arithmetic",
    "DATE_ADD": "Date arithmetic",
    r"NOW\(": "Current timestamp",
    r"CURDATE\(": "Current date",
    "GROUP_CONCAT": "String aggregation",
    r"IF\(": "Conditional function",
    r"YEAR\(": "Date extraction",
    r"MONTH\(": "Date extraction",
    r"DATE\(": "Date extraction",
}


class ReportValidation(NamedTuple):
    valid: bool
    reason: str
    missing_tables: list[str]
    db_specific_functions: list[str]


def extract_table_names(sql: str) -> list[str]:
    """Unique ``{table}`` names in order of first appearance."""
    return list(dict.fromkeys(_BRACE_TABLE.findall(sql)))


def find_db_specific_functions(sql: str) -> list[str]:
    return [
        func
        for func in DB_SPECIFIC_FUNCTIONS
        if re.search(func, sql, re.IGNORECASE)
    ]


def datasource_table_checker(datasource: DataSource) -> Callable[[str], bool]:
    """``table_exists`` bound to a pooled connection of *datasource*."""

    def _check(table: str) -> bool:
        with get_pool_manager().checkout(datasource) as conn:
            return table_exists(conn, table, ProductTypeEnum(datasource.product_type))

    return _check


class ReportValidator:
    """
    Validates reports with a per-instance table cache.

    Create one per request (or call ``clear_cache`` after schema changes).
    """

    def __init__(self, table_exists: Callable[[str], bool], table_prefix: str) -> None:
        self._table_exists = table_exists
        self._prefix = table_prefix
        self._table_cache: dict[str, bool] = {}

    def clear_cache(self) -> None:
        self._table_cache.clear()

    def _has_table(self, table: str) -> bool:
        if table not in self._table_cache:
            try:
                self._table_cache[table] = bool(self._table_exists(self._prefix + table))
            except Exception:
                _log.warning("Table check failed for %s%s", self._prefix, table, exc_info=True)
                self._table_cache[table] = False
        return self._table_cache[table]

    def validate(self, report: ReportTemplate) -> ReportValidation:
        sql = report.sql_query
        if not sql or not sql.strip():
            return ReportValidation(False, "No SQL query", [], [])

        missing = [t for t in extract_table_names(sql) if not self._has_table(t)]
        functions = find_db_specific_functions(sql)

        if missing:
            reason = "Missing required tables: " + ", ".join(missing)
        elif functions:
            reason = "Warning: Uses database-specific functions"
        else:
            reason = ""
        return ReportValidation(not missing, reason, missing, functions)

    def filter_reports(self, reports: Iterable[ReportTemplate]) -> list[dict[str, Any]]:
        """Every report as a dict annotated with availability; none are dropped."""
        out: list[dict[str, Any]] = []
        for report in reports:
            result = self.validate(report)
            data = report.model_dump(mode="json")
            data["is_available"] = result.valid
            data["unavailable_reason"] = result.reason
            data["missing_tables"] = result.missing_tables
            out.append(data)
        return out
