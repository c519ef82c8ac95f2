"""
SQL side of the report engine: template safety gates, rewrite rules and
read-only execution against the local store.

Exports: safety checks, rewrite rules, PreparedQuery, execute_sql.
"""

from reportsql.engines.sql.executor import execute_sql
from reportsql.engines.sql.rewriter import (
    PreparedQuery,
    apply_limit_parameter,
    inject_safety_limit,
    resolve_value,
    substitute_table_prefix,
    to_positional,
)
from reportsql.engines.sql.safety import (
    check_dangerous_patterns,
    check_statement_type,
)

__all__ = [
    "PreparedQuery",
    "apply_limit_parameter",
    "check_dangerous_patterns",
    "check_statement_type",
    "execute_sql",
    "inject_safety_limit",
    "resolve_value",
    "substitute_table_prefix",
    "to_positional",
]
