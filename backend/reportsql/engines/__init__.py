"""
Engines: template executor (SQL safety + rewrite + execution) and the report
operations built on it.
"""

from reportsql.engines.executor import TemplateExecutor, execute_template, prepare_template
from reportsql.engines.sql.errors import (
    DangerousStatementError,
    ExecutorError,
    InvalidStatementError,
    MissingParameterError,
    QueryExecutionError,
)

__all__ = [
    "TemplateExecutor",
    "execute_template",
    "prepare_template",
    "ExecutorError",
    "InvalidStatementError",
    "DangerousStatementError",
    "MissingParameterError",
    "QueryExecutionError",
]
