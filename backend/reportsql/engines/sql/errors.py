"""
Errors raised while preparing or executing a report SQL template.

All derive from ``ValueError`` so callers that only care about "bad input or
failed query" can catch one type; the HTTP layer maps each to an error code.
"""


class ExecutorError(ValueError):
    """Base class for template executor failures."""

    code = "execution_error"


class InvalidStatementError(ExecutorError):
    """Template is empty or does not start with SELECT."""

    code = "invalid_sql"


class DangerousStatementError(ExecutorError):
    """Template contains a denylisted keyword or file-access pattern."""

    code = "dangerous_sql"

    def __init__(self, message: str, *, pattern: str | None = None) -> None:
        super().__init__(message)
        self.pattern = pattern


class MissingParameterError(ExecutorError):
    """A required parameter or (in strict mode) a placeholder has no value."""

    code = "missing_parameter"

    def __init__(self, name: str, message: str | None = None) -> None:
        super().__init__(message or f"Missing value for SQL parameter ':{name}'")
        self.name = name


class QueryExecutionError(ExecutorError):
    """The store rejected the rewritten query."""

    code = "sql_error"
