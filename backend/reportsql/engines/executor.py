"""
Template executor: validate, rewrite and run a report SQL template.

    execute_template(template, params, limit_cap) -> QueryResult

Order of steps (tests depend on it):

1. statement type must be SELECT          -> InvalidStatementError
2. denylist scan of the original template -> DangerousStatementError
3. table prefix substitution (mdl_, prefix_, {table})
4. safety LIMIT injection (limit_cap)
5. numeric ``limit`` param inlined at ``LIMIT :limit``, clamped to limit_cap
6. ``:name`` -> ``?`` in source order (missing -> '' unless strict)
7. ``days`` -> Unix timestamp cutoff
8. read-only execution                    -> QueryExecutionError
9. headers from the first row, rows in store order

Ambiguous statement shape fails closed; missing parameters fail open
(permissive) unless the executor is strict.
"""

import logging
import time
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from reportsql.core.config import settings
from reportsql.engines.sql import (
    PreparedQuery,
    apply_limit_parameter,
    check_dangerous_patterns,
    check_statement_type,
    execute_sql,
    inject_safety_limit,
    substitute_table_prefix,
    to_positional,
)
from reportsql.engines.sql.errors import DangerousStatementError, InvalidStatementError
from reportsql.models import DataSource, ProductTypeEnum, QueryResult

_log = logging.getLogger(__name__)

QueryRunner = Callable[[DataSource, str, Sequence[Any]], list[dict[str, Any]]]


def prepare_template(
    template: str,
    params: Mapping[str, Any] | None,
    limit_cap: int,
    *,
    table_prefix: str,
    strict: bool = False,
    now: float | None = None,
    backslash_escapes: bool = True,
) -> PreparedQuery:
    """
    Run steps 1-7 and return the final positional SQL and its bound values.

    *backslash_escapes* says whether the target dialect treats ``\\`` inside
    ``'...'`` as an escape (MySQL) or as a plain character.
    """
    try:
        check_statement_type(template)
        check_dangerous_patterns(template)
    except (InvalidStatementError, DangerousStatementError) as e:
        _log.warning("Rejected SQL template: %s", e)
        raise

    sql = substitute_table_prefix(
        template, table_prefix, backslash_escapes=backslash_escapes
    )
    sql = inject_safety_limit(sql, limit_cap, backslash_escapes=backslash_escapes)
    sql, remaining = apply_limit_parameter(sql, params or {}, limit_cap)
    return to_positional(
        sql, remaining, strict=strict, now=now, backslash_escapes=backslash_escapes
    )


def shape_result(rows: list[dict[str, Any]]) -> QueryResult:
    if not rows:
        return QueryResult(headers=[], rows=[])
    return QueryResult(headers=list(rows[0].keys()), rows=[dict(r) for r in rows])


class TemplateExecutor:
    """
    Executes report templates against one DataSource.

    Stateless between calls; safe to share across threads as long as the
    runner (default: pooled ``execute_sql``) is.
    """

    def __init__(
        self,
        datasource: DataSource,
        *,
        table_prefix: str | None = None,
        strict: bool | None = None,
        runner: QueryRunner | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.datasource = datasource
        self.table_prefix = (
            table_prefix if table_prefix is not None else settings.DB_TABLE_PREFIX
        )
        self.strict = strict if strict is not None else settings.STRICT_PARAMETERS
        self._runner = runner or execute_sql
        self._clock = clock
        self.backslash_escapes = (
            ProductTypeEnum(datasource.product_type) == ProductTypeEnum.MYSQL
        )

    def prepare(
        self,
        template: str,
        params: Mapping[str, Any] | None,
        limit_cap: int,
    ) -> PreparedQuery:
        return prepare_template(
            template,
            params,
            limit_cap,
            table_prefix=self.table_prefix,
            strict=self.strict,
            now=self._clock(),
            backslash_escapes=self.backslash_escapes,
        )

    def execute(
        self,
        template: str,
        params: Mapping[str, Any] | None,
        limit_cap: int,
    ) -> QueryResult:
        """Validate, rewrite and run *template*; see module docstring for the steps."""
        prepared = self.prepare(template, params, limit_cap)
        _log.debug("Positional SQL: %s", prepared.sql)
        _log.debug("SQL parameters: %s", prepared.params)
        rows = self._runner(self.datasource, prepared.sql, prepared.params)
        return shape_result(rows)


def execute_template(
    template: str,
    params: Mapping[str, Any] | None,
    limit_cap: int,
    *,
    datasource: DataSource,
    table_prefix: str | None = None,
    strict: bool | None = None,
) -> QueryResult:
    """One-shot helper around ``TemplateExecutor(datasource).execute``."""
    return TemplateExecutor(
        datasource, table_prefix=table_prefix, strict=strict
    ).execute(template, params, limit_cap)
