"""
Run prepared (``?``-positional) SQL against a DataSource.

- Converts ``?`` markers to the driver's paramstyle: psycopg and pymysql use
  ``%s`` (literal ``%`` doubled), trino and sqlite3 take ``?`` as-is.
- Runs the query in a read-only session and returns ``list[dict]`` rows.
- Driver and value-binding errors are wrapped in ``QueryExecutionError``;
  nothing is retried.

Uses core.pool (connect, execute, cursor_to_dicts, PoolManager).
"""

import logging
import sqlite3
from collections.abc import Sequence
from typing import Any

import psycopg
import pymysql
from trino.exceptions import TrinoExternalError, TrinoUserError

from reportsql.core.pool import connect, cursor_to_dicts, execute, get_pool_manager
from reportsql.engines.sql.errors import QueryExecutionError
from reportsql.engines.sql.tokenizer import SegmentKind, tokenize
from reportsql.models import DataSource, ProductTypeEnum

_log = logging.getLogger(__name__)

_FORMAT_PARAMSTYLE = (ProductTypeEnum.POSTGRES, ProductTypeEnum.MYSQL)

_DRIVER_ERRORS: tuple[type[BaseException], ...] = (
    psycopg.Error,
    pymysql.Error,
    TrinoUserError,
    TrinoExternalError,
    sqlite3.Error,
    ConnectionError,
    # values the driver cannot bind, e.g. an int wider than the column type
    OverflowError,
    TypeError,
)


def to_driver_paramstyle(sql: str, product_type: ProductTypeEnum) -> str:
    """Rewrite ``?`` markers in SQL code for *product_type*'s DB-API paramstyle."""
    if product_type not in _FORMAT_PARAMSTYLE:
        return sql
    out: list[str] = []
    escapes = product_type == ProductTypeEnum.MYSQL
    for seg in tokenize(sql, backslash_escapes=escapes):
        text = seg.text.replace("%", "%%")
        if seg.kind is SegmentKind.CODE:
            text = text.replace("?", "%s")
        out.append(text)
    return "".join(out)


def execute_sql(
    datasource: DataSource,
    sql: str,
    params: Sequence[Any] | None = None,
    *,
    use_pool: bool = True,
) -> list[dict[str, Any]]:
    """
    Run one read-only statement and return its rows as dicts in store order.

    *sql* uses ``?`` markers matching *params*. With no params the SQL is sent
    unchanged (no paramstyle rewrite, so literal ``%`` stays single).
    """
    pt = ProductTypeEnum(datasource.product_type)
    bound = list(params) if params else None
    final_sql = to_driver_paramstyle(sql, pt) if bound is not None else sql

    conn: Any = None
    try:
        if use_pool:
            conn = get_pool_manager().get_connection(datasource)
        else:
            conn = connect(datasource)
        cur = execute(conn, final_sql, bound, product_type=pt, read_only=True)
        try:
            return cursor_to_dicts(cur)
        finally:
            try:
                cur.close()
            except Exception:
                pass
    except _DRIVER_ERRORS as e:
        _log.error("SQL execution failed: %s. SQL: %s", e, final_sql, exc_info=True)
        raise QueryExecutionError(f"SQL execution failed: {e}") from e
    finally:
        if conn is not None:
            if use_pool:
                get_pool_manager().release(conn, datasource.id)
            else:
                try:
                    conn.close()
                except Exception:
                    pass
