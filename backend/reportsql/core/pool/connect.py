"""
DB connection helpers for the local report store.

One connector per product type: psycopg (PostgreSQL), pymysql (MySQL),
trino (Trino) and sqlite3 (SQLite file or ``:memory:``). A DataSource model
or a plain dict with the same keys is accepted everywhere.
"""

import sqlite3
from collections.abc import Callable
from typing import Any, NamedTuple

import psycopg
import pymysql
from trino.auth import BasicAuthentication
from trino.dbapi import connect as trino_connect

from reportsql.core.config import settings
from reportsql.models import ProductTypeEnum

_DEFAULT_PORTS = {
    ProductTypeEnum.POSTGRES: 5432,
    ProductTypeEnum.MYSQL: 3306,
    ProductTypeEnum.TRINO: 8080,
}


class _Target(NamedTuple):
    host: str
    port: int
    database: str
    username: str
    password: str
    use_ssl: bool
    timeout: int


def _field(datasource: Any, key: str) -> Any:
    if isinstance(datasource, dict):
        return datasource.get(key)
    return getattr(datasource, key, None)


def _product_type(datasource: Any, override: ProductTypeEnum | None) -> ProductTypeEnum:
    value = override or _field(datasource, "product_type")
    if value is None:
        raise ValueError("product_type is required (from datasource or argument)")
    return value if isinstance(value, ProductTypeEnum) else ProductTypeEnum(value)


def _server_target(datasource: Any, pt: ProductTypeEnum) -> _Target:
    required = {k: _field(datasource, k) for k in ("host", "database", "username")}
    missing = [k for k, v in required.items() if v is None]
    if missing:
        raise ValueError(f"datasource must provide {missing[0]}")
    return _Target(
        host=required["host"],
        port=int(_field(datasource, "port") or _DEFAULT_PORTS[pt]),
        database=required["database"],
        username=required["username"],
        password=_field(datasource, "password") or "",
        use_ssl=_field(datasource, "use_ssl") in (True, "true", "1"),
        timeout=settings.EXTERNAL_DB_CONNECT_TIMEOUT,
    )


def _connect_postgres(t: _Target) -> Any:
    return psycopg.connect(
        host=t.host,
        port=t.port,
        dbname=t.database,
        user=t.username,
        password=t.password,
        connect_timeout=t.timeout,
    )


def _connect_mysql(t: _Target) -> Any:
    return pymysql.connect(
        host=t.host,
        port=t.port,
        database=t.database,
        user=t.username,
        password=t.password,
        connect_timeout=t.timeout,
    )


def _connect_trino(t: _Target) -> Any:
    # Basic auth is only accepted over HTTPS
    if t.use_ssl and not t.password.strip():
        raise ValueError("Password is required for Trino when using SSL/HTTPS.")
    return trino_connect(
        host=t.host,
        port=t.port,
        user=t.username,
        auth=BasicAuthentication(t.username, t.password) if t.use_ssl else None,
        catalog=t.database,
        schema="default",
        source="reportsql",
        http_scheme="https" if t.use_ssl else "http",
        request_timeout=t.timeout,
    )


_SERVER_CONNECTORS: dict[ProductTypeEnum, Callable[[_Target], Any]] = {
    ProductTypeEnum.POSTGRES: _connect_postgres,
    ProductTypeEnum.MYSQL: _connect_mysql,
    ProductTypeEnum.TRINO: _connect_trino,
}


def connect(
    datasource: Any,
    *,
    product_type: ProductTypeEnum | None = None,
) -> Any:
    """
    Open a connection to the store described by a DataSource or connection dict.

    Server stores need host, database and username (port defaults per product,
    password to ``""``). SQLite only needs ``database``.
    """
    pt = _product_type(datasource, product_type)
    if pt == ProductTypeEnum.SQLITE:
        database = _field(datasource, "database")
        if not database:
            raise ValueError("datasource must provide database")
        return sqlite3.connect(
            database,
            timeout=settings.EXTERNAL_DB_CONNECT_TIMEOUT,
            check_same_thread=False,
        )
    connector = _SERVER_CONNECTORS.get(pt)
    if connector is None:
        raise ValueError(f"Unsupported product_type: {pt}")
    return connector(_server_target(datasource, pt))


def _set_session(
    conn: Any,
    product_type: ProductTypeEnum,
    timeout_sec: float | None,
    read_only: bool,
) -> None:
    cur = conn.cursor()
    try:
        if read_only:
            if product_type in (ProductTypeEnum.POSTGRES, ProductTypeEnum.MYSQL):
                cur.execute("SET TRANSACTION READ ONLY")
            elif product_type == ProductTypeEnum.SQLITE:
                cur.execute("PRAGMA query_only = ON")
        if timeout_sec is not None and timeout_sec > 0:
            timeout_ms = int(timeout_sec * 1000)
            if product_type == ProductTypeEnum.POSTGRES:
                # SET takes no bind parameters under psycopg's server-side binding
                cur.execute(
                    "SELECT set_config('statement_timeout', %s, false)",
                    (str(timeout_ms),),
                )
            elif product_type == ProductTypeEnum.MYSQL:
                cur.execute("SET SESSION max_execution_time = %s", (timeout_ms,))
            elif product_type == ProductTypeEnum.TRINO:
                cur.execute(
                    "SET SESSION query_max_execution_time = '%ss'" % timeout_sec
                )
    finally:
        try:
            cur.close()
        except Exception:
            pass


def _reset_timeout(conn: Any, product_type: ProductTypeEnum) -> None:
    try:
        cur = conn.cursor()
        if product_type == ProductTypeEnum.POSTGRES:
            cur.execute("SET statement_timeout = 0")
        elif product_type == ProductTypeEnum.MYSQL:
            cur.execute("SET SESSION max_execution_time = 0")
        elif product_type == ProductTypeEnum.TRINO:
            cur.execute("SET SESSION query_max_execution_time = '0s'")
        cur.close()
    except Exception:
        pass


def execute(
    conn: Any,
    sql: str,
    params: dict | list | tuple | None = None,
    *,
    product_type: ProductTypeEnum | None = None,
    read_only: bool = False,
) -> Any:
    """
    Execute SQL and return the cursor. Caller uses cursor_to_dicts(cursor).

    - product_type: used for EXTERNAL_DB_STATEMENT_TIMEOUT (Postgres: statement_timeout,
      MySQL: max_execution_time) and for the read-only session statement.
    - read_only: run inside a read-only transaction (Postgres/MySQL) or with
      ``PRAGMA query_only`` (SQLite, left on for the connection's lifetime).
      Trino connections are used as-is.
    """
    timeout_sec = settings.EXTERNAL_DB_STATEMENT_TIMEOUT
    has_timeout = timeout_sec is not None and timeout_sec > 0

    if product_type is not None and (read_only or has_timeout):
        _set_session(conn, product_type, timeout_sec, read_only)

    cur = conn.cursor()
    try:
        if params is not None:
            cur.execute(sql, params)
        else:
            cur.execute(sql)
    finally:
        if product_type is not None and has_timeout:
            _reset_timeout(conn, product_type)

    return cur


def cursor_to_dicts(cursor: Any) -> list[dict[str, Any]]:
    """Convert cursor result to list of dicts (column order kept). Works for all drivers."""
    desc = cursor.description
    if not desc:
        return []
    names = [d[0] for d in desc]
    return [dict(zip(names, row, strict=True)) for row in cursor.fetchall()]


def table_exists(conn: Any, table: str, product_type: ProductTypeEnum) -> bool:
    """True if *table* (full name, prefix included) exists in the connected database."""
    if product_type == ProductTypeEnum.SQLITE:
        sql = "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?"
    elif product_type == ProductTypeEnum.TRINO:
        sql = "SELECT 1 FROM information_schema.tables WHERE table_name = ?"
    elif product_type == ProductTypeEnum.POSTGRES:
        sql = (
            "SELECT 1 FROM information_schema.tables "
            "WHERE table_schema = current_schema() AND table_name = %s"
        )
    else:
        sql = (
            "SELECT 1 FROM information_schema.tables "
            "WHERE table_schema = DATABASE() AND table_name = %s"
        )
    cur = execute(conn, sql, (table,), product_type=product_type)
    try:
        return cur.fetchone() is not None
    finally:
        cur.close()
