"""
Tests for core.pool: connect, execute, cursor_to_dicts, table_exists,
health checks and PoolManager.

SQLite runs for real against a temp file; Postgres/MySQL/Trino drivers are mocked.
"""

import sqlite3
import uuid
from unittest.mock import MagicMock, patch

import pytest

from reportsql.core.pool import (
    PoolManager,
    check_datasource,
    connect,
    cursor_to_dicts,
    execute,
    health_check,
    table_exists,
)
from reportsql.models import DataSource, ProductTypeEnum


def _recording_conn() -> tuple[MagicMock, list[tuple[str, object]]]:
    calls: list[tuple[str, object]] = []
    cur = MagicMock()
    cur.execute = lambda s, p=None: calls.append((s, p))
    conn = MagicMock()
    conn.cursor.return_value = cur
    return conn, calls


# --- connect ---


def test_connect_sqlite(store: DataSource) -> None:
    conn = connect(store)
    try:
        assert health_check(conn, ProductTypeEnum.SQLITE) is True
        cur = execute(conn, "SELECT username FROM mdl_user WHERE id = ?", (1,))
        assert cursor_to_dicts(cur) == [{"username": "admin"}]
    finally:
        conn.close()


def test_connect_sqlite_requires_database() -> None:
    with pytest.raises(ValueError, match="database"):
        connect({"product_type": "sqlite", "database": ""})


@patch("reportsql.core.pool.connect.psycopg.connect")
def test_connect_postgres_from_dict(mock_pg: MagicMock) -> None:
    connect(
        {
            "product_type": "postgres",
            "host": "db",
            "database": "moodle",
            "username": "u",
            "password": None,
        }
    )
    kwargs = mock_pg.call_args.kwargs
    assert kwargs["host"] == "db"
    assert kwargs["port"] == 5432
    assert kwargs["dbname"] == "moodle"
    assert kwargs["password"] == ""


@patch("reportsql.core.pool.connect.pymysql.connect")
def test_connect_mysql_default_port(mock_my: MagicMock) -> None:
    ds = DataSource(
        product_type=ProductTypeEnum.MYSQL, host="db", database="moodle", username="u"
    )
    connect(ds)
    assert mock_my.call_args.kwargs["port"] == 3306


def test_connect_missing_host() -> None:
    with pytest.raises(ValueError, match="host"):
        connect({"product_type": "postgres", "database": "x", "username": "u"})


def test_connect_trino_ssl_requires_password() -> None:
    with pytest.raises(ValueError, match="Password is required"):
        connect(
            {
                "product_type": "trino",
                "host": "trino",
                "database": "hive",
                "username": "u",
                "use_ssl": True,
            }
        )


def test_connect_invalid_product_type() -> None:
    with pytest.raises(ValueError):
        connect({"product_type": "oracle", "host": "h", "database": "d", "username": "u"})


def test_connect_requires_product_type() -> None:
    with pytest.raises(ValueError, match="product_type"):
        connect({"host": "h", "database": "d", "username": "u"})


# --- execute ---


@patch("reportsql.core.pool.connect.settings")
def test_execute_read_only_postgres(mock_settings: MagicMock) -> None:
    mock_settings.EXTERNAL_DB_STATEMENT_TIMEOUT = None
    conn, calls = _recording_conn()

    execute(conn, "SELECT 1", product_type=ProductTypeEnum.POSTGRES, read_only=True)

    assert calls == [("SET TRANSACTION READ ONLY", None), ("SELECT 1", None)]


@patch("reportsql.core.pool.connect.settings")
def test_execute_applies_statement_timeout(mock_settings: MagicMock) -> None:
    """set_config(statement_timeout) before the query, reset to 0 after."""
    mock_settings.EXTERNAL_DB_STATEMENT_TIMEOUT = 5
    conn, calls = _recording_conn()

    execute(conn, "SELECT ?", [1], product_type=ProductTypeEnum.POSTGRES)

    assert calls[0] == ("SELECT set_config('statement_timeout', %s, false)", ("5000",))
    # no bind parameter in a SET statement
    assert not any(sql.startswith("SET statement_timeout =") and p for sql, p in calls)
    assert calls[1] == ("SELECT ?", [1])
    assert calls[2][0] == "SET statement_timeout = 0"


@patch("reportsql.core.pool.connect.settings")
def test_execute_mysql_timeout(mock_settings: MagicMock) -> None:
    mock_settings.EXTERNAL_DB_STATEMENT_TIMEOUT = 2
    conn, calls = _recording_conn()

    execute(conn, "SELECT 1", product_type=ProductTypeEnum.MYSQL, read_only=True)

    assert calls[0][0] == "SET TRANSACTION READ ONLY"
    assert calls[1] == ("SET SESSION max_execution_time = %s", (2000,))
    assert calls[-1][0] == "SET SESSION max_execution_time = 0"


def test_execute_without_product_type_has_no_session_statements() -> None:
    conn, calls = _recording_conn()
    execute(conn, "SELECT 1")
    assert calls == [("SELECT 1", None)]


def test_execute_sqlite_read_only(store: DataSource) -> None:
    conn = connect(store)
    try:
        execute(conn, "SELECT 1", product_type=ProductTypeEnum.SQLITE, read_only=True)
        with pytest.raises(sqlite3.OperationalError):
            execute(conn, "DELETE FROM mdl_user")
    finally:
        conn.close()


def test_cursor_to_dicts_without_description() -> None:
    cur = MagicMock()
    cur.description = None
    assert cursor_to_dicts(cur) == []


# --- table_exists / health ---


def test_table_exists_sqlite(store: DataSource) -> None:
    conn = connect(store)
    try:
        assert table_exists(conn, "mdl_user", ProductTypeEnum.SQLITE) is True
        assert table_exists(conn, "mdl_quiz_attempts", ProductTypeEnum.SQLITE) is False
    finally:
        conn.close()


@patch("reportsql.core.pool.connect.settings")
def test_table_exists_postgres_query(mock_settings: MagicMock) -> None:
    mock_settings.EXTERNAL_DB_STATEMENT_TIMEOUT = None
    conn, calls = _recording_conn()
    conn.cursor.return_value.fetchone.return_value = None

    assert table_exists(conn, "mdl_user", ProductTypeEnum.POSTGRES) is False
    sql, params = calls[0]
    assert "current_schema()" in sql
    assert params == ("mdl_user",)


def test_health_check_fails_on_closed_connection(store: DataSource) -> None:
    conn = connect(store)
    conn.close()
    assert health_check(conn, ProductTypeEnum.SQLITE) is False


def test_check_datasource(store: DataSource) -> None:
    assert check_datasource(store) is True


def test_check_datasource_unreachable(tmp_path) -> None:
    ds = DataSource(
        product_type=ProductTypeEnum.SQLITE,
        database=str(tmp_path / "missing" / "nope.db"),
    )
    assert check_datasource(ds) is False


# --- PoolManager ---


def test_pool_manager_reuses_connection(store: DataSource) -> None:
    pm = PoolManager(pool_size=2)
    conn1 = pm.get_connection(store)
    pm.release(conn1, store.id)
    assert pm.stats() == {"datasources": 1, "idle_connections": 1}

    conn2 = pm.get_connection(store)
    try:
        assert conn2 is conn1
    finally:
        pm.release(conn2, store.id)
    pm.dispose(store.id)
    assert pm.stats()["idle_connections"] == 0


def test_pool_manager_closes_when_full() -> None:
    ds_id = uuid.uuid4()
    pm = PoolManager(pool_size=1)
    a, b = MagicMock(), MagicMock()
    pm.release(a, ds_id)
    pm.release(b, ds_id)
    a.close.assert_not_called()
    b.close.assert_called_once()


@patch("reportsql.core.pool.manager.connect")
def test_pool_manager_expired_connection_replaced(mock_connect: MagicMock) -> None:
    ds = DataSource(product_type=ProductTypeEnum.SQLITE, database=":memory:")
    old, new = MagicMock(), MagicMock()
    mock_connect.side_effect = [old, new]
    pm = PoolManager(pool_size=2, max_age_sec=-1)

    assert pm.get_connection(ds) is old
    pm.release(old, ds.id)
    assert pm.get_connection(ds) is new
    old.close.assert_called_once()


def test_pool_manager_failed_rollback_discards() -> None:
    pm = PoolManager(pool_size=2)
    conn = MagicMock()
    conn.rollback.side_effect = sqlite3.ProgrammingError("closed")
    pm.release(conn, uuid.uuid4())
    conn.close.assert_called_once()
    assert pm.stats()["idle_connections"] == 0


def test_pool_manager_checkout_releases_on_error(store: DataSource) -> None:
    pm = PoolManager(pool_size=1)
    with pytest.raises(RuntimeError):
        with pm.checkout(store):
            raise RuntimeError("boom")
    assert pm.stats()["idle_connections"] == 1
    pm.dispose()
