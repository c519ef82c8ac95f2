"""
Connection pool for the local report store.

Keeps idle connections per datasource id so report, KPI and validation
requests do not open a new connection for every query. Connections older
than ``EXTERNAL_DB_POOL_MAX_AGE_SEC`` are closed on checkout, and
connections idle for a while are pinged before reuse.
"""

import logging
import threading
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, NamedTuple

from reportsql.core.config import settings
from reportsql.models import DataSource

from .connect import connect

_log = logging.getLogger(__name__)

_PING_IDLE_THRESHOLD = 30.0  # seconds idle before a checkout ping


class _PoolEntry(NamedTuple):
    conn: Any
    created_at: float  # time.monotonic() when opened
    last_used: float  # time.monotonic() when last returned


class PoolManager:
    """Per-datasource connection pool with max-age eviction and idle ping."""

    def __init__(
        self,
        *,
        pool_size: int | None = None,
        max_age_sec: float | None = None,
    ) -> None:
        self._pools: dict[uuid.UUID, list[_PoolEntry]] = {}
        self._opened_at: dict[int, float] = {}
        self._lock = threading.Lock()
        self._pool_size = (
            pool_size if pool_size is not None else settings.EXTERNAL_DB_POOL_SIZE
        )
        self._max_age = float(
            max_age_sec
            if max_age_sec is not None
            else settings.EXTERNAL_DB_POOL_MAX_AGE_SEC
        )

    def get_connection(self, datasource: DataSource) -> Any:
        """Check out a usable connection for *datasource*, opening one if needed."""
        while True:
            entry = self._pop(datasource.id)
            if entry is None:
                break
            now = time.monotonic()
            if now - entry.created_at > self._max_age:
                _log.debug("Closing expired connection for datasource %s", datasource.id)
                self._discard(entry.conn)
                continue
            if now - entry.last_used > _PING_IDLE_THRESHOLD and not self._is_alive(
                entry.conn
            ):
                _log.info("Dropping dead pooled connection for datasource %s", datasource.id)
                self._discard(entry.conn)
                continue
            return entry.conn

        conn = connect(datasource)
        with self._lock:
            self._opened_at[id(conn)] = time.monotonic()
        return conn

    def release(self, conn: Any, datasource_id: uuid.UUID) -> None:
        """Roll back and return *conn* to its pool, or close it when the pool is full."""
        try:
            conn.rollback()
        except Exception:
            _log.warning("Rollback failed on release; closing connection", exc_info=True)
            self._discard(conn)
            return

        now = time.monotonic()
        with self._lock:
            pool = self._pools.setdefault(datasource_id, [])
            if len(pool) < self._pool_size:
                created = self._opened_at.get(id(conn), now)
                pool.append(_PoolEntry(conn=conn, created_at=created, last_used=now))
                return

        self._discard(conn)

    @contextmanager
    def checkout(self, datasource: DataSource) -> Iterator[Any]:
        """``with pm.checkout(ds) as conn:``; always released, even on error."""
        conn = self.get_connection(datasource)
        try:
            yield conn
        finally:
            self.release(conn, datasource.id)

    def dispose(self, datasource_id: uuid.UUID | None = None) -> None:
        """Close pooled connections. ``None`` = dispose all pools."""
        with self._lock:
            if datasource_id is not None:
                entries = self._pools.pop(datasource_id, [])
            else:
                entries = [e for pool in self._pools.values() for e in pool]
                self._pools.clear()
        for e in entries:
            self._discard(e.conn)

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {
                "datasources": len(self._pools),
                "idle_connections": sum(len(p) for p in self._pools.values()),
            }

    def _pop(self, ds_id: uuid.UUID) -> _PoolEntry | None:
        with self._lock:
            pool = self._pools.get(ds_id)
            if pool:
                return pool.pop()
        return None

    @staticmethod
    def _is_alive(conn: Any) -> bool:
        try:
            cur = conn.cursor()
            cur.execute("SELECT 1")
            cur.fetchall()
            cur.close()
            return True
        except Exception:
            return False

    def _discard(self, conn: Any) -> None:
        with self._lock:
            self._opened_at.pop(id(conn), None)
        try:
            conn.close()
        except Exception:
            pass


_pool_manager: PoolManager | None = None
_pool_lock = threading.Lock()


def get_pool_manager() -> PoolManager:
    """Return the process-wide PoolManager (double-checked locking)."""
    global _pool_manager
    if _pool_manager is None:
        with _pool_lock:
            if _pool_manager is None:
                _pool_manager = PoolManager()
    return _pool_manager
