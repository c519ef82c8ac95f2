"""
Connections and connection pooling for the local report store.

No driver layer: psycopg, pymysql and trino are installed via pip, sqlite3 ships
with Python; DataSource (product_type, host, ...) is enough.
"""

from .connect import connect, cursor_to_dicts, execute, table_exists
from .health import check_datasource, health_check
from .manager import PoolManager, get_pool_manager

__all__ = [
    "connect",
    "execute",
    "cursor_to_dicts",
    "table_exists",
    "health_check",
    "check_datasource",
    "PoolManager",
    "get_pool_manager",
]
