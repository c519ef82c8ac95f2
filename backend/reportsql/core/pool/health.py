"""
Connection health checks for the local report store.
"""

import logging
from typing import Any

from reportsql.models import DataSource, ProductTypeEnum

from .connect import execute
from .manager import get_pool_manager

_log = logging.getLogger(__name__)


def health_check(conn: Any, product_type: ProductTypeEnum) -> bool:
    """
    Run SELECT 1 on *conn* and return True if no exception. Every supported
    store accepts SELECT 1.
    """
    cur = None
    try:
        cur = execute(conn, "SELECT 1", product_type=product_type)
        cur.fetchone()
        return True
    except Exception:
        return False
    finally:
        if cur is not None:
            cur.close()


def check_datasource(datasource: DataSource) -> bool:
    """Readiness check: a pooled connection can be checked out and answers SELECT 1."""
    try:
        with get_pool_manager().checkout(datasource) as conn:
            return health_check(conn, ProductTypeEnum(datasource.product_type))
    except Exception:
        _log.warning("Report store %s is unreachable", datasource.name, exc_info=True)
        return False
