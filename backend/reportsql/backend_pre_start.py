import logging

from tenacity import after_log, before_log, retry, stop_after_attempt, wait_fixed

from reportsql.api.deps import get_datasource
from reportsql.core.pool import connect, health_check
from reportsql.models import DataSource, ProductTypeEnum

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

max_tries = 60 * 5  # 5 minutes
wait_seconds = 1


@retry(
    stop=stop_after_attempt(max_tries),
    wait=wait_fixed(wait_seconds),
    before=before_log(logger, logging.INFO),
    after=after_log(logger, logging.WARN),
)
def init(datasource: DataSource) -> None:
    try:
        conn = connect(datasource)
    except Exception as e:
        logger.error(e)
        raise e
    try:
        if not health_check(conn, ProductTypeEnum(datasource.product_type)):
            raise ConnectionError(f"Report store {datasource.name} did not answer SELECT 1")
    finally:
        conn.close()


def main() -> None:
    logger.info("Waiting for the report store")
    init(get_datasource())
    logger.info("Report store is ready")


if __name__ == "__main__":
    main()
