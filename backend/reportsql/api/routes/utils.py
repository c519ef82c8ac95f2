from fastapi import APIRouter
from fastapi.responses import JSONResponse

from reportsql.api.deps import DataSourceDep
from reportsql.core.pool import check_datasource

router = APIRouter(prefix="/utils", tags=["utils"])


@router.get("/liveness/", response_model=None)
async def liveness() -> bool:
    """
    Liveness check: the process is up and serving requests. No I/O.
    """
    return True


@router.get("/health-check/", response_model=None)
def health_check(datasource: DataSourceDep) -> bool | JSONResponse:
    """
    Readiness check: can the service reach the local report store?

    Returns 200 with true if ``SELECT 1`` succeeds on a pooled connection;
    503 otherwise.
    """
    if not check_datasource(datasource):
        return JSONResponse(
            status_code=503,
            content={
                "success": False,
                "message": "Service Unavailable",
                "data": ["report_store"],
            },
        )
    return True
