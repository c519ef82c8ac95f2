"""
Reports API: list, parameter forms, generate, execute AI-authored SQL, KPI batches.

Endpoints are sync; FastAPI runs them in its thread pool because the store
drivers and the backend client block.
"""

import logging
from typing import Any

from fastapi import APIRouter
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from reportsql.api.deps import BackendClientDep, CatalogDep, ExecutorDep, ValidatorDep
from reportsql.core.report_source import ReportSourceError
from reportsql.engines.parameters import describe_parameters
from reportsql.engines.reports import (
    ReportNotFoundError,
    ReportUnavailableError,
    execute_ad_hoc_report,
    generate_report,
    run_kpi_batch,
)
from reportsql.engines.sql.errors import ExecutorError
from reportsql.models import ReportParameter
from reportsql.schemas import (
    ErrorOut,
    ExecuteReportIn,
    ExecuteReportOut,
    GenerateReportIn,
    GenerateReportOut,
    KpiBatchIn,
    KpiBatchOut,
    ParameterOptionOut,
    ReportInfoOut,
    ReportListOut,
    ReportParameterOut,
    ReportParametersOut,
)

_log = logging.getLogger(__name__)

router = APIRouter(prefix="/reports", tags=["reports"])

_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: {"model": ErrorOut},
    404: {"model": ErrorOut},
    409: {"model": ErrorOut},
    429: {"model": ErrorOut},
    502: {"model": ErrorOut},
}


def _error(status_code: int, error: str, message: str, **extra: Any) -> JSONResponse:
    body = {"success": False, "error": error, "message": message, **extra}
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


def _error_from_exception(e: Exception) -> JSONResponse:
    if isinstance(e, ExecutorError):
        return _error(400, e.code, str(e))
    if isinstance(e, ReportNotFoundError):
        return _error(404, e.code, str(e))
    if isinstance(e, ReportUnavailableError):
        return _error(409, e.code, str(e), missing_tables=e.missing_tables)
    if isinstance(e, ReportSourceError):
        return _error(502, "backend_unavailable", str(e))
    raise e


@router.get("", response_model=ReportListOut, responses=_ERROR_RESPONSES)
def list_reports(catalog: CatalogDep, validator: ValidatorDep) -> Any:
    """All backend report definitions, annotated with local availability."""
    try:
        reports = validator.filter_reports(catalog.all())
    except ReportSourceError as e:
        return _error_from_exception(e)
    return ReportListOut(data=reports, total=len(reports))


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _parameter_out(param: ReportParameter) -> ReportParameterOut:
    return ReportParameterOut(
        name=param.name,
        type=param.type,
        label=param.label or "",
        description=param.description or "",
        required=param.required,
        default_value=_text(param.default),
        min=_text(param.min),
        max=_text(param.max),
        options=[
            ParameterOptionOut(value=_text(o.value), label=o.label)
            for o in param.options
        ],
    )


@router.get(
    "/{report_id}/parameters",
    response_model=ReportParametersOut,
    responses=_ERROR_RESPONSES,
)
def report_parameters(
    report_id: str, catalog: CatalogDep, executor: ExecutorDep
) -> Any:
    """Form metadata for a report's parameters, with select options from the store."""
    try:
        report = catalog.get(report_id)
    except ReportSourceError as e:
        return _error_from_exception(e)
    if report is None:
        return _error(404, "report_not_found", f"Report not found: {report_id.strip()}")
    params = describe_parameters(report, executor=executor)
    return ReportParametersOut(
        report=ReportInfoOut(
            id=report.name,
            name=report.name,
            category=report.category,
            description=report.description,
            chart_type=report.chart_type or None,
        ),
        parameters=[_parameter_out(p) for p in params],
    )


@router.post(
    "/{report_id}/generate",
    response_model=GenerateReportOut,
    responses=_ERROR_RESPONSES,
)
def generate(
    report_id: str,
    body: GenerateReportIn,
    client: BackendClientDep,
    catalog: CatalogDep,
    executor: ExecutorDep,
    validator: ValidatorDep,
) -> Any:
    """Run a catalogue report with the given parameters."""
    try:
        if not body.reexecution:
            limits = client.check_report_limits()
            if not limits.get("eligible"):
                return _error(
                    429,
                    "limit_reached",
                    limits.get("message") or "Report generation limit reached",
                    reports_used=limits.get("reports_used", 0),
                    reports_limit=limits.get("reports_limit", 0),
                )
        report = generate_report(
            report_id,
            body.parameters,
            catalog=catalog,
            executor=executor,
            validator=validator,
        )
    except (ExecutorError, ReportNotFoundError, ReportUnavailableError, ReportSourceError) as e:
        return _error_from_exception(e)

    return JSONResponse(
        content=jsonable_encoder(
            GenerateReportOut(
                report_name=report.report_name,
                headers=report.headers,
                results=report.results,
                chart_type=report.chart_type,
                chart_data=report.chart_data,
                parameters_used=report.parameters_used,
            )
        )
    )


@router.post("/execute", response_model=ExecuteReportOut, responses=_ERROR_RESPONSES)
def execute(body: ExecuteReportIn, executor: ExecutorDep) -> Any:
    """Run AI-authored SQL (SELECT only) against the local store."""
    try:
        result = execute_ad_hoc_report(body.sql, body.params, executor=executor)
    except ExecutorError as e:
        return _error_from_exception(e)
    return JSONResponse(
        content=jsonable_encoder(
            ExecuteReportOut(
                data=result.rows, headers=result.headers, row_count=result.row_count
            )
        )
    )


@router.post("/kpi/batch", response_model=KpiBatchOut, responses=_ERROR_RESPONSES)
def kpi_batch(
    body: KpiBatchIn,
    catalog: CatalogDep,
    executor: ExecutorDep,
    validator: ValidatorDep,
) -> Any:
    """Run several KPI reports at once; failures are reported per report."""
    try:
        batch = run_kpi_batch(
            body.report_ids, catalog=catalog, executor=executor, validator=validator
        )
    except ReportSourceError as e:
        return _error_from_exception(e)
    return JSONResponse(
        content=jsonable_encoder(
            KpiBatchOut(
                reports=batch.reports,
                total_time_ms=batch.total_time_ms,
                report_count=batch.report_count,
            )
        )
    )
