"""
Report operations built on the template executor.

- generate_report: run a catalogue report with user parameters (+ chart data);
  required parameters left blank are rejected before the store is reached
- execute_ad_hoc_report: run AI-authored SQL
- run_kpi_batch: run several KPI reports, isolating failures per report
"""

import logging
import time
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import BaseModel, Field

from reportsql.core.config import settings
from reportsql.core.report_source import ReportCatalog
from reportsql.core.report_validator import ReportValidator
from reportsql.core.result_transform import build_chart_data, format_cells
from reportsql.engines.executor import TemplateExecutor
from reportsql.engines.parameters import check_required_parameters
from reportsql.engines.sql.errors import ExecutorError
from reportsql.models import QueryResult, ReportTemplate

_log = logging.getLogger(__name__)


class ReportNotFoundError(ValueError):
    """No report with that name in the catalogue."""

    code = "report_not_found"


class ReportUnavailableError(ValueError):
    """The report references tables this installation does not have."""

    code = "report_unavailable"

    def __init__(self, message: str, *, missing_tables: list[str] | None = None) -> None:
        super().__init__(message)
        self.missing_tables = missing_tables or []


class GeneratedReport(BaseModel):
    report_name: str
    headers: list[str]
    rows: list[dict[str, Any]]
    results: list[dict[str, Any]]
    chart_type: str | None = None
    chart_data: dict[str, Any] | None = None
    parameters_used: dict[str, Any] = Field(default_factory=dict)


class KpiBatchResult(BaseModel):
    reports: dict[str, dict[str, Any]]
    total_time_ms: int
    report_count: int


def merge_parameters(
    report: ReportTemplate, provided: Mapping[str, Any] | None
) -> dict[str, Any]:
    """Provided values win; template defaults fill in names left unset."""
    merged = dict(provided or {})
    for param in report.parameters:
        if param.name not in merged and param.default is not None:
            merged[param.name] = param.default
    return merged


def _elapsed_ms(start: float) -> int:
    return int(round((time.perf_counter() - start) * 1000))


def _find_report(catalog: ReportCatalog, report_id: str) -> ReportTemplate:
    report = catalog.get(report_id)
    if report is None:
        raise ReportNotFoundError(f"Report not found: {report_id.strip()}")
    return report


def generate_report(
    report_id: str,
    params: Mapping[str, Any] | None,
    *,
    catalog: ReportCatalog,
    executor: TemplateExecutor,
    validator: ReportValidator,
    limit_cap: int | None = None,
) -> GeneratedReport:
    report = _find_report(catalog, report_id)
    validation = validator.validate(report)
    if not validation.valid:
        raise ReportUnavailableError(
            validation.reason, missing_tables=validation.missing_tables
        )

    merged = merge_parameters(report, params)
    check_required_parameters(report, merged)
    cap = limit_cap if limit_cap is not None else settings.REPORT_ROW_CAP
    result = executor.execute(report.sql_query, merged, cap)
    _log.info("Report %r returned %d rows", report.name, result.row_count)

    chart_data = None
    if report.chart_type and result.rows:
        chart_data = build_chart_data(
            result.rows, result.headers, report.name, report.chart_type
        )

    return GeneratedReport(
        report_name=report.name,
        headers=result.headers,
        rows=result.rows,
        results=format_cells(result.rows),
        chart_type=report.chart_type or None,
        chart_data=chart_data,
        parameters_used=merged,
    )


def execute_ad_hoc_report(
    sql: str,
    params: Mapping[str, Any] | None,
    *,
    executor: TemplateExecutor,
    limit_cap: int | None = None,
) -> QueryResult:
    """Run AI-authored SQL through the same gates as catalogue reports."""
    cap = limit_cap if limit_cap is not None else settings.AI_REPORT_ROW_CAP
    return executor.execute(sql, params, cap)


def run_kpi_batch(
    report_ids: Iterable[str],
    *,
    catalog: ReportCatalog,
    executor: TemplateExecutor,
    validator: ReportValidator,
    max_reports: int | None = None,
    limit_cap: int | None = None,
) -> KpiBatchResult:
    """
    Run up to ``KPI_BATCH_MAX`` reports with their default parameters.

    Per-report failures are recorded in the result; the batch keeps going.
    """
    start = time.perf_counter()
    limit = max_reports if max_reports is not None else settings.KPI_BATCH_MAX
    cap = limit_cap if limit_cap is not None else settings.KPI_ROW_CAP
    ids = [str(r).strip() for r in report_ids if str(r).strip()][:limit]

    results: dict[str, dict[str, Any]] = {}
    for report_id in ids:
        report_start = time.perf_counter()
        report = catalog.get(report_id)
        if report is None:
            results[report_id] = {"success": False, "error": "Report not found"}
            continue

        validation = validator.validate(report)
        if not validation.valid:
            results[report_id] = {
                "success": False,
                "error": "Report is not compatible with this installation",
                "details": validation.reason,
            }
            continue

        try:
            result = executor.execute(
                report.sql_query, merge_parameters(report, None), cap
            )
        except ExecutorError as e:
            _log.warning("KPI report %r failed: %s", report_id, e)
            results[report_id] = {"success": False, "error": f"Query error: {e}"}
            continue
        except Exception as e:
            _log.error("KPI report %r failed: %s", report_id, e, exc_info=True)
            results[report_id] = {"success": False, "error": f"Query error: {e}"}
            continue

        results[report_id] = {
            "success": True,
            "results": result.rows,
            "count": result.row_count,
            "time_ms": _elapsed_ms(report_start),
        }

    return KpiBatchResult(
        reports=results,
        total_time_ms=_elapsed_ms(start),
        report_count=len(ids),
    )
