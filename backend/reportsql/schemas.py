"""
Request and response bodies for the reports API.
"""

from typing import Any

from pydantic import Field
from sqlmodel import SQLModel


class GenerateReportIn(SQLModel):
    """Body for POST /reports/{report_id}/generate."""

    parameters: dict[str, Any] = Field(default_factory=dict)
    reexecution: bool = Field(
        default=False,
        description="Re-run of an already generated report; skips the backend limit check.",
    )


class GenerateReportOut(SQLModel):
    success: bool = True
    report_name: str
    headers: list[str]
    results: list[dict[str, Any]]
    chart_type: str | None = None
    chart_data: dict[str, Any] | None = None
    parameters_used: dict[str, Any] = Field(default_factory=dict)


class ExecuteReportIn(SQLModel):
    """Body for POST /reports/execute (AI-authored SQL)."""

    sql: str = ""
    params: dict[str, Any] = Field(default_factory=dict)


class ExecuteReportOut(SQLModel):
    success: bool = True
    data: list[dict[str, Any]]
    headers: list[str]
    row_count: int


class KpiBatchIn(SQLModel):
    """Body for POST /reports/kpi/batch."""

    report_ids: list[str] = Field(..., min_length=1)


class KpiBatchOut(SQLModel):
    success: bool = True
    reports: dict[str, dict[str, Any]]
    total_time_ms: int
    report_count: int


class ReportListOut(SQLModel):
    success: bool = True
    data: list[dict[str, Any]]
    total: int


class ParameterOptionOut(SQLModel):
    value: str
    label: str = ""


class ReportParameterOut(SQLModel):
    """One form field; values are strings, ``""`` when unset."""

    name: str
    type: str = "text"
    label: str = ""
    description: str = ""
    required: bool = True
    default_value: str = ""
    min: str = ""
    max: str = ""
    options: list[ParameterOptionOut] = Field(default_factory=list)


class ReportInfoOut(SQLModel):
    id: str
    name: str
    category: str | None = None
    description: str | None = None
    chart_type: str | None = None


class ReportParametersOut(SQLModel):
    success: bool = True
    report: ReportInfoOut
    parameters: list[ReportParameterOut]


class ErrorOut(SQLModel):
    success: bool = False
    error: str
    message: str
