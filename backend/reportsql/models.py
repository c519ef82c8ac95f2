"""
Domain models: local DataSource, report definitions from the remote backend,
and executor results.

None of these are persisted by this service; report definitions are owned and
versioned by the remote report backend.
"""

import uuid
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from sqlmodel import SQLModel


class ProductTypeEnum(str, Enum):
    """Supported database product types (postgres, mysql, trino, sqlite)."""

    POSTGRES = "postgres"
    MYSQL = "mysql"
    TRINO = "trino"
    SQLITE = "sqlite"


# ---------------------------------------------------------------------------
# DataSource - local store connection
# ---------------------------------------------------------------------------


class DataSource(SQLModel):
    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    name: str = "local"
    product_type: ProductTypeEnum
    host: str | None = None
    port: int | None = None
    database: str
    username: str | None = None
    password: str = ""
    use_ssl: bool = False
    is_active: bool = True


# ---------------------------------------------------------------------------
# Report definitions (remote backend)
# ---------------------------------------------------------------------------


class ParameterOption(BaseModel):
    value: str | int | float
    label: str = ""


class ReportParameter(BaseModel):
    """
    One parameter declared by a report template.

    ``type`` is a form hint: ``text``, ``number``, ``date``, ``select`` or one
    of the lookup types (``course_select``, ``user_select``, ...) whose
    options come from the local store.
    """

    model_config = ConfigDict(extra="allow")

    name: str
    type: str = "text"
    label: str | None = None
    description: str | None = None
    required: bool = True
    default: str | int | float | None = None
    min: str | int | float | None = None
    max: str | int | float | None = None
    options: list[ParameterOption] = Field(default_factory=list)

    @field_validator("type", mode="before")
    @classmethod
    def _default_type(cls, v: Any) -> Any:
        return v or "text"

    @field_validator("required", mode="before")
    @classmethod
    def _default_required(cls, v: Any) -> Any:
        return True if v is None else v

    @field_validator("options", mode="before")
    @classmethod
    def _drop_malformed_options(cls, v: Any) -> Any:
        if not isinstance(v, list):
            return []
        return [o for o in v if isinstance(o, dict) and "value" in o]


class ReportTemplate(BaseModel):
    """
    Report definition as served by ``GET /reports/definitions``.

    The backend sends ``sqlquery`` / ``charttype``; both spellings are accepted.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str
    sql_query: str = Field(
        default="", validation_alias=AliasChoices("sql_query", "sqlquery")
    )
    parameters: list[ReportParameter] = Field(default_factory=list)
    chart_type: str | None = Field(
        default=None, validation_alias=AliasChoices("chart_type", "charttype")
    )
    description: str | None = None
    category: str | None = None

    @field_validator("name", mode="after")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        return v.strip()

    @field_validator("parameters", mode="before")
    @classmethod
    def _drop_malformed_parameters(cls, v: Any) -> Any:
        if v is None:
            return []
        if not isinstance(v, list):
            return []
        return [p for p in v if isinstance(p, dict) and p.get("name")]


# ---------------------------------------------------------------------------
# Executor results
# ---------------------------------------------------------------------------


class QueryResult(SQLModel):
    """Rows and ordered column headers from one template execution."""

    headers: list[str] = Field(default_factory=list)
    rows: list[dict[str, Any]] = Field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)
