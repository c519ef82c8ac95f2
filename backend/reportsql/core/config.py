"""
Application settings loaded from environment variables (and ``.env``).

Local store connection, report row caps, remote report backend and
connection pool tuning all live here; import the shared ``settings`` object.
"""

import uuid
from typing import Annotated, Any, Literal

from pydantic import AnyUrl, BeforeValidator, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


def parse_cors(v: Any) -> list[str] | str:
    if isinstance(v, str) and not v.startswith("["):
        return [i.strip() for i in v.split(",") if i.strip()]
    if isinstance(v, list | str):
        return v
    raise ValueError(v)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    PROJECT_NAME: str = "reportsql"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    SENTRY_DSN: AnyUrl | None = None

    BACKEND_CORS_ORIGINS: Annotated[
        list[AnyUrl] | str, BeforeValidator(parse_cors)
    ] = []

    @computed_field  # type: ignore[prop-decorator]
    @property
    def all_cors_origins(self) -> list[str]:
        return [str(origin).rstrip("/") for origin in self.BACKEND_CORS_ORIGINS]

    # Local learning-platform database the report templates run against
    DB_PRODUCT_TYPE: Literal["postgres", "mysql", "trino", "sqlite"] = "postgres"
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: str = "moodle"
    DB_USER: str = "moodle"
    DB_PASSWORD: str = ""
    DB_USE_SSL: bool = False
    DB_TABLE_PREFIX: str = "mdl_"

    EXTERNAL_DB_CONNECT_TIMEOUT: int = 10
    EXTERNAL_DB_STATEMENT_TIMEOUT: float | None = None
    EXTERNAL_DB_POOL_SIZE: int = 5
    EXTERNAL_DB_POOL_MAX_AGE_SEC: int = 600

    # Row caps appended as LIMIT when a template has none
    REPORT_ROW_CAP: int = 100_000
    AI_REPORT_ROW_CAP: int = 100_000
    KPI_ROW_CAP: int = 10_000
    KPI_BATCH_MAX: int = 10

    # False: unbound placeholders bind ''. True: raise MissingParameterError.
    STRICT_PARAMETERS: bool = False

    REPORT_BACKEND_ENABLED: bool = True
    REPORT_BACKEND_URL: str = "https://backend.example.com/api/v1"
    REPORT_BACKEND_API_KEY: str = ""
    REPORT_BACKEND_TIMEOUT: float = 10.0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def local_datasource_id(self) -> uuid.UUID:
        """Stable pool key for the configured local store."""
        dsn = (
            f"{self.DB_PRODUCT_TYPE}://{self.DB_USER}@{self.DB_HOST}:"
            f"{self.DB_PORT}/{self.DB_NAME}"
        )
        return uuid.uuid5(uuid.NAMESPACE_URL, dsn)


settings = Settings()  # type: ignore
