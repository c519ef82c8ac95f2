from collections.abc import Generator
from typing import Annotated

from fastapi import Depends

from reportsql.core.config import settings
from reportsql.core.report_source import ReportBackendClient, ReportCatalog
from reportsql.core.report_validator import ReportValidator, datasource_table_checker
from reportsql.engines.executor import TemplateExecutor
from reportsql.models import DataSource, ProductTypeEnum


def get_datasource() -> DataSource:
    """The local learning-platform database from settings."""
    return DataSource(
        id=settings.local_datasource_id,
        name="local",
        product_type=ProductTypeEnum(settings.DB_PRODUCT_TYPE),
        host=settings.DB_HOST,
        port=settings.DB_PORT,
        database=settings.DB_NAME,
        username=settings.DB_USER,
        password=settings.DB_PASSWORD,
        use_ssl=settings.DB_USE_SSL,
    )


DataSourceDep = Annotated[DataSource, Depends(get_datasource)]


def get_backend_client() -> Generator[ReportBackendClient, None, None]:
    with ReportBackendClient() as client:
        yield client


BackendClientDep = Annotated[ReportBackendClient, Depends(get_backend_client)]


def get_catalog(client: BackendClientDep) -> ReportCatalog:
    """Fresh catalogue per request; definitions are fetched at most once."""
    return ReportCatalog(client)


CatalogDep = Annotated[ReportCatalog, Depends(get_catalog)]


def get_executor(datasource: DataSourceDep) -> TemplateExecutor:
    return TemplateExecutor(datasource)


ExecutorDep = Annotated[TemplateExecutor, Depends(get_executor)]


def get_validator(datasource: DataSourceDep) -> ReportValidator:
    """Per-request validator so its table cache never outlives the request."""
    return ReportValidator(
        datasource_table_checker(datasource), settings.DB_TABLE_PREFIX
    )


ValidatorDep = Annotated[ReportValidator, Depends(get_validator)]
