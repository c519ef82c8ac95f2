from collections.abc import Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from reportsql.api.deps import get_backend_client, get_datasource
from reportsql.core.pool import get_pool_manager
from reportsql.main import app
from reportsql.models import DataSource
from tests.utils.backend import make_client
from tests.utils.store import create_store


@pytest.fixture()
def store(tmp_path: Path) -> Generator[DataSource, None, None]:
    ds = create_store(tmp_path / "moodle.db")
    yield ds
    get_pool_manager().dispose(ds.id)


@pytest.fixture()
def backend_calls() -> list[str]:
    return []


@pytest.fixture()
def client(store: DataSource, backend_calls: list[str]) -> Generator[TestClient, None, None]:
    def _backend() -> Generator:
        with make_client(calls=backend_calls) as c:
            yield c

    app.dependency_overrides[get_datasource] = lambda: store
    app.dependency_overrides[get_backend_client] = _backend
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
