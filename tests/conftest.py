"""Pytest fixtures for mergeview tests."""

from pathlib import Path

import pyarrow as pa
import pyarrow.parquet as pq
import pytest

from mergeview._constants import CACHE_ENV_VAR
from mergeview.config import WorkspaceConfig


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: unit tests (no I/O)")
    config.addinivalue_line("markers", "integration: integration tests against DuckDB")


def pytest_collection_modifyitems(config, items):
    for item in items:
        if "/unit/" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "/integration/" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


@pytest.fixture
def dataset_root(tmp_path) -> Path:
    root = tmp_path / "api" / "parquet"
    root.mkdir(parents=True)
    return root


@pytest.fixture
def write_dataset(dataset_root):
    """Write {column: values} as <uuid>.parquet under the dataset root."""

    def _write(uuid: str, columns: dict) -> Path:
        path = dataset_root / f"{uuid}.parquet"
        pq.write_table(pa.table(columns), path)
        return path

    return _write


@pytest.fixture
def config(tmp_path, dataset_root) -> WorkspaceConfig:
    return WorkspaceConfig(base_url=str(tmp_path))


@pytest.fixture
def people(write_dataset):
    write_dataset("people", {"id": [1, 2, 3], "name": ["Alice", "Bob", "Carol"]})
    return "people"


@pytest.fixture
def visits(write_dataset):
    write_dataset("visits", {"person_id": [1, 1, 2], "city": ["Lima", "Cusco", "Quito"]})
    return "visits"


@pytest.fixture
def staff(write_dataset):
    write_dataset("staff", {"id": [10], "city": ["Oslo"]})
    return "staff"


@pytest.fixture(autouse=True)
def isolated_cache(tmp_path, monkeypatch):
    monkeypatch.setenv(CACHE_ENV_VAR, str(tmp_path / "cache"))
