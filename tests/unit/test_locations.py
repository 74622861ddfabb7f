"""Tests for dataset file addressing and store selection."""

from pathlib import Path

import pytest

from mergeview._exceptions import LoadError
from mergeview._remote_io import _create_store, is_remote
from mergeview.config import WorkspaceConfig
from mergeview.engine import Engine
from mergeview.lifecycle import TableManager


def manager(**config) -> TableManager:
    return TableManager(Engine(), WorkspaceConfig(**config))


class TestDatasetLocation:

    def test_http_resolves_against_origin(self):
        tables = manager(base_url="https://example.org/app/page")
        assert tables.dataset_location("abc") == ("https://example.org/api/parquet/", "abc.parquet")
        assert tables.dataset_url("abc") == "https://example.org/api/parquet/abc.parquet"

    def test_object_store_appends_root(self):
        tables = manager(base_url="s3://bucket/exports", dataset_root="/tables/")
        assert tables.dataset_location("abc") == ("s3://bucket/exports/tables/", "abc.parquet")

    def test_local_directory(self, tmp_path):
        tables = manager(base_url=str(tmp_path), file_extension="pq")
        directory, filename = tables.dataset_location("abc")
        assert Path(directory) == tmp_path / "api" / "parquet"
        assert filename == "abc.pq"

    def test_engine_not_opened(self):
        tables = manager()
        tables.dataset_url("abc")
        assert not tables.engine.is_open


class TestRemoteDetection:

    @pytest.mark.parametrize(
        "location",
        ["http://x/", "https://x/", "s3://b/", "gs://b/", "az://c/", "azure://c/"],
    )
    def test_remote(self, location):
        assert is_remote(location)

    @pytest.mark.parametrize("location", ["/data", "data/api", "C:\\data"])
    def test_local(self, location):
        assert not is_remote(location)

    def test_unsupported_scheme(self):
        with pytest.raises(LoadError, match="Unsupported URL scheme"):
            _create_store("ftp://example.org/")


class TestReferenceCounters:

    def test_release_floors_at_zero(self):
        tables = manager()
        assert tables.retain("a") == 1
        assert tables.retain("a") == 2
        assert tables.release("a") == 1
        assert tables.release("a") == 0
        assert tables.release("a") == 0
        assert tables.release("b") == 0
        assert tables.reference_counters == {"a": 0, "b": 0}
