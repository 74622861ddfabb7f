"""Integration tests for TableManager against a real DuckDB engine."""

import asyncio

import pyarrow as pa
import pyarrow.parquet as pq
import pytest

from mergeview._exceptions import LoadError, UnloadError
from mergeview.config import WorkspaceConfig
from mergeview.engine import Engine
from mergeview.lifecycle import TableManager
from mergeview.sql import Column, OrderItem, Select, Star, TableRef


def run(coro_fn, config):
    """Run coro_fn(tables) with a fresh manager, closing the engine afterwards."""

    async def main():
        engine = Engine()
        tables = TableManager(engine, config)
        try:
            return await coro_fn(tables)
        finally:
            await tables.close()
            engine.close()

    return asyncio.run(main())


class TestEnsureLoaded:

    def test_loads_and_caches_row_count(self, config, people):
        async def scenario(tables):
            count = await tables.ensure_loaded(people)
            async with tables.engine.connect() as conn:
                data = await conn.fetch_table(
                    Select((Star(),), TableRef(people), order_by=(OrderItem(Column("__row_id")),))
                )
            return count, tables, data

        count, tables, data = run(scenario, config)

        assert count == 3
        assert data.column_names == ["0", "1", "__row_id"]
        assert data.column("__row_id").to_pylist() == [1, 2, 3]
        assert data.column("1").to_pylist() == ["Alice", "Bob", "Carol"]

    def test_state_after_load(self, config, people):
        async def scenario(tables):
            assert not tables.is_loaded(people)
            await tables.ensure_loaded(people)
            return tables.is_loaded(people), tables.row_count(people), tables.column_names(people)

        assert run(scenario, config) == (True, 3, ["0", "1"])

    def test_column_names_requires_load(self, config):
        tables = TableManager(Engine(), config)
        with pytest.raises(LoadError, match="not loaded"):
            tables.column_names("people")

    def test_concurrent_loads_share_one_fetch(self, config, people):
        async def scenario(tables):
            fetches = []
            original = tables._fetch

            async def counting_fetch(uuid):
                fetches.append(uuid)
                await asyncio.sleep(0.01)
                return await original(uuid)

            tables._fetch = counting_fetch
            counts = await asyncio.gather(*(tables.ensure_loaded(people) for _ in range(5)))
            return fetches, counts

        fetches, counts = run(scenario, config)
        assert fetches == ["people"]
        assert counts == [3] * 5

    def test_second_load_is_a_cache_hit(self, config, people):
        async def scenario(tables):
            await tables.ensure_loaded(people)
            fetches = []

            async def failing_fetch(uuid):
                fetches.append(uuid)
                raise AssertionError("should not refetch")

            tables._fetch = failing_fetch
            return await tables.ensure_loaded(people), fetches

        assert run(scenario, config) == (3, [])

    def test_missing_file_is_not_cached(self, config, write_dataset):
        async def scenario(tables):
            with pytest.raises(LoadError):
                await tables.ensure_loaded("late")
            assert not tables.is_loaded("late")

            write_dataset("late", {"x": [1, 2]})
            return await tables.ensure_loaded("late")

        assert run(scenario, config) == 2

    def test_corrupt_file(self, config, dataset_root):
        (dataset_root / "broken.parquet").write_bytes(b"not a parquet file")

        async def scenario(tables):
            with pytest.raises(LoadError, match="Invalid Parquet"):
                await tables.ensure_loaded("broken")
            return tables.is_loaded("broken")

        assert run(scenario, config) is False


class TestUnload:

    def test_unload(self, config, people):
        async def scenario(tables):
            await tables.ensure_loaded(people)
            dropped = await tables.unload(people)
            return dropped, tables.is_loaded(people)

        assert run(scenario, config) == (True, False)

    def test_unload_unknown(self, config):
        async def scenario(tables):
            return await tables.unload("nothing")

        assert run(scenario, config) is False

    def test_unload_failure_is_swallowed(self, config, people):
        async def scenario(tables):
            await tables.ensure_loaded(people)

            async def refuse(uuid):
                raise UnloadError(f"{uuid} is still referenced")

            tables._drop_table = refuse
            return await tables.unload(people), tables.is_loaded(people)

        assert run(scenario, config) == (False, True)


class TestCollectGarbage:

    def test_only_zero_counters_are_evicted(self, config, people, visits, staff):
        async def scenario(tables):
            for uuid in (people, visits, staff):
                await tables.ensure_loaded(uuid)

            tables.retain(people)
            tables.release(people)
            tables.retain(visits)
            # staff has no counter at all

            dropped = await tables.collect_garbage()
            return dropped, tables.loaded, dict(tables.reference_counters)

        dropped, loaded, counters = run(scenario, config)

        assert dropped == ["people"]
        assert set(loaded) == {"visits", "staff"}
        assert counters == {"people": 0, "visits": 1}

    def test_failed_eviction_stays_loaded(self, config, people):
        async def scenario(tables):
            await tables.ensure_loaded(people)
            tables.reference_counters[people] = 0

            async def refuse(uuid):
                raise UnloadError("busy")

            tables._drop_table = refuse
            dropped = await tables.collect_garbage()
            return dropped, tables.is_loaded(people)

        assert run(scenario, config) == ([], True)


class TestDiskCache:

    @pytest.fixture
    def remote(self, monkeypatch):
        """Serve one Parquet file from a fake HTTP origin, counting downloads."""
        sink = pa.BufferOutputStream()
        pq.write_table(pa.table({"x": [1, 2, 3, 4]}), sink)
        payload = sink.getvalue().to_pybytes()
        downloads = []

        async def fake_download(directory, filename):
            downloads.append(directory + filename)
            return payload

        async def fake_metadata(directory, filename):
            return {"etag": '"v1"', "size": len(payload)}

        monkeypatch.setattr("mergeview.lifecycle.download_bytes", fake_download)
        monkeypatch.setattr("mergeview.lifecycle.get_remote_metadata", fake_metadata)
        return downloads

    def test_second_session_reads_from_cache(self, remote):
        config = WorkspaceConfig(base_url="https://example.org/", cache=True)

        assert run(lambda tables: tables.ensure_loaded("remote"), config) == 4
        assert run(lambda tables: tables.ensure_loaded("remote"), config) == 4
        assert remote == ["https://example.org/api/parquet/remote.parquet"]

    def test_cache_disabled_always_downloads(self, remote):
        config = WorkspaceConfig(base_url="https://example.org/")

        run(lambda tables: tables.ensure_loaded("remote"), config)
        run(lambda tables: tables.ensure_loaded("remote"), config)
        assert len(remote) == 2
