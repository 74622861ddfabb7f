"""
Dataset load/unload bookkeeping.

TableManager is the single owner of which datasets live in the engine.
Loads are deduplicated through a registry of in-flight tasks keyed by
uuid: the first caller starts the load, later callers await the same task.

Loading a dataset:
    1. Fetch <base_url>/<dataset_root>/<uuid>.<ext> (local, HTTP or object store)
    2. Parse Parquet with PyArrow
    3. Rename columns to their positions ("0", "1", ...) and append __row_id
    4. CREATE TABLE "<uuid>" in DuckDB and cache its row count

Reference counters are maintained by callers (retain/release). The manager
only reads them in collect_garbage().
"""

import asyncio
import functools
import time
from pathlib import Path
from urllib.parse import urljoin

import pyarrow as pa
import pyarrow.parquet as pq

from mergeview._cache import is_cache_valid, load_from_cache, save_to_cache
from mergeview._constants import ROW_ID, STAGING_PREFIX
from mergeview._exceptions import LoadError, StatementError, UnloadError
from mergeview._logging import get_logger
from mergeview._remote_io import download_bytes, get_remote_metadata, is_remote
from mergeview.config import WorkspaceConfig
from mergeview.engine import Engine
from mergeview.sql import Call, CreateTableAs, Drop, Select, Star, TableRef

logger = get_logger(__name__)


def _with_positional_columns(table: pa.Table) -> pa.Table:
    """Name columns by position and append the 1-based row identity."""
    table = table.rename_columns([str(i) for i in range(table.num_columns)])
    row_ids = pa.array(range(1, table.num_rows + 1), type=pa.int64())
    return table.append_column(ROW_ID, row_ids)


def _parse_parquet(data: bytes, source: str) -> pa.Table:
    try:
        return pq.read_table(pa.BufferReader(data))
    except (pa.ArrowException, OSError) as e:
        raise LoadError(f"Invalid Parquet file {source}: {e}") from e


class TableManager:
    """
    Loads datasets into the engine on demand and evicts unused ones.

    Attributes:
        engine: Engine the tables are created in
        config: Workspace configuration (file location, cache)
        reference_counters: uuid -> number of active consumers
    """

    def __init__(self, engine: Engine, config: WorkspaceConfig):
        self.engine = engine
        self.config = config
        self.reference_counters: dict[str, int] = {}
        self._loaded: dict[str, int] = {}
        self._columns: dict[str, int] = {}
        self._pending: dict[str, asyncio.Task] = {}

    # Location

    def dataset_location(self, uuid: str) -> tuple[str, str]:
        """(directory, filename) of the dataset file."""
        filename = f"{uuid}.{self.config.file_extension}"
        root = self.config.dataset_root.strip("/")
        base = self.config.base_url

        if base.startswith(("http://", "https://")):
            # Absolute path, resolved against the origin
            return urljoin(base, f"/{root}/" if root else "/"), filename
        if is_remote(base):
            directory = base.rstrip("/") + "/"
            return (directory + root + "/" if root else directory), filename
        return str(Path(base) / root), filename

    def dataset_url(self, uuid: str) -> str:
        directory, filename = self.dataset_location(uuid)
        if is_remote(directory):
            return directory + filename
        return str(Path(directory) / filename)

    # State

    def is_loaded(self, uuid: str) -> bool:
        return uuid in self._loaded

    def row_count(self, uuid: str) -> int | None:
        return self._loaded.get(uuid)

    def column_names(self, uuid: str) -> list[str]:
        """Physical column names of a loaded dataset, without __row_id."""
        if uuid not in self._columns:
            raise LoadError(f"Dataset not loaded: {uuid}")
        return [str(i) for i in range(self._columns[uuid])]

    @property
    def loaded(self) -> dict[str, int]:
        """Snapshot of uuid -> row count for loaded datasets."""
        return dict(self._loaded)

    def retain(self, uuid: str) -> int:
        self.reference_counters[uuid] = self.reference_counters.get(uuid, 0) + 1
        return self.reference_counters[uuid]

    def release(self, uuid: str) -> int:
        self.reference_counters[uuid] = max(self.reference_counters.get(uuid, 0) - 1, 0)
        return self.reference_counters[uuid]

    # Loading

    async def ensure_loaded(self, uuid: str) -> int:
        """
        Load dataset if needed and return its row count.

        Concurrent calls for the same uuid share one load.

        Raises:
            LoadError: File unreachable or not Parquet. Nothing is cached,
                so calling again retries.
        """
        if uuid in self._loaded:
            return self._loaded[uuid]

        task = self._pending.get(uuid)
        if task is None:
            task = asyncio.ensure_future(self._load(uuid))
            self._pending[uuid] = task
            task.add_done_callback(functools.partial(self._forget_pending, uuid))
        else:
            logger.debug(f"Awaiting in-flight load of {uuid}")

        # A cancelled waiter must not cancel the load other callers share
        return await asyncio.shield(task)

    def _forget_pending(self, uuid: str, task: asyncio.Task) -> None:
        if self._pending.get(uuid) is task:
            del self._pending[uuid]

    async def _load(self, uuid: str) -> int:
        t_start = time.time()
        source = self.dataset_url(uuid)
        logger.debug(f"Loading dataset {uuid} from {source}")

        data = await self._fetch(uuid)
        table = await asyncio.to_thread(_parse_parquet, data, source)
        table = _with_positional_columns(table)

        staging = f"{STAGING_PREFIX}{uuid}"
        async with self.engine.connect() as conn:
            await conn.register(staging, table)
            try:
                await conn.execute(Drop("TABLE", uuid))
                await conn.execute(CreateTableAs(uuid, Select((Star(),), TableRef(staging))))
            finally:
                await conn.unregister(staging)
            count = await conn.fetch_scalar(
                Select((Call("count", (Star(),)),), TableRef(uuid))
            )

        self._columns[uuid] = table.num_columns - 1
        self._loaded[uuid] = int(count)
        logger.info(
            f"Loaded dataset {uuid} with {int(count):,} rows "
            f"in {time.time() - t_start:.2f}s"
        )
        return self._loaded[uuid]

    async def _fetch(self, uuid: str) -> bytes:
        directory, filename = self.dataset_location(uuid)
        if self.config.cache and is_remote(directory):
            return await self._fetch_cached(directory, filename)
        return await download_bytes(directory, filename)

    async def _fetch_cached(self, directory: str, filename: str) -> bytes:
        url = directory + filename
        meta = await get_remote_metadata(directory, filename) or {}
        etag, size = meta.get("etag"), meta.get("size")

        if await asyncio.to_thread(is_cache_valid, url, etag, size):
            cached = await asyncio.to_thread(load_from_cache, url)
            if cached is not None:
                return cached

        data = await download_bytes(directory, filename)
        try:
            await asyncio.to_thread(save_to_cache, url, data, etag, size)
        except OSError as e:
            logger.debug(f"Could not cache {url}: {e}")
        return data

    # Unloading

    async def _drop_table(self, uuid: str) -> None:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(Drop("TABLE", uuid, restrict=True))
        except StatementError as e:
            raise UnloadError(f"Cannot unload table {uuid}: {e}") from e

    async def unload(self, uuid: str) -> bool:
        """
        Drop a loaded dataset. Best effort: failures are logged, never raised.

        Returns:
            True if the dataset was dropped
        """
        if uuid not in self._loaded:
            return False
        try:
            await self._drop_table(uuid)
        except UnloadError as e:
            logger.debug(str(e))
            return False

        del self._loaded[uuid]
        self._columns.pop(uuid, None)
        logger.debug(f"Unloaded dataset {uuid}")
        return True

    async def collect_garbage(self) -> list[str]:
        """
        Unload every dataset whose reference counter is exactly zero.

        Counters themselves are left untouched.

        Returns:
            uuids that were dropped
        """
        dropped = []
        for uuid, count in list(self.reference_counters.items()):
            if count == 0 and await self.unload(uuid):
                dropped.append(uuid)
        if dropped:
            logger.debug(f"Garbage collected {len(dropped)} dataset(s)")
        return dropped

    async def close(self) -> None:
        """Cancel pending loads and drop every loaded dataset."""
        for task in list(self._pending.values()):
            task.cancel()
        self._pending.clear()
        for uuid in list(self._loaded):
            await self.unload(uuid)
