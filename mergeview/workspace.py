"""
Workspace - session facade over the engine, datasets and working table.

One Workspace owns one DuckDB database, one TableManager and the working
table. Nothing is persisted across sessions; views are rebuilt per session.

Usage:
    async with Workspace(WorkspaceConfig(base_url="https://example.org/")) as ws:
        await ws.load_dataset(uuid)
        page = await ws.get_page(uuid, 1, 50)

        working = await ws.build_working_table(histories, keywords=["peru"])
        first = await ws.get_page(working.view_name, 1, 100)

        await ws.export_csv(working.view_name, header, "out.csv")
"""

import asyncio
from collections.abc import Mapping, Sequence
from typing import Any

import pyarrow as pa

from mergeview._constants import ROW_ID, SINGLE_TABLE_PREFIX, VIEW_PREFIX
from mergeview._exceptions import StatementError
from mergeview._logging import get_logger
from mergeview.compose import WorkingTable, build_working_table, reset_working_table
from mergeview.config import WorkspaceConfig
from mergeview.engine import Engine
from mergeview.export import Destination, export_csv
from mergeview.lifecycle import TableManager
from mergeview.query import keyword_filter, pagination, sort_order
from mergeview.schema import History, SortConfig
from mergeview.sql import Alias, Call, Column, CreateView, Drop, Select, Star, TableRef

logger = get_logger(__name__)


def _as_history(value: History | Mapping[str, Any]) -> History:
    if isinstance(value, History):
        return value
    return History.model_validate(value)


def _as_sort(value: SortConfig | Mapping[str, Any] | None) -> SortConfig | None:
    if value is None or isinstance(value, SortConfig):
        return value
    return SortConfig.model_validate(value)


class Workspace:
    """
    Caller-facing operations.

    Attributes:
        config: Session configuration
        engine: DuckDB boundary
        tables: Dataset lifecycle manager
        working_table: Last built working table, or None
    """

    def __init__(self, config: WorkspaceConfig | None = None, engine: Engine | None = None):
        self.config = config or WorkspaceConfig.from_env()
        self.engine = engine or Engine(self.config.database)
        self.tables = TableManager(self.engine, self.config)
        self.working_table: WorkingTable | None = None
        self._views: set[str] = set()
        self._working_lock = asyncio.Lock()

    async def open(self) -> "Workspace":
        async with self.engine.connect():
            pass
        return self

    async def close(self) -> None:
        """Drop every view and dataset, then close the database."""
        if not self.engine.is_open:
            return
        async with self._working_lock:
            await reset_working_table(self.engine)
            self.working_table = None
        async with self.engine.connect() as conn:
            for view in sorted(self._views):
                try:
                    await conn.execute(Drop("VIEW", view))
                except StatementError as e:
                    logger.debug(f"Cannot drop view {view}: {e}")
        self._views.clear()
        await self.tables.close()
        self.engine.close()

    async def __aenter__(self) -> "Workspace":
        return await self.open()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    # Datasets

    async def load_dataset(self, uuid: str) -> int:
        """Load dataset (once) and return its row count."""
        return await self.tables.ensure_loaded(uuid)

    async def unload(self, uuid: str) -> bool:
        return await self.tables.unload(uuid)

    def retain(self, uuid: str) -> int:
        return self.tables.retain(uuid)

    def release(self, uuid: str) -> int:
        return self.tables.release(uuid)

    async def collect_garbage(self) -> list[str]:
        return await self.tables.collect_garbage()

    async def get_total_row_count(self, table_id: str) -> int:
        async with self.engine.connect() as conn:
            count = await conn.fetch_scalar(
                Select((Call("count", (Star(),)),), TableRef(table_id))
            )
        return int(count)

    async def get_page(
        self,
        table_id: str,
        page_index: int | None = None,
        page_size: int | None = None,
    ) -> pa.Table:
        """
        Rows of a dataset or view, optionally one page of them.

        Without a whole-number page_index/page_size all rows are returned.
        __row_id is hidden for dataset tables.
        """
        page = pagination(page_index, page_size)
        limit, offset = page if page is not None else (None, None)
        exclude = (ROW_ID,) if self.tables.is_loaded(table_id) else ()

        async with self.engine.connect() as conn:
            return await conn.fetch_table(
                Select(
                    columns=(Star(exclude=exclude),),
                    source=TableRef(table_id),
                    limit=limit,
                    offset=offset,
                )
            )

    async def get_filtered(
        self,
        uuid: str,
        keywords: Sequence[str] | None,
        exact: bool = False,
    ) -> pa.Table:
        """All rows of a dataset matching keyword groups."""
        await self.tables.ensure_loaded(uuid)
        where = keyword_filter(self.tables.column_names(uuid), keywords, exact=exact)

        async with self.engine.connect() as conn:
            return await conn.fetch_table(
                Select(columns=(Star(exclude=(ROW_ID,)),), source=TableRef(uuid), where=where)
            )

    async def create_filtered_sorted_view(
        self,
        uuid: str,
        keywords: Sequence[str] | None = None,
        column_indexes: Sequence[int] | None = None,
        sort: SortConfig | Mapping[str, Any] | None = None,
    ) -> str:
        """
        (Re)create view_<uuid> over one dataset.

        Selected columns are exposed as "T1-<index>" in ascending index
        order. Keywords search every column, not only the selected ones.
        sort.key is a local column index.

        Returns:
            View name
        """
        sort = _as_sort(sort)
        await self.tables.ensure_loaded(uuid)
        view_name = f"{VIEW_PREFIX}{uuid}"
        all_columns = self.tables.column_names(uuid)

        indexes = sorted(column_indexes) if column_indexes is not None else range(len(all_columns))
        columns = tuple(Alias(Column(str(i)), f"{SINGLE_TABLE_PREFIX}-{i}") for i in indexes)
        if not columns:
            columns = (Star(exclude=(ROW_ID,)),)

        query = Select(
            columns=columns,
            source=TableRef(uuid),
            where=keyword_filter(all_columns, keywords),
            order_by=sort_order(sort) if sort is not None and sort.key else (),
        )

        async with self.engine.connect() as conn:
            await conn.execute(Drop("VIEW", view_name))
            await conn.execute(CreateView(view_name, query))

        self._views.add(view_name)
        return view_name

    # Working table

    async def build_working_table(
        self,
        histories: Sequence[History | Mapping[str, Any]],
        keywords: Sequence[str] | None = None,
        sort: SortConfig | Mapping[str, Any] | None = None,
    ) -> WorkingTable:
        """
        Combine histories into the working table (see mergeview.compose).

        Serialized with other rebuilds: a build always runs drop-then-create
        to completion before the next one starts.
        """
        parsed = [_as_history(h) for h in histories]
        sort = _as_sort(sort)
        async with self._working_lock:
            self.working_table = await build_working_table(
                self.tables, parsed, keywords=keywords, sort=sort
            )
        return self.working_table

    async def reset_working_table(self) -> None:
        async with self._working_lock:
            await reset_working_table(self.engine)
            self.working_table = None

    # Export

    async def export_csv(
        self,
        table_id: str,
        header: Sequence[str],
        destination: Destination,
        column_indexes: Sequence[int] | None = None,
        chunk_size: int | None = None,
    ) -> int | None:
        """Stream table_id to CSV. Returns rows written, None if cancelled."""
        return await export_csv(
            self,
            table_id,
            header,
            destination,
            column_indexes=column_indexes,
            chunk_size=chunk_size or self.config.export_chunk_size,
        )
