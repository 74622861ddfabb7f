"""
Working-table orchestration.

build_working_table() runs the full pipeline:
1. Unification: global column space and per-dataset mappings (_unify.py)
2. Composition: view statements for the merged relation (_view_builder.py)
3. Teardown: drop any previous working views
4. Loading: make sure every participating dataset is in the engine
5. Creation: create the new views

Rebuilds are not reentrant; callers serialize them (Workspace holds a lock).
"""

import asyncio
import time
from collections.abc import Sequence
from dataclasses import dataclass

from mergeview._constants import FILTERED_SORTED_WORKING_TABLE_NAME, WORKING_TABLE_NAME
from mergeview._logging import get_logger
from mergeview.compose._unify import GlobalColumn, Unification, unify
from mergeview.compose._view_builder import compose
from mergeview.engine import Engine
from mergeview.lifecycle import TableManager
from mergeview.schema import History, SortConfig
from mergeview.sql import Drop

logger = get_logger(__name__)


@dataclass(frozen=True, eq=False)
class WorkingTable:
    """Handle to the composed relation."""

    view_name: str
    columns: tuple[GlobalColumn, ...]
    unification: Unification

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]


async def reset_working_table(engine: Engine) -> None:
    """Drop the filtered/sorted view and the working table, if present."""
    async with engine.connect() as conn:
        await conn.execute(Drop("VIEW", FILTERED_SORTED_WORKING_TABLE_NAME))
        await conn.execute(Drop("VIEW", WORKING_TABLE_NAME))


async def build_working_table(
    tables: TableManager,
    histories: Sequence[History],
    keywords: Sequence[str] | None = None,
    sort: SortConfig | None = None,
) -> WorkingTable:
    """
    Combine histories into one relation.

    Args:
        tables: Manager used to load participating datasets
        histories: Combination specs
        keywords: Optional keyword groups applied to every global column
        sort: Optional ordering on a global column

    Returns:
        WorkingTable naming the view to query (__work_filtered_sorted when
        keywords or a sort were given, __work otherwise)

    Raises:
        UnificationError: Histories cannot be combined
        LoadError: A participating dataset failed to load
    """
    t_start = time.time()

    unification = unify(histories)
    views = compose(
        unification,
        keywords=keywords,
        sort=sort,
        delimiter=tables.config.aggregate_delimiter,
    )

    await reset_working_table(tables.engine)
    # Let every load settle before surfacing the first failure
    results = await asyncio.gather(
        *(tables.ensure_loaded(uuid) for uuid in unification.uuids()),
        return_exceptions=True,
    )
    for result in results:
        if isinstance(result, BaseException):
            raise result

    async with tables.engine.connect() as conn:
        for view in views:
            await conn.execute(view)

    view_name = views[-1].name
    logger.info(
        f"Built working table from {len(histories)} histories "
        f"({len(unification.columns)} columns) in {time.time() - t_start:.2f}s"
    )
    return WorkingTable(view_name=view_name, columns=unification.columns, unification=unification)
