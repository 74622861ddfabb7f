"""
Streaming CSV export.

Rows are fetched page by page (never the whole result at once), serialized
with pyarrow.csv and appended to the destination. The header row comes
from the caller and is written exactly once.

Destinations:
    - A filesystem path, opened for binary writing
    - A zero-argument opener returning a binary stream (e.g. a save dialog).
      Raising ExportCancelled or OSError, or returning None, aborts the
      export before anything is written.
"""

import asyncio
import json
import math
import os
from collections.abc import Callable, Sequence
from typing import BinaryIO, Protocol, Union

import pyarrow as pa
import pyarrow.csv as pacsv

from mergeview._constants import DEFAULT_EXPORT_CHUNK_SIZE
from mergeview._exceptions import ExportCancelled
from mergeview._logging import get_logger

logger = get_logger(__name__)

Destination = Union[str, os.PathLike, Callable[[], BinaryIO | None]]

_WRITE_OPTIONS = pacsv.WriteOptions(include_header=False, quoting_style="needed")


class PageSource(Protocol):
    async def get_total_row_count(self, table_id: str) -> int: ...

    async def get_page(self, table_id: str, page_index: int, page_size: int) -> pa.Table: ...


def _open_destination(destination: Destination) -> BinaryIO | None:
    try:
        if callable(destination):
            return destination()
        return open(destination, "wb")
    except (ExportCancelled, OSError) as e:
        logger.debug(f"Export cancelled or destination unavailable: {e}")
        return None


def _stringify_nested(table: pa.Table) -> pa.Table:
    """Lists, structs and maps become JSON text; CSV has no nested values."""
    for i, field in enumerate(table.schema):
        if not pa.types.is_nested(field.type):
            continue
        values = [
            None if v is None else json.dumps(v, default=str)
            for v in table.column(i).to_pylist()
        ]
        table = table.set_column(i, pa.field(field.name, pa.string()), pa.array(values, pa.string()))
    return table


def serialize_rows(table: pa.Table) -> bytes:
    """CSV text of table rows, without header."""
    if table.num_rows == 0 or table.num_columns == 0:
        return b""
    sink = pa.BufferOutputStream()
    pacsv.write_csv(_stringify_nested(table), sink, write_options=_WRITE_OPTIONS)
    return sink.getvalue().to_pybytes()


def serialize_header(header: Sequence[str]) -> bytes:
    if not header:
        return b"\n"
    row = pa.table({str(i): pa.array([str(name)], pa.string()) for i, name in enumerate(header)})
    return serialize_rows(row)


async def export_csv(
    source: PageSource,
    table_id: str,
    header: Sequence[str],
    destination: Destination,
    column_indexes: Sequence[int] | None = None,
    chunk_size: int = DEFAULT_EXPORT_CHUNK_SIZE,
) -> int | None:
    """
    Stream a table or view to CSV.

    Args:
        source: Provides row counts and pages (usually a Workspace)
        table_id: Dataset uuid or view name
        header: Header row written before the data
        destination: Path or opener, see module docstring
        column_indexes: Result positions to export, in this order.
            All columns in table order when None.
        chunk_size: Rows per page

    Returns:
        Number of data rows written, or None if the destination could not
        be acquired
    """
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")

    stream = await asyncio.to_thread(_open_destination, destination)
    if stream is None:
        return None

    written = 0
    try:
        await asyncio.to_thread(stream.write, serialize_header(header))

        total = await source.get_total_row_count(table_id)
        n_chunks = math.ceil(total / chunk_size)
        for page_index in range(1, n_chunks + 1):
            chunk = await source.get_page(table_id, page_index, chunk_size)
            if column_indexes is not None:
                chunk = chunk.select(list(column_indexes))
            data = await asyncio.to_thread(serialize_rows, chunk)
            await asyncio.to_thread(stream.write, data)
            written += chunk.num_rows
            logger.debug(f"Exported chunk {page_index}/{n_chunks} of {table_id}")
    finally:
        stream.close()

    logger.info(f"Exported {written:,} rows from {table_id}")
    return written
