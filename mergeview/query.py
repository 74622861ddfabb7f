"""
Filter, sort and pagination fragments.

Fragments are plan nodes (see mergeview.sql) applied on top of a dataset
table, a single-dataset view or the working table.

Keyword filter semantics:
    keywords = ["alice bob", "carol"]
    -> (alice AND bob) OR carol

    Each term must appear in at least one column of the row (terms of one
    group may hit different columns). Matching is case-insensitive substring
    search unless exact=True.
"""

from collections.abc import Sequence

from mergeview._constants import NUMERIC_LITERAL_PATTERN
from mergeview.schema import SortConfig
from mergeview.sql import (
    BinaryOp,
    BoolOp,
    Call,
    Case,
    Cast,
    Column,
    InList,
    Literal,
    OrderItem,
)


def keyword_filter(
    columns: Sequence[str],
    keywords: Sequence[str] | None,
    exact: bool = False,
) -> BoolOp | InList | None:
    """
    Build the WHERE expression for keyword groups over columns.

    Args:
        columns: Column names of the relation being filtered
        keywords: Keyword groups; each group is split on whitespace
        exact: Require whole-value equality instead of substring match.
            A multi-term group then also matches when the whole phrase
            equals a column value.

    Returns:
        Expression, or None when there is nothing to filter on
    """
    if not keywords or not columns:
        return None

    groups = []
    for group in keywords:
        terms = group.split()
        if not terms:
            continue
        if exact:
            groups.append(_exact_group(columns, group.strip(), terms))
        else:
            groups.append(
                BoolOp("AND", tuple(_contains_any(columns, t.lower()) for t in terms))
            )

    if not groups:
        return None
    return BoolOp("OR", tuple(groups))


def _contains_any(columns: Sequence[str], term: str) -> BoolOp:
    return BoolOp(
        "OR",
        tuple(
            Call("contains", (Call("lower", (Cast(Column(c), "VARCHAR"),)), Literal(term)))
            for c in columns
        ),
    )


def _equals_any(columns: Sequence[str], value: str) -> InList:
    return InList(Literal(value), tuple(Cast(Column(c), "VARCHAR") for c in columns))


def _exact_group(columns: Sequence[str], phrase: str, terms: list[str]):
    if len(terms) == 1:
        return _equals_any(columns, terms[0])
    every_term = BoolOp("AND", tuple(_equals_any(columns, t) for t in terms))
    return BoolOp("OR", (every_term, _equals_any(columns, phrase)))


def sort_order(sort: SortConfig, column: str | None = None) -> tuple[OrderItem, ...]:
    """
    ORDER BY items for a sort request. Nulls sort last in both directions.

    Numeric sorts cast values matching NUMERIC_LITERAL_PATTERN to DOUBLE;
    anything else gets a NULL key and lands after the numbers, ahead of
    real NULLs.

    Args:
        sort: Sort request
        column: Column to sort on, defaults to sort.key
    """
    target = Column(column if column is not None else sort.key)

    if not sort.is_numeric:
        return (OrderItem(target, descending=sort.descending),)

    numeric_key = Case(
        BinaryOp("SIMILAR TO", Cast(target, "VARCHAR"), Literal(NUMERIC_LITERAL_PATTERN)),
        Cast(target, "DOUBLE", safe=True),
    )
    return (
        OrderItem(numeric_key, descending=sort.descending),
        OrderItem(target, descending=sort.descending),
    )


def _whole_number(value) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def pagination(page_index, page_size) -> tuple[int, int] | None:
    """
    Translate a 1-based page request into (limit, offset).

    Returns None (no pagination) unless both values are whole numbers,
    page_index >= 1 and page_size >= 1.

    Example:
        >>> pagination(2, 50)
        (50, 50)
    """
    index = _whole_number(page_index)
    size = _whole_number(page_size)
    if index is None or size is None or index < 1 or size < 1:
        return None
    return size, (index - 1) * size
