"""
Working-table construction from a Unification.

Layout of the generated views:

    __work = WITH
               alias_0 AS (primary projection + __row_id),
               alias_1 AS (join target grouped by its key),
               ...
             SELECT <global columns> FROM (
               (history 0: alias_0 LEFT OUTER JOIN alias_1 ...)
               UNION ALL
               (history 1: ...)
             ) [ORDER BY __history, __row_id]

    __work_filtered_sorted = SELECT * FROM __work [WHERE keywords] [ORDER BY sort]

The filtered/sorted view is only created when keywords or a sort are given.
"""

from collections.abc import Sequence

from mergeview._constants import (
    DEFAULT_AGGREGATE_DELIMITER,
    FILTERED_SORTED_WORKING_TABLE_NAME,
    ROW_ID,
    WORKING_TABLE_NAME,
)
from mergeview._exceptions import StatementError, UnificationError
from mergeview._logging import get_logger
from mergeview.compose._unify import DatasetMapping, HistoryMapping, Unification
from mergeview.query import keyword_filter, sort_order
from mergeview.schema import SortConfig
from mergeview.sql import (
    Alias,
    BinaryOp,
    Call,
    Cast,
    Column,
    CreateView,
    Cte,
    Join,
    Literal,
    Null,
    OrderItem,
    Select,
    Star,
    Subquery,
    TableRef,
    UnionAll,
    With,
)

logger = get_logger(__name__)

HISTORY_ORDINAL = "__history"
"""Position of the history a working-table row came from."""


class ViewBuilder:
    """Builds the working-table views for one Unification."""

    def __init__(
        self,
        unification: Unification,
        delimiter: str = DEFAULT_AGGREGATE_DELIMITER,
    ):
        """
        Args:
            unification: Result of unify() for the histories being combined
            delimiter: Separator for collapsed one-to-many join values
        """
        if not unification.histories:
            raise UnificationError("Need at least one history to build a working table")
        if not unification.columns:
            raise UnificationError("Histories have no columns to combine")
        self.unification = unification
        self.delimiter = delimiter

    def build(
        self,
        keywords: Sequence[str] | None = None,
        sort: SortConfig | None = None,
    ) -> tuple[CreateView, ...]:
        """
        Views to create, in order.

        Rows keep their load order (per history) unless a sort is requested
        without keywords.
        """
        is_sorted = sort is not None and bool(sort.key)
        order_by_row_id = not is_sorted or bool(keywords)

        views = [CreateView(WORKING_TABLE_NAME, self.working_query(order_by_row_id))]
        derived = self.filtered_sorted_query(keywords, sort if is_sorted else None)
        if derived is not None:
            views.append(CreateView(FILTERED_SORTED_WORKING_TABLE_NAME, derived))

        logger.debug(
            f"Composed {len(self.unification.histories)} histories, "
            f"{len(self.unification.mappings)} sub-relations"
        )
        return tuple(views)

    # Sub-relations

    def sub_relation(self, mapping: DatasetMapping) -> Cte:
        if mapping.is_main:
            return Cte(mapping.alias, self._primary_projection(mapping))
        return Cte(mapping.alias, self._grouped_projection(mapping))

    @staticmethod
    def _primary_projection(mapping: DatasetMapping) -> Select:
        columns = [
            Alias(Column(str(local)) if local is not None else Null(), name)
            for name, local in mapping.mapped_to_column_index.items()
        ]
        columns.append(Column(ROW_ID))
        return Select(columns=tuple(columns), source=TableRef(mapping.uuid))

    def _grouped_projection(self, mapping: DatasetMapping) -> Select:
        """Collapse one-to-many matches: one row per join key."""
        key = Column(str(mapping.group_by_index))
        columns = []
        for name, local in mapping.mapped_to_column_index.items():
            if local == mapping.group_by_index:
                columns.append(Alias(key, name))
                continue
            aggregated = Call(
                "string_agg",
                (Cast(Column(str(local)), "VARCHAR"), Literal(self.delimiter)),
                order_by=(OrderItem(Column(ROW_ID)),),
            )
            columns.append(Alias(aggregated, name))
        return Select(columns=tuple(columns), source=TableRef(mapping.uuid), group_by=(key,))

    # Per-history statements

    def history_query(self, history: HistoryMapping) -> Select:
        primary = history.primary
        columns = [
            Column(name, history.provider(name).alias)
            for name in self.unification.column_names
        ]
        columns.append(Alias(Literal(history.index), HISTORY_ORDINAL))
        columns.append(Alias(Column(ROW_ID, primary.alias), ROW_ID))

        joins = tuple(
            Join(
                TableRef(j.target.alias),
                BinaryOp(
                    "=",
                    Column(j.source_column, primary.alias),
                    Column(j.target_column, j.target.alias),
                ),
            )
            for j in history.joins
        )
        return Select(columns=tuple(columns), source=TableRef(primary.alias), joins=joins)

    def working_query(self, order_by_row_id: bool = True) -> With:
        ctes = tuple(self.sub_relation(m) for m in self.unification.mappings)
        union = UnionAll(tuple(self.history_query(h) for h in self.unification.histories))
        order = (
            (OrderItem(Column(HISTORY_ORDINAL)), OrderItem(Column(ROW_ID)))
            if order_by_row_id
            else ()
        )
        body = Select(
            columns=tuple(Column(name) for name in self.unification.column_names),
            source=Subquery(union),
            order_by=order,
        )
        return With(ctes, body)

    def filtered_sorted_query(
        self,
        keywords: Sequence[str] | None,
        sort: SortConfig | None,
    ) -> Select | None:
        names = self.unification.column_names
        where = keyword_filter(names, keywords)
        order = ()
        if sort is not None:
            if sort.key not in names:
                raise StatementError(
                    f"Cannot sort on unknown column '{sort.key}'\nAvailable: {names}"
                )
            order = sort_order(sort)

        if where is None and not order:
            return None
        return Select(
            columns=(Star(),),
            source=TableRef(WORKING_TABLE_NAME),
            where=where,
            order_by=order,
        )


def compose(
    unification: Unification,
    keywords: Sequence[str] | None = None,
    sort: SortConfig | None = None,
    delimiter: str = DEFAULT_AGGREGATE_DELIMITER,
) -> tuple[CreateView, ...]:
    """Query plan for the working table: the views to create, in order."""
    return ViewBuilder(unification, delimiter=delimiter).build(keywords, sort)
