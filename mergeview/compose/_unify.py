"""
Schema unification: map the columns of N histories onto one column space.

Every distinct field name gets a slot (a global column "column_<n>") the
first time it is seen, walking histories in order: primary fields first,
then each join's selected fields. A join key whose name was already seen
gets an additional slot, so it never merges with an unrelated column of
the same name.

Each history then claims slots from a private copy of the per-name slot
queues, in the same walk order. A column whose queue is exhausted stays
unmapped; global columns a history does not provide are null-filled by its
primary dataset. Histories with the same structure therefore land on the
same global columns, and partial overlaps degrade to NULLs instead of
failing. All histories share one ordered column list, which keeps their
projections union-compatible.

unify() is pure: histories in, immutable Unification out.
"""

import itertools
from collections import defaultdict, deque
from collections.abc import Collection, Sequence
from dataclasses import dataclass

from mergeview._constants import ALIAS_PREFIX, COLUMN_PREFIX
from mergeview._exceptions import UnificationError
from mergeview._logging import get_logger
from mergeview.compose._types import UnifiedField, unify_fields
from mergeview.schema import Field, History, JoinDeclaration

logger = get_logger(__name__)


@dataclass(frozen=True)
class GlobalColumn:
    name: str
    field: UnifiedField


@dataclass(frozen=True, eq=False)
class DatasetMapping:
    """
    Column correspondence of one dataset inside one history.

    Attributes:
        uuid: Dataset identifier (engine table name)
        alias: Name of the dataset's sub-relation in the composed query
        is_main: True for the history's primary dataset
        column_index_to_mapped: Local column position -> global column
            (None when unmapped or not selected)
        mapped_to_column_index: Global column -> local position. On the
            primary mapping, None marks a column the history null-fills.
        group_by_index: Join key position (join targets only)
    """

    uuid: str
    alias: str
    is_main: bool
    column_index_to_mapped: tuple[str | None, ...]
    mapped_to_column_index: dict[str, int | None]
    group_by_index: int | None = None


@dataclass(frozen=True, eq=False)
class JoinMapping:
    target: DatasetMapping
    source_column: str
    target_column: str


@dataclass(frozen=True, eq=False)
class HistoryMapping:
    index: int
    primary: DatasetMapping
    joins: tuple[JoinMapping, ...] = ()

    @property
    def mappings(self) -> tuple[DatasetMapping, ...]:
        return (self.primary, *(j.target for j in self.joins))

    def provider(self, column: str) -> DatasetMapping:
        """Mapping whose sub-relation exposes column in this history."""
        for join in self.joins:
            if column in join.target.mapped_to_column_index:
                return join.target
        return self.primary


@dataclass(frozen=True, eq=False)
class Unification:
    columns: tuple[GlobalColumn, ...]
    histories: tuple[HistoryMapping, ...]

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]

    @property
    def mappings(self) -> tuple[DatasetMapping, ...]:
        return tuple(m for h in self.histories for m in h.mappings)

    def uuids(self) -> list[str]:
        """Distinct participating datasets in first-use order."""
        return list(dict.fromkeys(m.uuid for m in self.mappings))

    def column(self, name: str) -> GlobalColumn:
        for c in self.columns:
            if c.name == name:
                return c
        raise KeyError(name)


def _column_name(slot: int) -> str:
    return f"{COLUMN_PREFIX}{slot}"


def _join_key_index(join: JoinDeclaration) -> int:
    index = join.target_resource_stats.resource_schema.index_of(join.target_key)
    if index is None:
        raise UnificationError(
            f"Join key '{join.target_key}' not found in dataset {join.target_uuid}\n"
            f"Available: {join.target_resource_stats.resource_schema.names}"
        )
    return index


def _assign_slots(histories: Sequence[History]) -> dict[str, list[int]]:
    """First pass: field name -> slots, in first-seen order."""
    slots: dict[str, list[int]] = {}
    counter = itertools.count()

    for history in histories:
        for f in history.resource_stats.fields:
            if f.name not in slots:
                slots[f.name] = [next(counter)]

        for join in history.joins:
            key_index = _join_key_index(join)
            fields = join.target_resource_stats.fields
            for i in join.selected_indexes():
                name = fields[i].name
                if name not in slots:
                    slots[name] = [next(counter)]
                elif i == key_index:
                    slots[name].append(next(counter))

    return slots


def _claim(
    fields: Sequence[Field],
    indexes: Sequence[int],
    queues: dict[str, deque],
    contributors: dict[int, list[Field]],
) -> list[int | None]:
    """Pop one slot per selected field; exhausted queues leave it unmapped."""
    claimed: list[int | None] = [None] * len(fields)
    for i in indexes:
        queue = queues.get(fields[i].name)
        if queue:
            slot = queue.popleft()
            claimed[i] = slot
            contributors[slot].append(fields[i])
    return claimed


def _mapping(
    uuid: str,
    alias: str,
    claimed: list[int | None],
    order: list[str],
    is_main: bool,
    null_fill: Collection[str] = (),
    group_by_index: int | None = None,
) -> DatasetMapping:
    column_index_to_mapped = tuple(
        _column_name(s) if s is not None else None for s in claimed
    )
    local = {name: i for i, name in enumerate(column_index_to_mapped) if name is not None}
    mapped_to_column_index = {
        name: local.get(name) for name in order if name in local or name in null_fill
    }
    return DatasetMapping(
        uuid=uuid,
        alias=alias,
        is_main=is_main,
        column_index_to_mapped=column_index_to_mapped,
        mapped_to_column_index=mapped_to_column_index,
        group_by_index=group_by_index,
    )


def unify(histories: Sequence[History]) -> Unification:
    """
    Compute the global column space and per-dataset mappings.

    Args:
        histories: Combination specs, in display order

    Returns:
        Unification shared by every history

    Raises:
        UnificationError: A join key is missing from its schema or could
            not be given a global column
    """
    slots_by_name = _assign_slots(histories)
    contributors: dict[int, list[Field]] = defaultdict(list)

    # Second pass: per-history claims from private queue copies
    claims = []
    for history in histories:
        queues = {name: deque(slots) for name, slots in slots_by_name.items()}
        fields = history.resource_stats.fields
        primary = _claim(fields, range(len(fields)), queues, contributors)
        joins = []
        for join in history.joins:
            key_index = _join_key_index(join)
            target_fields = join.target_resource_stats.fields
            claimed = _claim(target_fields, join.selected_indexes(), queues, contributors)
            joins.append((join, key_index, claimed))
        claims.append((primary, joins))

    columns = tuple(
        GlobalColumn(_column_name(slot), unify_fields(contributors[slot]))
        for slot in sorted(contributors)
    )
    order = [c.name for c in columns]

    aliases = (f"{ALIAS_PREFIX}{n}" for n in itertools.count())
    history_mappings = []

    for index, (history, (primary, joins)) in enumerate(zip(histories, claims)):
        covered = {_column_name(s) for s in primary if s is not None}
        for _, _, claimed in joins:
            covered.update(_column_name(s) for s in claimed if s is not None)
        null_fill = {name for name in order if name not in covered}

        primary_mapping = _mapping(
            history.uuid, next(aliases), primary, order, is_main=True, null_fill=null_fill
        )

        join_mappings = []
        for join, key_index, claimed in joins:
            target = _mapping(
                join.target_uuid,
                next(aliases),
                claimed,
                order,
                is_main=False,
                group_by_index=key_index,
            )
            join_mappings.append(_join_mapping(history, join, primary_mapping, target))

        history_mappings.append(
            HistoryMapping(index=index, primary=primary_mapping, joins=tuple(join_mappings))
        )

    logger.debug(
        f"Unified {len(histories)} histories into {len(columns)} global columns"
    )
    return Unification(columns=columns, histories=tuple(history_mappings))


def _join_mapping(
    history: History,
    join: JoinDeclaration,
    primary: DatasetMapping,
    target: DatasetMapping,
) -> JoinMapping:
    source_index = history.resource_stats.resource_schema.index_of(join.source_key)
    if source_index is None:
        raise UnificationError(
            f"Join source key '{join.source_key}' not found in dataset {history.uuid}\n"
            f"Available: {history.resource_stats.resource_schema.names}"
        )

    source_column = primary.column_index_to_mapped[source_index]
    target_column = target.column_index_to_mapped[target.group_by_index]
    if source_column is None or target_column is None:
        raise UnificationError(
            f"Join {history.uuid}.{join.source_key} = "
            f"{join.target_uuid}.{join.target_key} has no global column.\n"
            f"Field names used more than once in one history cannot be join keys."
        )

    return JoinMapping(target=target, source_column=source_column, target_column=target_column)
