"""
Type reconciliation for global columns.

A global column can be fed by fields from several datasets that declare
different types. Resolution rules, by number of distinct declared types:

    1  -> that type
    2  -> {integer, number}       -> number
          {array, object}         -> object
          any two of date/time/datetime -> datetime
    3  -> {date, time, datetime}  -> datetime
    anything else                 -> string
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from mergeview.schema import Field

NUMERIC_TYPES = frozenset({"integer", "number"})
CONTAINER_TYPES = frozenset({"array", "object"})
TEMPORAL_TYPES = frozenset({"date", "time", "datetime"})
FALLBACK_TYPE = "string"


@dataclass(frozen=True)
class UnifiedField:
    """Field descriptor of a global column after reconciliation."""

    name: str
    type: str
    format: str | None = None


def resolve_type(types: Iterable[str]) -> str:
    """Reconcile declared types into one. Uncovered mixes fall back to string."""
    distinct = set(types)

    if len(distinct) == 1:
        return next(iter(distinct))

    if len(distinct) == 2:
        if distinct == NUMERIC_TYPES:
            return "number"
        if distinct == CONTAINER_TYPES:
            return "object"
        if distinct <= TEMPORAL_TYPES:
            return "datetime"

    if distinct == TEMPORAL_TYPES:
        return "datetime"

    return FALLBACK_TYPE


def unify_fields(fields: Sequence[Field]) -> UnifiedField:
    """Merge contributing fields. Name and format come from the first one."""
    if not fields:
        return UnifiedField(name="", type=FALLBACK_TYPE)
    first = fields[0]
    return UnifiedField(
        name=first.name,
        type=resolve_type(f.type for f in fields),
        format=first.format,
    )
