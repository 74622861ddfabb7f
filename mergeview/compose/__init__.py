"""
Combine datasets into one working table.

Public API:
    unify(histories) -> Unification
        Global column space and per-dataset mappings (pure).
    compose(unification, keywords, sort) -> tuple[CreateView, ...]
        View statements for the merged relation.
    build_working_table(tables, histories, keywords, sort) -> WorkingTable
        Unify, compose, load datasets and create the views.
    reset_working_table(engine)
        Drop the working views.
    resolve_type(types) -> str
        Reconcile declared field types.

Internal modules:
    _types: Type reconciliation rules
    _unify: Slot assignment and per-history mappings
    _view_builder: Sub-relations, joins and union statements
    _orchestrator: Pipeline that creates the views in the engine
"""

from mergeview.compose._orchestrator import (
    WorkingTable,
    build_working_table,
    reset_working_table,
)
from mergeview.compose._types import UnifiedField, resolve_type
from mergeview.compose._unify import (
    DatasetMapping,
    GlobalColumn,
    HistoryMapping,
    JoinMapping,
    Unification,
    unify,
)
from mergeview.compose._view_builder import ViewBuilder, compose

__all__ = [
    "DatasetMapping",
    "GlobalColumn",
    "HistoryMapping",
    "JoinMapping",
    "UnifiedField",
    "Unification",
    "ViewBuilder",
    "WorkingTable",
    "build_working_table",
    "compose",
    "reset_working_table",
    "resolve_type",
    "unify",
]
