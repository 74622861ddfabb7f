"""
Data model for datasets and combination specs.

Models accept both snake_case and the camelCase keys sent by browser
clients, so a history posted as JSON validates directly:

    {
        "resourceStats": {"uuid": "a1", "schema": {"fields": [...]}},
        "joinedTables": {
            "b2": {
                "sourceKey": "id",
                "targetKey": "person_id",
                "targetResourceStats": {"uuid": "b2", "schema": {...}},
                "columns": ["city"]
            }
        }
    }

Main classes:
    Field: One column descriptor (name, declared type, optional format)
    ResourceSchema: Ordered fields of a dataset
    ResourceStats: Dataset identity plus schema
    JoinDeclaration: Left-join of a target dataset onto a history's primary
    History: Primary dataset plus its join declarations
    SortConfig: Optional ordering request
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field as ModelField, field_validator, model_validator
from pydantic.alias_generators import to_camel

from mergeview._constants import SORT_ASCENDING, SORT_DESCENDING


class _Model(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class Field(_Model):
    """Column descriptor. Types follow the Table Schema vocabulary."""

    name: str
    type: str = "string"
    format: str | None = None


class ResourceSchema(_Model):
    fields: tuple[Field, ...] = ()

    def index_of(self, name: str) -> int | None:
        """Position of the first field called name, or None."""
        for i, f in enumerate(self.fields):
            if f.name == name:
                return i
        return None

    @property
    def names(self) -> list[str]:
        return [f.name for f in self.fields]


class ResourceStats(_Model):
    uuid: str
    resource_schema: ResourceSchema = ModelField(
        default_factory=ResourceSchema, alias="schema"
    )

    @property
    def fields(self) -> tuple[Field, ...]:
        return self.resource_schema.fields


class JoinDeclaration(_Model):
    """
    Left-outer-join of a target dataset onto the primary dataset.

    columns lists the target fields selected besides the join key.
    """

    source_key: str
    target_key: str
    target_resource_stats: ResourceStats
    columns: tuple[str, ...] = ()

    @property
    def target_uuid(self) -> str:
        return self.target_resource_stats.uuid

    def selected_indexes(self) -> list[int]:
        """
        Target-schema positions that take part in the join.

        The join key is always included; other fields only when named in
        columns. Positions keep schema order.
        """
        key_index = self.target_resource_stats.resource_schema.index_of(self.target_key)
        wanted = set(self.columns)
        return [
            i
            for i, f in enumerate(self.target_resource_stats.fields)
            if i == key_index or f.name in wanted
        ]


class History(_Model):
    """One combination spec: a primary dataset plus joined datasets keyed by uuid."""

    resource_stats: ResourceStats
    joined_tables: dict[str, JoinDeclaration] = ModelField(default_factory=dict)

    @model_validator(mode="after")
    def _check_join_targets(self) -> "History":
        for uuid, join in self.joined_tables.items():
            if join.target_uuid != uuid:
                raise ValueError(
                    f"Join declared under '{uuid}' targets '{join.target_uuid}'"
                )
        return self

    @property
    def uuid(self) -> str:
        return self.resource_stats.uuid

    @property
    def joins(self) -> list[JoinDeclaration]:
        return list(self.joined_tables.values())

    def dataset_uuids(self) -> list[str]:
        """Primary uuid first, then join targets in declaration order."""
        return [self.uuid, *self.joined_tables]


class SortConfig(_Model):
    """
    Sort request.

    key names a column of the relation being sorted: a local column
    position for single-dataset views, a global column for the working table.
    """

    key: str
    order: Literal["asc", "desc"] = SORT_ASCENDING
    is_numeric: bool = False

    @field_validator("key", mode="before")
    @classmethod
    def _key_to_str(cls, value):
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @property
    def descending(self) -> bool:
        return self.order == SORT_DESCENDING
