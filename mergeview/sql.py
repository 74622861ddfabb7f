"""
Typed query plan rendered to DuckDB SQL.

Statements are built as small immutable trees and only turned into text
by render(). quote_ident() and quote_literal() are the single place where
identifiers and string literals are escaped, so schema-derived names and
user keywords can never break out of their token.

Example:
    >>> render(Select((Alias(Column("0"), "T1-0"),), TableRef("people")))
    'SELECT "0" AS "T1-0" FROM "people"'
"""

import re
from dataclasses import dataclass, field
from typing import Union

_FUNCTION_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_TYPE_NAME = re.compile(r"^[A-Za-z][A-Za-z0-9_ ]*$")
_BINARY_OPS = frozenset({"=", "<>", "<", "<=", ">", ">=", "SIMILAR TO"})
_BOOL_OPS = frozenset({"AND", "OR"})
_JOIN_KINDS = frozenset({"LEFT OUTER", "INNER"})
_DROP_KINDS = frozenset({"TABLE", "VIEW"})


def quote_ident(name: str) -> str:
    """Quote an identifier, doubling embedded double quotes."""
    return '"' + str(name).replace('"', '""') + '"'


def quote_literal(value: str) -> str:
    """Quote a string literal, doubling embedded single quotes."""
    return "'" + str(value).replace("'", "''") + "'"


# Expressions


@dataclass(frozen=True)
class Column:
    name: str
    table: str | None = None

    def to_sql(self) -> str:
        if self.table is None:
            return quote_ident(self.name)
        return f"{quote_ident(self.table)}.{quote_ident(self.name)}"


@dataclass(frozen=True)
class Literal:
    value: str | int | float | bool

    def to_sql(self) -> str:
        if isinstance(self.value, bool):
            return "TRUE" if self.value else "FALSE"
        if isinstance(self.value, (int, float)):
            return repr(self.value)
        return quote_literal(self.value)


@dataclass(frozen=True)
class Null:
    def to_sql(self) -> str:
        return "NULL"


@dataclass(frozen=True)
class Star:
    exclude: tuple[str, ...] = ()

    def to_sql(self) -> str:
        if not self.exclude:
            return "*"
        names = ", ".join(quote_ident(n) for n in self.exclude)
        return f"* EXCLUDE ({names})"


@dataclass(frozen=True)
class OrderItem:
    expr: "Expr"
    descending: bool = False
    nulls_last: bool = True

    def to_sql(self) -> str:
        direction = "DESC" if self.descending else "ASC"
        nulls = "NULLS LAST" if self.nulls_last else "NULLS FIRST"
        return f"{self.expr.to_sql()} {direction} {nulls}"


@dataclass(frozen=True)
class Call:
    """Function or aggregate call, optionally with an in-aggregate ORDER BY."""

    name: str
    args: tuple["Expr", ...] = ()
    order_by: tuple[OrderItem, ...] = ()

    def __post_init__(self):
        if not _FUNCTION_NAME.match(self.name):
            raise ValueError(f"Invalid function name: {self.name!r}")

    def to_sql(self) -> str:
        args = ", ".join(a.to_sql() for a in self.args)
        if self.order_by:
            args += " ORDER BY " + ", ".join(o.to_sql() for o in self.order_by)
        return f"{self.name.upper()}({args})"


@dataclass(frozen=True)
class Cast:
    expr: "Expr"
    type: str
    safe: bool = False

    def __post_init__(self):
        if not _TYPE_NAME.match(self.type):
            raise ValueError(f"Invalid type name: {self.type!r}")

    def to_sql(self) -> str:
        keyword = "TRY_CAST" if self.safe else "CAST"
        return f"{keyword}({self.expr.to_sql()} AS {self.type.upper()})"


@dataclass(frozen=True)
class Case:
    condition: "Expr"
    result: "Expr"
    default: "Expr" = field(default_factory=Null)

    def to_sql(self) -> str:
        return (
            f"(CASE WHEN {self.condition.to_sql()} THEN {self.result.to_sql()} "
            f"ELSE {self.default.to_sql()} END)"
        )


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: "Expr"
    right: "Expr"

    def __post_init__(self):
        if self.op not in _BINARY_OPS:
            raise ValueError(f"Unsupported operator: {self.op!r}")

    def to_sql(self) -> str:
        return f"({self.left.to_sql()} {self.op} {self.right.to_sql()})"


@dataclass(frozen=True)
class BoolOp:
    op: str
    operands: tuple["Expr", ...]

    def __post_init__(self):
        if self.op not in _BOOL_OPS:
            raise ValueError(f"Unsupported boolean operator: {self.op!r}")
        if not self.operands:
            raise ValueError(f"{self.op} needs at least one operand")

    def to_sql(self) -> str:
        joined = f" {self.op} ".join(o.to_sql() for o in self.operands)
        return f"({joined})"


@dataclass(frozen=True)
class InList:
    expr: "Expr"
    items: tuple["Expr", ...]

    def to_sql(self) -> str:
        items = ", ".join(i.to_sql() for i in self.items)
        return f"({self.expr.to_sql()} IN ({items}))"


@dataclass(frozen=True)
class Alias:
    expr: "Expr"
    name: str

    def to_sql(self) -> str:
        return f"{self.expr.to_sql()} AS {quote_ident(self.name)}"


Expr = Union[Column, Literal, Null, Star, Call, Cast, Case, BinaryOp, BoolOp, InList]


# Relations


@dataclass(frozen=True)
class TableRef:
    name: str

    def to_sql(self) -> str:
        return quote_ident(self.name)


@dataclass(frozen=True)
class Subquery:
    query: "Query"

    def to_sql(self) -> str:
        return f"({self.query.to_sql()})"


@dataclass(frozen=True)
class Join:
    table: TableRef
    on: "Expr"
    kind: str = "LEFT OUTER"

    def __post_init__(self):
        if self.kind not in _JOIN_KINDS:
            raise ValueError(f"Unsupported join kind: {self.kind!r}")

    def to_sql(self) -> str:
        return f"{self.kind} JOIN {self.table.to_sql()} ON {self.on.to_sql()}"


@dataclass(frozen=True)
class Select:
    columns: tuple[Union[Expr, Alias], ...]
    source: TableRef | Subquery
    joins: tuple[Join, ...] = ()
    where: "Expr | None" = None
    group_by: tuple["Expr", ...] = ()
    order_by: tuple[OrderItem, ...] = ()
    limit: int | None = None
    offset: int | None = None

    def to_sql(self) -> str:
        parts = [
            "SELECT " + ", ".join(c.to_sql() for c in self.columns),
            "FROM " + self.source.to_sql(),
        ]
        parts.extend(j.to_sql() for j in self.joins)
        if self.where is not None:
            parts.append("WHERE " + self.where.to_sql())
        if self.group_by:
            parts.append("GROUP BY " + ", ".join(g.to_sql() for g in self.group_by))
        if self.order_by:
            parts.append("ORDER BY " + ", ".join(o.to_sql() for o in self.order_by))
        if self.limit is not None:
            parts.append(f"LIMIT {int(self.limit)}")
        if self.offset is not None:
            parts.append(f"OFFSET {int(self.offset)}")
        return " ".join(parts)


@dataclass(frozen=True)
class UnionAll:
    queries: tuple[Select, ...]

    def __post_init__(self):
        if not self.queries:
            raise ValueError("UNION ALL needs at least one query")

    def to_sql(self) -> str:
        return " UNION ALL ".join(f"({q.to_sql()})" for q in self.queries)


@dataclass(frozen=True)
class Cte:
    name: str
    query: "Query"

    def to_sql(self) -> str:
        return f"{quote_ident(self.name)} AS ({self.query.to_sql()})"


@dataclass(frozen=True)
class With:
    ctes: tuple[Cte, ...]
    body: "Query"

    def to_sql(self) -> str:
        if not self.ctes:
            return self.body.to_sql()
        return "WITH " + ", ".join(c.to_sql() for c in self.ctes) + " " + self.body.to_sql()


Query = Union[Select, UnionAll, With]


# Statements


@dataclass(frozen=True)
class CreateView:
    name: str
    query: Query

    def to_sql(self) -> str:
        return f"CREATE VIEW {quote_ident(self.name)} AS {self.query.to_sql()}"


@dataclass(frozen=True)
class CreateTableAs:
    name: str
    query: Query

    def to_sql(self) -> str:
        return f"CREATE TABLE {quote_ident(self.name)} AS {self.query.to_sql()}"


@dataclass(frozen=True)
class Drop:
    kind: str
    name: str
    if_exists: bool = True
    restrict: bool = False

    def __post_init__(self):
        if self.kind not in _DROP_KINDS:
            raise ValueError(f"Unsupported drop kind: {self.kind!r}")

    def to_sql(self) -> str:
        sql = f"DROP {self.kind} "
        if self.if_exists:
            sql += "IF EXISTS "
        sql += quote_ident(self.name)
        if self.restrict:
            sql += " RESTRICT"
        return sql


Statement = Union[Query, CreateView, CreateTableAs, Drop]


def render(node: Statement) -> str:
    """Render a plan node to SQL text."""
    return node.to_sql()
