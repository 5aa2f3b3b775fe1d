"""
SQL statement builder for record storage.

Pure translation of column lists and structured query specs into
parameterized SQL text. Nothing in this module touches a connection.

Invariants:
    - Identical input produces identical Statement (text and params)
    - Values are always bound as ``?`` parameters, never interpolated
    - Identifiers are always double-quoted
    - The view order column, when given, is the first ORDER BY key
    - Names are assumed to be resolved against metadata already;
      no existence checking happens here

How to change safely:
    - Never reorder clauses; callers rely on stable statement text
    - Add new operators to COMPARISON_OPERATORS only with a renderer
    - Keep build_create_table additive (new columns nullable)

Example:
    >>> spec = SelectSpec(table="tasks", order_column="__row_viwGrid", limit=10)
    >>> build_select(spec)
    Statement(sql='SELECT * FROM "tasks" ORDER BY "__row_viwGrid" ASC LIMIT ? OFFSET ?', params=(10, 0))
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Optional, Union

from ..naming import (
    AUTO_NUMBER_COLUMN,
    CREATED_BY_COLUMN,
    CREATED_TIME_COLUMN,
    ID_COLUMN,
    LAST_MODIFIED_BY_COLUMN,
    LAST_MODIFIED_TIME_COLUMN,
    VERSION_COLUMN,
)

SEQUENCE_TABLE = "__sequences"

COMPARISON_OPERATORS = frozenset(
    {"=", "!=", "<", "<=", ">", ">=", "LIKE", "IN", "NOT IN", "IS NULL", "IS NOT NULL"}
)
CONJUNCTIONS = frozenset({"AND", "OR"})


@dataclass(frozen=True)
class Statement:
    """SQL text plus its bound parameters."""

    sql: str
    params: tuple[Any, ...] = ()


@dataclass(frozen=True)
class Condition:
    """Leaf of a filter tree: ``column operator value``.

    ``=`` and ``!=`` against None render as IS NULL / IS NOT NULL.
    IN / NOT IN take a sequence value.
    """

    column: str
    operator: str = "="
    value: Any = None


@dataclass(frozen=True)
class Conjunction:
    """Inner node of a filter tree joining children with AND or OR."""

    operator: str
    children: tuple[Filter, ...]


Filter = Union[Condition, Conjunction]


def and_(*children: Filter) -> Conjunction:
    return Conjunction("AND", tuple(children))


def or_(*children: Filter) -> Conjunction:
    return Conjunction("OR", tuple(children))


@dataclass(frozen=True)
class SortKey:
    column: str
    descending: bool = False


@dataclass(frozen=True)
class SelectSpec:
    """Structured description of a SELECT over one physical table.

    Attributes:
        table: Physical table name
        order_column: View order column applied first, ascending
            (None for unordered bulk fetches)
        where: Optional filter tree
        order_by: Caller sort keys applied after the view order
        offset: Rows to skip
        limit: Maximum rows (None for no limit)
        columns: Column subset to project (None for all columns)
        id_only: Project only the record id column
    """

    table: str
    order_column: Optional[str] = None
    where: Optional[Filter] = None
    order_by: tuple[SortKey, ...] = ()
    offset: int = 0
    limit: Optional[int] = None
    columns: Optional[tuple[str, ...]] = None
    id_only: bool = False


def quote_identifier(name: str) -> str:
    """Quote an identifier for SQLite, doubling embedded quotes."""
    if not name:
        raise ValueError("Identifier cannot be empty")
    return '"' + name.replace('"', '""') + '"'


def _render_filter(node: Filter, params: list[Any]) -> str:
    if isinstance(node, Conjunction):
        op = node.operator.upper()
        if op not in CONJUNCTIONS:
            raise ValueError(f"Unsupported conjunction '{node.operator}'")
        if not node.children:
            # Empty AND matches everything, empty OR matches nothing
            return "1 = 1" if op == "AND" else "1 = 0"
        parts = [_render_filter(child, params) for child in node.children]
        return "(" + f" {op} ".join(parts) + ")"

    op = node.operator.upper()
    if op not in COMPARISON_OPERATORS:
        raise ValueError(f"Unsupported operator '{node.operator}'")
    column = quote_identifier(node.column)

    if op in ("=", "!=") and node.value is None:
        op = "IS NULL" if op == "=" else "IS NOT NULL"
    if op in ("IS NULL", "IS NOT NULL"):
        return f"{column} {op}"
    if op in ("IN", "NOT IN"):
        values = tuple(node.value)
        params.extend(values)
        return f"{column} {op} ({', '.join('?' for _ in values)})"

    params.append(node.value)
    return f"{column} {op} ?"


def build_insert(
    table: str,
    columns: Sequence[str],
    rows: Sequence[Sequence[Any]],
) -> Statement:
    """Build one multi-row INSERT.

    Args:
        table: Physical table name
        columns: Full ordered column list
        rows: Value matrix; each row ordered like ``columns``

    Raises:
        ValueError: If there are no columns or rows, or a row has the
            wrong width
    """
    if not columns:
        raise ValueError("INSERT requires at least one column")
    if not rows:
        raise ValueError("INSERT requires at least one row")

    width = len(columns)
    params: list[Any] = []
    for index, row in enumerate(rows):
        if len(row) != width:
            raise ValueError(
                f"Row {index} has {len(row)} values, expected {width} to match columns"
            )
        params.extend(row)

    column_sql = ", ".join(quote_identifier(c) for c in columns)
    row_sql = "(" + ", ".join("?" for _ in columns) + ")"
    values_sql = ", ".join(row_sql for _ in rows)
    return Statement(
        sql=f"INSERT INTO {quote_identifier(table)} ({column_sql}) VALUES {values_sql}",
        params=tuple(params),
    )


def build_select(spec: SelectSpec) -> Statement:
    """Build a paginated, projected SELECT from a spec."""
    params: list[Any] = []

    if spec.id_only:
        projection = quote_identifier(ID_COLUMN)
    elif spec.columns is None:
        projection = "*"
    else:
        if not spec.columns:
            raise ValueError("Column projection cannot be empty")
        projection = ", ".join(quote_identifier(c) for c in spec.columns)

    sql = f"SELECT {projection} FROM {quote_identifier(spec.table)}"

    if spec.where is not None:
        sql += f" WHERE {_render_filter(spec.where, params)}"

    order_terms = []
    if spec.order_column is not None:
        order_terms.append(f"{quote_identifier(spec.order_column)} ASC")
    for key in spec.order_by:
        direction = "DESC" if key.descending else "ASC"
        order_terms.append(f"{quote_identifier(key.column)} {direction}")
    if order_terms:
        sql += " ORDER BY " + ", ".join(order_terms)

    if spec.offset < 0:
        raise ValueError(f"offset must be >= 0, got {spec.offset}")
    if spec.limit is not None:
        if spec.limit < 0:
            raise ValueError(f"limit must be >= 0, got {spec.limit}")
        sql += " LIMIT ? OFFSET ?"
        params.extend([spec.limit, spec.offset])
    elif spec.offset:
        # SQLite needs a LIMIT before OFFSET; -1 means unbounded
        sql += " LIMIT -1 OFFSET ?"
        params.append(spec.offset)

    return Statement(sql=sql, params=tuple(params))


def build_count(table: str, where: Optional[Filter] = None) -> Statement:
    params: list[Any] = []
    sql = f"SELECT COUNT(*) FROM {quote_identifier(table)}"
    if where is not None:
        sql += f" WHERE {_render_filter(where, params)}"
    return Statement(sql=sql, params=tuple(params))


def build_next_auto_number(table: str) -> Statement:
    """Next free auto-number: MAX + 1, or 0 for an empty table."""
    column = quote_identifier(AUTO_NUMBER_COLUMN)
    return Statement(
        sql=f"SELECT COALESCE(MAX({column}) + 1, 0) FROM {quote_identifier(table)}"
    )


def build_sequence_table() -> Statement:
    return Statement(
        sql=(
            f"CREATE TABLE IF NOT EXISTS {quote_identifier(SEQUENCE_TABLE)} ("
            '"name" TEXT PRIMARY KEY NOT NULL, '
            '"next_value" INTEGER NOT NULL)'
        )
    )


def build_advance_sequence(table: str, count: int) -> Statement:
    """Reserve ``count`` values from a table's counter, returning the new next value.

    The block starts at the larger of the stored counter and the table's
    MAX(auto_number) + 1, so rows written by another allocator are never
    handed out again.
    """
    seq = quote_identifier(SEQUENCE_TABLE)
    next_free = (
        f"(SELECT COALESCE(MAX({quote_identifier(AUTO_NUMBER_COLUMN)}) + 1, 0) "
        f"FROM {quote_identifier(table)})"
    )
    return Statement(
        sql=(
            f'INSERT INTO {seq} ("name", "next_value") '
            f"VALUES (?, {next_free} + ?) "
            f'ON CONFLICT ("name") DO UPDATE SET "next_value" = '
            f'MAX({seq}."next_value", {next_free}) + ? '
            f'RETURNING "next_value"'
        ),
        params=(table, count, count),
    )


def build_create_table(
    table: str,
    field_columns: Sequence[str],
    order_columns: Sequence[str],
) -> list[Statement]:
    """Build DDL for a physical record table and its order-column indexes.

    User columns carry no declared type so values keep the type they were
    written with; order columns are NUMERIC so positions can later become
    fractional.
    """
    column_defs = [
        f"{quote_identifier(ID_COLUMN)} TEXT PRIMARY KEY NOT NULL",
        f"{quote_identifier(VERSION_COLUMN)} INTEGER NOT NULL DEFAULT 1",
        f"{quote_identifier(AUTO_NUMBER_COLUMN)} INTEGER NOT NULL UNIQUE",
        f"{quote_identifier(CREATED_TIME_COLUMN)} INTEGER NOT NULL",
        f"{quote_identifier(CREATED_BY_COLUMN)} TEXT NOT NULL",
        f"{quote_identifier(LAST_MODIFIED_TIME_COLUMN)} INTEGER",
        f"{quote_identifier(LAST_MODIFIED_BY_COLUMN)} TEXT",
    ]
    column_defs.extend(quote_identifier(c) for c in field_columns)
    column_defs.extend(f"{quote_identifier(c)} NUMERIC" for c in order_columns)

    statements = [
        Statement(
            sql=f"CREATE TABLE IF NOT EXISTS {quote_identifier(table)} ("
            + ", ".join(column_defs)
            + ")"
        )
    ]
    for column in order_columns:
        index_name = quote_identifier(f"idx_{table}_{column}")
        statements.append(
            Statement(
                sql=f"CREATE INDEX IF NOT EXISTS {index_name} "
                f"ON {quote_identifier(table)} ({quote_identifier(column)})"
            )
        )
    return statements
