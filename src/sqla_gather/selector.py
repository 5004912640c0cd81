"""Column aliasing and row parsing for multi-table queries.

A :class:`QueryContext` holds one :class:`Selector` per table alias taking
part in a query. Each selector labels its columns ``_{alias}_{column}`` so
that a single flat result row can carry every joined table side by side;
:meth:`QueryContext.run` splits such rows back into per-alias flat models
and indexes them in a :class:`ModelCollection`.
"""

from __future__ import annotations

import sys
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

import sqlalchemy as sa

from .collection import FlatModel, ModelCollection
from .datastructures import frozendict
from .exceptions import DuplicateAliasError
from .schema import Schema, TableSchema


if sys.version_info >= (3, 11):
    from typing import Self
else:
    from typing_extensions import Self


@lru_cache(maxsize=512)
def table_clause(table: TableSchema) -> sa.TableClause:
    """Lightweight ``sa.table()`` construct for *table* (cached)."""
    return sa.table(table.name, *(sa.column(name) for name in table.columns))


class Selector:
    """One aliased table of a query and the labelled columns selected from it."""

    __slots__ = ("alias", "from_clause", "table")

    def __init__(self, table: TableSchema, alias: str) -> None:
        clause = table_clause(table)
        self.table = table
        self.alias = alias
        self.from_clause: sa.FromClause = clause if alias == table.name else clause.alias(alias)

    def column_alias(self, column: str) -> str:
        return f"_{self.alias}_{column}"

    def col(self, column: str) -> sa.Label[Any]:
        """``alias.column AS _alias_column``."""
        return self.from_clause.c[column].label(self.column_alias(column))

    def cols(self) -> list[sa.Label[Any]]:
        return [self.col(column) for column in self.table.columns]

    def parse(self, row: Mapping[str, Any]) -> FlatModel | None:
        """Extract this alias's columns from *row*.

        Returns ``None`` when the primary key is null, which is how a LEFT
        JOIN reports that no row matched.
        """
        if row.get(self.column_alias(self.table.primary_key)) is None:
            return None

        return frozendict({column: row.get(self.column_alias(column)) for column in self.table.columns})

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.table.name} as {self.alias}>"


@dataclass(frozen=True, slots=True)
class ParsedRow:
    """A raw result row and the flat model each alias contributed to it."""

    row: Mapping[str, Any]
    models: Mapping[str, FlatModel | None]

    def __getitem__(self, alias: str) -> FlatModel | None:
        return self.models[alias]


@dataclass(frozen=True, slots=True)
class QueryResult:
    rows: list[ParsedRow]
    models: ModelCollection


class QueryContext:
    """Ordered set of selectors sharing one alias namespace.

    Example::

        ctx = QueryContext(schema).add("user", "u").add("media_item", "m")
        u, m = ctx.table("u"), ctx.table("m")
        query = (
            sa.select(*ctx.cols())
            .select_from(u.outerjoin(m, m.c.id == u.c.avatar_img_id))
        )
        result = ctx.run((await session.execute(query)).mappings().all())
        result.rows[0]["m"]  # => frozendict of the media item, or None
    """

    __slots__ = ("_selectors", "schema")

    def __init__(self, schema: Schema) -> None:
        self.schema = schema
        self._selectors: dict[str, Selector] = {}

    def add(self, table: str, alias: str) -> Self:
        """Register *table* under *alias*.

        Raises:
            DuplicateAliasError: If *alias* is already taken.
            UnknownTableError: If *table* is not in the schema.
        """
        if alias in self._selectors:
            raise DuplicateAliasError(alias)

        self._selectors[alias] = Selector(self.schema.table(table), alias)
        return self

    def __getitem__(self, alias: str) -> Selector:
        return self._selectors[alias]

    def __contains__(self, alias: object) -> bool:
        return alias in self._selectors

    def __iter__(self) -> Iterator[Selector]:
        return iter(self._selectors.values())

    def __len__(self) -> int:
        return len(self._selectors)

    def table(self, alias: str) -> sa.FromClause:
        """The (aliased) FROM clause registered under *alias*."""
        return self._selectors[alias].from_clause

    def cols(self, *aliases: str) -> list[sa.Label[Any]]:
        """Labelled columns of *aliases*, or of every selector when none are given."""
        selectors = [self._selectors[alias] for alias in aliases] if aliases else self
        return [col for selector in selectors for col in selector.cols()]

    def col(self, ref: str) -> sa.Label[Any]:
        """Labelled column for ``'alias.column'``."""
        alias, sep, column = ref.partition(".")
        if not sep:
            raise ValueError(f"Expected 'alias.column' format, got {ref!r}")
        return self._selectors[alias].col(column)

    def run(
        self,
        rows: Iterable[Mapping[str, Any]],
        models: ModelCollection | None = None,
    ) -> QueryResult:
        """Split raw result rows into per-alias flat models.

        Every model found is added to *models* (a fresh collection when not
        given) under its table name and primary key.
        """
        collection = models if models is not None else ModelCollection()
        parsed: list[ParsedRow] = []
        for row in rows:
            by_alias: dict[str, FlatModel | None] = {}
            for selector in self:
                model = selector.parse(row)
                by_alias[selector.alias] = model
                collection.add(selector.table.name, model, key=selector.table.primary_key)

            parsed.append(ParsedRow(row=row, models=frozendict(by_alias)))

        return QueryResult(rows=parsed, models=collection)
