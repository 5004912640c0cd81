from __future__ import annotations

import logging
import sys
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import ClassVar, final

import sqlalchemy as sa
from sqlalchemy import orm

from .datastructures import frozendict
from .exceptions import SchemaError, UnknownTableError
from .tools import get_primary_key


if sys.version_info >= (3, 11):
    from typing import Self
else:
    from typing_extensions import Self


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TableSchema:
    """Column layout of a single table."""

    name: str
    columns: tuple[str, ...]
    primary_key: str = "id"


@dataclass(frozen=True, slots=True)
class ForeignKey:
    """A named, directed reference from ``from_table.from_column`` to ``to_table.to_column``."""

    from_table: str
    from_column: str
    to_table: str
    to_column: str
    name: str
    nullable: bool = False


@dataclass(frozen=True, slots=True)
class Schema:
    """Immutable registry of tables and the foreign key graph between them.

    ``tables`` maps a table name to its :class:`TableSchema`; ``fks`` maps a
    table name to its outgoing edges keyed by edge name, in declaration
    order. The graph may contain cycles, including self-references.

    Build one with :class:`SchemaBuilder` or :func:`get_schema`; the
    constructor validates every invariant and raises :class:`SchemaError`.
    """

    tables: Mapping[str, TableSchema]
    fks: Mapping[str, Mapping[str, ForeignKey]] = field(default_factory=frozendict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "tables", frozendict(self.tables))
        object.__setattr__(
            self,
            "fks",
            frozendict({table: frozendict(edges) for table, edges in self.fks.items()}),
        )
        _validate(self)

    def table(self, name: str) -> TableSchema:
        """Look up a table, raising :class:`UnknownTableError` if it is not registered."""
        try:
            return self.tables[name]
        except KeyError:
            raise UnknownTableError(name) from None

    def edges(self, table: str) -> Mapping[str, ForeignKey]:
        """Outgoing edges of *table*, empty if it declares none."""
        return self.fks.get(table, frozendict())

    def __contains__(self, table: object) -> bool:
        return table in self.tables


def _validate(schema: Schema) -> None:
    for name, table in schema.tables.items():
        if name != table.name:
            raise SchemaError(f"Table registered as {name!r} is named {table.name!r}")
        if not table.columns:
            raise SchemaError(f"Table {name!r} has no columns")
        if len(set(table.columns)) != len(table.columns):
            raise SchemaError(f"Table {name!r} has duplicate columns: {table.columns}")
        if table.primary_key not in table.columns:
            raise SchemaError(
                f"Primary key {table.primary_key!r} is not a column of table {name!r}"
            )

    for from_table, edges in schema.fks.items():
        source = schema.tables.get(from_table)
        if source is None:
            raise SchemaError(f"Foreign keys declared on unknown table {from_table!r}")

        for edge_name, fk in edges.items():
            where = f"foreign key {from_table}.{edge_name}"
            if fk.name != edge_name or fk.from_table != from_table:
                raise SchemaError(f"{where} is registered under the wrong table or name")
            if edge_name in source.columns:
                raise SchemaError(f"{where} collides with a column of the same name")
            if fk.from_column not in source.columns:
                raise SchemaError(f"{where}: unknown column {fk.from_column!r}")
            if fk.from_column == source.primary_key:
                raise SchemaError(f"{where}: the primary key cannot reference another table")
            target = schema.tables.get(fk.to_table)
            if target is None:
                raise SchemaError(f"{where}: unknown target table {fk.to_table!r}")
            if fk.to_column not in target.columns:
                raise SchemaError(
                    f"{where}: unknown target column {fk.to_table}.{fk.to_column}"
                )
            if fk.to_column != target.primary_key:
                raise SchemaError(
                    f"{where}: target column {fk.to_table}.{fk.to_column} "
                    f"is not the primary key {target.primary_key!r}"
                )


class SchemaBuilder:
    """Fluent declaration of tables and named foreign keys.

    Example:
        >>> schema = (
        ...     SchemaBuilder()
        ...     .table("user", ("id", "name", "avatar_img_id"))
        ...     .table("media_item", ("id", "url"))
        ...     .add("user", "avatar_img_id", "media_item", "id", "avatar_img", nullable=True)
        ...     .build()
        ... )
    """

    __slots__ = ("_fks", "_tables")

    def __init__(self) -> None:
        self._tables: dict[str, TableSchema] = {}
        self._fks: dict[str, dict[str, ForeignKey]] = {}

    def table(self, name: str, columns: Iterable[str], *, primary_key: str = "id") -> Self:
        """Register *name* with its ordered *columns*."""
        self._tables[name] = TableSchema(name=name, columns=tuple(columns), primary_key=primary_key)
        return self

    def add(
        self,
        from_table: str,
        from_column: str,
        to_table: str,
        to_column: str,
        name: str,
        nullable: bool = False,
    ) -> Self:
        """Register the foreign key ``from_table.from_column -> to_table.to_column`` as *name*."""
        edges = self._fks.setdefault(from_table, {})
        if name in edges:
            raise SchemaError(f"Foreign key {from_table}.{name} is already declared")

        edges[name] = ForeignKey(
            from_table=from_table,
            from_column=from_column,
            to_table=to_table,
            to_column=to_column,
            name=name,
            nullable=nullable,
        )
        return self

    def build(self) -> Schema:
        return Schema(tables=dict(self._tables), fks=self._fks)


def default_edge_name(column: sa.Column[object]) -> str:
    """``avatar_img_id`` -> ``avatar_img``; columns without the suffix get ``_ref`` appended."""
    name = column.name
    if name.endswith("_id") and len(name) > 3:  # noqa: PLR2004
        return name[:-3]

    return f"{name}_ref"


def get_schema(
    source: sa.MetaData | type[orm.DeclarativeBase],
    *,
    edge_name: Callable[[sa.Column[object]], str] = default_edge_name,
) -> Schema:
    """Introspect a :class:`Schema` from SQLAlchemy table metadata.

    Every table with a single integer primary key is registered with all of
    its columns. Every single-column foreign key between two registered
    tables becomes an edge named by *edge_name*; its nullability follows the
    column's. Tables with composite or non-integer primary keys (association
    tables, mostly) are skipped, as is any foreign key pointing at them or at
    a column other than the target's primary key.

    Args:
        source: ``MetaData`` instance, or a declarative base whose metadata is used.
        edge_name: Callable deriving the edge name from the referencing column.

    Returns:
        The validated schema.

    Example:
        >>> from myapp.models import Base
        >>> init_schema(get_schema(Base))
    """
    if isinstance(source, sa.MetaData):
        metadata = source
    else:
        assert orm.DeclarativeBase in getattr(source, "__bases__", ()), (
            "source must be MetaData or a subclass of orm.DeclarativeBase"
        )
        metadata = source.metadata

    builder = SchemaBuilder()
    registered: dict[str, str] = {}
    for table in metadata.tables.values():
        pk = get_primary_key(table)
        if pk is None:
            logger.debug("Skipping table %r: no single integer primary key", table.name)
            continue

        builder.table(table.name, (col.name for col in table.columns), primary_key=pk.name)
        registered[table.name] = pk.name

    for table in metadata.tables.values():
        if table.name not in registered:
            continue

        for column in table.columns:
            if column.primary_key:
                continue

            for fk in column.foreign_keys:
                target = fk.column
                if len(fk.constraint.elements) != 1 or target.table.name not in registered:
                    continue
                if target.name != registered[target.table.name]:
                    logger.debug(
                        "Skipping foreign key %s.%s: %s.%s is not a primary key",
                        table.name,
                        column.name,
                        target.table.name,
                        target.name,
                    )
                    continue

                builder.add(
                    table.name,
                    column.name,
                    target.table.name,
                    target.name,
                    edge_name(column),
                    nullable=bool(column.nullable),
                )

    return builder.build()


@final
class Registry:
    """Singleton holding the process-wide default :class:`Schema`.

    Initialize it once at startup with :func:`init_schema`; gather calls
    that are not given an explicit ``schema`` read it from here.
    """

    __instance: ClassVar[Registry | None] = None
    _schema: Schema | None

    def __new__(cls, schema: Schema | None = None) -> Registry:
        if cls.__instance is None:
            instance = super().__new__(cls)
            instance._schema = None
            cls.__instance = instance

        if schema is not None:
            cls.__instance.set_schema(schema)

        if cls.__instance._schema is None:
            raise RuntimeError("Registry is not initialized")

        return cls.__instance

    def get(self, table: str) -> TableSchema | None:
        """Get a table schema, returning ``None`` if it is not registered."""
        return self.schema.tables.get(table)

    def __getitem__(self, table: str) -> TableSchema:
        """Look up a table schema, raising ``UnknownTableError`` if not found."""
        return self.schema.table(table)

    @property
    def schema(self) -> Schema:
        """The registered schema (read-only)."""
        assert self._schema is not None
        return self._schema

    def set_schema(self, schema: Schema) -> None:
        """Replace the registered schema."""
        self._schema = schema

    @classmethod
    def reset(cls) -> None:
        """Destroy the singleton, allowing re-initialization (primarily for tests)."""
        cls.__instance = None


def init_schema(schema: Schema) -> None:
    """Initialize the global Registry singleton with *schema*.

    Calling it again replaces the registered schema.

    Example:
        >>> init_schema(get_schema(Base.metadata))
    """
    Registry(schema)
