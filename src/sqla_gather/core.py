from __future__ import annotations

import logging
import warnings
from collections.abc import Sequence
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Final, Union

import sqlalchemy as sa

from .exceptions import InvalidDepthError
from .schema import ForeignKey, Registry, Schema
from .selector import QueryContext
from .tools import Predicate, adapt_to_root, ids_of


logger = logging.getLogger(__name__)

MAX_GATHER_DEPTH: Final[int] = 3
JOIN_WARNING_THRESHOLD: Final[int] = 64

Where = Union[int, Sequence[int], Predicate, sa.ColumnElement[bool], None]


@dataclass(frozen=True, slots=True)
class JoinStep:
    """``LEFT OUTER JOIN <edge.to_table> AS alias ON alias.to_column = parent_alias.from_column``."""

    alias: str
    parent_alias: str
    edge: ForeignKey

    @property
    def table(self) -> str:
        return self.edge.to_table


@dataclass(frozen=True, slots=True)
class GatherPlan:
    """Join tree for one root table and depth, ready to render as a single SELECT.

    ``context`` holds a selector per alias (root first, then ``fk1``,
    ``fk2``, ... in join order); ``joins`` lists the LEFT OUTER JOINs in the
    order they must be applied.
    """

    table: str
    depth: int
    context: QueryContext = field(compare=False)
    joins: tuple[JoinStep, ...] = ()

    @property
    def root(self) -> sa.FromClause:
        return self.context.table(self.table)

    def select(self, where: Where = None) -> sa.Select[Any]:
        """Render the plan as one flattened query filtered by *where*.

        Rows come back ordered by the root primary key.
        """
        root = self.root
        primary_key = self.context[self.table].table.primary_key
        from_clause: sa.FromClause = root
        for step in self.joins:
            parent = self.context.table(step.parent_alias)
            target = self.context.table(step.alias)
            from_clause = from_clause.outerjoin(
                target,
                target.c[step.edge.to_column] == parent.c[step.edge.from_column],
            )

        query = sa.select(*self.context.cols()).select_from(from_clause)
        if (clause := where_clause(where, root, primary_key)) is not None:
            query = query.where(clause)

        return query.order_by(root.c[primary_key])


class GatherBuilder:
    """Plans the join tree of a gather.

    Walks the foreign key graph outward from the root table, depth first per
    branch, registering one aliased selector and one LEFT OUTER JOIN per edge
    visited. Only the remaining depth stops the walk: a cyclic graph simply
    revisits tables under fresh aliases until the depth runs out.

    One instance builds one plan; :func:`plan_gather` caches the result.
    """

    __slots__ = ("_context", "_joins", "_next_alias", "depth", "schema", "table")

    def __init__(self, table: str, schema: Schema, *, depth: int) -> None:
        self.table = table
        self.schema = schema
        self.depth = check_depth(depth)
        self._context = QueryContext(schema)
        self._joins: list[JoinStep] = []
        self._next_alias = 1

    def build(self) -> GatherPlan:
        """Build the plan.

        Raises:
            UnknownTableError: If the root table is not in the schema.
        """
        # The root keeps its own name so callers can filter on "table.column".
        self._context.add(self.table, self.table)
        self._collect(self.table, self.table, self.depth)

        if len(self._joins) > JOIN_WARNING_THRESHOLD:
            warnings.warn(
                f"Gathering {self.table!r} at depth {self.depth} needs {len(self._joins)} joins. "
                "Consider a smaller depth.",
                stacklevel=3,
            )

        logger.debug(
            "Planned gather of %r at depth %d: %d joins",
            self.table,
            self.depth,
            len(self._joins),
        )

        return GatherPlan(
            table=self.table,
            depth=self.depth,
            context=self._context,
            joins=tuple(self._joins),
        )

    def _collect(self, table: str, alias: str, depth_left: int) -> None:
        if depth_left <= 0:
            return

        for edge in self.schema.edges(table).values():
            other_alias = self._alias()
            self._context.add(edge.to_table, other_alias)
            self._joins.append(JoinStep(alias=other_alias, parent_alias=alias, edge=edge))
            self._collect(edge.to_table, other_alias, depth_left - 1)

    def _alias(self) -> str:
        # fk1, fk2, ...; skips a number whose alias is the root table's name
        alias = f"fk{self._next_alias}"
        while alias in self._context:
            self._next_alias += 1
            alias = f"fk{self._next_alias}"
        self._next_alias += 1
        return alias


def check_depth(depth: Any) -> int:
    """Return *depth* if it is a non-negative ``int``, else raise :class:`InvalidDepthError`."""
    if not isinstance(depth, int) or isinstance(depth, bool) or depth < 0:
        raise InvalidDepthError(depth)
    return depth


def where_clause(
    where: Where,
    root: sa.FromClause,
    primary_key: str = "id",
) -> sa.ColumnElement[bool] | None:
    """Coerce the accepted *where* forms into a boolean clause on *root*.

    * ``None`` - no filter
    * ``int`` - primary key equality
    * sequence of ``int`` - primary key ``IN``
    * callable - called with the root FROM clause
    * boolean clause - used as is
    """
    if where is None:
        return None

    if isinstance(where, bool):
        raise TypeError("where must not be a bool")

    if isinstance(where, int):
        return root.c[primary_key] == where

    if isinstance(where, sa.ColumnElement):
        return adapt_to_root(where, root)

    if callable(where):
        return adapt_to_root(where(root), root)

    if isinstance(where, Sequence) and not isinstance(where, (str, bytes)):
        return root.c[primary_key].in_(ids_of(where))

    raise TypeError(f"Unsupported where clause: {where!r}")


@lru_cache(maxsize=1028)
def plan_gather(schema: Schema, table: str, depth: int) -> GatherPlan:
    """Build (and cache) the join plan for gathering *table* to *depth*."""
    return GatherBuilder(table, schema, depth=depth).build()


def gather_select(
    table: str,
    where: Where = None,
    *,
    depth: int = MAX_GATHER_DEPTH,
    schema: Schema | None = None,
) -> sa.Select[Any]:
    """Create the single SELECT that fetches *table* rows with their references.

    This is the query a gather call executes. Use it directly to run the
    query yourself, e.g. on a synchronous connection, and feed the mapping
    rows to :func:`sqla_gather.gather.gather_rows`.

    Args:
        table: Root table name.
        where: Root filter, see :func:`where_clause`.
        depth: Number of foreign key hops to join. Defaults to ``MAX_GATHER_DEPTH``.
        schema: Schema to plan against. Defaults to the ``Registry`` singleton's.

    Returns:
        A SQLAlchemy Select with one labelled column per selected field.

    Examples:
        Basic usage::

            query = gather_select("user", 5)

        Filtering on a column::

            query = gather_select("user", lambda user: user.c.name == "alice", depth=1)
    """
    if schema is None:
        schema = Registry().schema

    return plan_gather(schema, table, check_depth(depth)).select(where)


def gather_cache_info() -> dict[str, Any]:
    """Return LRU cache statistics for all internal caches."""
    from .selector import table_clause
    from .tools import _get_primary_key

    return {
        fn.__name__: fn.cache_info()
        for fn in (
            plan_gather,
            table_clause,
            _get_primary_key,
        )
    }


def gather_cache_clear() -> None:
    """Clear all internal LRU caches."""
    from .selector import table_clause
    from .tools import _get_primary_key

    for fn in (
        plan_gather,
        table_clause,
        _get_primary_key,
    ):
        fn.cache_clear()
