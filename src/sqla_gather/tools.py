from __future__ import annotations

from collections.abc import Callable, Iterable
from functools import lru_cache
from typing import Any

import sqlalchemy as sa
from sqlalchemy.sql import visitors


Predicate = Callable[[sa.FromClause], sa.ColumnElement[bool]]


@lru_cache
def _get_primary_key(table: sa.Table) -> sa.Column[Any] | None:
    """Return the single integer primary-key column of *table*, or ``None`` (cached)."""
    columns = list(table.primary_key.columns)
    if len(columns) != 1:
        return None

    column = columns[0]
    try:
        python_type = column.type.python_type
    except NotImplementedError:
        return None

    if not issubclass(python_type, int) or issubclass(python_type, bool):
        return None

    return column


def get_primary_key(table: sa.Table) -> sa.Column[Any] | None:
    """Get the primary key column of a SQLAlchemy table.

    Only single-column integer keys qualify, since gathered rows are indexed
    by an integer id.

    Args:
        table: SQLAlchemy table.

    Returns:
        The primary key column, or ``None`` for composite, missing or
        non-integer keys.
    """
    return _get_primary_key(table)


def get_table_names(query: sa.Select[Any]) -> list[str]:
    """Extract all table and alias names from a SQLAlchemy select query.

    This function traverses the query's FROM clause to identify all tables,
    including those in joins and aliases. For a gather query the result
    is the root table followed by every ``fkN`` alias and the table behind it.

    Args:
        query: SQLAlchemy select query.

    Returns:
        Sequence of names found in the query, without duplicates.
    """
    seen: set[str] = set()
    out: list[str] = []

    def add(name: str | None) -> None:
        if name and name not in seen:
            seen.add(name)
            out.append(name)

    for root in query.get_final_froms():
        stack: list[Any] = [root]
        while stack:
            node = stack.pop()

            if isinstance(node, sa.Join):
                stack.extend([node.right, node.left])
                continue

            add(getattr(node, "name", None))
            if hasattr(node, "element"):
                stack.append(node.element)

    return out


def _find_from_by_name(
    root: sa.FromClause, name: str
) -> sa.FromClause | None:
    """Find an alias/table with *name* in the FROM tree (iterative)."""
    stack: list[sa.FromClause] = [root]
    while stack:
        node = stack.pop()
        if isinstance(node, sa.Join):
            stack.append(node.left)
            stack.append(node.right)
            continue
        if getattr(node, "name", None) == name:
            return node
        element = getattr(node, "element", None)
        if element is not None:
            stack.append(element)
    return None


def resolve_col(query: sa.Select[Any], ref: str) -> sa.ColumnElement[Any]:
    """Resolve ``'alias.column'`` to a bound ColumnElement from *query*.

    Works on queries built by :func:`gather_select`, e.g. to add ordering or
    extra filters on a joined alias::

        col = resolve_col(query, "fk1.url")
        query = query.where(col.is_not(None))

    The *ref* format is ``alias_name.column_name`` where ``alias_name`` is the
    root table name or one of the ``fkN`` join aliases. Use
    ``get_table_names(query)`` or ``print(query)`` to discover alias names.

    Raises ``ValueError`` if alias or column not found.
    """
    alias_name, sep, col_name = ref.partition(".")
    if not sep:
        raise ValueError(f"Expected 'alias.column' format, got {ref!r}")
    for root in query.get_final_froms():
        found = _find_from_by_name(root, alias_name)
        if found is not None and hasattr(found, "c"):
            try:
                return found.c[col_name]
            except KeyError:
                raise ValueError(
                    f"Column {col_name!r} not found in alias {alias_name!r}. "
                    f"Available: {[c.key for c in found.c]}"
                ) from None
    raise ValueError(
        f"Alias {alias_name!r} not found in query. "
        f"Available: {get_table_names(query)}"
    )


def by_id(*ids: int, key: str = "id") -> Predicate:
    """Create a root predicate matching primary key *ids*.

    A single id compiles to ``=``, several to ``IN``.

    Example:
        >>> result = await gather_some(session, "user", by_id(1, 2, 3))
    """

    def _where(root: sa.FromClause) -> sa.ColumnElement[bool]:
        column = root.c[key]
        return column == ids[0] if len(ids) == 1 else column.in_(ids)

    return _where


def adapt_to_root(
    clause: sa.ColumnElement[bool], root: sa.FromClause
) -> sa.ColumnElement[bool]:
    """Re-point columns of any table named like *root* at *root* itself.

    Lets callers filter with their own ``sa.Table`` columns or ORM attributes
    (``User.name == "alice"``) without SQLAlchemy adding that table to the
    FROM list a second time.
    """
    name = getattr(root, "name", None)

    def replace(element: Any) -> Any:
        table = getattr(element, "table", None)
        if (
            isinstance(element, sa.ColumnClause)
            and table is not None
            and table is not root
            and getattr(table, "name", None) == name
            and element.name in root.c
        ):
            return root.c[element.name]
        return None

    return visitors.replacement_traverse(clause, {}, replace)


def ids_of(values: Iterable[Any]) -> tuple[int, ...]:
    """Validate and freeze a sequence of primary key ids."""
    ids = tuple(values)
    if not all(isinstance(v, int) and not isinstance(v, bool) for v in ids):
        raise TypeError(f"Expected integer ids, got: {ids!r}")
    return ids
