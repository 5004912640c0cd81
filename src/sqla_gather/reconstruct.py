"""Rebuilding nested models from the flat rows of a gather query.

The planner fetches every row a gather needs in one query; the row parser
indexes them by ``(table, id)`` in a :class:`ModelCollection`. Reconstruction
walks the foreign key graph from a root row, looking each referenced row up
in that collection and nesting it one level shallower, until the depth runs
out.

When a reference points at a row that is not in the collection, the
``on_invalid`` policy decides what happens:

``omit`` / ``null``
    The model is dropped, and so is every model above it up to the root.
``throw``
    :class:`MissingReferenceError` is raised.
``keep``
    The edge slot is set to ``None`` and reconstruction continues.

A foreign key column holding anything but ``None`` or a non-negative integer
raises :class:`InvalidReferenceValueError` whatever the policy.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from enum import Enum
from typing import Any, Final, NoReturn

from .collection import FlatModel, ModelCollection
from .datastructures import GatheredModel
from .exceptions import InvalidReferenceValueError, MissingReferenceError, ModelGatherError
from .schema import ForeignKey, Schema
from .selector import ParsedRow


class OnInvalid(str, Enum):
    """What to do when a foreign key references a row that was not fetched."""

    OMIT = "omit"
    NULL = "null"
    THROW = "throw"
    KEEP = "keep"


DEFAULT_ON_INVALID: Final[OnInvalid] = OnInvalid.OMIT

# Handlers return whether reconstruction of the current model continues.
_InvalidHandler = Callable[[str, Any, ForeignKey, int], bool]


def _drop(table: str, id_: Any, edge: ForeignKey, referenced_id: int) -> bool:
    return False


def _keep(table: str, id_: Any, edge: ForeignKey, referenced_id: int) -> bool:
    return True


def _throw(table: str, id_: Any, edge: ForeignKey, referenced_id: int) -> NoReturn:
    raise MissingReferenceError(table, id_, edge.name, edge.from_column, referenced_id)


_ON_INVALID: Final[Mapping[OnInvalid, _InvalidHandler]] = {
    OnInvalid.OMIT: _drop,
    OnInvalid.NULL: _drop,
    OnInvalid.THROW: _throw,
    OnInvalid.KEEP: _keep,
}


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def reconstruct(
    schema: Schema,
    table: str,
    flat: Mapping[str, Any],
    depth: int,
    models: ModelCollection,
    on_invalid: OnInvalid = DEFAULT_ON_INVALID,
) -> GatheredModel | None:
    """Rebuild *flat* with its references resolved up to *depth* hops.

    Args:
        schema: Schema declaring the edges of *table*.
        table: Table *flat* belongs to.
        flat: The row's own columns.
        depth: Hops still allowed below this model. ``0`` returns the bare row.
        models: Every row the gather fetched.
        on_invalid: Policy for references to rows missing from *models*.

    Returns:
        The gathered model, or ``None`` when the policy dropped it.

    Raises:
        ModelGatherError: The row's primary key is not a positive integer.
        InvalidReferenceValueError: A foreign key column holds a malformed value.
        MissingReferenceError: A reference is missing and the policy is ``throw``.
    """
    if depth == 0:
        return GatheredModel(table, 0, flat)

    table_schema = schema.table(table)
    id_ = flat.get(table_schema.primary_key)
    if not _is_int(id_) or id_ <= 0:
        raise ModelGatherError(
            table,
            id_,
            f"Invalid looking primary key {table_schema.primary_key!r}, expected positive number",
        )

    handle_invalid = _ON_INVALID[on_invalid]
    slots: dict[str, GatheredModel | None] = {}
    for edge in schema.edges(table).values():
        value = flat.get(edge.from_column)
        if value is not None and (not _is_int(value) or value < 0):
            raise InvalidReferenceValueError(table, id_, edge.name, edge.from_column, value)

        referenced: FlatModel | None = None
        if value:
            referenced = models.get(edge.to_table, value)
            if referenced is None and not handle_invalid(table, id_, edge, value):
                return None

        if referenced is None:
            slots[edge.name] = None
            continue

        nested = reconstruct(schema, edge.to_table, referenced, depth - 1, models, on_invalid)
        if nested is None:
            return None

        slots[edge.name] = nested

    return GatheredModel(table, depth, flat, **slots)


def reconstruct_rows(
    schema: Schema,
    table: str,
    rows: Iterable[ParsedRow],
    depth: int,
    models: ModelCollection,
    on_invalid: OnInvalid = DEFAULT_ON_INVALID,
) -> list[GatheredModel | None]:
    """:func:`reconstruct` the root model of every parsed row, in row order.

    The root alias of a gather query is the root table's name.
    """
    out: list[GatheredModel | None] = []
    for row in rows:
        flat = row[table]
        out.append(
            None
            if flat is None
            else reconstruct(schema, table, flat, depth, models, on_invalid)
        )

    return out
