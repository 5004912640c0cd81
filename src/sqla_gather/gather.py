from __future__ import annotations

import logging
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol, overload


if sys.version_info >= (3, 11):
    from typing import TypedDict, Unpack
else:
    from typing_extensions import TypedDict, Unpack

import sqlalchemy as sa

from .collection import ModelCollection
from .core import MAX_GATHER_DEPTH, Where, check_depth, plan_gather
from .datastructures import GatheredModel
from .reconstruct import DEFAULT_ON_INVALID, OnInvalid, reconstruct_rows
from .result import GatherKind, GatherOneResult, GatherOneStrictResult, GatherResult, GatherSomeResult
from .schema import Registry, Schema


logger = logging.getLogger(__name__)


class Executor(Protocol):
    """Anything that executes a statement asynchronously, e.g. ``AsyncSession`` or ``AsyncConnection``."""

    async def execute(self, statement: sa.Executable) -> sa.Result[Any]: ...


@dataclass(slots=True, frozen=True)
class _GatherParams:
    depth: int = field(default=MAX_GATHER_DEPTH)
    on_invalid: OnInvalid = field(default=DEFAULT_ON_INVALID)
    models: ModelCollection | None = field(default=None)
    schema: Schema = field(default_factory=lambda: Registry().schema)

    def __post_init__(self) -> None:
        check_depth(self.depth)
        object.__setattr__(self, "on_invalid", OnInvalid(self.on_invalid))


class _GatherParamsType(TypedDict, total=False):
    depth: int
    on_invalid: OnInvalid | Literal["omit", "null", "throw", "keep"]
    models: ModelCollection
    schema: Schema


def gather_rows(
    rows: Sequence[Mapping[str, Any]],
    table: str,
    **params: Unpack[_GatherParamsType],
) -> list[GatheredModel | None]:
    """Turn the raw rows of a :func:`gather_select` query into gathered models.

    This is the synchronous half of every gather call, usable on its own when
    the query runs on a synchronous ``Session`` or ``Connection``::

        query = gather_select("user", 5)
        rows = session.execute(query).mappings().all()
        (user,) = gather_rows(rows, "user")

    Returns one entry per row, in row order; ``None`` where the ``on_invalid``
    policy dropped the root. When ``models`` is given, every fetched row is
    merged into it.
    """
    return _gather_rows(rows, table, _GatherParams(**params))[0]


def _gather_rows(
    rows: Sequence[Mapping[str, Any]],
    table: str,
    params: _GatherParams,
) -> tuple[list[GatheredModel | None], ModelCollection]:
    plan = plan_gather(params.schema, table, params.depth)
    parsed = plan.context.run(rows)
    gathered = reconstruct_rows(
        params.schema,
        table,
        parsed.rows,
        params.depth,
        parsed.models,
        params.on_invalid,
    )

    models = parsed.models
    if params.models is not None:
        models = params.models.add_collection(parsed.models)

    logger.debug(
        "Gathered %d %r rows (%d models) at depth %d, %d dropped",
        len(gathered),
        table,
        len(parsed.models),
        params.depth,
        gathered.count(None),
    )
    return gathered, models


def _without_omitted(
    gathered: list[GatheredModel | None],
    on_invalid: OnInvalid,
) -> list[GatheredModel | None]:
    if on_invalid is OnInvalid.OMIT:
        return [model for model in gathered if model is not None]

    return gathered


async def _execute(
    session: Executor,
    table: str,
    where: Where,
    params: _GatherParams,
) -> tuple[list[GatheredModel | None], ModelCollection]:
    query = plan_gather(params.schema, table, params.depth).select(where)
    result = await session.execute(query)
    return _gather_rows(result.mappings().all(), table, params)


async def gather_models(
    session: Executor,
    table: str,
    where: Where = None,
    **params: Unpack[_GatherParamsType],
) -> list[GatheredModel | None]:
    """Fetch *table* rows matching *where* with every referenced row, in one query.

    Args:
        session: ``AsyncSession`` or ``AsyncConnection`` to run the query on.
        table: Root table name.
        where: Root filter. One of:

            * ``int`` - primary key
            * sequence of ``int`` - several primary keys
            * callable taking the root FROM clause, e.g. ``by_id(1, 2)``
            * boolean clause, e.g. ``User.name == "alice"``
            * ``None`` - every row
        depth: int
            Foreign key hops to resolve. Defaults to ``MAX_GATHER_DEPTH``.
        on_invalid: OnInvalid | str
            Policy for references to missing rows. Defaults to ``"omit"``.
        models: ModelCollection
            Collection to merge every fetched row into.
        schema: Schema
            Defaults to the schema registered with :func:`init_schema`.

    Returns:
        Gathered models ordered by primary key. Roots dropped by ``omit`` are
        left out; roots dropped by ``null`` stay as ``None`` at their position.
    """
    settings = _GatherParams(**params)
    gathered, _ = await _execute(session, table, where, settings)
    return _without_omitted(gathered, settings.on_invalid)


async def gather_one(
    session: Executor,
    table: str,
    where: Where,
    **params: Unpack[_GatherParamsType],
) -> GatherOneResult:
    """Gather the first matching model, or ``None``.

    Example:
        >>> result = await gather_one(session, "user", 5)
        >>> result.result["avatar_img"]["url"]
        'a.png'
    """
    settings = _GatherParams(**params)
    gathered, models = await _execute(session, table, where, settings)
    gathered = _without_omitted(gathered, settings.on_invalid)
    return GatherOneResult(
        table=table,
        depth=settings.depth,
        models=models,
        result=gathered[0] if gathered else None,
    )


async def gather_one_strict(
    session: Executor,
    table: str,
    where: Where,
    **params: Unpack[_GatherParamsType],
) -> GatherOneStrictResult:
    """Like :func:`gather_one`, but raise :class:`MissingResultError` when nothing is found."""
    result = await gather_one(session, table, where, **params)
    return result.as_one_strict()


async def gather_some(
    session: Executor,
    table: str,
    where: Where = None,
    **params: Unpack[_GatherParamsType],
) -> GatherSomeResult:
    """Gather every matching model; dropped roots are left out."""
    settings = _GatherParams(**params)
    gathered, models = await _execute(session, table, where, settings)
    return GatherSomeResult(
        table=table,
        depth=settings.depth,
        models=models,
        result=[model for model in gathered if model is not None],
    )


@overload
async def gather(
    session: Executor,
    table: str,
    where: Where = ...,
    *,
    kind: Literal["one"],
    **params: Unpack[_GatherParamsType],
) -> GatherOneResult: ...


@overload
async def gather(
    session: Executor,
    table: str,
    where: Where = ...,
    *,
    kind: Literal["one_strict"],
    **params: Unpack[_GatherParamsType],
) -> GatherOneStrictResult: ...


@overload
async def gather(
    session: Executor,
    table: str,
    where: Where = ...,
    *,
    kind: Literal["some"] = ...,
    **params: Unpack[_GatherParamsType],
) -> GatherSomeResult: ...


async def gather(
    session: Executor,
    table: str,
    where: Where = None,
    *,
    kind: GatherKind = "some",
    **params: Unpack[_GatherParamsType],
) -> GatherResult:
    """Gather *table* rows with the result shape selected by *kind*.

    ``"one"`` and ``"one_strict"`` behave like :func:`gather_one` and
    :func:`gather_one_strict`, ``"some"`` like :func:`gather_some`.
    """
    if kind == "one":
        return await gather_one(session, table, where, **params)
    if kind == "one_strict":
        return await gather_one_strict(session, table, where, **params)
    if kind == "some":
        return await gather_some(session, table, where, **params)

    raise ValueError(f"Unknown gather kind: {kind!r}")
