from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Literal, TypeGuard, Union

from .collection import ModelCollection
from .datastructures import GatheredModel
from .exceptions import MissingResultError


GatherKind = Literal["one", "one_strict", "some"]


@dataclass(frozen=True, slots=True)
class _GatherResult:
    kind: ClassVar[GatherKind]

    table: str
    depth: int
    models: ModelCollection


@dataclass(frozen=True, slots=True)
class GatherOneResult(_GatherResult):
    """The first gathered model, or ``None`` when nothing matched."""

    kind: ClassVar[GatherKind] = "one"

    result: GatheredModel | None

    def as_one_strict(self) -> GatherOneStrictResult:
        """Convert to a strict result.

        Raises:
            MissingResultError: If there is no result.
        """
        return GatherOneStrictResult(
            table=self.table,
            depth=self.depth,
            models=self.models,
            result=self.result,  # type: ignore[arg-type]
        )


@dataclass(frozen=True, slots=True)
class GatherOneStrictResult(_GatherResult):
    """Exactly one gathered model. Building one without a result raises :class:`MissingResultError`."""

    kind: ClassVar[GatherKind] = "one_strict"

    result: GatheredModel

    def __post_init__(self) -> None:
        if self.result is None:
            raise MissingResultError(self.table)


@dataclass(frozen=True, slots=True)
class GatherSomeResult(_GatherResult):
    """Every gathered model, possibly none."""

    kind: ClassVar[GatherKind] = "some"

    result: list[GatheredModel]


GatherResult = Union[GatherOneResult, GatherOneStrictResult, GatherSomeResult]


def is_gather_result(
    value: Any,
    kind: GatherKind | None = None,
    *,
    table: str | None = None,
    depth: int | None = None,
) -> TypeGuard[GatherResult]:
    """Check that *value* is a gather result, optionally of the given kind, table and depth.

    Example:
        >>> result = await gather(session, "user", 5, kind="one")
        >>> is_gather_result(result, "one", table="user")
        True
    """
    if not isinstance(value, _GatherResult):
        return False

    return (
        (kind is None or value.kind == kind)
        and (table is None or value.table == table)
        and (depth is None or value.depth == depth)
    )
