from __future__ import annotations

import sys
from collections.abc import Iterator, Mapping
from types import MappingProxyType
from typing import Any

from .datastructures import frozendict
from .exceptions import MissingModelError


if sys.version_info >= (3, 11):
    from typing import Self
else:
    from typing_extensions import Self


FlatModel = frozendict[str, Any]


def _valid_id(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value != 0


class ModelCollection:
    """Flat rows grouped by table name and keyed by primary key.

    Filled by a gather call with every row the query returned, each stored
    once no matter how many paths reached it. Rows without a usable integer
    primary key are ignored; a later row with the same ``(table, id)``
    replaces the earlier one.

    Pass a collection to several gather calls to accumulate everything they
    fetched, then answer follow-up lookups without another query::

        models = ModelCollection()
        await gather_one(session, "post", 1, models=models)
        author = models.get("user", 3)
    """

    __slots__ = ("_models",)

    def __init__(self, init: Mapping[str, Mapping[int, Mapping[str, Any]]] | None = None) -> None:
        self._models: dict[str, dict[int, FlatModel]] = {}
        for table, rows in (init or {}).items():
            for id_, row in rows.items():
                if _valid_id(id_):
                    self._models.setdefault(table, {})[id_] = frozendict(row)

    def add(self, table: str, model: Mapping[str, Any] | None, *, key: str = "id") -> Self:
        """Store *model* under ``(table, model[key])``; ignored when the key is unusable."""
        if model is None or not _valid_id(id_ := model.get(key)):
            return self

        self._models.setdefault(table, {})[id_] = (
            model if isinstance(model, frozendict) else frozendict(model)
        )
        return self

    def add_collection(self, other: ModelCollection) -> Self:
        """Merge every model of *other* into this collection."""
        for table, rows in other._models.items():
            self._models.setdefault(table, {}).update(rows)
        return self

    def get(self, table: str, id: int) -> FlatModel | None:  # noqa: A002
        """Return the flat model for ``(table, id)``, or ``None``."""
        return self._models.get(table, {}).get(id)

    def require(self, table: str, id: int) -> FlatModel:  # noqa: A002
        """Like :meth:`get`, but raise :class:`MissingModelError` on a miss."""
        if (model := self.get(table, id)) is None:
            raise MissingModelError(table, id)
        return model

    def table(self, table: str) -> Mapping[int, FlatModel]:
        """Read-only view of all models of *table*, keyed by id."""
        return MappingProxyType(self._models.get(table, {}))

    def tables(self) -> tuple[str, ...]:
        return tuple(self._models)

    def __contains__(self, item: object) -> bool:
        if not isinstance(item, tuple) or len(item) != 2:  # noqa: PLR2004
            return False
        table, id_ = item
        return id_ in self._models.get(table, {})

    def __iter__(self) -> Iterator[tuple[str, int, FlatModel]]:
        for table, rows in self._models.items():
            for id_, model in rows.items():
                yield table, id_, model

    def __len__(self) -> int:
        return sum(len(rows) for rows in self._models.values())

    def __repr__(self) -> str:
        counts = ", ".join(f"{table}={len(rows)}" for table, rows in self._models.items())
        return f"<{type(self).__name__} {counts}>"
