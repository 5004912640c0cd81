from __future__ import annotations

import sys
from collections.abc import Iterator, Mapping
from typing import Any, TypeVar


if sys.version_info >= (3, 11):
    from typing import Self
else:
    from typing_extensions import Self


K = TypeVar("K")
V = TypeVar("V")


class frozendict(Mapping[K, V]):  # noqa: N801
    """Immutable dictionary implementation with hash support.

    This class provides a hashable, immutable dictionary that can be used
    as keys in other dictionaries or stored in sets. It implements the
    Mapping protocol and maintains the same interface as a regular dict
    for read operations.

    The hash is computed lazily on first use, so a frozendict holding
    unhashable values (e.g. JSON column payloads) can still be built and
    compared; only hashing it fails.

    Example:
        >>> fd = frozendict({"a": 1, "b": 2})
        >>> fd["a"]
        1
        >>> fd2 = fd.copy(c=3)  # Create new instance with additional items
        >>> fd2
        <frozendict {'a': 1, 'b': 2, 'c': 3}>
    """

    __slots__ = ("_dict", "_hash")

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        self._dict: dict[K, V] = dict(*args, **kwargs)
        self._hash: int | None = None

    def __getitem__(self, key: K) -> V:
        return self._dict[key]

    def __contains__(self, key: Any) -> bool:
        return key in self._dict

    def copy(self, **add_or_replace: Any) -> Self:
        """Create a new frozendict with additional or replaced items.

        Args:
            **add_or_replace: Keyword arguments for items to add or replace.

        Returns:
            New frozendict instance with the merged items.
        """
        return type(self)(self, **add_or_replace)

    def __iter__(self) -> Iterator[K]:
        return iter(self._dict)

    def __len__(self) -> int:
        return len(self._dict)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._dict!r}>"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, frozendict):
            return self._dict == other._dict

        if isinstance(other, dict):
            return self._dict == other

        return NotImplemented

    def __hash__(self) -> int:
        if self._hash is None:
            self._hash = hash(frozenset(self._dict.items()))

        return self._hash


class GatheredModel(frozendict[str, Any]):
    """A row with its foreign-key slots resolved to nested models.

    The mapping holds the row's own columns plus one key per foreign key
    edge declared on ``table``; each edge slot is either another
    ``GatheredModel`` (one level shallower) or ``None``. ``depth`` is the
    number of hops that were still eligible for expansion when this model was
    built, so a depth-0 model is the bare row.

    Two gathered models are equal when table, depth and items match.
    Comparing against a plain ``dict`` only looks at the items.

    Example:
        >>> avatar = GatheredModel("media_item", 2, {"id": 1, "url": "a.png"})
        >>> user = GatheredModel("user", 3, {"id": 5, "avatar_img_id": 1, "avatar_img": avatar})
        >>> user["avatar_img"].depth
        2
    """

    __slots__ = ("depth", "table")

    def __init__(
        self,
        table: str,
        depth: int,
        values: Mapping[str, Any] | None = None,
        /,
        **kwargs: Any,
    ) -> None:
        super().__init__(values or {}, **kwargs)
        self.table = table
        self.depth = depth

    def copy(self, **add_or_replace: Any) -> Self:
        return type(self)(self.table, self.depth, self, **add_or_replace)

    def to_dict(self) -> dict[str, Any]:
        """Return a plain, recursively converted ``dict`` of this model."""
        return {
            key: value.to_dict() if isinstance(value, GatheredModel) else value
            for key, value in self.items()
        }

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.table}@{self.depth} {self._dict!r}>"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, GatheredModel):
            return (
                self.table == other.table
                and self.depth == other.depth
                and self._dict == other._dict
            )

        return super().__eq__(other)

    def __hash__(self) -> int:
        return hash((self.table, self.depth, super().__hash__()))
