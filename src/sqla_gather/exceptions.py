"""Error types raised while planning, executing and reconstructing gathers."""

from __future__ import annotations

from typing import Any


class GatherError(Exception):
    """Base error for sqla_gather."""

    pass


class SchemaError(GatherError, ValueError):
    """Invalid table or foreign key declaration."""

    pass


class UnknownTableError(SchemaError, KeyError):
    """Table is not registered in the schema."""

    def __init__(self, table: str) -> None:
        super().__init__(f"Table not registered in schema: {table!r}")
        self.table = table

    def __str__(self) -> str:
        return str(self.args[0])


class DuplicateAliasError(GatherError, ValueError):
    """Alias already used by another selector of the same query."""

    def __init__(self, alias: str) -> None:
        super().__init__(f"Alias already registered in query context: {alias!r}")
        self.alias = alias


class InvalidDepthError(GatherError, ValueError):
    """Gather depth is not a non-negative integer."""

    def __init__(self, depth: object) -> None:
        super().__init__(f"Gather depth must be a non-negative integer, got: {depth!r}")
        self.depth = depth


class ModelGatherError(GatherError):
    """A single model could not be gathered."""

    def __init__(self, table: str, id: Any, reason: str) -> None:  # noqa: A002
        super().__init__(f"Failed to gather model (table: {table!r}, id: {id}): {reason}")
        self.table = table
        self.id = id


class InvalidReferenceValueError(ModelGatherError, TypeError):
    """Foreign key column holds something other than null or a non-negative integer."""

    def __init__(self, table: str, id: Any, edge: str, column: str, value: Any) -> None:  # noqa: A002
        super().__init__(
            table,
            id,
            f"Invalid looking FK value for reference {edge!r} (column: {column!r}). "
            f"Expected positive number, got: {value!r}",
        )
        self.edge = edge
        self.column = column
        self.value = value


class MissingReferenceError(ModelGatherError):
    """Foreign key points to a row that is not in the fetched result set."""

    def __init__(
        self,
        table: str,
        id: Any,  # noqa: A002
        edge: str,
        column: str,
        referenced_id: Any,
    ) -> None:
        super().__init__(
            table,
            id,
            f"Could not find model for FK reference {edge!r} (column: {column!r}) "
            f"for id {referenced_id}",
        )
        self.edge = edge
        self.column = column
        self.referenced_id = referenced_id


class MissingResultError(GatherError, LookupError):
    """Exactly one result was requested but none matched."""

    def __init__(self, table: str) -> None:
        super().__init__(f"Expected exactly one {table!r} model, got none")
        self.table = table


class MissingModelError(GatherError, KeyError):
    """Model not found in a ModelCollection."""

    def __init__(self, table: str, id: Any) -> None:  # noqa: A002
        super().__init__(f"Model not found in ModelCollection for table {table!r} with id {id}")
        self.table = table
        self.id = id

    def __str__(self) -> str:
        return str(self.args[0])
