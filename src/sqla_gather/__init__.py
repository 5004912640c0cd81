"""Single-query foreign key gathering for SQLAlchemy.

sqla_gather fetches a row together with every row its foreign keys reach,
up to a depth bound, in one LEFT JOIN query, and rebuilds the result as
nested ``GatheredModel`` mappings. Register a ``Schema`` at startup with
``init_schema(get_schema(Base.metadata))``, then call
``await gather_one(session, "user", 5)``. Cyclic foreign key graphs are fine:
only the depth bounds the joins.
"""

from ._version import __version__, __version_tuple__
from .collection import ModelCollection
from .core import (
    JOIN_WARNING_THRESHOLD,
    MAX_GATHER_DEPTH,
    GatherBuilder,
    GatherPlan,
    gather_cache_clear,
    gather_cache_info,
    gather_select,
)
from .datastructures import GatheredModel, frozendict
from .exceptions import (
    DuplicateAliasError,
    GatherError,
    InvalidDepthError,
    InvalidReferenceValueError,
    MissingModelError,
    MissingReferenceError,
    MissingResultError,
    ModelGatherError,
    SchemaError,
    UnknownTableError,
)
from .gather import gather, gather_models, gather_one, gather_one_strict, gather_rows, gather_some
from .reconstruct import DEFAULT_ON_INVALID, OnInvalid, reconstruct
from .result import GatherOneResult, GatherOneStrictResult, GatherSomeResult, is_gather_result
from .schema import ForeignKey, Registry, Schema, SchemaBuilder, TableSchema, get_schema, init_schema
from .selector import QueryContext
from .tools import by_id, get_primary_key, get_table_names, resolve_col


__all__ = (
    "DEFAULT_ON_INVALID",
    "JOIN_WARNING_THRESHOLD",
    "MAX_GATHER_DEPTH",
    "DuplicateAliasError",
    "ForeignKey",
    "GatherBuilder",
    "GatherError",
    "GatherOneResult",
    "GatherOneStrictResult",
    "GatherPlan",
    "GatherSomeResult",
    "GatheredModel",
    "InvalidDepthError",
    "InvalidReferenceValueError",
    "MissingModelError",
    "MissingReferenceError",
    "MissingResultError",
    "ModelCollection",
    "ModelGatherError",
    "OnInvalid",
    "QueryContext",
    "Registry",
    "Schema",
    "SchemaBuilder",
    "SchemaError",
    "TableSchema",
    "UnknownTableError",
    "__version__",
    "__version_tuple__",
    "by_id",
    "frozendict",
    "gather",
    "gather_cache_clear",
    "gather_cache_info",
    "gather_models",
    "gather_one",
    "gather_one_strict",
    "gather_rows",
    "gather_select",
    "gather_some",
    "get_primary_key",
    "get_schema",
    "get_table_names",
    "init_schema",
    "is_gather_result",
    "reconstruct",
    "resolve_col",
)
