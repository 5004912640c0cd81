from __future__ import annotations

import pytest
import sqlalchemy as sa

from sqla_gather.collection import ModelCollection
from sqla_gather.exceptions import DuplicateAliasError, UnknownTableError
from sqla_gather.schema import Schema
from sqla_gather.selector import QueryContext, Selector


def _compile(query: sa.Select) -> str:
    return str(query.compile(compile_kwargs={"literal_binds": True}))


class TestSelector:
    def test_root_keeps_table_name(self, schema: Schema) -> None:
        selector = Selector(schema.table("user"), "user")
        assert selector.from_clause.name == "user"

    def test_labels(self, schema: Schema) -> None:
        selector = Selector(schema.table("media_item"), "fk1")
        labels = [col.name for col in selector.cols()]

        assert labels == ["_fk1_id", "_fk1_width", "_fk1_height", "_fk1_url"]
        assert "fk1.url AS _fk1_url" in _compile(sa.select(selector.col("url")))

    def test_parse(self, schema: Schema) -> None:
        selector = Selector(schema.table("media_item"), "fk1")
        row = {"_fk1_id": 1, "_fk1_width": 10, "_fk1_height": 20, "_fk1_url": "a.png", "_user_id": 5}

        assert selector.parse(row) == {"id": 1, "width": 10, "height": 20, "url": "a.png"}

    def test_parse_unmatched_join(self, schema: Schema) -> None:
        selector = Selector(schema.table("media_item"), "fk1")
        row = {"_fk1_id": None, "_fk1_width": None, "_fk1_height": None, "_fk1_url": None}

        assert selector.parse(row) is None


class TestQueryContext:
    def test_add_and_lookup(self, schema: Schema) -> None:
        ctx = QueryContext(schema).add("user", "user").add("media_item", "fk1")

        assert len(ctx) == 2
        assert "fk1" in ctx
        assert [selector.alias for selector in ctx] == ["user", "fk1"]
        assert ctx["fk1"].table.name == "media_item"

    def test_duplicate_alias(self, schema: Schema) -> None:
        ctx = QueryContext(schema).add("user", "u")
        with pytest.raises(DuplicateAliasError, match="'u'"):
            ctx.add("media_item", "u")

    def test_unknown_table(self, schema: Schema) -> None:
        with pytest.raises(UnknownTableError):
            QueryContext(schema).add("comment", "c")

    def test_cols_subset(self, schema: Schema) -> None:
        ctx = QueryContext(schema).add("user", "u").add("media_item", "m")
        assert [col.name for col in ctx.cols("m")] == ["_m_id", "_m_width", "_m_height", "_m_url"]
        assert len(ctx.cols()) == 7

    def test_col(self, schema: Schema) -> None:
        ctx = QueryContext(schema).add("user", "u")
        assert ctx.col("u.name").name == "_u_name"

    def test_col_bad_format(self, schema: Schema) -> None:
        ctx = QueryContext(schema).add("user", "u")
        with pytest.raises(ValueError, match="alias.column"):
            ctx.col("name")

    def test_run(self, schema: Schema) -> None:
        ctx = QueryContext(schema).add("user", "u").add("media_item", "m")
        rows = [
            {"_u_id": 5, "_u_name": "Alice", "_u_avatar_img_id": 1,
             "_m_id": 1, "_m_width": 10, "_m_height": 20, "_m_url": "a.png"},
            {"_u_id": 8, "_u_name": "Carol", "_u_avatar_img_id": 1,
             "_m_id": 1, "_m_width": 10, "_m_height": 20, "_m_url": "a.png"},
            {"_u_id": 6, "_u_name": "Bob", "_u_avatar_img_id": None,
             "_m_id": None, "_m_width": None, "_m_height": None, "_m_url": None},
        ]
        result = ctx.run(rows)

        assert len(result.rows) == 3
        assert result.rows[0]["m"] == {"id": 1, "width": 10, "height": 20, "url": "a.png"}
        assert result.rows[2]["m"] is None
        assert result.rows[2].row is rows[2]
        # the shared media item is stored once
        assert len(result.models.table("media_item")) == 1
        assert len(result.models.table("user")) == 3

    def test_run_into_collection(self, schema: Schema) -> None:
        models = ModelCollection().add("topic", {"id": 1})
        ctx = QueryContext(schema).add("media_item", "m")
        result = ctx.run([{"_m_id": 2, "_m_width": 1, "_m_height": 1, "_m_url": "b.png"}], models)

        assert result.models is models
        assert ("media_item", 2) in models
        assert ("topic", 1) in models
