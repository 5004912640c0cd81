from __future__ import annotations

import pytest

from sqla_gather.collection import ModelCollection
from sqla_gather.datastructures import GatheredModel
from sqla_gather.exceptions import (
    InvalidReferenceValueError,
    MissingReferenceError,
    ModelGatherError,
)
from sqla_gather.reconstruct import DEFAULT_ON_INVALID, OnInvalid, reconstruct, reconstruct_rows
from sqla_gather.schema import Schema
from sqla_gather.selector import ParsedRow


IMAGE = {"id": 1, "width": 100, "height": 200, "url": "http://example.com/image1.png"}
ALICE = {"id": 5, "name": "Alice", "avatar_img_id": 1}
BOB = {"id": 6, "name": "Bob", "avatar_img_id": None}
DAVE = {"id": 7, "name": "Dave", "avatar_img_id": 999}


@pytest.fixture
def models() -> ModelCollection:
    return ModelCollection().add("media_item", IMAGE).add("user", ALICE).add("user", BOB).add("user", DAVE)


class TestReconstruct:
    def test_resolves_reference(self, schema: Schema, models: ModelCollection) -> None:
        user = reconstruct(schema, "user", ALICE, 3, models)

        assert user == GatheredModel("user", 3, ALICE, avatar_img=GatheredModel("media_item", 2, IMAGE))
        assert user is not None
        assert user["avatar_img"].depth == 2

    def test_null_reference(self, schema: Schema, models: ModelCollection) -> None:
        user = reconstruct(schema, "user", BOB, 3, models)
        assert user == GatheredModel("user", 3, BOB, avatar_img=None)

    def test_zero_reference_is_null(self, schema: Schema, models: ModelCollection) -> None:
        flat = {"id": 9, "name": "Zed", "avatar_img_id": 0}
        user = reconstruct(schema, "user", flat, 3, models, OnInvalid.THROW)

        assert user is not None
        assert user["avatar_img"] is None

    def test_depth_zero_is_bare_row(self, schema: Schema, models: ModelCollection) -> None:
        user = reconstruct(schema, "user", ALICE, 0, models)

        assert user == GatheredModel("user", 0, ALICE)
        assert "avatar_img" not in user  # type: ignore[operator]

    def test_depth_zero_skips_validation(self, schema: Schema) -> None:
        flat = {"id": None, "name": "x", "avatar_img_id": "bogus"}
        assert reconstruct(schema, "user", flat, 0, ModelCollection()) == flat

    def test_default_policy_is_omit(self) -> None:
        assert DEFAULT_ON_INVALID is OnInvalid.OMIT

    def test_policy_from_string(self) -> None:
        assert OnInvalid("keep") is OnInvalid.KEEP


class TestInvalidReferencePolicies:
    @pytest.mark.parametrize("on_invalid", [OnInvalid.OMIT, OnInvalid.NULL])
    def test_dropped(self, schema: Schema, models: ModelCollection, on_invalid: OnInvalid) -> None:
        assert reconstruct(schema, "user", DAVE, 3, models, on_invalid) is None

    def test_keep(self, schema: Schema, models: ModelCollection) -> None:
        user = reconstruct(schema, "user", DAVE, 3, models, OnInvalid.KEEP)
        assert user == GatheredModel("user", 3, DAVE, avatar_img=None)

    def test_throw(self, schema: Schema, models: ModelCollection) -> None:
        with pytest.raises(MissingReferenceError) as exc_info:
            reconstruct(schema, "user", DAVE, 3, models, OnInvalid.THROW)

        error = exc_info.value
        assert (error.table, error.id, error.edge, error.column, error.referenced_id) == (
            "user",
            7,
            "avatar_img",
            "avatar_img_id",
            999,
        )
        assert str(error) == (
            "Failed to gather model (table: 'user', id: 7): Could not find model for "
            "FK reference 'avatar_img' (column: 'avatar_img_id') for id 999"
        )

    def test_drop_propagates_to_root(self, schema: Schema, models: ModelCollection) -> None:
        post = {"id": 3, "author_id": 7, "title": "Orphan", "description": None, "banner_img_id": None, "topic_id": None}
        assert reconstruct(schema, "post", post, 3, models) is None

    def test_keep_continues_nested(self, schema: Schema, models: ModelCollection) -> None:
        post = {"id": 3, "author_id": 7, "title": "Orphan", "description": None, "banner_img_id": None, "topic_id": None}
        gathered = reconstruct(schema, "post", post, 3, models, OnInvalid.KEEP)

        assert gathered is not None
        assert gathered["author"] == GatheredModel("user", 2, DAVE, avatar_img=None)

    def test_missing_reference_below_depth_is_ignored(self, schema: Schema, models: ModelCollection) -> None:
        post = {"id": 3, "author_id": 7, "title": "Orphan", "description": None, "banner_img_id": None, "topic_id": None}
        gathered = reconstruct(schema, "post", post, 1, models, OnInvalid.THROW)

        assert gathered is not None
        assert gathered["author"] == GatheredModel("user", 0, DAVE)


class TestInvalidValues:
    @pytest.mark.parametrize("on_invalid", list(OnInvalid))
    @pytest.mark.parametrize("value", ["1", -1, 1.0, True])
    def test_invalid_reference_value_is_fatal(
        self, schema: Schema, models: ModelCollection, value: object, on_invalid: OnInvalid
    ) -> None:
        flat = {"id": 9, "name": "Zed", "avatar_img_id": value}
        with pytest.raises(InvalidReferenceValueError) as exc_info:
            reconstruct(schema, "user", flat, 3, models, on_invalid)

        assert exc_info.value.value == value
        assert exc_info.value.edge == "avatar_img"
        assert isinstance(exc_info.value, TypeError)

    @pytest.mark.parametrize("id_", [None, 0, -2, "5"])
    def test_invalid_primary_key(self, schema: Schema, models: ModelCollection, id_: object) -> None:
        flat = {"id": id_, "name": "Zed", "avatar_img_id": None}
        with pytest.raises(ModelGatherError, match="primary key"):
            reconstruct(schema, "user", flat, 1, models)


class TestSharedRows:
    def test_each_occurrence_is_independent(self, schema: Schema, models: ModelCollection) -> None:
        carol = {"id": 8, "name": "Carol", "avatar_img_id": 1}
        models.add("user", carol)

        alice = reconstruct(schema, "user", ALICE, 2, models)
        carol_model = reconstruct(schema, "user", carol, 2, models)

        assert alice is not None and carol_model is not None
        assert alice["avatar_img"] == carol_model["avatar_img"]
        assert alice["avatar_img"] is not carol_model["avatar_img"]
        assert len(models.table("media_item")) == 1


class TestReconstructRows:
    def test_keeps_row_order_and_drops(self, schema: Schema, models: ModelCollection) -> None:
        rows = [
            ParsedRow(row={}, models={"user": models.get("user", 5)}),
            ParsedRow(row={}, models={"user": models.get("user", 7)}),
            ParsedRow(row={}, models={"user": models.get("user", 6)}),
        ]
        gathered = reconstruct_rows(schema, "user", rows, 1, models, OnInvalid.NULL)

        assert [model and model["id"] for model in gathered] == [5, None, 6]
