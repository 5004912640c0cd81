"""Basic sqla-gather usage examples.

Demonstrates initialization, single and batch gathers, depth,
filters, invalid-reference policies and model collections.

NOTE: This file is illustrative; it won't run standalone
without a database and seeded data.
"""

from __future__ import annotations

import logging

from sqlalchemy import orm
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine

from sqla_gather import (
    GatheredModel,
    ModelCollection,
    OnInvalid,
    by_id,
    gather_models,
    gather_one,
    gather_one_strict,
    gather_rows,
    gather_select,
    gather_some,
    get_schema,
    init_schema,
    resolve_col,
)

from .models import Base, Post, User


# ── 1. Initialize once at startup ────────────────────────────────────

engine = create_async_engine("sqlite+aiosqlite:///:memory:")


async def setup() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # Call once: introspects tables and foreign keys into a singleton schema
    init_schema(get_schema(Base))

    # Plan sizes and dropped roots are logged at DEBUG
    logging.getLogger("sqla_gather").setLevel(logging.DEBUG)


# ── 2. One row with everything it references ─────────────────────────


async def get_post(session: AsyncSession, post_id: int) -> GatheredModel | None:
    # post -> author -> avatar_img, post -> category -> parent -> parent, ...
    result = await gather_one(session, "posts", post_id)
    return result.result


async def get_post_or_fail(session: AsyncSession, post_id: int) -> GatheredModel:
    # Raises MissingResultError when the post does not exist
    result = await gather_one_strict(session, "posts", post_id)
    return result.result


# ── 3. Depth ─────────────────────────────────────────────────────────


async def get_post_shallow(session: AsyncSession, post_id: int) -> GatheredModel | None:
    # Only the post's direct references; author["avatar_img"] is not resolved
    result = await gather_one(session, "posts", post_id, depth=1)
    return result.result


# ── 4. Batches and filters ───────────────────────────────────────────


async def get_posts(session: AsyncSession, ids: list[int]) -> list[GatheredModel]:
    result = await gather_some(session, "posts", ids)
    return result.result


async def get_posts_by_author(session: AsyncSession, author_id: int) -> list[GatheredModel]:
    result = await gather_some(session, "posts", Post.author_id == author_id)
    return result.result


async def get_active_users(session: AsyncSession) -> list[GatheredModel]:
    result = await gather_some(session, "users", lambda users: users.c.active.is_(True))
    return result.result


async def get_users(session: AsyncSession) -> list[GatheredModel]:
    result = await gather_some(session, "users", by_id(1, 2, 3))
    return result.result


# ── 5. Invalid references ────────────────────────────────────────────


async def get_users_strict(session: AsyncSession) -> list[GatheredModel]:
    # Raise MissingReferenceError instead of silently dropping broken rows
    result = await gather_some(session, "users", on_invalid=OnInvalid.THROW)
    return result.result


async def get_users_by_position(session: AsyncSession, ids: list[int]) -> list[GatheredModel | None]:
    # One entry per fetched row; broken rows stay as None
    return await gather_models(session, "users", ids, on_invalid="null")


async def get_users_lenient(session: AsyncSession) -> list[GatheredModel]:
    # Broken references become None, the rest of the row is kept
    result = await gather_some(session, "users", on_invalid="keep")
    return result.result


# ── 6. Reusing fetched rows ──────────────────────────────────────────


async def get_post_and_author_name(session: AsyncSession, post_id: int) -> str | None:
    models = ModelCollection()
    await gather_one(session, "posts", post_id, depth=1, models=models)

    post = models.get("posts", post_id)
    if post is None:
        return None

    # Already fetched by the gather above, no second query
    return models.require("users", post["author_id"])["name"]


# ── 7. Building the query yourself ───────────────────────────────────


def get_users_with_avatar_sync(session: orm.Session) -> list[GatheredModel | None]:
    query = gather_select("users", depth=1)
    query = query.where(resolve_col(query, "fk1.url").is_not(None))

    rows = session.execute(query).mappings().all()
    return gather_rows(rows, "users", depth=1)


async def get_user_plain(session: AsyncSession, user_id: int) -> dict | None:
    result = await gather_one(session, "users", User.id == user_id)
    return result.result.to_dict() if result.result is not None else None
