"""Self-referential foreign key gathering example.

Demonstrates walking up a Category parent chain and a comment reply
thread. The depth bounds the joins: a category nested five levels deep
gathered with ``depth=3`` resolves three parents and leaves the fourth
as a bare row.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from sqla_gather import GatheredModel, gather_one, gather_select, get_table_names


async def get_category_with_ancestors(session: AsyncSession, category_id: int) -> GatheredModel | None:
    # categories -> parent (fk1) -> parent (fk2) -> parent (fk3)
    result = await gather_one(session, "categories", category_id, depth=3)
    return result.result


def category_path(category: GatheredModel | None) -> list[str]:
    """``["child", "parent", "root"]`` for a gathered category."""
    names: list[str] = []
    while category is not None:
        names.append(category["name"])
        category = category.get("parent")
    return names


async def get_reply_thread(session: AsyncSession, comment_id: int) -> GatheredModel | None:
    # Each hop also resolves the reply's post and author, so keep it shallow
    result = await gather_one(session, "comments", comment_id, depth=2)
    return result.result


def show_category_aliases() -> list[str]:
    # ['categories', 'fk1', 'fk2', 'fk3']
    return get_table_names(gather_select("categories", depth=3))
