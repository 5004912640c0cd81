"""Example models for sqla-gather usage demonstrations."""

from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy import orm


class Base(orm.DeclarativeBase):
    pass


class MediaItem(Base):
    __tablename__ = "media_item"

    id: orm.Mapped[int] = orm.mapped_column(primary_key=True)
    url: orm.Mapped[str] = orm.mapped_column(sa.Text)
    width: orm.Mapped[int] = orm.mapped_column()
    height: orm.Mapped[int] = orm.mapped_column()


class User(Base):
    __tablename__ = "users"

    id: orm.Mapped[int] = orm.mapped_column(primary_key=True)
    name: orm.Mapped[str] = orm.mapped_column(sa.String(100))
    active: orm.Mapped[bool] = orm.mapped_column(default=True)
    avatar_img_id: orm.Mapped[int | None] = orm.mapped_column(sa.ForeignKey("media_item.id"))


class Category(Base):
    __tablename__ = "categories"

    id: orm.Mapped[int] = orm.mapped_column(primary_key=True)
    name: orm.Mapped[str] = orm.mapped_column(sa.String(100))
    parent_id: orm.Mapped[int | None] = orm.mapped_column(sa.ForeignKey("categories.id"))


class Post(Base):
    __tablename__ = "posts"

    id: orm.Mapped[int] = orm.mapped_column(primary_key=True)
    title: orm.Mapped[str] = orm.mapped_column(sa.String(200))
    body: orm.Mapped[str] = orm.mapped_column(sa.Text, default="")
    author_id: orm.Mapped[int] = orm.mapped_column(sa.ForeignKey("users.id"))
    category_id: orm.Mapped[int | None] = orm.mapped_column(sa.ForeignKey("categories.id"))
    banner_img_id: orm.Mapped[int | None] = orm.mapped_column(sa.ForeignKey("media_item.id"))


class Comment(Base):
    __tablename__ = "comments"

    id: orm.Mapped[int] = orm.mapped_column(primary_key=True)
    text: orm.Mapped[str] = orm.mapped_column(sa.Text)
    post_id: orm.Mapped[int] = orm.mapped_column(sa.ForeignKey("posts.id"))
    author_id: orm.Mapped[int] = orm.mapped_column(sa.ForeignKey("users.id"))
    # replying to another comment makes the graph self-referential
    reply_to_id: orm.Mapped[int | None] = orm.mapped_column(sa.ForeignKey("comments.id"))


# composite primary key: not gathered
post_likes = sa.Table(
    "post_likes",
    Base.metadata,
    sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id"), primary_key=True),
    sa.Column("post_id", sa.Integer, sa.ForeignKey("posts.id"), primary_key=True),
)
