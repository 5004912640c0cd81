from __future__ import annotations

import os
from collections.abc import AsyncIterator, Iterator
from typing import Any, Final

import pytest
import sqlalchemy as sa
from sqlalchemy.ext.asyncio import (
    AsyncConnection,
    AsyncEngine,
    AsyncSession,
    create_async_engine,
)

from sqla_gather import gather_cache_clear
from sqla_gather.schema import Registry, Schema, get_schema, init_schema

from .models import Base, MediaItem, Post, PostTopic, Topic, User


# Backends that accept rows whose foreign keys point nowhere
DANGLING_BACKENDS: Final[frozenset[str]] = frozenset({"sqlite"})

pytestmark = pytest.mark.anyio


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--db",
        default="sqlite",
        choices=["postgres", "sqlite"],
        help="Database backend to test against",
    )


@pytest.fixture(scope="session")
def db_backend(request: pytest.FixtureRequest) -> str:
    value: str = request.config.getoption("--db")

    return value


@pytest.fixture(scope="session")
def allows_dangling(db_backend: str) -> bool:
    return db_backend in DANGLING_BACKENDS


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(scope="session", autouse=True)
def _init_schema() -> None:
    """Register the schema of the test models.

    Sync, no DB needed -- safe to run for all tests including unit tests.
    """
    try:
        Registry()
    except RuntimeError:
        Registry.reset()
        init_schema(get_schema(Base))


@pytest.fixture
def schema() -> Schema:
    return Registry().schema


@pytest.fixture(scope="session")
def db_config(db_backend: str, tmp_path_factory: pytest.TempPathFactory) -> Iterator[str]:
    match db_backend:
        case "postgres":
            from testcontainers.postgres import PostgresContainer

            pg = PostgresContainer(image="postgres:latest")
            if os.name == "nt":
                pg.get_container_host_ip = lambda: "127.0.0.1"
            with pg:
                host = pg.get_container_host_ip()
                dsn = (
                    f"postgresql+asyncpg://{pg.username}:{pg.password}"
                    f"@{host}:{pg.get_exposed_port(pg.port)}/{pg.dbname}"
                )
                yield dsn

        case "sqlite":
            tmp = tmp_path_factory.mktemp("db")
            yield f"sqlite+aiosqlite:///{tmp}/test.db"


@pytest.fixture(scope="session")
def engine(db_config: str) -> AsyncEngine:
    return create_async_engine(db_config, echo=False)


@pytest.fixture(scope="session")
async def _create_tables(engine: AsyncEngine) -> AsyncIterator[None]:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def connection(
    engine: AsyncEngine, _create_tables: None
) -> AsyncIterator[AsyncConnection]:
    async with engine.connect() as conn:
        trans = await conn.begin()
        yield conn
        await trans.rollback()


@pytest.fixture
async def session(connection: AsyncConnection) -> AsyncIterator[AsyncSession]:
    sess = AsyncSession(bind=connection, expire_on_commit=False)
    yield sess
    await sess.close()


@pytest.fixture
async def seed_data(session: AsyncSession) -> dict[str, list[Base]]:
    image = MediaItem(id=1, width=100, height=200, url="http://example.com/image1.png")
    banner = MediaItem(id=2, width=1200, height=300, url="http://example.com/banner.png")
    session.add_all([image, banner])
    await session.flush()

    alice = User(id=5, name="Alice", avatar_img_id=1)
    bob = User(id=6, name="Bob", avatar_img_id=None)
    carol = User(id=8, name="Carol", avatar_img_id=1)
    session.add_all([alice, bob, carol])
    await session.flush()

    main_post = Post(
        id=1,
        author_id=6,
        title="Main Post",
        description=None,
        banner_img_id=None,
        topic_id=None,
    )
    bannered = Post(
        id=2,
        author_id=5,
        title="Bannered",
        description="has a banner",
        banner_img_id=2,
        topic_id=None,
    )
    session.add_all([main_post, bannered])
    await session.flush()

    # post 1 and topic 1 reference each other
    topic = Topic(id=1, name="Interesting Topic", main_post_id=1)
    session.add(topic)
    await session.flush()
    await session.execute(sa.update(Post).where(Post.id == 1).values(topic_id=1))

    session.add_all([
        PostTopic(id=1, post_id=1, topic_id=1),
        PostTopic(id=2, post_id=2, topic_id=1),
    ])
    await session.flush()

    session.expunge_all()

    return {
        "media_items": [image, banner],
        "users": [alice, bob, carol],
        "posts": [main_post, bannered],
        "topics": [topic],
    }


@pytest.fixture
async def dangling_data(session: AsyncSession, seed_data: dict[str, list[Base]]) -> dict[str, list[Base]]:
    """User 7 points at media item 999, which does not exist."""
    dave = User(id=7, name="Dave", avatar_img_id=999)
    orphan_post = Post(id=3, author_id=7, title="Orphan", description=None, banner_img_id=None, topic_id=None)
    session.add(dave)
    await session.flush()
    session.add(orphan_post)
    await session.flush()
    session.expunge_all()

    return {**seed_data, "dangling": [dave, orphan_post]}


class CountingSession:
    """Wraps an executor and records every statement it runs."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.statements: list[Any] = []

    async def execute(self, statement: Any) -> Any:
        self.statements.append(statement)
        return await self.session.execute(statement)


@pytest.fixture
def counting_session(session: AsyncSession) -> CountingSession:
    return CountingSession(session)


@pytest.fixture(autouse=True)
def clear_lru_caches() -> Iterator[None]:
    yield
    gather_cache_clear()


@pytest.fixture
def reset_registry_singleton() -> Iterator[None]:
    saved = Registry._Registry__instance  # type: ignore[attr-defined]
    yield
    Registry._Registry__instance = saved  # type: ignore[attr-defined]


# Multi-dialect: auto-skip @pytest.mark.dangling where foreign keys are enforced

@pytest.fixture(autouse=True)
def _skip_dangling(request: pytest.FixtureRequest, allows_dangling: bool) -> None:
    if request.node.get_closest_marker("dangling") and not allows_dangling:
        pytest.skip("Foreign keys are enforced on this backend")
