from __future__ import annotations

import pytest
from sqlalchemy import func, select, update

from blogstore import store
from blogstore.db import create_schema, make_engine, make_session_factory


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'blog.db'}"


@pytest.fixture
async def engine(database_url):
    engine = make_engine(database_url)
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def alice(db):
    return await store.create_user(db, name="Alice", username="alice", email="a@x.com", password="opaque-a")


@pytest.fixture
async def bob(db):
    return await store.create_user(db, name="Bob", username="bob", email="b@x.com", password="opaque-b")


@pytest.fixture
async def bobs_post(db, bob):
    return await store.create_post(db, author_id=bob.id, title="Hello", content="First post")


async def row_count(db, model) -> int:
    return await db.scalar(select(func.count()).select_from(model))


async def backdate(db, model, row_id, when) -> None:
    """Pin created_at; SQLite's CURRENT_TIMESTAMP only has one-second resolution."""
    table = model.__table__
    await db.execute(update(table).where(table.c.id == row_id).values(created_at=when))
    await db.commit()
