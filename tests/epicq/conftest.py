"""Shared fixtures: a throwaway SQLite database per test."""

import asyncio
from pathlib import Path
from typing import AsyncGenerator, Iterator

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from src.epicq.epicq_database import Base, get_db
from src.epicq.epicq_main import app


def make_engine(path: Path) -> AsyncEngine:
    return create_async_engine(f"sqlite+aiosqlite:///{path}", poolclass=NullPool)


async def create_tables(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@pytest_asyncio.fixture
async def db_session(tmp_path: Path) -> AsyncGenerator[AsyncSession, None]:
    """Session on a fresh database, for service tests."""
    engine = make_engine(tmp_path / "services.db")
    await create_tables(engine)
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_maker() as session:
        yield session
    await engine.dispose()


@pytest.fixture
def client(tmp_path: Path) -> Iterator[TestClient]:
    """TestClient whose get_db dependency points at a fresh database."""
    engine = make_engine(tmp_path / "api.db")
    asyncio.run(create_tables(engine))
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    # Not used as a context manager: the lifespan would connect to PostgreSQL
    yield TestClient(app)
    app.dependency_overrides.clear()
    asyncio.run(engine.dispose())
