"""
Shared fixtures for integration tests.

Every test gets a fresh SQLite database file (aiosqlite driver) with the
full schema created from model metadata.
"""

from collections.abc import AsyncIterator, Awaitable, Callable

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.config.database import create_session_maker
from app.models import Base, User

UserFactory = Callable[..., Awaitable[User]]


@pytest_asyncio.fixture
async def session_maker(tmp_path) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    """Session maker bound to a throwaway database."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'referral.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield create_session_maker(engine)

    await engine.dispose()


@pytest_asyncio.fixture
async def session(session_maker) -> AsyncIterator[AsyncSession]:
    """Session used by the service under test."""
    async with session_maker() as session:
        yield session


@pytest.fixture
def make_user(session_maker) -> UserFactory:
    """
    Factory creating committed users.

    Users are written through their own session so the session under
    test starts with an empty identity map.
    """

    async def _make_user(user_name: str, referred_by: str | None = None, **data) -> User:
        async with session_maker() as setup_session:
            user = User(user_name=user_name, referred_by_code=referred_by, **data)
            setup_session.add(user)
            await setup_session.commit()
            return user

    return _make_user


@pytest_asyncio.fixture
async def chain(make_user) -> dict[str, User]:
    """
    Referral chain D -> C -> B -> A.

    A has no referrer; D is the usual purchaser.
    """
    a = await make_user("alice")
    b = await make_user("bob", referred_by="alice")
    c = await make_user("carol", referred_by="bob")
    d = await make_user("dave", referred_by="carol")
    return {"A": a, "B": b, "C": c, "D": d}
