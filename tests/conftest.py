"""Pytest configuration and shared fixtures for all tests."""

import os
import sys
from pathlib import Path

# Minimal environment for Settings; integration tests build their own databases
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./referral_test.db")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_LEVEL", "DEBUG")
os.environ.setdefault("FRONTEND_URL", "https://app.example.com")

# Add project root to PYTHONPATH
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import pytest  # noqa: E402


@pytest.fixture
def mock_session():
    """Mock AsyncSession for tests without a database."""
    session = AsyncMock()
    session.execute = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.flush = AsyncMock()
    session.refresh = AsyncMock()
    session.add = MagicMock()
    return session


def make_user_stub(user_id: int, user_name: str, referred_by_code: str | None = None):
    """Plain stand-in for a User row."""
    user = MagicMock()
    user.id = user_id
    user.user_name = user_name
    user.referred_by_code = referred_by_code
    return user


@pytest.fixture
def user_stub():
    """Factory for User stand-ins."""
    return make_user_stub
