"""Global test fixtures and utilities for progress engine tests"""
import pytest
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, MagicMock

from fakes import FakeQueries
from progress_engine.gamification import (
    achievement_system,
    challenges,
    daily_markers,
    scorecards,
    streak_system,
    xp_system,
)
from progress_engine.services import progress_service
from progress_engine.utils import datetime_helpers
from progress_engine.utils.datetime_helpers import CalendarPolicy


# Modules that reach storage through `queries.<function>`
ENGINE_MODULES = (
    xp_system,
    streak_system,
    achievement_system,
    scorecards,
    challenges,
    daily_markers,
    progress_service,
)


# ============================================================================
# Storage Fixtures
# ============================================================================

@pytest.fixture
def fake_queries(monkeypatch):
    """In-memory query layer wired into every engine module"""
    fake = FakeQueries()
    for module in ENGINE_MODULES:
        monkeypatch.setattr(module, "queries", fake)
    return fake


@pytest.fixture
def mock_db_cursor():
    """Mock database cursor with standard query results"""
    cursor = AsyncMock()
    cursor.fetchone = AsyncMock(return_value=None)
    cursor.fetchall = AsyncMock(return_value=[])
    cursor.execute = AsyncMock()
    cursor.rowcount = 0
    return cursor


@pytest.fixture
def mock_db_connection(mock_db_cursor):
    """Mock database connection whose cursor() yields mock_db_cursor"""
    conn = MagicMock()
    conn.cursor.return_value.__aenter__.return_value = mock_db_cursor
    conn.commit = AsyncMock()
    conn.execute = AsyncMock()
    return conn


# ============================================================================
# Calendar Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def utc_policy():
    """Pin the calendar policy to UTC for every test"""
    previous = datetime_helpers._default_policy
    policy = CalendarPolicy("UTC")
    datetime_helpers.set_policy(policy)
    yield policy
    datetime_helpers._default_policy = previous


@pytest.fixture
def today():
    """Fixed 'today' for streak tests (a Wednesday)"""
    return date(2025, 3, 12)


@pytest.fixture
def test_user_id():
    """Standard test user ID"""
    return "user-123"


@pytest.fixture
def morning():
    """Timestamp factory: 09:00 UTC on a given day"""
    def _at(day: date) -> datetime:
        return datetime(day.year, day.month, day.day, 9, 0, tzinfo=timezone.utc)
    return _at
