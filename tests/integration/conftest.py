"""
Shared fixtures for integration tests.

Provides:
- Temporary SQLite database for isolated testing
- A controllable clock for the backend's transaction time
- Service, recomputer and report builder fixtures
"""

from datetime import datetime, timedelta, timezone
from itertools import count
from pathlib import Path
from typing import Optional

import pytest

from dial_history.aggregation import AggregateRecomputer
from dial_history.events import InMemoryEventSink
from dial_history.models import Dial, DialMembership
from dial_history.reporting import ReportBuilder
from dial_history.service import DialService
from dial_history.storage import get_backend

# Start of every test clock
CLOCK_START = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Clock that stays put until moved."""

    def __init__(self, start: datetime = CLOCK_START):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def set(self, value: datetime) -> None:
        self.current = value

    def advance(self, delta: Optional[timedelta] = None, **kwargs) -> datetime:
        self.current += delta if delta is not None else timedelta(**kwargs)
        return self.current


# =============================================================================
# DATABASE FIXTURES
# =============================================================================


@pytest.fixture
def clock() -> FakeClock:
    """Controllable clock starting at 2024-01-01 12:00 UTC."""
    return FakeClock()


@pytest.fixture
def temp_db_path(tmp_path: Path) -> Path:
    """Create a temporary database path."""
    return tmp_path / "test_dial_history.db"


@pytest.fixture
def sqlite_backend(temp_db_path: Path, clock: FakeClock):
    """
    Create an initialized SQLite backend with temporary database.

    Automatically cleans up after test.
    """
    backend = get_backend("sqlite", db_path=temp_db_path, clock=clock)
    backend.initialize()
    yield backend
    backend.close()


# =============================================================================
# COMPONENT FIXTURES
# =============================================================================


@pytest.fixture
def event_sink() -> InMemoryEventSink:
    """Event sink that records every published event."""
    return InMemoryEventSink()


@pytest.fixture
def recomputer(sqlite_backend, event_sink) -> AggregateRecomputer:
    return AggregateRecomputer(sqlite_backend, event_sink)


@pytest.fixture
def report_builder(sqlite_backend) -> ReportBuilder:
    return ReportBuilder(backend=sqlite_backend)


@pytest.fixture
def dial_service(sqlite_backend, event_sink) -> DialService:
    """DialService sharing the temporary backend and event sink."""
    service = DialService(backend=sqlite_backend, event_sink=event_sink)
    service.initialize()
    return service


@pytest.fixture
def add_member(sqlite_backend):
    """
    Factory fixture adding a member with a contribution to a dial.

    Does not recompute; tests call the recomputer explicitly.
    """

    def _add(dial_id: int, user_id: int, value: int = 0) -> DialMembership:
        now = sqlite_backend.now()
        return sqlite_backend.create_membership(
            DialMembership(
                dial_id=dial_id,
                user_id=user_id,
                value=value,
                created_at=now,
                updated_at=now,
            )
        )

    return _add


@pytest.fixture
def make_dial(sqlite_backend):
    """
    Factory fixture inserting a bare dial row.

    No membership or history is written, so tests start from an empty
    value history.
    """
    codes = count(1)

    def _make(user_id: int = 1, name: str = "Test dial", value: int = 0) -> Dial:
        now = sqlite_backend.now()
        return sqlite_backend.create_dial(
            Dial(
                user_id=user_id,
                name=name,
                value=value,
                invite_code=f"invite-{next(codes):04d}",
                created_at=now,
                updated_at=now,
            )
        )

    return _make
