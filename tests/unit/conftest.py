"""
Pytest configuration and shared fixtures for unit tests.
"""

from datetime import datetime

import pytest

from dial_history.config.settings import clear_settings_cache
from dial_history.models import DialValue
from dial_history.storage.base import ValueHistoryStore
from dial_history.utils.time_utils import ensure_utc


class FakeHistoryStore(ValueHistoryStore):
    """
    In-memory ValueHistoryStore.

    Stores snapshots exactly as given (no minute truncation) so slot
    placement can be tested at any resolution. Records calls for
    assertions.
    """

    def __init__(self):
        self.snapshots: dict[int, list[DialValue]] = {}
        self.calls: list[str] = []

    def add(self, dial_id: int, timestamp: datetime, value: int) -> None:
        self.snapshots.setdefault(dial_id, []).append(
            DialValue(dial_id=dial_id, timestamp=ensure_utc(timestamp), value=value)
        )

    def upsert_dial_value(self, dial_id: int, timestamp: datetime, value: int) -> None:
        self.calls.append("upsert_dial_value")
        self.add(dial_id, timestamp, value)

    def dial_value_at_or_before(self, dial_id: int, timestamp: datetime) -> int:
        self.calls.append("dial_value_at_or_before")
        timestamp = ensure_utc(timestamp)
        prior = [s for s in self.snapshots.get(dial_id, []) if s.timestamp <= timestamp]
        if not prior:
            return 0
        return max(prior, key=lambda s: s.timestamp).value

    def dial_values_between(
        self, dial_id: int, start: datetime, end: datetime
    ) -> list[DialValue]:
        self.calls.append("dial_values_between")
        start, end = ensure_utc(start), ensure_utc(end)
        return sorted(
            (s for s in self.snapshots.get(dial_id, []) if start <= s.timestamp < end),
            key=lambda s: s.timestamp,
        )

    def dial_values(self, dial_id: int) -> list[int]:
        return [
            s.value
            for s in sorted(self.snapshots.get(dial_id, []), key=lambda s: s.timestamp)
        ]


@pytest.fixture
def history_store() -> FakeHistoryStore:
    """Empty in-memory history store."""
    return FakeHistoryStore()


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """Ensure cached settings never leak between tests."""
    clear_settings_cache()
    yield
    clear_settings_cache()
