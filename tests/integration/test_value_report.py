"""
Integration tests for interval-averaged value reports.

Tests:
- Empty dial set produces all-zero slots
- Per-slot rounded mean across dials with carry-forward
- Window truncation and slot timestamps
- Window validation before storage access
- Failure of one dial aborts the report
"""

import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pandas as pd
import pytest

from dial_history.errors import InvalidWindowError, OperationCancelledError, ReportError
from dial_history.reporting import ReportBuilder
from dial_history.storage import QueryError

NOON = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def minutes(n: int) -> timedelta:
    return timedelta(minutes=n)


@pytest.fixture
def member_dial(make_dial, add_member):
    """Factory creating a dial that user 1 is a member of."""

    def _make(user_id: int = 1):
        dial = make_dial(user_id=user_id)
        add_member(dial.id, user_id=user_id)
        return dial

    return _make


class TestEmptyReport:
    """Reports over users with no dials."""

    def test_no_dials_gives_zero_slots(self, report_builder):
        report = report_builder.build_report(99, NOON, NOON + minutes(60), minutes(15))

        assert report.values == [0, 0, 0, 0]
        assert [r.timestamp for r in report.records] == [
            NOON,
            NOON + minutes(15),
            NOON + minutes(30),
            NOON + minutes(45),
        ]
        assert report.dial_count == 0

    def test_window_collapsing_to_zero_slots(self, report_builder):
        """A valid window shorter than one aligned slot yields no records."""
        report = report_builder.build_report(
            99, NOON + minutes(5), NOON + minutes(10), timedelta(hours=1)
        )
        assert report.records == []


class TestReportAverages:
    """Per-slot averages across dials."""

    def test_carry_forward_from_before_window(
        self, sqlite_backend, report_builder, member_dial
    ):
        dial = member_dial()
        sqlite_backend.upsert_dial_value(dial.id, NOON - timedelta(hours=1), 5)

        report = report_builder.build_report(1, NOON, NOON + minutes(30), minutes(10))

        assert report.values == [5, 5, 5]

    def test_mean_of_two_dials_rounds_half_away_from_zero(
        self, sqlite_backend, report_builder, member_dial
    ):
        first, second = member_dial(), member_dial()
        sqlite_backend.upsert_dial_value(first.id, NOON, 3)
        sqlite_backend.upsert_dial_value(second.id, NOON, 4)

        report = report_builder.build_report(1, NOON, NOON + minutes(20), minutes(10))

        assert report.values == [4, 4]
        assert report.dial_count == 2

    def test_changes_inside_window(self, sqlite_backend, report_builder, member_dial):
        first, second = member_dial(), member_dial()
        sqlite_backend.upsert_dial_value(first.id, NOON, 2)
        sqlite_backend.upsert_dial_value(first.id, NOON + minutes(20), 6)

        report = report_builder.build_report(1, NOON, NOON + minutes(30), minutes(10))

        # first: [2, 2, 6], second: [0, 0, 0]
        assert report.values == [1, 1, 3]

    def test_only_member_dials_are_reported(
        self, sqlite_backend, report_builder, member_dial, make_dial
    ):
        mine = member_dial(user_id=1)
        other = make_dial(user_id=2)
        sqlite_backend.upsert_dial_value(mine.id, NOON, 8)
        sqlite_backend.upsert_dial_value(other.id, NOON, 100)

        report = report_builder.build_report(1, NOON, NOON + minutes(10), minutes(10))

        assert report.values == [8]
        assert report.dial_count == 1

    def test_window_is_truncated_to_interval(
        self, sqlite_backend, report_builder, member_dial
    ):
        dial = member_dial()
        sqlite_backend.upsert_dial_value(dial.id, NOON, 1)

        report = report_builder.build_report(
            1, NOON + minutes(7), NOON + minutes(37), minutes(15)
        )

        assert report.start == NOON
        assert report.end == NOON + minutes(30)
        assert [r.timestamp for r in report.records] == [NOON, NOON + minutes(15)]

    def test_interval_finer_than_snapshot_resolution(
        self, sqlite_backend, report_builder, member_dial
    ):
        dial = member_dial()
        sqlite_backend.upsert_dial_value(dial.id, NOON + minutes(1), 4)

        report = report_builder.build_report(
            1, NOON, NOON + minutes(2), timedelta(seconds=30)
        )

        assert report.values == [0, 0, 4, 4]

    def test_sub_second_window_start(self, sqlite_backend, report_builder, member_dial):
        dial = member_dial()
        sqlite_backend.upsert_dial_value(dial.id, NOON, 5)
        sqlite_backend.upsert_dial_value(dial.id, NOON + minutes(1), 9)

        report = report_builder.build_report(
            1,
            NOON + timedelta(milliseconds=500),
            NOON + timedelta(seconds=90),
            timedelta(milliseconds=500),
        )

        assert len(report) == 179
        assert report.values[0] == 5
        assert report.values[118] == 5
        assert report.values[119] == 9
        assert report.values[-1] == 9


class TestReportExport:
    """Tests for report conversion."""

    def test_to_dataframe(self, sqlite_backend, report_builder, member_dial):
        dial = member_dial()
        sqlite_backend.upsert_dial_value(dial.id, NOON, 2)

        df = report_builder.build_report(
            1, NOON, NOON + minutes(20), minutes(10)
        ).to_dataframe()

        assert isinstance(df, pd.DataFrame)
        assert list(df["value"]) == [2, 2]
        assert df.index[0] == pd.Timestamp("2024-01-01T12:00:00Z")

    def test_to_dict(self, report_builder):
        data = report_builder.build_report(
            99, NOON, NOON + minutes(10), minutes(5)
        ).to_dict()

        assert data["interval_seconds"] == 300
        assert data["records"][0] == {"timestamp": NOON.isoformat(), "value": 0}


class TestReportValidation:
    """Windows are rejected before any storage access."""

    @pytest.mark.parametrize(
        "start,end,interval",
        [
            (NOON, NOON + minutes(10), timedelta(0)),
            (NOON, NOON + minutes(10), -minutes(1)),
            (NOON, NOON, minutes(1)),
            (NOON + minutes(10), NOON, minutes(1)),
        ],
    )
    def test_invalid_window(self, start, end, interval):
        backend = MagicMock()
        builder = ReportBuilder(backend=backend)

        with pytest.raises(InvalidWindowError):
            builder.build_report(1, start, end, interval)

        backend.transaction.assert_not_called()
        backend.find_dials.assert_not_called()


class TestReportFailures:
    """Any per-dial failure aborts the whole report."""

    def test_reconstruction_failure_names_dial(
        self, sqlite_backend, report_builder, member_dial, monkeypatch
    ):
        member_dial()
        broken = member_dial()
        original = sqlite_backend.dial_values_between

        def failing(dial_id, start, end):
            if dial_id == broken.id:
                raise QueryError("disk I/O error")
            return original(dial_id, start, end)

        monkeypatch.setattr(sqlite_backend, "dial_values_between", failing)

        with pytest.raises(ReportError) as exc_info:
            report_builder.build_report(1, NOON, NOON + minutes(10), minutes(5))

        assert exc_info.value.dial_id == broken.id
        assert isinstance(exc_info.value.__cause__, QueryError)
        assert f"id={broken.id}" in str(exc_info.value)

    def test_vanished_dial_is_an_error(
        self, sqlite_backend, report_builder, member_dial, monkeypatch
    ):
        dial = member_dial()
        monkeypatch.setattr(sqlite_backend, "get_dial_value", lambda dial_id: None)

        with pytest.raises(ReportError) as exc_info:
            report_builder.build_report(1, NOON, NOON + minutes(10), minutes(5))

        assert exc_info.value.dial_id == dial.id

    def test_cancelled_report(self, report_builder, member_dial):
        member_dial()
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(OperationCancelledError):
            report_builder.build_report(
                1, NOON, NOON + minutes(10), minutes(5), cancel=cancel
            )
