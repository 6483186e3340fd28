"""
Interval-averaged value reports across dials.

A report is the per-slot mean of the reconstructed value history of every
dial visible to the caller, over a half-open window [start, end).
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

import numpy as np
import pandas as pd

from ..aggregation.rounding import rounded_column_means
from ..errors import InvalidWindowError, NotFoundError, ReportError
from ..history.slots import SlotReconstructor, align_window, slot_count
from ..storage import StorageBackend, get_backend
from ..utils.cancellation import raise_if_cancelled
from ..utils.time_utils import ensure_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValueReportRecord:
    """Average value of the reported dials during one slot."""

    timestamp: datetime
    value: int


@dataclass
class ValueReport:
    """Result of a report build."""

    start: datetime
    end: datetime
    interval: timedelta
    dial_count: int
    records: list[ValueReportRecord] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.records)

    @property
    def values(self) -> list[int]:
        return [r.value for r in self.records]

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON export."""
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "interval_seconds": int(self.interval.total_seconds()),
            "dial_count": self.dial_count,
            "records": [
                {"timestamp": r.timestamp.isoformat(), "value": r.value}
                for r in self.records
            ],
        }

    def to_dataframe(self) -> pd.DataFrame:
        """Convert records to a DataFrame indexed by slot timestamp."""
        df = pd.DataFrame(
            {
                "timestamp": pd.to_datetime(
                    [r.timestamp for r in self.records], utc=True
                ),
                "value": pd.Series([r.value for r in self.records], dtype="int64"),
            }
        )
        return df.set_index("timestamp")


class ReportBuilder:
    """
    Builds interval-averaged reports over the dials a user belongs to.

    Reconstruction runs sequentially, one dial at a time, inside a single
    unit of work. Any failure aborts the whole report.
    """

    def __init__(
        self,
        backend: Optional[StorageBackend] = None,
        backend_type: str = "sqlite",
        db_path: Optional[Path] = None,
    ):
        """
        Initialize report builder.

        Args:
            backend: Pre-initialized StorageBackend (optional)
            backend_type: Backend type if creating new ('sqlite')
            db_path: Path to SQLite database (for sqlite backend)
        """
        if backend:
            self._backend = backend
            self._owns_backend = False
        else:
            kwargs = {}
            if backend_type == "sqlite" and db_path:
                kwargs["db_path"] = db_path
            self._backend = get_backend(backend_type, **kwargs)
            self._owns_backend = True

        self._reconstructor = SlotReconstructor(self._backend)
        self._initialized = False

    def initialize(self) -> None:
        """Initialize the backend (create tables if needed)."""
        if not self._initialized:
            self._backend.initialize()
            self._initialized = True

    def close(self) -> None:
        """Close the backend connection."""
        if self._owns_backend:
            self._backend.close()

    def __enter__(self) -> "ReportBuilder":
        """Context manager entry."""
        self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()

    def build_report(
        self,
        user_id: int,
        start: datetime,
        end: datetime,
        interval: timedelta,
        cancel: Optional[threading.Event] = None,
    ) -> ValueReport:
        """
        Average the value history of every dial the user is a member of.

        Args:
            user_id: User whose dials are reported
            start: Window start (inclusive, truncated to interval)
            end: Window end (exclusive, truncated to interval)
            interval: Slot size
            cancel: Optional event checked before each dial is reconstructed

        Returns:
            ValueReport with one record per slot. With no visible dials every
            record holds 0.

        Raises:
            InvalidWindowError: If interval <= 0 or end <= start.
            ReportError: If any dial's history cannot be reconstructed.
            OperationCancelledError: If cancelled.
        """
        if interval <= timedelta(0):
            raise InvalidWindowError(
                "Interval must be positive", start=start, end=end, interval=interval
            )
        if ensure_utc(end) <= ensure_utc(start):
            raise InvalidWindowError(
                "End must be after start", start=start, end=end, interval=interval
            )

        start, end = align_window(start, end, interval)
        n = slot_count(start, end, interval)

        with self._backend.transaction():
            dials, _ = self._backend.find_dials(member_user_id=user_id)

            sequences = []
            for dial in dials:
                raise_if_cancelled(cancel, "build report")
                try:
                    if self._backend.get_dial_value(dial.id) is None:
                        raise NotFoundError("Dial vanished", dial_id=dial.id)
                    sequences.append(
                        self._reconstructor.reconstruct(dial.id, start, end, interval)
                    )
                except Exception as e:
                    raise ReportError(dial.id, e) from e

        # Divide by the number of dials that produced a sequence.
        matrix = np.array(sequences, dtype=np.int64).reshape(len(sequences), n)
        averages = rounded_column_means(matrix)

        records = [
            ValueReportRecord(timestamp=start + i * interval, value=value)
            for i, value in enumerate(averages)
        ]

        logger.info(
            f"Built report for user {user_id}: {len(dials)} dials, {n} slots "
            f"of {interval} from {start.isoformat()}"
        )
        return ValueReport(
            start=start,
            end=end,
            interval=interval,
            dial_count=len(sequences),
            records=records,
        )
