"""
Slot reconstruction for sparse dial value history.

Dial history only records transitions, so a plain range scan leaves gaps.
Reconstruction turns the step function into one value per fixed-size
interval over a half-open window [start, end):

1. Seed slot 0 with the value in force at ``start``.
2. Place each snapshot inside the window into its slot (later snapshots in
   the same slot overwrite earlier ones).
3. Carry the last known value forward into every slot still unset.
"""

import logging
from datetime import datetime, timedelta
from operator import attrgetter

import numpy as np

from ..errors import InvalidWindowError
from ..storage.base import ValueHistoryStore
from ..utils.time_utils import ensure_utc, truncate

logger = logging.getLogger(__name__)


def validate_interval(interval: timedelta) -> None:
    """
    Reject non-positive slot intervals.

    Raises:
        InvalidWindowError: If interval <= 0
    """
    if interval <= timedelta(0):
        raise InvalidWindowError("Interval must be positive", interval=interval)


def align_window(
    start: datetime, end: datetime, interval: timedelta
) -> tuple[datetime, datetime]:
    """
    Truncate both window bounds down to interval boundaries in UTC.

    Returns:
        Tuple of (aligned_start, aligned_end)
    """
    validate_interval(interval)
    return truncate(start, interval), truncate(end, interval)


def slot_count(start: datetime, end: datetime, interval: timedelta) -> int:
    """
    Number of whole intervals between two aligned bounds.

    Returns 0 (never negative) when end <= start.
    """
    validate_interval(interval)
    return max(0, (end - start) // interval)


def forward_fill(values: np.ndarray, is_set: np.ndarray) -> np.ndarray:
    """
    Replace every unset slot with the nearest preceding set slot.

    Args:
        values: Slot values
        is_set: Boolean mask of slots holding a known value. Slot 0 must
            be set.

    Returns:
        New array with no unset slots.
    """
    positions = np.where(is_set, np.arange(len(values)), 0)
    np.maximum.accumulate(positions, out=positions)
    return values[positions]


class SlotReconstructor:
    """
    Builds a dense per-slot value sequence for one dial.

    Unset slots are tracked with a boolean mask rather than an in-band
    sentinel, so every integer remains a legal dial value.
    """

    def __init__(self, store: ValueHistoryStore):
        """
        Args:
            store: History store to read snapshots from
        """
        self._store = store

    def reconstruct(
        self,
        dial_id: int,
        start: datetime,
        end: datetime,
        interval: timedelta,
    ) -> list[int]:
        """
        Return the value of a dial in each interval of [start, end).

        ``start`` and ``end`` are truncated to interval boundaries first.
        Index ``i`` of the result holds the value in force during
        ``[start + i*interval, start + (i+1)*interval)``.

        Args:
            dial_id: Dial identifier
            start: Window start (inclusive)
            end: Window end (exclusive)
            interval: Slot size. Intervals finer than the one-minute
                snapshot resolution are allowed.

        Returns:
            List of slot values; empty if the window has no whole slot.

        Raises:
            InvalidWindowError: If interval is not positive.
            StorageError: If reading history fails.
        """
        start, end = align_window(start, end, interval)
        n = slot_count(start, end, interval)
        if n == 0:
            return []

        values = np.zeros(n, dtype=np.int64)
        is_set = np.zeros(n, dtype=bool)

        # Value carried into the window from before it began.
        values[0] = self._store.dial_value_at_or_before(dial_id, start)
        is_set[0] = True

        snapshots = self._store.dial_values_between(dial_id, start, end)
        for snapshot in sorted(snapshots, key=attrgetter("timestamp")):
            i = (ensure_utc(snapshot.timestamp) - start) // interval
            if not 0 <= i < n:
                logger.warning(
                    f"Ignoring dial {dial_id} snapshot at "
                    f"{snapshot.timestamp.isoformat()} outside window "
                    f"[{start.isoformat()}, {end.isoformat()})"
                )
                continue
            values[i] = snapshot.value
            is_set[i] = True

        logger.debug(
            f"Reconstructed dial {dial_id}: {n} slots, "
            f"{len(snapshots)} snapshots in window"
        )
        return [int(v) for v in forward_fill(values, is_set)]
