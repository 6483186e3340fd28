"""
Periodic database statistics sampler.

Polls the row counts of the dial tables on a fixed period and exposes
them as Prometheus gauges. Runs on its own daemon thread with explicit
start/stop and is independent of recomputation and reporting.
"""

import logging
import threading
from typing import Optional

from prometheus_client import CollectorRegistry, Gauge

from ..config.constants import (
    DEFAULT_STATS_INTERVAL_SECONDS,
    METRIC_PREFIX,
    TABLE_DIAL_MEMBERSHIPS,
    TABLE_DIAL_VALUES,
    TABLE_DIALS,
)
from ..config.settings import Settings, get_settings
from ..storage import StorageBackend, StorageError

logger = logging.getLogger(__name__)

SAMPLED_TABLES = (TABLE_DIALS, TABLE_DIAL_MEMBERSHIPS, TABLE_DIAL_VALUES)


class StatsMonitor:
    """
    Samples table row counts into gauges.

    Gauges are registered on a private CollectorRegistry unless one is
    passed in, so several monitors (e.g. in tests) never collide.
    """

    def __init__(
        self,
        backend: StorageBackend,
        interval_seconds: float = DEFAULT_STATS_INTERVAL_SECONDS,
        registry: Optional[CollectorRegistry] = None,
    ):
        """
        Args:
            backend: Storage backend to sample
            interval_seconds: Sampling period
            registry: Prometheus registry for the gauges (default: new private one)
        """
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be > 0, got {interval_seconds}")

        self._backend = backend
        self._interval = interval_seconds
        self.registry = registry or CollectorRegistry()
        self._gauges = {
            table: Gauge(
                f"{METRIC_PREFIX}_{table}",
                f"Number of rows in the {table} table",
                registry=self.registry,
            )
            for table in SAMPLED_TABLES
        }

        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    @classmethod
    def from_settings(
        cls,
        backend: StorageBackend,
        settings: Optional[Settings] = None,
        registry: Optional[CollectorRegistry] = None,
    ) -> Optional["StatsMonitor"]:
        """
        Build a monitor from ``monitoring.*`` settings.

        Returns:
            StatsMonitor (not started), or None when stats are disabled.
        """
        settings = settings or get_settings()
        if not settings.stats_enabled:
            logger.debug("Stats monitor disabled by settings")
            return None
        return cls(backend, settings.stats_interval_seconds, registry=registry)

    @property
    def interval_seconds(self) -> float:
        return self._interval

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def sample(self) -> dict[str, int]:
        """
        Take one sample of every table.

        Tables that cannot be counted are logged and left at their previous
        gauge value.

        Returns:
            Mapping of table name to row count for the tables sampled.
        """
        counts = {}
        for table, gauge in self._gauges.items():
            try:
                count = self._backend.get_table_row_count(table)
            except StorageError as e:
                logger.warning(f"Failed to sample {table} row count: {e}")
                continue
            gauge.set(count)
            counts[table] = count

        logger.debug(f"Sampled table stats: {counts}")
        return counts

    def start(self) -> None:
        """Start the sampling thread."""
        if self.running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop, name="dial-stats-monitor", daemon=True
        )
        self._thread.start()
        logger.info(f"Stats monitor started (every {self._interval}s)")

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the sampling thread and wait for it to exit."""
        if self._thread is None:
            return

        self._stop_event.set()
        self._thread.join(timeout=timeout)
        self._thread = None
        logger.info("Stats monitor stopped")

    def _run_loop(self) -> None:
        """Sample immediately, then once per interval until stopped."""
        while not self._stop_event.is_set():
            try:
                self.sample()
            except Exception as e:
                logger.warning(f"Stats sampling error: {e}")

            # Interruptible sleep
            self._stop_event.wait(timeout=self._interval)

    def __enter__(self) -> "StatsMonitor":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()
