"""
Dial service facade.

Ties the storage backend, aggregate recomputation and reporting together
behind the operations callers use: dial CRUD, contribution updates,
recompute, value history and reports.
"""

import logging
import secrets
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

from .aggregation import AggregateRecomputer, RecomputeResult
from .auth import can_edit_dial
from .config.constants import INVITE_CODE_BYTES
from .errors import NotFoundError, UnauthorizedError
from .events import EventSink
from .models import Dial, DialMembership
from .monitoring import StatsMonitor
from .reporting import ReportBuilder, ValueReport
from .storage import StorageBackend, get_backend

logger = logging.getLogger(__name__)


def generate_invite_code() -> str:
    """Return a random 32 character hex invite code."""
    return secrets.token_hex(INVITE_CODE_BYTES)


class DialService:
    """
    Public operations on dials and their value history.

    Every mutating operation runs in one unit of work on the backend.
    """

    def __init__(
        self,
        backend: Optional[StorageBackend] = None,
        backend_type: str = "sqlite",
        db_path: Optional[Path] = None,
        event_sink: Optional[EventSink] = None,
        stats_monitor: Optional[StatsMonitor] = None,
    ):
        """
        Initialize dial service.

        Args:
            backend: Pre-initialized StorageBackend (optional)
            backend_type: Backend type if creating new ('sqlite')
            db_path: Path to SQLite database (for sqlite backend)
            event_sink: Destination for value-changed events
            stats_monitor: Table stats sampler started by initialize() and
                stopped by close() (optional, see StatsMonitor.from_settings)
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

        self._recomputer = AggregateRecomputer(self._backend, event_sink)
        self._reports = ReportBuilder(backend=self._backend)
        self._stats_monitor = stats_monitor
        self._initialized = False

    @property
    def backend(self) -> StorageBackend:
        return self._backend

    def initialize(self) -> None:
        """Initialize the backend (create tables if needed) and start stats."""
        if not self._initialized:
            self._backend.initialize()
            self._initialized = True
        if self._stats_monitor is not None:
            self._stats_monitor.start()

    def close(self) -> None:
        """Stop stats sampling and close the backend connection."""
        if self._stats_monitor is not None:
            self._stats_monitor.stop()
        if self._owns_backend:
            self._backend.close()

    def __enter__(self) -> "DialService":
        """Context manager entry."""
        self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()

    # =========================================================================
    # Dials
    # =========================================================================

    def create_dial(self, user_id: int, name: str, value: int = 0) -> Dial:
        """
        Create a dial owned by user_id.

        The owner becomes the first member with a contribution of 0 and the
        initial value is written to the history before the aggregate is
        recomputed.

        Raises:
            ValidationError: If the name or owner is invalid.
        """
        dial = Dial(
            user_id=user_id,
            name=name.strip() if name else name,
            value=value,
            invite_code=generate_invite_code(),
        )
        dial.validate()

        with self._backend.transaction() as tx:
            dial.created_at = tx.now
            dial.updated_at = tx.now
            self._backend.create_dial(dial)
            self.record_initial_value(dial.id, value, tx.now)

            membership = self._backend.create_membership(
                DialMembership(
                    dial_id=dial.id,
                    user_id=user_id,
                    value=0,
                    created_at=tx.now,
                    updated_at=tx.now,
                )
            )
            dial.memberships = [membership]

            result = self._recomputer.recompute(dial.id)
            if result.changed:
                dial.value = result.new_value

        logger.info(f"Created dial {dial.id} '{dial.name}' for user {user_id}")
        return dial

    def find_dial_by_id(self, dial_id: int) -> Dial:
        """
        Return a dial with its memberships.

        Raises:
            NotFoundError: If the dial does not exist.
        """
        with self._backend.transaction():
            dial = self._backend.find_dial_by_id(dial_id)
            if dial is None:
                raise NotFoundError("Dial not found", dial_id=dial_id)
            dial.memberships = self._backend.list_memberships(dial_id)
        return dial

    def find_dials(
        self,
        user_id: int,
        invite_code: Optional[str] = None,
        limit: int = 0,
        offset: int = 0,
    ) -> tuple[list[Dial], int]:
        """
        List dials visible to a user.

        Without an invite code only dials the user is a member of are
        returned; with one, the dial holding that code is looked up
        regardless of membership so it can be joined.

        Returns:
            Tuple of (dials, total matching count).
        """
        if invite_code:
            return self._backend.find_dials(
                invite_code=invite_code, limit=limit, offset=offset
            )
        return self._backend.find_dials(
            member_user_id=user_id, limit=limit, offset=offset
        )

    def update_dial(self, user_id: int, dial_id: int, name: str) -> Dial:
        """
        Rename a dial.

        Raises:
            NotFoundError: If the dial does not exist.
            UnauthorizedError: If user_id is not the owner.
            ValidationError: If the new name is invalid.
        """
        with self._backend.transaction() as tx:
            dial = self._backend.find_dial_by_id(dial_id)
            if dial is None:
                raise NotFoundError("Dial not found", dial_id=dial_id)
            if not can_edit_dial(user_id, dial):
                raise UnauthorizedError(
                    f"User {user_id} may not update dial {dial_id}"
                )

            dial.name = name.strip() if name else name
            dial.validate()
            dial.updated_at = tx.now
            self._backend.update_dial(dial)

        logger.info(f"Renamed dial {dial_id} to '{dial.name}'")
        return dial

    def delete_dial(self, user_id: int, dial_id: int) -> None:
        """
        Delete a dial with its memberships and value history.

        Raises:
            NotFoundError: If the dial does not exist.
            UnauthorizedError: If user_id is not the owner.
        """
        with self._backend.transaction():
            dial = self._backend.find_dial_by_id(dial_id)
            if dial is None:
                raise NotFoundError("Dial not found", dial_id=dial_id)
            if not can_edit_dial(user_id, dial):
                raise UnauthorizedError(
                    f"User {user_id} may not delete dial {dial_id}"
                )
            self._backend.delete_dial(dial_id)

        logger.info(f"Deleted dial {dial_id}")

    # =========================================================================
    # Contributions and aggregate value
    # =========================================================================

    def set_membership_value(
        self,
        dial_id: int,
        user_id: int,
        value: int,
        cancel: Optional[threading.Event] = None,
    ) -> RecomputeResult:
        """
        Change a member's contribution and recompute the dial.

        Raises:
            NotFoundError: If the user is not a member of the dial.
        """
        with self._backend.transaction() as tx:
            membership = self._backend.find_membership(dial_id, user_id)
            if membership is None:
                raise NotFoundError(
                    f"User {user_id} is not a member", dial_id=dial_id
                )
            self._backend.update_membership_value(membership.id, value, tx.now)
            return self.recompute_aggregate(dial_id, cancel=cancel)

    def recompute_aggregate(
        self,
        dial_id: int,
        cancel: Optional[threading.Event] = None,
    ) -> RecomputeResult:
        """Recompute a dial's aggregate value from its contributions."""
        return self._recomputer.recompute(dial_id, cancel=cancel)

    def record_initial_value(
        self, dial_id: int, value: int, timestamp: datetime
    ) -> None:
        """Write a value to the dial's history at the given time."""
        self._backend.upsert_dial_value(dial_id, timestamp, value)

    def history_of(self, dial_id: int) -> list[int]:
        """Return the raw stored history values of a dial, oldest first."""
        return self._backend.dial_values(dial_id)

    # =========================================================================
    # Reports
    # =========================================================================

    def build_report(
        self,
        user_id: int,
        start: datetime,
        end: datetime,
        interval: timedelta,
        cancel: Optional[threading.Event] = None,
    ) -> ValueReport:
        """Average the value history of the user's dials over a window."""
        return self._reports.build_report(
            user_id, start, end, interval, cancel=cancel
        )
