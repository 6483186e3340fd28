"""
Abstract base classes for storage backends.

Provides a unified interface for dial, membership and dial value history
storage, so the recomputation and reporting logic never branches on the
concrete backend type.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from ..models import Dial, DialMembership, DialValue
from ..utils.time_utils import ensure_utc


def utc_now() -> datetime:
    """Default clock for backends."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Transaction:
    """
    A unit of work with a fixed timestamp.

    ``now`` is captured once when the transaction begins so every write in
    the unit of work is stamped with the same time (and can be mocked in
    tests through the backend clock). Callbacks registered with
    ``on_commit`` run after the outermost transaction commits and are
    discarded on rollback.
    """

    now: datetime
    _on_commit: list = field(default_factory=list, compare=False, repr=False)

    def on_commit(self, callback: Callable[[], None]) -> None:
        """Run callback once the unit of work has been committed."""
        self._on_commit.append(callback)

    def run_commit_callbacks(self) -> None:
        for callback in self._on_commit:
            callback()
        self._on_commit.clear()


class ValueHistoryStore(ABC):
    """
    Minute-resolution history of dial values.

    Only transitions are recorded: the snapshots of a dial, ordered by
    timestamp, describe a step function of its aggregate value.
    """

    @abstractmethod
    def upsert_dial_value(self, dial_id: int, timestamp: datetime, value: int) -> None:
        """
        Record a dial value at a point in time.

        The timestamp is truncated to the minute. An existing snapshot for the
        same (dial_id, minute) has its value overwritten (last write wins).

        Args:
            dial_id: Dial identifier
            timestamp: Time the value took effect
            value: Aggregate value

        Raises:
            StorageError: If the write fails.
        """
        pass

    @abstractmethod
    def dial_value_at_or_before(self, dial_id: int, timestamp: datetime) -> int:
        """
        Return the value in force at timestamp.

        Args:
            dial_id: Dial identifier
            timestamp: Point in time to look up

        Returns:
            Value of the latest snapshot at or before timestamp, or 0 if
            there is none.
        """
        pass

    @abstractmethod
    def dial_values_between(
        self,
        dial_id: int,
        start: datetime,
        end: datetime,
    ) -> list[DialValue]:
        """
        Return snapshots with start <= timestamp < end.

        Returns:
            Snapshots ordered by timestamp ascending.
        """
        pass

    @abstractmethod
    def dial_values(self, dial_id: int) -> list[int]:
        """
        Return every stored historical value for a dial in timestamp order.

        Intended for testing and debugging.
        """
        pass


class StorageBackend(ValueHistoryStore):
    """
    Abstract base class for storage backends.

    All storage implementations must implement this interface to ensure
    consistent behavior across backends.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        # Returns the current time. Can be replaced in tests.
        self.now: Callable[[], datetime] = clock or utc_now

    @property
    @abstractmethod
    def backend_type(self) -> str:
        """Return the backend type identifier (e.g., 'sqlite')."""
        pass

    @abstractmethod
    def initialize(self) -> None:
        """
        Initialize the storage backend.

        Creates tables and indexes if they don't exist.
        Should be idempotent - safe to call multiple times.
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """
        Close connections and release resources.

        Should be called when the backend is no longer needed.
        """
        pass

    @abstractmethod
    def transaction(self) -> AbstractContextManager[Transaction]:
        """
        Open a unit of work.

        Commits when the block exits cleanly and rolls back on any
        exception. A nested call joins the enclosing transaction.

        Example:
            with backend.transaction() as tx:
                backend.set_dial_value(dial_id, 5, tx.now)
                backend.upsert_dial_value(dial_id, tx.now, 5)
        """
        pass

    def transaction_time(self) -> datetime:
        """Current clock time in UTC, truncated to the second."""
        return ensure_utc(self.now()).replace(microsecond=0)

    @abstractmethod
    def query(
        self,
        sql: str,
        params: Optional[dict] = None,
    ) -> list[dict]:
        """
        Execute a query and return results as a list of dictionaries.

        Raises:
            StorageError: If query execution fails.
        """
        pass

    @abstractmethod
    def execute(
        self,
        sql: str,
        params: Optional[dict] = None,
    ) -> int:
        """
        Execute a statement (INSERT, UPDATE, DELETE, DDL).

        Returns:
            Number of affected rows (0 for DDL statements).

        Raises:
            StorageError: If execution fails.
        """
        pass

    @abstractmethod
    def table_exists(self, table_name: str) -> bool:
        """Check if a table exists in the storage backend."""
        pass

    @abstractmethod
    def get_table_row_count(self, table_name: str) -> int:
        """
        Get the total row count for a table.

        Raises:
            StorageError: If table doesn't exist or query fails.
        """
        pass

    # =========================================================================
    # Dials
    # =========================================================================

    @abstractmethod
    def create_dial(self, dial: Dial) -> Dial:
        """Insert a dial row and assign its generated id."""
        pass

    @abstractmethod
    def find_dials(
        self,
        *,
        dial_id: Optional[int] = None,
        member_user_id: Optional[int] = None,
        invite_code: Optional[str] = None,
        limit: int = 0,
        offset: int = 0,
    ) -> tuple[list[Dial], int]:
        """
        Find dials matching all given filters.

        Args:
            dial_id: Restrict to one dial
            member_user_id: Restrict to dials this user is a member of
            invite_code: Restrict to the dial with this invite code
            limit: Maximum rows to return (0 = no limit)
            offset: Rows to skip

        Returns:
            Tuple of (dials ordered by id, total matching count ignoring
            limit/offset).
        """
        pass

    def find_dial_by_id(self, dial_id: int) -> Optional[Dial]:
        """Return a dial by id, or None if it does not exist."""
        dials, _ = self.find_dials(dial_id=dial_id)
        return dials[0] if dials else None

    @abstractmethod
    def update_dial(self, dial: Dial) -> None:
        """Persist the dial's name and updated_at."""
        pass

    @abstractmethod
    def delete_dial(self, dial_id: int) -> int:
        """Delete a dial along with its memberships and history."""
        pass

    @abstractmethod
    def get_dial_value(self, dial_id: int) -> Optional[int]:
        """Return the stored aggregate value, or None if the dial is gone."""
        pass

    @abstractmethod
    def set_dial_value(self, dial_id: int, value: int, updated_at: datetime) -> None:
        """Store a new aggregate value on the dial."""
        pass

    # =========================================================================
    # Memberships
    # =========================================================================

    @abstractmethod
    def create_membership(self, membership: DialMembership) -> DialMembership:
        """
        Insert a membership row and assign its generated id.

        Raises:
            ConflictError: If the user is already a member of the dial.
        """
        pass

    @abstractmethod
    def find_membership(self, dial_id: int, user_id: int) -> Optional[DialMembership]:
        """Return a user's membership in a dial, or None."""
        pass

    @abstractmethod
    def list_memberships(self, dial_id: int) -> list[DialMembership]:
        """Return all memberships of a dial ordered by id."""
        pass

    @abstractmethod
    def update_membership_value(
        self, membership_id: int, value: int, updated_at: datetime
    ) -> int:
        """Set a membership's contribution value. Returns affected rows."""
        pass

    @abstractmethod
    def delete_membership(self, membership_id: int) -> int:
        """Delete a membership. Returns affected rows."""
        pass

    @abstractmethod
    def membership_value_totals(self, dial_id: int) -> tuple[int, int]:
        """
        Return (sum, count) of contribution values for a dial.

        Returns (0, 0) when the dial has no members.
        """
        pass

    def membership_user_ids(self, dial_id: int) -> list[int]:
        """Return the ids of every user who is a member of the dial."""
        return [m.user_id for m in self.list_memberships(dial_id)]

    # =========================================================================
    # Health & lifecycle
    # =========================================================================

    def health_check(self) -> dict:
        """
        Perform a health check on the storage backend.

        Returns:
            Dictionary with health status information:
            {
                "healthy": bool,
                "backend_type": str,
                "message": str,
                "details": dict
            }
        """
        try:
            self.query("SELECT 1 as test")
            return {
                "healthy": True,
                "backend_type": self.backend_type,
                "message": "Backend is operational",
                "details": {},
            }
        except StorageError as e:
            return {
                "healthy": False,
                "backend_type": self.backend_type,
                "message": f"Health check failed: {str(e)}",
                "details": {"error": str(e)},
            }

    def __enter__(self) -> "StorageBackend":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit - ensures resources are released."""
        self.close()


class StorageError(Exception):
    """Base exception for storage backend errors."""

    pass


class StorageConnectionError(StorageError):
    """Raised when connection to storage backend fails."""

    pass


class QueryError(StorageError):
    """Raised when a query fails to execute."""

    pass


class SchemaError(StorageError):
    """Raised when there's a schema-related error."""

    pass
