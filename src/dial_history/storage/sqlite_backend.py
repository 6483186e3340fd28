"""
SQLite storage backend implementation.

Stores dials, dial memberships and the minute-resolution dial value
history in a single SQLite database file.
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Iterator, Optional

from ..config.constants import (
    SNAPSHOT_RESOLUTION,
    TABLE_DIAL_MEMBERSHIPS,
    TABLE_DIAL_VALUES,
    TABLE_DIALS,
)
from ..errors import ConflictError
from ..models import Dial, DialMembership, DialValue
from ..utils.time_utils import ensure_utc, truncate
from .base import (
    QueryError,
    SchemaError,
    StorageBackend,
    StorageConnectionError,
    Transaction,
)

logger = logging.getLogger(__name__)


# =============================================================================
# SQLite Schema Definitions
# =============================================================================

DIALS_SCHEMA = """
CREATE TABLE IF NOT EXISTS dials (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    name TEXT NOT NULL,
    invite_code TEXT UNIQUE NOT NULL,
    value INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
)
"""

DIAL_MEMBERSHIPS_SCHEMA = """
CREATE TABLE IF NOT EXISTS dial_memberships (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    dial_id INTEGER NOT NULL REFERENCES dials (id) ON DELETE CASCADE,
    user_id INTEGER NOT NULL,
    value INTEGER NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (dial_id, user_id)
)
"""

DIAL_VALUES_SCHEMA = """
CREATE TABLE IF NOT EXISTS dial_values (
    dial_id INTEGER NOT NULL REFERENCES dials (id) ON DELETE CASCADE,
    "timestamp" TEXT NOT NULL,  -- per-minute precision, UTC
    value INTEGER NOT NULL,
    PRIMARY KEY (dial_id, "timestamp")
)
"""

INDEX_DEFINITIONS = [
    "CREATE INDEX IF NOT EXISTS idx_dials_user_id ON dials(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_memberships_dial_id ON dial_memberships(dial_id)",
    "CREATE INDEX IF NOT EXISTS idx_memberships_user_id ON dial_memberships(user_id)",
]

# Fixed-width UTC layout with microseconds so that text comparison orders
# chronologically and range bounds keep sub-second precision
TIMESTAMP_LAYOUT = "%Y-%m-%dT%H:%M:%S.%fZ"

VALID_TABLES = frozenset([TABLE_DIALS, TABLE_DIAL_MEMBERSHIPS, TABLE_DIAL_VALUES])


# =============================================================================
# Type Conversion Helpers
# =============================================================================


def to_sqlite_timestamp(value: datetime) -> str:
    """Format a datetime as a fixed-width UTC string for SQLite."""
    return ensure_utc(value).strftime(TIMESTAMP_LAYOUT)


def from_sqlite_timestamp(value: Any) -> Optional[datetime]:
    """Convert a stored timestamp string back to an aware UTC datetime."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


def _row_to_dial(row: dict) -> Dial:
    return Dial(
        id=row["id"],
        user_id=row["user_id"],
        name=row["name"],
        invite_code=row["invite_code"],
        value=row["value"],
        created_at=from_sqlite_timestamp(row["created_at"]),
        updated_at=from_sqlite_timestamp(row["updated_at"]),
    )


def _row_to_membership(row: dict) -> DialMembership:
    return DialMembership(
        id=row["id"],
        dial_id=row["dial_id"],
        user_id=row["user_id"],
        value=row["value"],
        created_at=from_sqlite_timestamp(row["created_at"]),
        updated_at=from_sqlite_timestamp(row["updated_at"]),
    )


def _validate_identifier(value: str, valid_set: frozenset, name: str) -> str:
    """
    Validate an identifier against a whitelist to prevent SQL injection.

    Raises:
        ValueError: If identifier is not in the valid set
    """
    if value not in valid_set:
        raise ValueError(
            f"Invalid {name}: '{value}'. Must be one of: {sorted(valid_set)}"
        )
    return value


# =============================================================================
# SQLite Backend Implementation
# =============================================================================


class SQLiteBackend(StorageBackend):
    """
    SQLite storage backend.

    A single connection is shared between threads and serialized with a
    re-entrant lock. Transactions use BEGIN IMMEDIATE so concurrent
    recomputations of the same dial cannot interleave their read and write.
    """

    def __init__(
        self,
        db_path: Path | str = "data/dial-history.db",
        *,
        timeout: float = 30.0,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize SQLite backend.

        Args:
            db_path: Path to SQLite database file (or ":memory:")
            timeout: Connection busy timeout in seconds
            clock: Optional replacement for the current-time function
        """
        super().__init__(clock=clock)
        self.db_path = Path(db_path)
        self._in_memory = str(db_path) == ":memory:"
        self._timeout = timeout
        self._connection: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        self._active_tx: Optional[Transaction] = None

        if not self._in_memory:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def backend_type(self) -> str:
        """Return backend type identifier."""
        return "sqlite"

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._connection is None:
            try:
                # Autocommit mode; transactions are opened explicitly.
                self._connection = sqlite3.connect(
                    ":memory:" if self._in_memory else str(self.db_path),
                    check_same_thread=False,
                    timeout=self._timeout,
                    isolation_level=None,
                )
                self._connection.row_factory = sqlite3.Row
                self._connection.execute("PRAGMA foreign_keys = ON")
                if not self._in_memory:
                    self._connection.execute("PRAGMA journal_mode = wal")
                logger.debug(f"Connected to SQLite database: {self.db_path}")
            except sqlite3.Error as e:
                raise StorageConnectionError(
                    f"Failed to connect to SQLite database: {e}"
                ) from e
        return self._connection

    @contextmanager
    def _cursor(self) -> Iterator[sqlite3.Cursor]:
        """Context manager for a database cursor under the connection lock."""
        with self._lock:
            conn = self._get_connection()
            cursor = conn.cursor()
            try:
                yield cursor
            except sqlite3.Error as e:
                raise QueryError(f"SQLite query failed: {e}") from e
            finally:
                cursor.close()

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        """Open a unit of work (see StorageBackend.transaction)."""
        with self._lock:
            if self._active_tx is not None:
                yield self._active_tx
                return

            conn = self._get_connection()
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise QueryError(f"Failed to begin transaction: {e}") from e

            tx = Transaction(now=self.transaction_time())
            self._active_tx = tx
            try:
                yield tx
            except BaseException:
                conn.rollback()
                raise
            else:
                try:
                    conn.commit()
                except sqlite3.Error as e:
                    conn.rollback()
                    raise QueryError(f"Failed to commit transaction: {e}") from e
            finally:
                self._active_tx = None

        tx.run_commit_callbacks()

    def initialize(self) -> None:
        """
        Initialize database with all required tables and indexes.

        Safe to call multiple times - uses IF NOT EXISTS.
        """
        logger.info(f"Initializing SQLite database: {self.db_path}")

        with self._cursor() as cursor:
            cursor.execute(DIALS_SCHEMA)
            cursor.execute(DIAL_MEMBERSHIPS_SCHEMA)
            cursor.execute(DIAL_VALUES_SCHEMA)

            for index_sql in INDEX_DEFINITIONS:
                cursor.execute(index_sql)

        logger.info("SQLite database initialized successfully")

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None
                logger.debug("SQLite connection closed")

    def query(
        self,
        sql: str,
        params: Optional[dict] = None,
    ) -> list[dict]:
        """
        Execute query and return results as list of dictionaries.

        Args:
            sql: SQL query (use :param_name for parameters)
            params: Optional parameter dictionary

        Returns:
            List of result rows as dictionaries
        """
        with self._cursor() as cursor:
            cursor.execute(sql, params or {})
            columns = [desc[0] for desc in cursor.description or []]
            rows = cursor.fetchall()
            return [dict(zip(columns, row)) for row in rows]

    def execute(
        self,
        sql: str,
        params: Optional[dict] = None,
    ) -> int:
        """
        Execute statement (INSERT, UPDATE, DELETE, DDL).

        Returns:
            Number of affected rows
        """
        with self._cursor() as cursor:
            cursor.execute(sql, params or {})
            return cursor.rowcount

    def table_exists(self, table_name: str) -> bool:
        """Check if a table exists."""
        sql = """
            SELECT name FROM sqlite_master
            WHERE type='table' AND name=:table_name
        """
        result = self.query(sql, {"table_name": table_name})
        return len(result) > 0

    def get_table_row_count(self, table_name: str) -> int:
        """Get total row count for a table."""
        _validate_identifier(table_name, VALID_TABLES, "table name")
        if not self.table_exists(table_name):
            raise SchemaError(f"Table '{table_name}' does not exist")

        sql = f"SELECT COUNT(*) as count FROM {table_name}"
        result = self.query(sql)
        return result[0]["count"] if result else 0

    # =========================================================================
    # Dial value history
    # =========================================================================

    def upsert_dial_value(self, dial_id: int, timestamp: datetime, value: int) -> None:
        """Insert or overwrite the snapshot for (dial_id, minute)."""
        # Reduce precision to one update per minute.
        timestamp = truncate(timestamp, SNAPSHOT_RESOLUTION)

        self.execute(
            """
            INSERT INTO dial_values (dial_id, "timestamp", value)
            VALUES (:dial_id, :timestamp, :value)
            ON CONFLICT (dial_id, "timestamp") DO UPDATE SET value = excluded.value
            """,
            {
                "dial_id": dial_id,
                "timestamp": to_sqlite_timestamp(timestamp),
                "value": value,
            },
        )

    def dial_value_at_or_before(self, dial_id: int, timestamp: datetime) -> int:
        """Return the latest snapshot value at or before timestamp (0 if none)."""
        result = self.query(
            """
            SELECT value
            FROM dial_values
            WHERE dial_id = :dial_id
              AND "timestamp" <= :timestamp
            ORDER BY "timestamp" DESC
            LIMIT 1
            """,
            {"dial_id": dial_id, "timestamp": to_sqlite_timestamp(timestamp)},
        )
        return result[0]["value"] if result else 0

    def dial_values_between(
        self,
        dial_id: int,
        start: datetime,
        end: datetime,
    ) -> list[DialValue]:
        """Return snapshots in [start, end) ordered by timestamp."""
        rows = self.query(
            """
            SELECT dial_id, "timestamp", value
            FROM dial_values
            WHERE dial_id = :dial_id
              AND "timestamp" >= :start
              AND "timestamp" < :end
            ORDER BY "timestamp" ASC
            """,
            {
                "dial_id": dial_id,
                "start": to_sqlite_timestamp(start),
                "end": to_sqlite_timestamp(end),
            },
        )
        return [
            DialValue(
                dial_id=row["dial_id"],
                timestamp=from_sqlite_timestamp(row["timestamp"]),
                value=row["value"],
            )
            for row in rows
        ]

    def dial_values(self, dial_id: int) -> list[int]:
        """Return all stored values for a dial in timestamp order."""
        rows = self.query(
            """
            SELECT value
            FROM dial_values
            WHERE dial_id = :dial_id
            ORDER BY "timestamp"
            """,
            {"dial_id": dial_id},
        )
        return [row["value"] for row in rows]

    # =========================================================================
    # Dials
    # =========================================================================

    def create_dial(self, dial: Dial) -> Dial:
        """Insert a dial and read back its id."""
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO dials (
                    user_id, name, invite_code, value, created_at, updated_at
                ) VALUES (
                    :user_id, :name, :invite_code, :value, :created_at, :updated_at
                )
                """,
                {
                    "user_id": dial.user_id,
                    "name": dial.name,
                    "invite_code": dial.invite_code,
                    "value": dial.value,
                    "created_at": to_sqlite_timestamp(dial.created_at),
                    "updated_at": to_sqlite_timestamp(dial.updated_at),
                },
            )
            dial.id = cursor.lastrowid
        return dial

    def find_dials(
        self,
        *,
        dial_id: Optional[int] = None,
        member_user_id: Optional[int] = None,
        invite_code: Optional[str] = None,
        limit: int = 0,
        offset: int = 0,
    ) -> tuple[list[Dial], int]:
        """Find dials matching all given filters."""
        # Each part of the WHERE clause is AND-ed together.
        where, params = ["1 = 1"], {}
        if dial_id is not None:
            where.append("id = :dial_id")
            params["dial_id"] = dial_id
        if invite_code is not None:
            where.append("invite_code = :invite_code")
            params["invite_code"] = invite_code
        if member_user_id is not None:
            where.append(
                "id IN (SELECT dial_id FROM dial_memberships WHERE user_id = :member_user_id)"
            )
            params["member_user_id"] = member_user_id
        where_sql = " AND ".join(where)

        count_rows = self.query(
            f"SELECT COUNT(*) AS count FROM dials WHERE {where_sql}", params
        )
        total = count_rows[0]["count"] if count_rows else 0

        rows = self.query(
            f"""
            SELECT id, user_id, name, invite_code, value, created_at, updated_at
            FROM dials
            WHERE {where_sql}
            ORDER BY id ASC
            {format_limit_offset(limit, offset)}
            """,
            params,
        )
        return [_row_to_dial(row) for row in rows], total

    def update_dial(self, dial: Dial) -> None:
        """Persist name and updated_at for a dial."""
        self.execute(
            """
            UPDATE dials
            SET name = :name,
                updated_at = :updated_at
            WHERE id = :id
            """,
            {
                "id": dial.id,
                "name": dial.name,
                "updated_at": to_sqlite_timestamp(dial.updated_at),
            },
        )

    def delete_dial(self, dial_id: int) -> int:
        """Delete a dial; memberships and history cascade."""
        return self.execute("DELETE FROM dials WHERE id = :id", {"id": dial_id})

    def get_dial_value(self, dial_id: int) -> Optional[int]:
        """Return the stored aggregate value, or None if the dial is gone."""
        rows = self.query("SELECT value FROM dials WHERE id = :id", {"id": dial_id})
        return rows[0]["value"] if rows else None

    def set_dial_value(self, dial_id: int, value: int, updated_at: datetime) -> None:
        """Store a new aggregate value on the dial."""
        self.execute(
            """
            UPDATE dials
            SET value = :value,
                updated_at = :updated_at
            WHERE id = :id
            """,
            {
                "id": dial_id,
                "value": value,
                "updated_at": to_sqlite_timestamp(updated_at),
            },
        )

    # =========================================================================
    # Memberships
    # =========================================================================

    def create_membership(self, membership: DialMembership) -> DialMembership:
        """Insert a membership; duplicates raise ConflictError."""
        with self._cursor() as cursor:
            try:
                cursor.execute(
                    """
                    INSERT INTO dial_memberships (
                        dial_id, user_id, value, created_at, updated_at
                    ) VALUES (
                        :dial_id, :user_id, :value, :created_at, :updated_at
                    )
                    """,
                    {
                        "dial_id": membership.dial_id,
                        "user_id": membership.user_id,
                        "value": membership.value,
                        "created_at": to_sqlite_timestamp(membership.created_at),
                        "updated_at": to_sqlite_timestamp(membership.updated_at),
                    },
                )
            except sqlite3.IntegrityError as e:
                if "UNIQUE" in str(e):
                    raise ConflictError("Dial membership already exists.") from e
                raise
            membership.id = cursor.lastrowid
        return membership

    def find_membership(self, dial_id: int, user_id: int) -> Optional[DialMembership]:
        """Return a user's membership in a dial, or None."""
        rows = self.query(
            """
            SELECT id, dial_id, user_id, value, created_at, updated_at
            FROM dial_memberships
            WHERE dial_id = :dial_id AND user_id = :user_id
            """,
            {"dial_id": dial_id, "user_id": user_id},
        )
        return _row_to_membership(rows[0]) if rows else None

    def list_memberships(self, dial_id: int) -> list[DialMembership]:
        """Return all memberships of a dial ordered by id."""
        rows = self.query(
            """
            SELECT id, dial_id, user_id, value, created_at, updated_at
            FROM dial_memberships
            WHERE dial_id = :dial_id
            ORDER BY id ASC
            """,
            {"dial_id": dial_id},
        )
        return [_row_to_membership(row) for row in rows]

    def update_membership_value(
        self, membership_id: int, value: int, updated_at: datetime
    ) -> int:
        """Set a membership's contribution value."""
        return self.execute(
            """
            UPDATE dial_memberships
            SET value = :value,
                updated_at = :updated_at
            WHERE id = :id
            """,
            {
                "id": membership_id,
                "value": value,
                "updated_at": to_sqlite_timestamp(updated_at),
            },
        )

    def delete_membership(self, membership_id: int) -> int:
        """Delete a membership by id."""
        return self.execute(
            "DELETE FROM dial_memberships WHERE id = :id", {"id": membership_id}
        )

    def membership_value_totals(self, dial_id: int) -> tuple[int, int]:
        """Return (sum, count) of contribution values for a dial."""
        rows = self.query(
            """
            SELECT COALESCE(SUM(value), 0) AS total, COUNT(*) AS count
            FROM dial_memberships
            WHERE dial_id = :dial_id
            """,
            {"dial_id": dial_id},
        )
        if not rows:
            return 0, 0
        return int(rows[0]["total"]), int(rows[0]["count"])

    def membership_user_ids(self, dial_id: int) -> list[int]:
        """Return member user ids of a dial."""
        rows = self.query(
            "SELECT user_id FROM dial_memberships WHERE dial_id = :dial_id ORDER BY id",
            {"dial_id": dial_id},
        )
        return [row["user_id"] for row in rows]

    def health_check(self) -> dict:
        """Extended health check with SQLite-specific info."""
        base_check = super().health_check()

        if base_check["healthy"]:
            db_size = (
                self.db_path.stat().st_size
                if not self._in_memory and self.db_path.exists()
                else 0
            )
            tables = self.query(
                "SELECT COUNT(*) as count FROM sqlite_master WHERE type='table'"
            )
            base_check["details"] = {
                "db_path": str(self.db_path),
                "db_size_bytes": db_size,
                "table_count": tables[0]["count"] if tables else 0,
            }

        return base_check


def format_limit_offset(limit: int, offset: int) -> str:
    """
    Return a SQL LIMIT/OFFSET clause.

    Clauses are only added if limit and/or offset are greater than zero.
    """
    if limit > 0 and offset > 0:
        return f"LIMIT {int(limit)} OFFSET {int(offset)}"
    elif limit > 0:
        return f"LIMIT {int(limit)}"
    elif offset > 0:
        # SQLite requires a LIMIT before OFFSET
        return f"LIMIT -1 OFFSET {int(offset)}"
    return ""
