"""
Constants for dial value history storage and reporting.
"""

from datetime import timedelta

# =============================================================================
# History Resolution
# =============================================================================

# Snapshots are stored at one-minute precision. Two writes for the same dial
# within the same minute collapse onto a single row (last write wins).
SNAPSHOT_RESOLUTION = timedelta(minutes=1)

# =============================================================================
# Dial Validation
# =============================================================================

MAX_DIAL_NAME_LENGTH = 100

# Invite codes are 16 random bytes, hex-encoded
INVITE_CODE_BYTES = 16

# =============================================================================
# Storage
# =============================================================================

SUPPORTED_BACKENDS = ["sqlite"]

DEFAULT_SQLITE_DB_PATH = "data/dial-history.db"

# SQLite table names
TABLE_DIALS = "dials"
TABLE_DIAL_MEMBERSHIPS = "dial_memberships"
TABLE_DIAL_VALUES = "dial_values"

# =============================================================================
# Monitoring
# =============================================================================

# Matches the ticker period of the stats sampler
DEFAULT_STATS_INTERVAL_SECONDS = 10.0

METRIC_PREFIX = "dial_history_db"
