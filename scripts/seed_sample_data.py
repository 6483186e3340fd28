#!/usr/bin/env python3
"""
Seed a database with sample dials and a simulated value history.

Creates dials owned by a handful of users, adds members, then replays
random contribution changes over a period of time so reports have data
to average.

Usage:
    # Seed 3 dials with 7 days of changes (default)
    python scripts/seed_sample_data.py --db-path data/dial-history.db

    # Larger data set
    python scripts/seed_sample_data.py --dials 20 --members 8 --days 30

    # Reproducible run ending at a fixed time
    python scripts/seed_sample_data.py --seed 7 --end 2024-01-31T00:00:00Z
"""

import argparse
import logging
import random
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dial_history.errors import DialError
from dial_history.models import DialMembership
from dial_history.monitoring import StatsMonitor
from dial_history.service import DialService
from dial_history.storage import StorageError, get_backend
from dial_history.utils import parse_timestamp, setup_logging

logger = logging.getLogger(__name__)

# Contribution range for simulated members
MIN_CONTRIBUTION = -10
MAX_CONTRIBUTION = 10


class SimulatedClock:
    """Clock that only moves when advanced."""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, delta: timedelta) -> None:
        self.current += delta


def seed(
    service: DialService,
    clock: SimulatedClock,
    num_dials: int,
    members_per_dial: int,
    days: int,
    changes_per_day: int,
) -> dict:
    """
    Create dials and replay contribution changes.

    Returns:
        Summary counts of what was created.
    """
    backend = service.backend
    dial_ids = []
    for i in range(num_dials):
        owner_id = i % 3 + 1
        dial = service.create_dial(owner_id, f"Sample dial {i + 1}")
        dial_ids.append(dial.id)

        # Owner plus additional members
        with backend.transaction() as tx:
            for member in range(members_per_dial - 1):
                user_id = 100 + member
                if user_id == owner_id:
                    continue
                backend.create_membership(
                    DialMembership(
                        dial_id=dial.id,
                        user_id=user_id,
                        value=0,
                        created_at=tx.now,
                        updated_at=tx.now,
                    )
                )

    total_changes = 0
    step = timedelta(days=1) / max(changes_per_day, 1)
    for _ in range(days * changes_per_day):
        clock.advance(step)
        dial_id = random.choice(dial_ids)
        memberships = backend.list_memberships(dial_id)
        member = random.choice(memberships)
        value = random.randint(MIN_CONTRIBUTION, MAX_CONTRIBUTION)
        result = service.set_membership_value(dial_id, member.user_id, value)
        if result.changed:
            total_changes += 1

    return {
        "dials": len(dial_ids),
        "memberships": backend.get_table_row_count("dial_memberships"),
        "history_rows": backend.get_table_row_count("dial_values"),
        "value_changes": total_changes,
    }


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Seed sample dials and value history",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--db-path",
        type=Path,
        help="Path to SQLite database (default: from settings)",
    )
    parser.add_argument("--dials", type=int, default=3, help="Number of dials")
    parser.add_argument(
        "--members", type=int, default=4, help="Members per dial including owner"
    )
    parser.add_argument("--days", type=int, default=7, help="Days of history")
    parser.add_argument(
        "--changes-per-day",
        type=int,
        default=48,
        help="Contribution changes per day across all dials",
    )
    parser.add_argument(
        "--end",
        type=parse_timestamp,
        default=None,
        help="End of the simulated period (default: now)",
    )
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args()

    setup_logging(level=logging.DEBUG if args.verbose else logging.INFO)
    random.seed(args.seed)

    end: Optional[datetime] = args.end or datetime.now(timezone.utc)
    clock = SimulatedClock(end - timedelta(days=args.days))

    kwargs = {"clock": clock}
    if args.db_path:
        kwargs["db_path"] = args.db_path

    try:
        backend = get_backend("sqlite", **kwargs)
        backend.initialize()
    except StorageError as e:
        logger.error(f"Failed to initialize storage backend: {e}")
        return 1

    service = DialService(
        backend=backend, stats_monitor=StatsMonitor.from_settings(backend)
    )
    try:
        service.initialize()
        summary = seed(
            service,
            clock,
            num_dials=args.dials,
            members_per_dial=args.members,
            days=args.days,
            changes_per_day=args.changes_per_day,
        )
        print(
            f"Seeded {summary['dials']} dials, {summary['memberships']} memberships, "
            f"{summary['history_rows']} history rows "
            f"({summary['value_changes']} value changes)"
        )
        return 0

    except (DialError, StorageError) as e:
        logger.error(f"Seeding failed: {e}")
        return 1

    finally:
        service.close()
        backend.close()


if __name__ == "__main__":
    sys.exit(main())
