#!/usr/bin/env python3
"""
Build an interval-averaged dial value report and export it to CSV or JSON.

Usage:
    # Hourly report over one day for user 1
    python scripts/dial_report.py \
        --user-id 1 \
        --start 2024-01-01T00:00:00Z \
        --end 2024-01-02T00:00:00Z \
        --interval 1h \
        --output data/reports/dial_report.csv

    # Five-minute report as JSON
    python scripts/dial_report.py --user-id 1 \
        --start 2024-01-01T12:00:00Z --end 2024-01-01T13:00:00Z \
        --interval 5m --output data/reports/dial_report.json
"""

import argparse
import json
import logging
import sys
from datetime import datetime, timedelta
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dial_history.config.settings import get_settings
from dial_history.errors import DialError
from dial_history.reporting import ReportBuilder, ValueReport
from dial_history.storage import StorageError
from dial_history.utils import parse_interval, parse_timestamp, setup_logging

logger = logging.getLogger(__name__)


def timestamp_arg(value: str) -> datetime:
    """Parse a timestamp argument."""
    try:
        return parse_timestamp(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def interval_arg(value: str) -> timedelta:
    """Parse an interval argument such as 30s, 5m or 1h."""
    try:
        return parse_interval(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def export_report(report: ValueReport, output: Path, output_format: str) -> None:
    """Write a report to CSV or JSON."""
    output.parent.mkdir(parents=True, exist_ok=True)
    if output_format == "csv":
        report.to_dataframe().to_csv(output)
    else:
        with open(output, "w") as f:
            json.dump(report.to_dict(), f, indent=2)


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Build an interval-averaged dial value report",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/dial_report.py --user-id 1 \\
      --start 2024-01-01T00:00:00Z --end 2024-01-02T00:00:00Z \\
      --interval 1h --output data/reports/dial_report.csv
        """,
    )

    parser.add_argument(
        "--user-id",
        type=int,
        required=True,
        help="Report the dials this user is a member of",
    )
    parser.add_argument(
        "--start",
        type=timestamp_arg,
        required=True,
        help="Window start, inclusive (ISO8601, naive times are UTC)",
    )
    parser.add_argument(
        "--end",
        type=timestamp_arg,
        required=True,
        help="Window end, exclusive (ISO8601, naive times are UTC)",
    )
    parser.add_argument(
        "--interval",
        type=interval_arg,
        default=timedelta(hours=1),
        help="Slot size, e.g. 30s, 5m, 1h, 1d (default: 1h)",
    )
    parser.add_argument(
        "--output",
        "-o",
        type=Path,
        required=True,
        help="Output file path (.csv or .json)",
    )
    parser.add_argument(
        "--format",
        "-f",
        choices=["csv", "json"],
        default=None,
        help="Export format (auto-detected from output extension if not specified)",
    )
    parser.add_argument(
        "--db-path",
        type=Path,
        help="Path to SQLite database (default: from settings)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args()

    setup_logging(
        level=logging.DEBUG if args.verbose else get_settings().log_level
    )

    output_format = args.format
    if output_format is None:
        suffix = args.output.suffix.lower()
        if suffix in (".csv", ".json"):
            output_format = suffix[1:]
        else:
            parser.error(
                f"Cannot determine format from extension '{suffix}'. "
                "Use --format to specify csv or json"
            )

    try:
        builder = ReportBuilder(db_path=args.db_path)
        builder.initialize()
    except StorageError as e:
        logger.error(f"Failed to initialize storage backend: {e}")
        return 1

    try:
        report = builder.build_report(args.user_id, args.start, args.end, args.interval)
        export_report(report, args.output, output_format)
        print(
            f"Exported {len(report)} slots across {report.dial_count} dials "
            f"to {args.output}"
        )
        return 0

    except (DialError, StorageError, OSError) as e:
        logger.error(f"Report failed: {e}")
        return 1

    finally:
        builder.close()


if __name__ == "__main__":
    sys.exit(main())
