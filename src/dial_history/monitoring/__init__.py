"""Monitoring module for database statistics."""

from .stats import SAMPLED_TABLES, StatsMonitor

__all__ = [
    "StatsMonitor",
    "SAMPLED_TABLES",
]
