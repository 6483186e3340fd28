"""Aggregate value recomputation."""

from .recompute import AggregateRecomputer, RecomputeResult
from .rounding import rounded_column_means, rounded_mean

__all__ = [
    "AggregateRecomputer",
    "RecomputeResult",
    "rounded_mean",
    "rounded_column_means",
]
