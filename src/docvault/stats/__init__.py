"""Access log records and read-only statistics."""

from .aggregator import StatsAggregator
from .model import (
    VALID_ACTIONS,
    AccessLog,
    AccessOverview,
    AccessSummary,
    DocumentAccessStats,
)

__all__ = [
    'AccessLog',
    'AccessOverview',
    'AccessSummary',
    'DocumentAccessStats',
    'StatsAggregator',
    'VALID_ACTIONS',
]
