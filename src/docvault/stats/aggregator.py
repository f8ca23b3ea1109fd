"""Read-only access statistics computed from the access log.

Counting happens inside the store (``summarize_access``): one SQL statement
on PostgREST, one locked pass in memory. Every figure in a result therefore
comes from the same snapshot, and no row cap on a list endpoint can truncate
the totals. Hours and dates are bucketed in UTC.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from docvault.errors import InvalidArgument, NotFound

from .model import VALID_ACTIONS, AccessOverview, DocumentAccessStats

if TYPE_CHECKING:
    from docvault.protocols import VaultStore

DEFAULT_WINDOW_DAYS = 30
DEFAULT_RECENT_LIMIT = 10


def _validate_window(window_days: int) -> None:
    if window_days < 1:
        raise InvalidArgument('window_days must be >= 1')


class StatsAggregator:
    def __init__(self, store: VaultStore) -> None:
        self._store = store

    async def overview(
        self,
        window_days: int = DEFAULT_WINDOW_DAYS,
        *,
        now: datetime | None = None,
    ) -> AccessOverview:
        """Global rollup of accesses within the last ``window_days``."""
        _validate_window(window_days)
        now = now or datetime.now(timezone.utc)
        summary = await self._store.summarize_access(
            since=now - timedelta(days=window_days),
        )

        by_action = {action: 0 for action in sorted(VALID_ACTIONS)}
        by_action.update(summary.by_action)

        return AccessOverview(
            window_days=window_days,
            total_accesses=summary.total,
            unique_documents_accessed=summary.unique_documents,
            count_by_action=by_action,
            distribution_by_hour={
                hour: summary.by_hour.get(hour, 0) for hour in range(24)
            },
        )

    async def per_document(
        self,
        document_id: str,
        window_days: int = DEFAULT_WINDOW_DAYS,
        *,
        recent_limit: int = DEFAULT_RECENT_LIMIT,
        now: datetime | None = None,
    ) -> DocumentAccessStats:
        """Rollup for one document.

        ``recent_events`` is not limited by the window: it is always the
        latest ``recent_limit`` events for the document.

        Raises:
            NotFound: the document does not exist.
        """
        _validate_window(window_days)
        if await self._store.get_document(document_id) is None:
            raise NotFound('document', document_id)

        now = now or datetime.now(timezone.utc)
        summary = await self._store.summarize_access(
            since=now - timedelta(days=window_days),
            document_id=document_id,
            recent_limit=recent_limit,
        )

        return DocumentAccessStats(
            document_id=document_id,
            window_days=window_days,
            total_accesses=summary.total,
            recent_events=summary.recent,
            daily_counts=tuple(sorted(summary.by_day.items(), reverse=True)),
        )
