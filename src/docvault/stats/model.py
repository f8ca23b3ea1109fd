"""Access-log record and statistics result shapes."""

from __future__ import annotations

import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Iterable

VALID_ACTIONS = frozenset({'view', 'download'})


@dataclass(frozen=True, slots=True)
class AccessLog:
    """Immutable access event matching vault.access_logs.

    Attributes:
        document_id: Accessed document.
        action: 'view' or 'download'.
        accessed_at: When the access was recorded.
        ip_address: Origin address, verbatim from the request context.
        user_agent: Client agent string, verbatim.
        location: Coarse location label ('Unknown' without a resolver).
        grant_id: Grant the access went through (None for direct access).
        id: Log identity.
    """

    document_id: str
    action: str
    accessed_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
    ip_address: str = 'unknown'
    user_agent: str = 'unknown'
    location: str = 'Unknown'
    grant_id: str | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'document_id': self.document_id,
            'action': self.action,
            'accessed_at': self.accessed_at.isoformat(),
            'ip_address': self.ip_address,
            'user_agent': self.user_agent,
            'location': self.location,
            'grant_id': self.grant_id,
        }


@dataclass(frozen=True, slots=True)
class AccessSummary:
    """Raw aggregates of the access log, as computed by a store.

    Hours and days are UTC buckets; empty buckets are omitted.
    """

    total: int
    unique_documents: int
    by_action: dict[str, int]
    by_hour: dict[int, int]
    by_day: dict[date, int]
    recent: tuple[AccessLog, ...] = ()


def summarize_logs(
    logs: Iterable[AccessLog],
    *,
    since: datetime,
    document_id: str | None = None,
    recent_limit: int = 0,
) -> AccessSummary:
    """Compute an ``AccessSummary`` over log entries held in memory."""
    scoped = [
        e for e in logs if document_id is None or e.document_id == document_id
    ]
    windowed = [e for e in scoped if e.accessed_at >= since]
    utc = [e.accessed_at.astimezone(timezone.utc) for e in windowed]
    recent = sorted(scoped, key=lambda e: e.accessed_at, reverse=True)

    return AccessSummary(
        total=len(windowed),
        unique_documents=len({e.document_id for e in windowed}),
        by_action=dict(Counter(e.action for e in windowed)),
        by_hour=dict(Counter(at.hour for at in utc)),
        by_day=dict(Counter(at.date() for at in utc)),
        recent=tuple(recent[:max(recent_limit, 0)]),
    )


@dataclass(frozen=True, slots=True)
class AccessOverview:
    window_days: int
    total_accesses: int
    unique_documents_accessed: int
    count_by_action: dict[str, int]
    distribution_by_hour: dict[int, int]

    def to_dict(self) -> dict:
        return {
            'window_days': self.window_days,
            'total_accesses': self.total_accesses,
            'unique_documents_accessed': self.unique_documents_accessed,
            'count_by_action': dict(self.count_by_action),
            'distribution_by_hour': [
                {'hour': hour, 'count': count}
                for hour, count in sorted(self.distribution_by_hour.items())
            ],
        }


@dataclass(frozen=True, slots=True)
class DocumentAccessStats:
    document_id: str
    window_days: int
    total_accesses: int
    recent_events: tuple[AccessLog, ...]
    daily_counts: tuple[tuple[date, int], ...]

    def to_dict(self) -> dict:
        return {
            'document_id': self.document_id,
            'window_days': self.window_days,
            'total_accesses': self.total_accesses,
            'recent_events': [
                {
                    'accessed_at': e.accessed_at.isoformat(),
                    'action': e.action,
                    'ip_address': e.ip_address,
                    'location': e.location,
                }
                for e in self.recent_events
            ],
            'daily_counts': [
                {'date': day.isoformat(), 'count': count}
                for day, count in self.daily_counts
            ],
        }
