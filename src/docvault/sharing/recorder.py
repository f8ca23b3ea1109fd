"""AccessRecorder: commit one access event and its counter increments.

``record`` writes, as one store transaction:

  (a) an AccessLog row,
  (b) ``documents.access_count += 1`` and ``last_accessed = now``,
  (c) ``share_grants.current_access_count += 1`` when a grant is given,
      but only while the count is below ``max_access_count``.

If (c) finds the quota full, nothing is written and the caller gets
``Denied(QUOTA_EXCEEDED)``. That conditional increment is what keeps a
popular link from being opened more than ``max_access_count`` times when
many visitors resolve it at once.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Protocol

from docvault.errors import InvalidArgument, NotFound
from docvault.observability.logging import get_logger, redact_token
from docvault.observability.metrics import ACCESS_RECORDS_TOTAL
from docvault.stats.model import VALID_ACTIONS, AccessLog

from .model import Denied, DenialReason, QuotaFull

if TYPE_CHECKING:
    from docvault.protocols import VaultStore

logger = get_logger(__name__)

UNKNOWN_LOCATION = 'Unknown'


class LocationResolver(Protocol):
    """Maps an origin address to a coarse location label."""

    async def locate(self, ip_address: str) -> str: ...


class UnknownLocationResolver:
    """Default resolver: no geolocation lookup is configured."""

    async def locate(self, ip_address: str) -> str:
        return UNKNOWN_LOCATION


class AccessRecorder:
    def __init__(
        self,
        store: VaultStore,
        *,
        location_resolver: LocationResolver | None = None,
    ) -> None:
        self._store = store
        self._locations = location_resolver or UnknownLocationResolver()

    async def record(
        self,
        document_id: str,
        action: str,
        *,
        grant_id: str | None = None,
        ip_address: str = 'unknown',
        user_agent: str = 'unknown',
        now: datetime | None = None,
    ) -> AccessLog | Denied:
        """Record an already-authorized access.

        Returns the written AccessLog, or ``Denied`` when the grant's quota
        filled up after resolution (QUOTA_EXCEEDED) or the document/grant
        no longer exists (NOT_FOUND).

        Raises:
            InvalidArgument: ``action`` is not 'view' or 'download'.
            StorageFailure: the store aborted the transaction.
        """
        if action not in VALID_ACTIONS:
            raise InvalidArgument(
                f'action must be one of {sorted(VALID_ACTIONS)}, got {action!r}',
            )

        entry = AccessLog(
            document_id=document_id,
            action=action,
            accessed_at=now or datetime.now(timezone.utc),
            ip_address=ip_address or 'unknown',
            user_agent=user_agent or 'unknown',
            location=await self._locations.locate(ip_address),
            grant_id=grant_id,
        )

        try:
            result = await self._store.record_access(entry)
        except NotFound as exc:
            ACCESS_RECORDS_TOTAL.labels(action=action, outcome='not_found').inc()
            logger.info(
                'access_not_recorded',
                document_id=document_id,
                grant=redact_token(grant_id),
                missing=exc.kind,
            )
            return Denied(DenialReason.NOT_FOUND, grant_id, f'{exc.kind} not found.')

        if isinstance(result, QuotaFull):
            ACCESS_RECORDS_TOTAL.labels(action=action, outcome='quota_exceeded').inc()
            logger.info(
                'access_quota_full',
                document_id=document_id,
                grant=redact_token(grant_id),
                max_access_count=result.max_access_count,
            )
            return Denied(DenialReason.QUOTA_EXCEEDED, grant_id)

        ACCESS_RECORDS_TOTAL.labels(action=action, outcome='recorded').inc()
        logger.info(
            'access_recorded',
            document_id=document_id,
            grant=redact_token(grant_id) if grant_id else None,
            action=action,
            document_access_count=result.document_access_count,
            grant_access_count=result.grant_access_count,
        )
        return entry
