"""ShareLinkManager: create, revoke, update, and resolve share grants.

Resolution order (the first failing check decides the denial):

  1. existence        → NOT_FOUND
  2. active flag      → NOT_FOUND (revoked/replaced links look unknown)
  3. now < expires_at → EXPIRED
  4. quota            → QUOTA_EXCEEDED
  5. password         → PASSWORD_REQUIRED / PASSWORD_MISMATCH

Resolution never advances counters. The quota check here is advisory; the
binding check is the conditional increment performed by the store when
``AccessRecorder.record`` commits, so concurrent visitors cannot push a
grant past ``max_access_count``.

Create/revoke/update each touch the grant and its document and are
delegated to a single store transaction.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Callable, TypeVar

from docvault.errors import InvalidArgument, NotFound
from docvault.observability.logging import get_logger, redact_token
from docvault.observability.metrics import (
    SHARE_GRANT_EVENTS_TOTAL,
    SHARE_RESOLUTIONS_TOTAL,
)

from .model import (
    Denied,
    DenialReason,
    ExpiringGrant,
    ResolvedGrant,
    ShareGrant,
    build_share_link,
    generate_grant_id,
)
from .passwords import hash_password, verify_password

if TYPE_CHECKING:
    from docvault.protocols import VaultStore

logger = get_logger(__name__)

T = TypeVar('T')


class _Unset:
    def __repr__(self) -> str:
        return 'UNSET'


UNSET: Any = _Unset()


def _now() -> datetime:
    return datetime.now(timezone.utc)


async def _off_loop(func: Callable[..., T], *args: Any) -> T:
    # Password hashing is CPU-bound; keep it off the event loop.
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, func, *args)


def _require_aware(value: datetime, name: str) -> None:
    if value.tzinfo is None or value.utcoffset() is None:
        raise InvalidArgument(f'{name} must be timezone-aware')


def _validate_max_access_count(value: int | None) -> None:
    if value is not None and value < 1:
        raise InvalidArgument('max_access_count must be >= 1 when set')


class ShareLinkManager:
    """State-machine core for share grants."""

    def __init__(self, store: VaultStore, *, public_base_url: str) -> None:
        self._store = store
        self._public_base_url = public_base_url

    # ── Lifecycle ──────────────────────────────────────────────────

    async def create(
        self,
        document_id: str,
        expires_at: datetime,
        *,
        allow_download: bool = True,
        require_password: bool = False,
        password: str | None = None,
        max_access_count: int | None = None,
        now: datetime | None = None,
    ) -> ShareGrant:
        """Create a grant for a document and mark the document shared.

        Raises:
            InvalidArgument: expiry not in the future, password required but
                missing, or a non-positive quota.
            NotFound: the document does not exist.
        """
        now = now or _now()
        _require_aware(expires_at, 'expires_at')
        if expires_at <= now:
            raise InvalidArgument('expires_at must be in the future')
        if require_password and not password:
            raise InvalidArgument('password is required when require_password is set')
        _validate_max_access_count(max_access_count)

        password_hash = (
            await _off_loop(hash_password, password) if require_password else None
        )
        grant_id = generate_grant_id()
        grant = ShareGrant(
            id=grant_id,
            document_id=document_id,
            expires_at=expires_at,
            allow_download=allow_download,
            require_password=require_password,
            password_hash=password_hash,
            max_access_count=max_access_count,
            current_access_count=0,
            is_active=True,
            share_link=build_share_link(self._public_base_url, grant_id),
            created_at=now,
            updated_at=now,
        )
        grant = await self._store.create_grant(grant)

        SHARE_GRANT_EVENTS_TOTAL.labels(event='created').inc()
        logger.info(
            'share_created',
            grant=redact_token(grant.id),
            document_id=document_id,
            expires_at=expires_at.isoformat(),
            max_access_count=max_access_count,
            require_password=require_password,
        )
        return grant

    async def revoke(
        self, grant_id: str, *, now: datetime | None = None,
    ) -> ShareGrant:
        """Deactivate a grant. Idempotent; safe to retry.

        Raises:
            NotFound: the grant never existed.
        """
        grant = await self._store.deactivate_grant(grant_id, now=now or _now())
        SHARE_GRANT_EVENTS_TOTAL.labels(event='revoked').inc()
        logger.info(
            'share_revoked',
            grant=redact_token(grant_id),
            document_id=grant.document_id,
        )
        return grant

    async def update(
        self,
        grant_id: str,
        *,
        expires_at: datetime | None = None,
        allow_download: bool | None = None,
        require_password: bool | None = None,
        password: str | None = None,
        max_access_count: int | None = UNSET,
        now: datetime | None = None,
    ) -> ShareGrant:
        """Change the settings of an active grant.

        ``max_access_count=None`` removes the quota; leaving it unset keeps
        the current value. Supplying ``password`` alone replaces the stored
        verifier on a password-protected grant.

        Raises:
            NotFound: the grant does not exist.
            InvalidArgument: the grant is inactive, or a new value breaks a
                grant invariant.
        """
        now = now or _now()
        grant = await self._store.get_grant(grant_id)
        if grant is None:
            raise NotFound('share_grant', grant_id)
        if not grant.is_active:
            raise InvalidArgument('cannot update an inactive share grant')

        changes: dict[str, Any] = {}

        if expires_at is not None:
            _require_aware(expires_at, 'expires_at')
            if expires_at <= now:
                raise InvalidArgument('expires_at must be in the future')
            changes['expires_at'] = expires_at

        if allow_download is not None:
            changes['allow_download'] = allow_download

        wants_password = (
            grant.require_password if require_password is None else require_password
        )
        if wants_password:
            if password:
                changes['password_hash'] = await _off_loop(hash_password, password)
            elif not grant.password_hash:
                raise InvalidArgument(
                    'password is required when require_password is set',
                )
        elif require_password is False:
            changes['password_hash'] = None
        if require_password is not None:
            changes['require_password'] = require_password

        if max_access_count is not UNSET:
            _validate_max_access_count(max_access_count)
            if (
                max_access_count is not None
                and max_access_count < grant.current_access_count
            ):
                raise InvalidArgument(
                    'max_access_count cannot be lower than the current access count',
                )
            changes['max_access_count'] = max_access_count

        if not changes:
            return grant

        updated = await self._store.update_grant(grant_id, changes, now=now)
        SHARE_GRANT_EVENTS_TOTAL.labels(event='updated').inc()
        logger.info(
            'share_updated',
            grant=redact_token(grant_id),
            fields=sorted(k for k in changes if k != 'password_hash'),
        )
        return updated

    # ── Reads ──────────────────────────────────────────────────────

    async def get(self, grant_id: str) -> ShareGrant:
        grant = await self._store.get_grant(grant_id)
        if grant is None:
            raise NotFound('share_grant', grant_id)
        return grant

    async def list_grants(
        self, *, active: bool | None = None, now: datetime | None = None,
    ) -> list[ShareGrant]:
        """List grants newest first.

        ``active=True`` keeps grants that are active and unexpired;
        ``active=False`` keeps grants that are inactive or expired.
        """
        now = now or _now()
        grants = await self._store.list_grants()
        if active is None:
            return grants
        return [
            g for g in grants
            if (g.is_active and not g.is_expired(now)) == active
        ]

    async def expiring_soon(
        self, within_days: int, *, now: datetime | None = None,
    ) -> list[ExpiringGrant]:
        """Active grants expiring within ``within_days``, soonest first."""
        if within_days < 0:
            raise InvalidArgument('within_days must be >= 0')
        now = now or _now()
        rows = await self._store.list_expiring_grants(
            expires_after=now,
            expires_before=now + timedelta(days=within_days),
        )
        return [
            ExpiringGrant(
                grant=grant,
                document_name=document_name,
                days_until_expiry=(grant.expires_at - now).days,
            )
            for grant, document_name in rows
        ]

    # ── Resolution ─────────────────────────────────────────────────

    async def resolve(
        self,
        grant_id: str,
        password: str | None = None,
        *,
        now: datetime | None = None,
    ) -> ResolvedGrant | Denied:
        """Validate an inbound access attempt against a grant.

        Returns a ``ResolvedGrant`` to hand to ``AccessRecorder.record``, or
        a ``Denied`` carrying the first failing reason. Never raises for
        expected denials and never mutates state.
        """
        now = now or _now()
        outcome = await self._evaluate(grant_id, password, now)

        if isinstance(outcome, Denied):
            SHARE_RESOLUTIONS_TOTAL.labels(outcome=outcome.reason.value).inc()
            logger.info(
                'share_denied',
                grant=redact_token(grant_id),
                reason=outcome.reason.value,
            )
        else:
            SHARE_RESOLUTIONS_TOTAL.labels(outcome='resolved').inc()
            logger.debug(
                'share_resolved',
                grant=redact_token(grant_id),
                document_id=outcome.document_id,
            )
        return outcome

    async def _evaluate(
        self, grant_id: str, password: str | None, now: datetime,
    ) -> ResolvedGrant | Denied:
        grant = await self._store.get_grant(grant_id)
        if grant is None:
            return Denied(DenialReason.NOT_FOUND, grant_id)

        if not grant.is_active:
            return Denied(DenialReason.NOT_FOUND, grant_id)

        if grant.is_expired(now):
            return Denied(
                DenialReason.EXPIRED,
                grant_id,
                f'Share link expired at {grant.expires_at.isoformat()}.',
            )

        if grant.quota_exhausted:
            return Denied(DenialReason.QUOTA_EXCEEDED, grant_id)

        if grant.require_password:
            if not password:
                return Denied(DenialReason.PASSWORD_REQUIRED, grant_id)
            if not await _off_loop(verify_password, password, grant.password_hash):
                return Denied(DenialReason.PASSWORD_MISMATCH, grant_id)

        doc = await self._store.get_document(grant.document_id)
        if doc is None:
            return Denied(DenialReason.NOT_FOUND, grant_id)

        return ResolvedGrant(grant=replace(grant), document=doc, resolved_at=now)
