"""Share-grant domain model and resolution outcomes.

A ShareGrant is the authorization unit behind one share link. The link
itself is ``{public_base_url}/share/{grant_id}``; whoever holds the grant id
can attempt a resolution, so grant ids are treated as bearer secrets in logs
(see ``docvault.observability.logging.redact_token``).

Usability of a grant is evaluated at read time against wall-clock time:

  - ``is_active`` must be True (revoke / replacement clears it).
  - ``now < expires_at``.
  - ``max_access_count`` unset, or ``current_access_count < max_access_count``.

This module provides:
  1. ``ShareGrant``: row shape of vault.share_grants.
  2. ``DenialReason`` / ``Denied`` / ``ResolvedGrant``: resolution results.
  3. ``Incremented`` / ``QuotaFull``: outcome of the atomic conditional
     counter update performed by the store.
  4. ``ExpiringGrant``: reporting row for ``expiring_soon``.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from docvault.documents.model import Document


def generate_grant_id() -> str:
    """Return a fresh grant id (random UUID4, unguessable)."""
    return str(uuid.uuid4())


def build_share_link(public_base_url: str, grant_id: str) -> str:
    return f"{public_base_url.rstrip('/')}/share/{grant_id}"


# ── Domain model ──────────────────────────────────────────────────────


@dataclass
class ShareGrant:
    """Share grant matching the vault.share_grants schema.

    Attributes:
        id: Grant identity (distinct from the document id).
        document_id: Shared document.
        expires_at: Timezone-aware instant after which the link is dead.
        allow_download: Whether file transfer may proceed.
        require_password: Whether resolution needs a password.
        password_hash: Salted one-way hash; never the plaintext.
        max_access_count: Quota (None = unbounded).
        current_access_count: Successful recorded accesses.
        is_active: False once revoked or replaced.
        share_link: External link derived from ``id``.
    """

    id: str
    document_id: str
    expires_at: datetime
    allow_download: bool = True
    require_password: bool = False
    password_hash: str | None = None
    max_access_count: int | None = None
    current_access_count: int = 0
    is_active: bool = True
    share_link: str = ''
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
    updated_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc),
    )

    def is_expired(self, now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now >= self.expires_at

    @property
    def quota_exhausted(self) -> bool:
        return (
            self.max_access_count is not None
            and self.current_access_count >= self.max_access_count
        )

    def to_dict(self, now: datetime | None = None) -> dict:
        """Serialize for API responses. The password hash never leaves."""
        return {
            'id': self.id,
            'document_id': self.document_id,
            'share_link': self.share_link,
            'expires_at': self.expires_at.isoformat(),
            'allow_download': self.allow_download,
            'require_password': self.require_password,
            'max_access_count': self.max_access_count,
            'current_access_count': self.current_access_count,
            'is_active': self.is_active,
            'is_expired': self.is_expired(now),
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
        }


# ── Resolution outcomes ───────────────────────────────────────────────


class DenialReason(str, Enum):
    """Why a share link was refused. Values double as API error codes."""

    NOT_FOUND = 'not_found'
    EXPIRED = 'expired'
    QUOTA_EXCEEDED = 'quota_exceeded'
    PASSWORD_REQUIRED = 'password_required'
    PASSWORD_MISMATCH = 'password_mismatch'
    DOWNLOAD_NOT_ALLOWED = 'download_not_allowed'


DENIAL_HTTP_STATUS: dict[DenialReason, int] = {
    DenialReason.NOT_FOUND: 404,
    DenialReason.EXPIRED: 410,
    DenialReason.QUOTA_EXCEEDED: 403,
    DenialReason.PASSWORD_REQUIRED: 401,
    DenialReason.PASSWORD_MISMATCH: 403,
    DenialReason.DOWNLOAD_NOT_ALLOWED: 403,
}

_DENIAL_DETAIL: dict[DenialReason, str] = {
    DenialReason.NOT_FOUND: 'Share link not found.',
    DenialReason.EXPIRED: 'Share link has expired.',
    DenialReason.QUOTA_EXCEEDED: 'Maximum access count reached.',
    DenialReason.PASSWORD_REQUIRED: 'This share link requires a password.',
    DenialReason.PASSWORD_MISMATCH: 'Incorrect password.',
    DenialReason.DOWNLOAD_NOT_ALLOWED: 'Downloads are disabled for this share link.',
}


@dataclass(frozen=True, slots=True)
class Denied:
    """A refused resolution or recording. Carries its specific reason."""

    reason: DenialReason
    grant_id: str | None = None
    detail: str = ''

    @property
    def http_status(self) -> int:
        return DENIAL_HTTP_STATUS[self.reason]

    def to_dict(self) -> dict:
        return {
            'error': self.reason.value,
            'detail': self.detail or _DENIAL_DETAIL[self.reason],
        }


@dataclass(frozen=True, slots=True)
class ResolvedGrant:
    """Handle returned by a successful resolution.

    Holds the state read at resolution time. Counters are not advanced
    until ``AccessRecorder.record`` commits the access.
    """

    grant: ShareGrant
    document: Document
    resolved_at: datetime

    @property
    def grant_id(self) -> str:
        return self.grant.id

    @property
    def document_id(self) -> str:
        return self.document.id

    def to_dict(self) -> dict:
        return {
            'document': {
                'id': self.document.id,
                'name': self.document.name,
                'original_name': self.document.original_name,
                'size': self.document.size,
                'content_type': self.document.content_type,
            },
            'share': {
                'id': self.grant.id,
                'allow_download': self.grant.allow_download,
                'require_password': self.grant.require_password,
                'expires_at': self.grant.expires_at.isoformat(),
            },
        }


# ── Conditional counter update ────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class Incremented:
    """Access committed. Counters hold their post-increment values.

    ``grant_access_count`` is None for accesses recorded without a grant.
    """

    document_access_count: int
    grant_access_count: int | None = None


@dataclass(frozen=True, slots=True)
class QuotaFull:
    """Grant counter already at ``max_access_count``; nothing was written."""

    max_access_count: int


IncrementResult = Incremented | QuotaFull


# ── Reporting ─────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class ExpiringGrant:
    grant: ShareGrant
    document_name: str
    days_until_expiry: int

    def to_dict(self) -> dict:
        return {
            **self.grant.to_dict(),
            'document_name': self.document_name,
            'days_until_expiry': self.days_until_expiry,
        }
