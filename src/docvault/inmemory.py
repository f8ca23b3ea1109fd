"""In-memory vault store for local development and tests.

Used when ENVIRONMENT=local. Satisfies the ``VaultStore`` protocol with
plain dicts (no persistence across restarts).

Transactions:
  Every mutating operation runs inside ``_transaction()``, which holds one
  ``asyncio.Lock`` and journals what it changes: the previous value of each
  document or grant it writes, and the log length on entry. If any write
  inside the block raises, the journal is replayed backwards, so a failure
  between the grant write and the document write never leaves the two out
  of step. Records are never mutated in place, so the journal keeps
  references rather than copies.

  Holding the lock across the quota check and the counter increment makes
  ``record_access`` the atomic "increment iff active and current < max"
  update.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, AsyncIterator

from docvault.documents.model import Document
from docvault.errors import InvalidArgument, NotFound
from docvault.sharing.model import (
    IncrementResult,
    Incremented,
    QuotaFull,
    ShareGrant,
)
from docvault.stats.model import AccessLog, AccessSummary, summarize_logs

# Grant columns that update_grant may change.
UPDATABLE_GRANT_FIELDS = frozenset({
    'expires_at',
    'allow_download',
    'require_password',
    'password_hash',
    'max_access_count',
})


@dataclass
class _Journal:
    log_length: int
    documents: dict[str, Document | None] = field(default_factory=dict)
    grants: dict[str, ShareGrant | None] = field(default_factory=dict)


def _restore(table: dict[str, Any], saved: dict[str, Any]) -> None:
    for key, previous in saved.items():
        if previous is None:
            table.pop(key, None)
        else:
            table[key] = previous


class InMemoryVaultStore:
    """Dict-backed store with journaled rollback."""

    def __init__(self) -> None:
        self._documents: dict[str, Document] = {}
        self._grants: dict[str, ShareGrant] = {}
        self._logs: list[AccessLog] = []
        self._lock = asyncio.Lock()
        self._journal: _Journal | None = None

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[None]:
        async with self._lock:
            journal = self._journal = _Journal(log_length=len(self._logs))
            try:
                yield
            except BaseException:
                _restore(self._documents, journal.documents)
                _restore(self._grants, journal.grants)
                del self._logs[journal.log_length:]
                raise
            finally:
                self._journal = None

    # Single-record writes. Tests override these to inject failures.

    def _put_document(self, document: Document) -> None:
        if self._journal is not None:
            self._journal.documents.setdefault(
                document.id, self._documents.get(document.id),
            )
        self._documents[document.id] = document

    def _drop_document(self, document_id: str) -> None:
        if self._journal is not None:
            self._journal.documents.setdefault(
                document_id, self._documents.get(document_id),
            )
        self._documents.pop(document_id, None)

    def _put_grant(self, grant: ShareGrant) -> None:
        if self._journal is not None:
            self._journal.grants.setdefault(grant.id, self._grants.get(grant.id))
        self._grants[grant.id] = grant

    def _drop_grant(self, grant_id: str) -> None:
        if self._journal is not None:
            self._journal.grants.setdefault(grant_id, self._grants.get(grant_id))
        self._grants.pop(grant_id, None)

    def _append_log(self, entry: AccessLog) -> None:
        self._logs.append(entry)

    # ── Documents ──────────────────────────────────────────────────

    async def get_document(self, document_id: str) -> Document | None:
        doc = self._documents.get(document_id)
        return replace(doc) if doc else None

    async def add_document(self, document: Document) -> Document:
        async with self._transaction():
            self._put_document(replace(document))
        return replace(document)

    async def delete_document(self, document_id: str) -> bool:
        async with self._transaction():
            if document_id not in self._documents:
                return False
            kept_logs = [e for e in self._logs if e.document_id != document_id]
            for grant in list(self._grants.values()):
                if grant.document_id == document_id:
                    self._drop_grant(grant.id)
            self._drop_document(document_id)
            # Must stay last: rollback only truncates the log.
            self._logs[:] = kept_logs
        return True

    # ── Grants ─────────────────────────────────────────────────────

    async def get_grant(self, grant_id: str) -> ShareGrant | None:
        grant = self._grants.get(grant_id)
        return replace(grant) if grant else None

    async def list_grants(
        self,
        *,
        document_id: str | None = None,
        is_active: bool | None = None,
    ) -> list[ShareGrant]:
        result = [
            replace(grant) for grant in self._grants.values()
            if (document_id is None or grant.document_id == document_id)
            and (is_active is None or grant.is_active == is_active)
        ]
        return sorted(result, key=lambda g: g.created_at, reverse=True)

    async def list_expiring_grants(
        self, *, expires_after: datetime, expires_before: datetime,
    ) -> list[tuple[ShareGrant, str]]:
        result = []
        for grant in self._grants.values():
            if not grant.is_active:
                continue
            if not expires_after < grant.expires_at <= expires_before:
                continue
            doc = self._documents.get(grant.document_id)
            result.append((replace(grant), doc.name if doc else ''))
        return sorted(result, key=lambda pair: pair[0].expires_at)

    async def create_grant(self, grant: ShareGrant) -> ShareGrant:
        async with self._transaction():
            doc = self._documents.get(grant.document_id)
            if doc is None:
                raise NotFound('document', grant.document_id)

            for other in self._grants.values():
                if other.document_id == grant.document_id and other.is_active:
                    self._put_grant(replace(
                        other, is_active=False, updated_at=grant.created_at,
                    ))

            self._put_grant(replace(grant))
            self._put_document(replace(
                doc,
                is_shared=True,
                share_link=grant.share_link,
                share_grant_id=grant.id,
                expiry_date=grant.expires_at,
            ))
        return replace(grant)

    async def deactivate_grant(
        self, grant_id: str, *, now: datetime,
    ) -> ShareGrant:
        async with self._transaction():
            grant = self._grants.get(grant_id)
            if grant is None:
                raise NotFound('share_grant', grant_id)
            if not grant.is_active:
                return replace(grant)

            revoked = replace(grant, is_active=False, updated_at=now)
            self._put_grant(revoked)

            doc = self._documents.get(grant.document_id)
            if doc is not None and doc.share_grant_id == grant_id:
                self._put_document(replace(
                    doc,
                    is_shared=False,
                    share_link=None,
                    share_grant_id=None,
                    expiry_date=None,
                ))
        return replace(revoked)

    async def update_grant(
        self, grant_id: str, changes: dict[str, Any], *, now: datetime,
    ) -> ShareGrant:
        unknown = set(changes) - UPDATABLE_GRANT_FIELDS
        if unknown:
            raise ValueError(f'cannot update grant fields: {sorted(unknown)}')

        async with self._transaction():
            grant = self._grants.get(grant_id)
            if grant is None:
                raise NotFound('share_grant', grant_id)
            new_max = changes.get('max_access_count', grant.max_access_count)
            if new_max is not None and new_max < grant.current_access_count:
                raise InvalidArgument(
                    'max_access_count cannot be lower than the current access count',
                )

            updated = replace(grant, **changes, updated_at=now)
            self._put_grant(updated)

            doc = self._documents.get(grant.document_id)
            if (
                'expires_at' in changes
                and doc is not None
                and doc.share_grant_id == grant_id
            ):
                self._put_document(replace(doc, expiry_date=updated.expires_at))
        return replace(updated)

    # ── Access log ─────────────────────────────────────────────────

    async def record_access(self, entry: AccessLog) -> IncrementResult:
        async with self._transaction():
            doc = self._documents.get(entry.document_id)
            if doc is None:
                raise NotFound('document', entry.document_id)

            grant_count: int | None = None
            if entry.grant_id is not None:
                grant = self._grants.get(entry.grant_id)
                if (
                    grant is None
                    or grant.document_id != entry.document_id
                    or not grant.is_active
                ):
                    raise NotFound('share_grant', entry.grant_id)
                if grant.quota_exhausted:
                    return QuotaFull(max_access_count=grant.max_access_count)
                grant_count = grant.current_access_count + 1
                self._put_grant(replace(grant, current_access_count=grant_count))

            self._append_log(entry)
            doc_count = doc.access_count + 1
            self._put_document(replace(
                doc,
                access_count=doc_count,
                last_accessed=entry.accessed_at,
            ))
        return Incremented(
            document_access_count=doc_count,
            grant_access_count=grant_count,
        )

    async def get_access_log(self, log_id: str) -> AccessLog | None:
        for entry in self._logs:
            if entry.id == log_id:
                return entry
        return None

    async def list_access_logs(
        self,
        *,
        document_id: str | None = None,
        since: datetime | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[AccessLog]:
        # Copy under the lock so readers never see a half-applied record_access.
        async with self._lock:
            logs = list(self._logs)
        if document_id is not None:
            logs = [e for e in logs if e.document_id == document_id]
        if since is not None:
            logs = [e for e in logs if e.accessed_at >= since]
        logs.sort(key=lambda e: e.accessed_at, reverse=True)
        logs = logs[offset:]
        if limit is not None:
            logs = logs[:limit]
        return logs

    async def summarize_access(
        self,
        *,
        since: datetime,
        document_id: str | None = None,
        recent_limit: int = 0,
    ) -> AccessSummary:
        async with self._lock:
            return summarize_logs(
                self._logs,
                since=since,
                document_id=document_id,
                recent_limit=recent_limit,
            )
