"""Store protocol interfaces for dependency injection.

The durable store is an external transactional record store. These
protocols define what the share-link core needs from it; concrete
implementations are ``InMemoryVaultStore`` (local dev, tests) and
``PostgrestVaultStore`` (Supabase/PostgREST).

Every method that touches more than one record is a single transactional
unit in every implementation: either all of its writes apply or none do.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from docvault.documents.model import Document
from docvault.sharing.model import IncrementResult, ShareGrant
from docvault.stats.model import AccessLog, AccessSummary


@runtime_checkable
class DocumentStore(Protocol):
    """Document rows (owned by the upload collaborator)."""

    async def get_document(self, document_id: str) -> Document | None: ...
    async def add_document(self, document: Document) -> Document: ...

    async def delete_document(self, document_id: str) -> bool:
        """Delete a document, cascading to its grants and access logs."""
        ...


@runtime_checkable
class ShareGrantStore(Protocol):
    """Share grant lifecycle."""

    async def get_grant(self, grant_id: str) -> ShareGrant | None: ...

    async def list_grants(
        self,
        *,
        document_id: str | None = None,
        is_active: bool | None = None,
    ) -> list[ShareGrant]:
        """Grants matching all given filters, newest first."""
        ...

    async def list_expiring_grants(
        self, *, expires_after: datetime, expires_before: datetime,
    ) -> list[tuple[ShareGrant, str]]:
        """Active grants with ``expires_after < expires_at <= expires_before``.

        Each grant comes paired with its document's name, soonest expiry
        first, from a single read.
        """
        ...

    async def create_grant(self, grant: ShareGrant) -> ShareGrant:
        """Insert ``grant`` and mark its document shared, atomically.

        Any other active grant on the same document is deactivated in the
        same unit. Raises NotFound if the document does not exist.
        """
        ...

    async def deactivate_grant(
        self, grant_id: str, *, now: datetime,
    ) -> ShareGrant:
        """Set ``is_active = False`` and clear the document's shared state.

        No-op on an inactive grant. Raises NotFound if the grant is absent.
        """
        ...

    async def update_grant(
        self, grant_id: str, changes: dict[str, Any], *, now: datetime,
    ) -> ShareGrant:
        """Apply column changes to a grant (and its document's expiry)."""
        ...


@runtime_checkable
class AccessLogStore(Protocol):
    """Append-only access log plus the counters it drives."""

    async def record_access(self, entry: AccessLog) -> IncrementResult:
        """Append ``entry`` and advance counters as one unit.

        When ``entry.grant_id`` is set the grant counter is incremented only
        if it is below ``max_access_count``; otherwise ``QuotaFull`` is
        returned and nothing is written. Raises NotFound if the document or
        grant does not exist, the grant belongs to another document, or the
        grant is no longer active.
        """
        ...

    async def get_access_log(self, log_id: str) -> AccessLog | None: ...

    async def list_access_logs(
        self,
        *,
        document_id: str | None = None,
        since: datetime | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[AccessLog]:
        """Access logs newest first, read as one consistent snapshot."""
        ...

    async def summarize_access(
        self,
        *,
        since: datetime,
        document_id: str | None = None,
        recent_limit: int = 0,
    ) -> AccessSummary:
        """Aggregate the access log in one consistent read.

        Counts cover entries at or after ``since`` (optionally for one
        document). ``recent`` holds the latest ``recent_limit`` entries of
        the same document filter, regardless of ``since``.
        """
        ...


@runtime_checkable
class VaultStore(DocumentStore, ShareGrantStore, AccessLogStore, Protocol):
    """All three record families behind one transactional boundary."""
