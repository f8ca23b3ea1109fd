"""PostgREST-backed VaultStore implementation.

Reads go straight to the ``vault`` tables. Every multi-record write goes
through one SQL function (see ``docvault/migrations/001_vault_core.sql``),
and PostgREST runs each RPC call in its own transaction:

  - ``vault_create_share_grant``  deactivate previous grant, insert, mark doc
  - ``vault_revoke_share_grant``  deactivate, clear the doc's shared state
  - ``vault_update_share_grant``  patch the grant and the doc's expiry
  - ``vault_record_access``       conditional increment, log row, doc counter

Statistics come from ``vault_access_summary``, which counts and buckets in
one SQL statement; row-returning selects are capped by PostgREST, so the
log is never fetched wholesale for counting.

``vault_record_access`` performs ``UPDATE ... WHERE max IS NULL OR
current < max`` and reports ``quota_full`` when that touches no row, so
two visitors racing on the last slot cannot both get in.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from docvault.documents.model import Document
from docvault.sharing.model import (
    IncrementResult,
    Incremented,
    QuotaFull,
    ShareGrant,
)
from docvault.stats.model import AccessLog, AccessSummary

from .errors import PostgrestError
from .postgrest_client import PostgrestClient

UPDATABLE_GRANT_FIELDS = frozenset({
    "expires_at",
    "allow_download",
    "require_password",
    "password_hash",
    "max_access_count",
})


def _ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def document_from_row(row: dict[str, Any]) -> Document:
    return Document(
        id=row["id"],
        name=row["name"],
        original_name=row["original_name"],
        size=row.get("size") or 0,
        content_type=row.get("content_type") or "application/octet-stream",
        uploaded_at=_ts(row["uploaded_at"]),
        last_accessed=_ts(row.get("last_accessed")),
        access_count=row.get("access_count") or 0,
        is_shared=bool(row.get("is_shared")),
        share_link=row.get("share_link"),
        share_grant_id=row.get("share_grant_id"),
        expiry_date=_ts(row.get("expiry_date")),
    )


def grant_from_row(row: dict[str, Any]) -> ShareGrant:
    return ShareGrant(
        id=row["id"],
        document_id=row["document_id"],
        expires_at=_ts(row["expires_at"]),
        allow_download=row["allow_download"],
        require_password=row["require_password"],
        password_hash=row.get("password_hash"),
        max_access_count=row.get("max_access_count"),
        current_access_count=row.get("current_access_count") or 0,
        is_active=row["is_active"],
        share_link=row.get("share_link") or "",
        created_at=_ts(row["created_at"]),
        updated_at=_ts(row["updated_at"]),
    )


def access_log_from_row(row: dict[str, Any]) -> AccessLog:
    return AccessLog(
        id=row["id"],
        document_id=row["document_id"],
        action=row["action"],
        accessed_at=_ts(row["accessed_at"]),
        ip_address=row.get("ip_address") or "unknown",
        user_agent=row.get("user_agent") or "unknown",
        location=row.get("location") or "Unknown",
        grant_id=row.get("grant_id"),
    )


def _single(payload: Any, function_name: str) -> dict[str, Any]:
    # Functions returning one composite come back as an object; tolerate
    # a one-element list from older PostgREST versions.
    if isinstance(payload, list) and len(payload) == 1:
        payload = payload[0]
    if not isinstance(payload, dict):
        raise PostgrestError(500, f"unexpected response from {function_name}")
    return payload


class PostgrestVaultStore:
    """VaultStore backed by the ``vault`` schema via PostgREST."""

    DOCUMENTS = "documents"
    GRANTS = "share_grants"
    LOGS = "access_logs"

    def __init__(self, client: PostgrestClient) -> None:
        self._client = client

    async def aclose(self) -> None:
        await self._client.aclose()

    # ── Documents ──────────────────────────────────────────────────

    async def get_document(self, document_id: str) -> Document | None:
        rows = await self._client.select(self.DOCUMENTS, {"id": document_id}, limit=1)
        return document_from_row(rows[0]) if rows else None

    async def add_document(self, document: Document) -> Document:
        rows = await self._client.insert(self.DOCUMENTS, {
            "id": document.id,
            "name": document.name,
            "original_name": document.original_name,
            "size": document.size,
            "content_type": document.content_type,
            "uploaded_at": _iso(document.uploaded_at),
        })
        return document_from_row(rows[0])

    async def delete_document(self, document_id: str) -> bool:
        # share_grants and access_logs cascade via ON DELETE CASCADE.
        rows = await self._client.delete(self.DOCUMENTS, {"id": document_id})
        return bool(rows)

    # ── Grants ─────────────────────────────────────────────────────

    async def get_grant(self, grant_id: str) -> ShareGrant | None:
        rows = await self._client.select(self.GRANTS, {"id": grant_id}, limit=1)
        return grant_from_row(rows[0]) if rows else None

    async def list_grants(
        self,
        *,
        document_id: str | None = None,
        is_active: bool | None = None,
    ) -> list[ShareGrant]:
        filters: dict[str, Any] = {}
        if document_id is not None:
            filters["document_id"] = document_id
        if is_active is not None:
            filters["is_active"] = ("is", is_active)
        rows = await self._client.select(
            self.GRANTS, filters, order="created_at.desc",
        )
        return [grant_from_row(r) for r in rows]

    async def list_expiring_grants(
        self, *, expires_after: datetime, expires_before: datetime,
    ) -> list[tuple[ShareGrant, str]]:
        # documents(name) embeds the parent row through the foreign key.
        rows = await self._client.select(
            self.GRANTS,
            {
                "is_active": ("is", True),
                "expires_at": [("gt", expires_after), ("lte", expires_before)],
            },
            columns="*,documents(name)",
            order="expires_at.asc",
        )
        return [
            (grant_from_row(r), (r.get("documents") or {}).get("name") or "")
            for r in rows
        ]

    async def create_grant(self, grant: ShareGrant) -> ShareGrant:
        payload = await self._client.rpc("vault_create_share_grant", {
            "p_id": grant.id,
            "p_document_id": grant.document_id,
            "p_expires_at": _iso(grant.expires_at),
            "p_allow_download": grant.allow_download,
            "p_require_password": grant.require_password,
            "p_password_hash": grant.password_hash,
            "p_max_access_count": grant.max_access_count,
            "p_share_link": grant.share_link,
            "p_now": _iso(grant.created_at),
        })
        return grant_from_row(_single(payload, "vault_create_share_grant"))

    async def deactivate_grant(
        self, grant_id: str, *, now: datetime,
    ) -> ShareGrant:
        payload = await self._client.rpc("vault_revoke_share_grant", {
            "p_grant_id": grant_id,
            "p_now": _iso(now),
        })
        return grant_from_row(_single(payload, "vault_revoke_share_grant"))

    async def update_grant(
        self, grant_id: str, changes: dict[str, Any], *, now: datetime,
    ) -> ShareGrant:
        unknown = set(changes) - UPDATABLE_GRANT_FIELDS
        if unknown:
            raise ValueError(f"cannot update grant fields: {sorted(unknown)}")

        encoded = {
            k: (_iso(v) if isinstance(v, datetime) else v)
            for k, v in changes.items()
        }
        payload = await self._client.rpc("vault_update_share_grant", {
            "p_grant_id": grant_id,
            "p_changes": encoded,
            "p_now": _iso(now),
        })
        return grant_from_row(_single(payload, "vault_update_share_grant"))

    # ── Access log ─────────────────────────────────────────────────

    async def record_access(self, entry: AccessLog) -> IncrementResult:
        payload = _single(
            await self._client.rpc("vault_record_access", {
                "p_id": entry.id,
                "p_document_id": entry.document_id,
                "p_action": entry.action,
                "p_accessed_at": _iso(entry.accessed_at),
                "p_ip_address": entry.ip_address,
                "p_user_agent": entry.user_agent,
                "p_location": entry.location,
                "p_grant_id": entry.grant_id,
            }),
            "vault_record_access",
        )
        if payload.get("outcome") == "quota_full":
            return QuotaFull(max_access_count=payload["max_access_count"])
        return Incremented(
            document_access_count=payload["document_access_count"],
            grant_access_count=payload.get("grant_access_count"),
        )

    async def get_access_log(self, log_id: str) -> AccessLog | None:
        rows = await self._client.select(self.LOGS, {"id": log_id}, limit=1)
        return access_log_from_row(rows[0]) if rows else None

    async def list_access_logs(
        self,
        *,
        document_id: str | None = None,
        since: datetime | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[AccessLog]:
        filters: dict[str, Any] = {}
        if document_id is not None:
            filters["document_id"] = document_id
        if since is not None:
            filters["accessed_at"] = ("gte", since)
        rows = await self._client.select(
            self.LOGS,
            filters,
            order="accessed_at.desc",
            limit=limit,
            offset=offset,
        )
        return [access_log_from_row(r) for r in rows]

    async def summarize_access(
        self,
        *,
        since: datetime,
        document_id: str | None = None,
        recent_limit: int = 0,
    ) -> AccessSummary:
        payload = _single(
            await self._client.rpc("vault_access_summary", {
                "p_since": _iso(since),
                "p_document_id": document_id,
                "p_recent_limit": recent_limit,
            }),
            "vault_access_summary",
        )
        return AccessSummary(
            total=payload.get("total") or 0,
            unique_documents=payload.get("unique_documents") or 0,
            by_action=dict(payload.get("by_action") or {}),
            by_hour={
                int(hour): count
                for hour, count in (payload.get("by_hour") or {}).items()
            },
            by_day={
                date.fromisoformat(day): count
                for day, count in (payload.get("by_day") or {}).items()
            },
            recent=tuple(
                access_log_from_row(r) for r in payload.get("recent") or ()
            ),
        )
