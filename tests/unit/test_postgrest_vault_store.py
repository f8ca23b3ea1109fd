"""Tests for PostgrestVaultStore request shapes and row mapping.

The SQL functions themselves run inside Postgres; here we verify that the
store calls the right function with the right parameters and maps the
responses (including quota_full) back into domain types.
"""

from __future__ import annotations

import json
from datetime import date, datetime, timedelta, timezone
from typing import Any

import httpx
import pytest

from docvault.db.postgrest_client import PostgrestClient
from docvault.db.vault_repo import PostgrestVaultStore
from docvault.errors import NotFound
from docvault.protocols import VaultStore
from docvault.sharing.model import Incremented, QuotaFull, ShareGrant
from docvault.stats.aggregator import StatsAggregator
from docvault.stats.model import AccessLog, summarize_logs

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _grant_row(**overrides) -> dict[str, Any]:
    row = {
        "id": "g-1",
        "document_id": "doc-1",
        "expires_at": "2026-03-11T12:00:00+00:00",
        "allow_download": True,
        "require_password": False,
        "password_hash": None,
        "max_access_count": 5,
        "current_access_count": 2,
        "is_active": True,
        "share_link": "https://vault.example.com/share/g-1",
        "created_at": "2026-03-10T12:00:00+00:00",
        "updated_at": "2026-03-10T12:00:00.123456+00:00",
    }
    row.update(overrides)
    return row


class FakePostgrest:
    """Records requests and replies from a path → response table."""

    def __init__(self, responses: dict[str, Any]):
        self.responses = responses
        self.requests: list[httpx.Request] = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/rest/v1/")
        reply = self.responses[path]
        if isinstance(reply, httpx.Response):
            return reply
        return httpx.Response(200, json=reply)

    def body(self, index: int = -1) -> dict[str, Any]:
        return json.loads(self.requests[index].content)


def _store(fake: FakePostgrest) -> tuple[PostgrestVaultStore, httpx.AsyncClient]:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(fake))
    client = PostgrestClient(
        supabase_url="https://example.supabase.co",
        service_role_key="svc-key",
        http_client=http_client,
    )
    return PostgrestVaultStore(client), http_client


def test_satisfies_store_protocol():
    fake = FakePostgrest({})
    store, _ = _store(fake)
    assert isinstance(store, VaultStore)


@pytest.mark.asyncio
async def test_get_grant_maps_row():
    fake = FakePostgrest({"share_grants": [_grant_row()]})
    store, http_client = _store(fake)
    async with http_client:
        grant = await store.get_grant("g-1")

    assert grant.id == "g-1"
    assert grant.expires_at == NOW + timedelta(days=1)
    assert grant.max_access_count == 5
    assert grant.current_access_count == 2
    assert grant.updated_at.microsecond == 123456
    assert fake.requests[0].url.params["id"] == "eq.g-1"


@pytest.mark.asyncio
async def test_get_missing_rows_return_none():
    fake = FakePostgrest({"share_grants": [], "documents": [], "access_logs": []})
    store, http_client = _store(fake)
    async with http_client:
        assert await store.get_grant("nope") is None
        assert await store.get_document("nope") is None
        assert await store.get_access_log("nope") is None


@pytest.mark.asyncio
async def test_create_grant_calls_single_function():
    fake = FakePostgrest({"rpc/vault_create_share_grant": _grant_row(current_access_count=0)})
    store, http_client = _store(fake)
    grant = ShareGrant(
        id="g-1",
        document_id="doc-1",
        expires_at=NOW + timedelta(days=1),
        max_access_count=5,
        password_hash=None,
        share_link="https://vault.example.com/share/g-1",
        created_at=NOW,
        updated_at=NOW,
    )
    async with http_client:
        created = await store.create_grant(grant)

    assert len(fake.requests) == 1
    body = fake.body()
    assert body["p_id"] == "g-1"
    assert body["p_document_id"] == "doc-1"
    assert body["p_expires_at"] == "2026-03-11T12:00:00+00:00"
    assert body["p_max_access_count"] == 5
    assert body["p_now"] == NOW.isoformat()
    assert created.current_access_count == 0


@pytest.mark.asyncio
async def test_create_grant_missing_document_raises_not_found():
    fake = FakePostgrest({
        "rpc/vault_create_share_grant": httpx.Response(404, json={
            "code": "P0002",
            "message": "document not found",
            "details": "document",
            "hint": "doc-x",
        }),
    })
    store, http_client = _store(fake)
    grant = ShareGrant(id="g-1", document_id="doc-x", expires_at=NOW + timedelta(days=1))
    async with http_client:
        with pytest.raises(NotFound) as exc_info:
            await store.create_grant(grant)
    assert exc_info.value.kind == "document"


@pytest.mark.asyncio
async def test_update_grant_sends_only_changes():
    fake = FakePostgrest({"rpc/vault_update_share_grant": _grant_row(max_access_count=None)})
    store, http_client = _store(fake)
    async with http_client:
        updated = await store.update_grant(
            "g-1",
            {"max_access_count": None, "expires_at": NOW + timedelta(days=2)},
            now=NOW,
        )
        with pytest.raises(ValueError):
            await store.update_grant("g-1", {"is_active": True}, now=NOW)

    assert fake.body()["p_changes"] == {
        "max_access_count": None,
        "expires_at": "2026-03-12T12:00:00+00:00",
    }
    assert updated.max_access_count is None
    assert len(fake.requests) == 1


@pytest.mark.asyncio
async def test_record_access_incremented():
    fake = FakePostgrest({"rpc/vault_record_access": {
        "outcome": "incremented",
        "document_access_count": 7,
        "grant_access_count": 3,
    }})
    store, http_client = _store(fake)
    entry = AccessLog(document_id="doc-1", action="view", accessed_at=NOW, grant_id="g-1")
    async with http_client:
        result = await store.record_access(entry)

    assert result == Incremented(document_access_count=7, grant_access_count=3)
    body = fake.body()
    assert body["p_id"] == entry.id
    assert body["p_action"] == "view"
    assert body["p_grant_id"] == "g-1"
    assert body["p_location"] == "Unknown"


@pytest.mark.asyncio
async def test_record_access_quota_full():
    fake = FakePostgrest({"rpc/vault_record_access": {
        "outcome": "quota_full",
        "max_access_count": 5,
    }})
    store, http_client = _store(fake)
    async with http_client:
        result = await store.record_access(
            AccessLog(document_id="doc-1", action="download", grant_id="g-1"),
        )
    assert result == QuotaFull(max_access_count=5)


@pytest.mark.asyncio
async def test_record_access_inactive_grant_raises_not_found():
    fake = FakePostgrest({
        "rpc/vault_record_access": httpx.Response(404, json={
            "code": "P0002",
            "message": "share grant not found",
            "details": "share_grant",
            "hint": "g-1",
        }),
    })
    store, http_client = _store(fake)
    async with http_client:
        with pytest.raises(NotFound) as exc_info:
            await store.record_access(
                AccessLog(document_id="doc-1", action="view", grant_id="g-1"),
            )
    assert exc_info.value.kind == "share_grant"


@pytest.mark.asyncio
async def test_list_grants_filters_and_order():
    fake = FakePostgrest({"share_grants": [_grant_row()]})
    store, http_client = _store(fake)
    async with http_client:
        grants = await store.list_grants(document_id="doc-1", is_active=True)

    params = fake.requests[0].url.params
    assert params["document_id"] == "eq.doc-1"
    assert params["is_active"] == "is.true"
    assert params["order"] == "created_at.desc"
    assert [g.id for g in grants] == ["g-1"]


@pytest.mark.asyncio
async def test_list_expiring_grants_embeds_document_name_in_one_request():
    fake = FakePostgrest({"share_grants": [
        _grant_row(id="g-1", documents={"name": "report.pdf"}),
        _grant_row(id="g-2", document_id="doc-2", documents=None),
    ]})
    store, http_client = _store(fake)
    async with http_client:
        rows = await store.list_expiring_grants(
            expires_after=NOW,
            expires_before=NOW + timedelta(days=7),
        )

    assert len(fake.requests) == 1
    params = fake.requests[0].url.params
    assert params["select"] == "*,documents(name)"
    assert params["is_active"] == "is.true"
    assert params.get_list("expires_at") == [
        "gt.2026-03-10T12:00:00+00:00",
        "lte.2026-03-17T12:00:00+00:00",
    ]
    assert params["order"] == "expires_at.asc"
    assert [(g.id, name) for g, name in rows] == [("g-1", "report.pdf"), ("g-2", "")]


@pytest.mark.asyncio
async def test_list_access_logs_since_and_paging():
    fake = FakePostgrest({"access_logs": [{
        "id": "log-1",
        "document_id": "doc-1",
        "grant_id": None,
        "action": "download",
        "accessed_at": "2026-03-10T11:00:00+00:00",
        "ip_address": "192.0.2.9",
        "user_agent": "curl",
        "location": "Unknown",
    }]})
    store, http_client = _store(fake)
    async with http_client:
        logs = await store.list_access_logs(
            document_id="doc-1", since=NOW - timedelta(days=30), limit=50, offset=50,
        )

    params = fake.requests[0].url.params
    assert params["document_id"] == "eq.doc-1"
    assert params["accessed_at"] == "gte.2026-02-08T12:00:00+00:00"
    assert params["order"] == "accessed_at.desc"
    assert params["limit"] == "50"
    assert params["offset"] == "50"
    assert logs[0].accessed_at == NOW - timedelta(hours=1)
    assert logs[0].action == "download"


@pytest.mark.asyncio
async def test_delete_document_reports_whether_deleted():
    fake = FakePostgrest({"documents": [{"id": "doc-1"}]})
    store, http_client = _store(fake)
    async with http_client:
        assert await store.delete_document("doc-1") is True
        fake.responses["documents"] = []
        assert await store.delete_document("doc-1") is False
    assert fake.requests[0].method == "DELETE"


def _log_row(**overrides) -> dict[str, Any]:
    row = {
        "id": "log-1",
        "document_id": "doc-1",
        "grant_id": "g-1",
        "action": "view",
        "accessed_at": "2026-03-10T09:30:00+00:00",
        "ip_address": "192.0.2.9",
        "user_agent": "curl",
        "location": "Unknown",
    }
    row.update(overrides)
    return row


@pytest.mark.asyncio
async def test_summarize_access_maps_rpc_payload():
    fake = FakePostgrest({"rpc/vault_access_summary": {
        "total": 3,
        "unique_documents": 1,
        "by_action": {"view": 2, "download": 1},
        "by_hour": {"9": 2, "23": 1},
        "by_day": {"2026-03-10": 2, "2026-03-09": 1},
        "recent": [_log_row()],
    }})
    store, http_client = _store(fake)
    async with http_client:
        summary = await store.summarize_access(
            since=NOW - timedelta(days=30), document_id="doc-1", recent_limit=10,
        )

    assert fake.body() == {
        "p_since": "2026-02-08T12:00:00+00:00",
        "p_document_id": "doc-1",
        "p_recent_limit": 10,
    }
    assert summary.total == 3
    assert summary.unique_documents == 1
    assert summary.by_action == {"view": 2, "download": 1}
    assert summary.by_hour == {9: 2, 23: 1}
    assert summary.by_day == {date(2026, 3, 10): 2, date(2026, 3, 9): 1}
    assert summary.recent[0].accessed_at == datetime(2026, 3, 10, 9, 30, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_summarize_access_empty_log():
    fake = FakePostgrest({"rpc/vault_access_summary": {
        "total": 0,
        "unique_documents": 0,
        "by_action": {},
        "by_hour": {},
        "by_day": {},
        "recent": [],
    }})
    store, http_client = _store(fake)
    async with http_client:
        summary = await store.summarize_access(since=NOW)

    assert summary.total == 0
    assert summary.by_hour == {}
    assert summary.recent == ()


class RowCappedPostgrest(FakePostgrest):
    """Caps table reads at PostgREST's default row limit and aggregates
    ``vault_access_summary`` over the full log, as the SQL function does."""

    MAX_ROWS = 1000

    def __init__(self, logs: list[AccessLog]):
        super().__init__({
            "documents": [{
                "id": "doc-1",
                "name": "report.pdf",
                "original_name": "report.pdf",
                "uploaded_at": "2026-01-01T00:00:00+00:00",
            }],
        })
        self.logs = logs

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/rest/v1/")
        if path == "access_logs":
            self.requests.append(request)
            rows = [e.to_dict() for e in self.logs[:self.MAX_ROWS]]
            return httpx.Response(200, json=rows)
        if path == "rpc/vault_access_summary":
            self.requests.append(request)
            params = json.loads(request.content)
            summary = summarize_logs(
                self.logs,
                since=datetime.fromisoformat(params["p_since"]),
                document_id=params["p_document_id"],
                recent_limit=params["p_recent_limit"],
            )
            return httpx.Response(200, json={
                "total": summary.total,
                "unique_documents": summary.unique_documents,
                "by_action": summary.by_action,
                "by_hour": {str(h): n for h, n in summary.by_hour.items()},
                "by_day": {d.isoformat(): n for d, n in summary.by_day.items()},
                "recent": [e.to_dict() for e in summary.recent],
            })
        return await super().__call__(request)


def _busy_log(count: int) -> list[AccessLog]:
    return [
        AccessLog(
            document_id="doc-1",
            action="download" if i % 3 == 0 else "view",
            accessed_at=NOW - timedelta(minutes=10 * i),
            grant_id="g-1",
        )
        for i in range(count)
    ]


class TestStatsOverPostgrest:

    @pytest.mark.asyncio
    async def test_overview_counts_past_the_row_cap(self):
        fake = RowCappedPostgrest(_busy_log(1500))
        store, http_client = _store(fake)
        async with http_client:
            overview = await StatsAggregator(store).overview(30, now=NOW)

        assert overview.total_accesses == 1500
        assert overview.count_by_action == {"download": 500, "view": 1000}
        assert sum(overview.distribution_by_hour.values()) == 1500
        assert overview.unique_documents_accessed == 1
        assert [r.url.path for r in fake.requests] == [
            "/rest/v1/rpc/vault_access_summary",
        ]

    @pytest.mark.asyncio
    async def test_per_document_counts_past_the_row_cap(self):
        fake = RowCappedPostgrest(_busy_log(1500))
        store, http_client = _store(fake)
        async with http_client:
            stats = await StatsAggregator(store).per_document("doc-1", 30, now=NOW)

        assert stats.total_accesses == 1500
        assert sum(count for _, count in stats.daily_counts) == 1500
        assert len(stats.recent_events) == 10
        assert stats.recent_events[0].accessed_at == NOW
        assert all("access_logs" not in r.url.path for r in fake.requests)
