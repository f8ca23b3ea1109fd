"""Access-log and statistics API endpoints.

  GET  /api/v1/access-logs                               → list (newest first)
  POST /api/v1/access-logs                               → record an access
  GET  /api/v1/access-logs/stats/overview?days=30        → global rollup
  GET  /api/v1/access-logs/stats/documents/{id}?days=30  → per-document rollup
  GET  /api/v1/access-logs/{log_id}                      → single entry

``POST`` is for callers that already authorized the access themselves
(e.g. the owner opening their own document). Link visitors go through
``/api/v1/shares/link/...`` instead, which resolves the grant first.
"""

from __future__ import annotations

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from docvault.errors import InvalidArgument, NotFound, VaultError
from docvault.protocols import AccessLogStore
from docvault.sharing.model import Denied
from docvault.sharing.recorder import AccessRecorder

from .aggregator import DEFAULT_WINDOW_DAYS, StatsAggregator

DEFAULT_PAGE_SIZE = 100
MAX_PAGE_SIZE = 1000


def _error(exc: VaultError | Denied) -> JSONResponse:
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


class RecordAccessRequest(BaseModel):
    document_id: str = Field(..., min_length=1)
    action: str = Field(..., description="'view' or 'download'")
    grant_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None


def create_access_log_router(
    recorder: AccessRecorder,
    aggregator: StatsAggregator,
    store: AccessLogStore,
) -> APIRouter:
    router = APIRouter(prefix='/api/v1/access-logs', tags=['access-logs'])

    @router.get('')
    async def list_access_logs(
        document_id: str | None = None,
        limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
        offset: int = Query(default=0, ge=0),
    ):
        logs = await store.list_access_logs(
            document_id=document_id, limit=limit, offset=offset,
        )
        return {'access_logs': [e.to_dict() for e in logs]}

    @router.post('', status_code=201)
    async def record_access(body: RecordAccessRequest, request: Request):
        client_ip = request.client.host if request.client else 'unknown'
        try:
            result = await recorder.record(
                body.document_id,
                body.action,
                grant_id=body.grant_id,
                ip_address=body.ip_address or client_ip,
                user_agent=body.user_agent or request.headers.get('user-agent', 'unknown'),
            )
        except InvalidArgument as exc:
            return _error(exc)
        if isinstance(result, Denied):
            return _error(result)
        return result.to_dict()

    @router.get('/stats/overview')
    async def access_overview(days: int = Query(default=DEFAULT_WINDOW_DAYS, ge=1)):
        overview = await aggregator.overview(days)
        return overview.to_dict()

    @router.get('/stats/documents/{document_id}')
    async def document_access_stats(
        document_id: str,
        days: int = Query(default=DEFAULT_WINDOW_DAYS, ge=1),
    ):
        try:
            stats = await aggregator.per_document(document_id, days)
        except NotFound as exc:
            return _error(exc)
        return stats.to_dict()

    @router.get('/{log_id}')
    async def get_access_log(log_id: str):
        entry = await store.get_access_log(log_id)
        if entry is None:
            return _error(NotFound('access_log', log_id))
        return entry.to_dict()

    return router
