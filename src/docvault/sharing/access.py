"""Share-link access endpoints used by link visitors.

  GET  /api/v1/shares/link/{grant_id}           → resolve + record a view
  POST /api/v1/shares/link/{grant_id}/download  → resolve + authorize and
                                                  record a download

The password, when the grant needs one, travels in the
``X-Share-Password`` header so it stays out of URLs and access logs.

Error responses (body ``{"error": <reason>, "detail": ...}``):
  - 401 password_required
  - 403 password_mismatch / quota_exceeded / download_not_allowed
  - 404 not_found (unknown, revoked, or replaced link)
  - 410 expired

The download endpoint only authorizes the transfer and returns what the
file transport needs; streaming the bytes happens outside this service.
"""

from __future__ import annotations

from fastapi import APIRouter, Header, Request
from fastapi.responses import JSONResponse

from docvault.observability.logging import get_logger, redact_token
from docvault.observability.metrics import SHARE_RESOLUTIONS_TOTAL

from .manager import ShareLinkManager
from .model import Denied, DenialReason
from .recorder import AccessRecorder

logger = get_logger(__name__)


def denied_response(denied: Denied) -> JSONResponse:
    return JSONResponse(status_code=denied.http_status, content=denied.to_dict())


def _client_context(request: Request) -> tuple[str, str]:
    ip_address = request.client.host if request.client else 'unknown'
    user_agent = request.headers.get('user-agent', 'unknown')
    return ip_address, user_agent


def create_share_access_router(
    manager: ShareLinkManager,
    recorder: AccessRecorder,
) -> APIRouter:
    """Create the visitor-facing share access router.

    Args:
        manager: Resolves link ids against grant state.
        recorder: Commits the access event after a successful resolution.
    """
    router = APIRouter(prefix='/api/v1/shares/link', tags=['share-access'])

    @router.get('/{grant_id}')
    async def view_share(
        grant_id: str,
        request: Request,
        x_share_password: str | None = Header(default=None),
    ):
        resolved = await manager.resolve(grant_id, x_share_password)
        if isinstance(resolved, Denied):
            return denied_response(resolved)

        ip_address, user_agent = _client_context(request)
        entry = await recorder.record(
            resolved.document_id,
            'view',
            grant_id=resolved.grant_id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        if isinstance(entry, Denied):
            return denied_response(entry)

        return {**resolved.to_dict(), 'access_log_id': entry.id}

    @router.post('/{grant_id}/download')
    async def download_share(
        grant_id: str,
        request: Request,
        x_share_password: str | None = Header(default=None),
    ):
        resolved = await manager.resolve(grant_id, x_share_password)
        if isinstance(resolved, Denied):
            return denied_response(resolved)

        if not resolved.grant.allow_download:
            SHARE_RESOLUTIONS_TOTAL.labels(
                outcome=DenialReason.DOWNLOAD_NOT_ALLOWED.value,
            ).inc()
            logger.info(
                'share_denied',
                grant=redact_token(grant_id),
                reason=DenialReason.DOWNLOAD_NOT_ALLOWED.value,
            )
            return denied_response(
                Denied(DenialReason.DOWNLOAD_NOT_ALLOWED, grant_id),
            )

        ip_address, user_agent = _client_context(request)
        entry = await recorder.record(
            resolved.document_id,
            'download',
            grant_id=resolved.grant_id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        if isinstance(entry, Denied):
            return denied_response(entry)

        doc = resolved.document
        return {
            'download': {
                'document_id': doc.id,
                'name': doc.name,
                'original_name': doc.original_name,
                'content_type': doc.content_type,
                'size': doc.size,
            },
            'access_log_id': entry.id,
        }

    return router
