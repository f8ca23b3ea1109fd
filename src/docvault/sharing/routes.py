"""Share-grant management API endpoints.

  POST   /api/v1/shares                 → create share grant
  GET    /api/v1/shares                 → list grants (?active=true|false)
  GET    /api/v1/shares/expiring        → grants expiring within ?days=N
  GET    /api/v1/shares/{grant_id}      → grant detail
  PATCH  /api/v1/shares/{grant_id}      → change grant settings
  DELETE /api/v1/shares/{grant_id}      → revoke (idempotent)

Passwords are accepted in request bodies and hashed immediately; no
response ever carries the password or its hash.

This module provides:
  ``create_share_router``: FastAPI router factory with injected manager.
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from docvault.errors import InvalidArgument, NotFound, VaultError

from .manager import UNSET, ShareLinkManager

DEFAULT_EXPIRING_WINDOW_DAYS = 7


def error_response(exc: VaultError) -> JSONResponse:
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


# ── Request schemas ──────────────────────────────────────────────────


class CreateShareRequest(BaseModel):
    """Request body for share grant creation."""

    document_id: str = Field(..., min_length=1)
    expires_at: datetime = Field(..., description='Timezone-aware expiry instant')
    allow_download: bool = True
    require_password: bool = False
    password: str | None = Field(default=None, min_length=1)
    max_access_count: int | None = Field(default=None, ge=1)


class UpdateShareRequest(BaseModel):
    """Partial update. Send ``max_access_count: null`` to remove the quota."""

    expires_at: datetime | None = None
    allow_download: bool | None = None
    require_password: bool | None = None
    password: str | None = Field(default=None, min_length=1)
    max_access_count: int | None = Field(default=None, ge=1)


# ── Route factory ────────────────────────────────────────────────────


def create_share_router(
    manager: ShareLinkManager,
    *,
    expiring_window_days: int = DEFAULT_EXPIRING_WINDOW_DAYS,
) -> APIRouter:
    """Create share-grant management router.

    Args:
        manager: Share link manager.
        expiring_window_days: Default ``days`` for the expiring listing.

    Returns:
        FastAPI router with share lifecycle routes.
    """
    router = APIRouter(prefix='/api/v1/shares', tags=['shares'])

    @router.post('', status_code=201)
    async def create_share(body: CreateShareRequest):
        try:
            grant = await manager.create(
                body.document_id,
                body.expires_at,
                allow_download=body.allow_download,
                require_password=body.require_password,
                password=body.password,
                max_access_count=body.max_access_count,
            )
        except (InvalidArgument, NotFound) as exc:
            return error_response(exc)
        return grant.to_dict()

    @router.get('')
    async def list_shares(active: bool | None = None):
        grants = await manager.list_grants(active=active)
        return {'shares': [g.to_dict() for g in grants]}

    @router.get('/expiring')
    async def list_expiring_shares(days: int | None = Query(default=None, ge=0)):
        window = expiring_window_days if days is None else days
        expiring = await manager.expiring_soon(window)
        return {
            'within_days': window,
            'shares': [e.to_dict() for e in expiring],
        }

    @router.get('/{grant_id}')
    async def get_share(grant_id: str):
        try:
            grant = await manager.get(grant_id)
        except NotFound as exc:
            return error_response(exc)
        return grant.to_dict()

    @router.patch('/{grant_id}')
    async def update_share(grant_id: str, body: UpdateShareRequest):
        max_count = (
            body.max_access_count
            if 'max_access_count' in body.model_fields_set
            else UNSET
        )
        try:
            grant = await manager.update(
                grant_id,
                expires_at=body.expires_at,
                allow_download=body.allow_download,
                require_password=body.require_password,
                password=body.password,
                max_access_count=max_count,
            )
        except (InvalidArgument, NotFound) as exc:
            return error_response(exc)
        return grant.to_dict()

    @router.delete('/{grant_id}')
    async def revoke_share(grant_id: str):
        """Revoke a share grant. Idempotent."""
        try:
            grant = await manager.revoke(grant_id)
        except NotFound as exc:
            return error_response(exc)
        return {
            'id': grant.id,
            'document_id': grant.document_id,
            'is_active': grant.is_active,
        }

    return router
