"""docvault FastAPI application factory.

The create_app() factory is the single entry point for building the ASGI
application. It installs the request-id and telemetry middleware plus
CORS, mounts the share and access-log routers, and builds the services on
top of whichever store it is handed.

Usage:
    # Local development (in-memory store)
    from docvault import create_app, VaultSettings
    app = create_app(VaultSettings())

    # Non-local (PostgREST store built from settings)
    app = create_app(VaultSettings.from_env())

    # Tests inject their own store
    app = create_app(settings, store=InMemoryVaultStore())
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from .errors import StorageFailure, VaultError
from .inmemory import InMemoryVaultStore
from .observability.logging import configure_logging, get_logger
from .observability.metrics import metrics_text
from .observability.middleware import (
    RequestIdMiddleware,
    RequestTelemetryMiddleware,
    normalize_path,
)
from .protocols import VaultStore
from .settings import VaultSettings
from .sharing.access import create_share_access_router
from .sharing.manager import ShareLinkManager
from .sharing.recorder import AccessRecorder, LocationResolver
from .sharing.routes import create_share_router
from .stats.aggregator import StatsAggregator
from .stats.routes import create_access_log_router

logger = get_logger(__name__)


@dataclass(frozen=True)
class AppDependencies:
    """Container for the injected store and the services built on it.

    Stored on ``app.state.deps`` so route handlers and tests can reach them.
    """

    store: VaultStore
    manager: ShareLinkManager
    recorder: AccessRecorder
    aggregator: StatsAggregator


def _build_postgrest_store(settings: VaultSettings) -> VaultStore:
    from .db.postgrest_client import PostgrestClient
    from .db.vault_repo import PostgrestVaultStore

    client = PostgrestClient(
        supabase_url=settings.supabase_url,
        service_role_key=settings.supabase_service_role_key,
        timeout_seconds=settings.store_timeout_seconds,
    )
    return PostgrestVaultStore(client)


def build_dependencies(
    settings: VaultSettings,
    store: VaultStore,
    *,
    location_resolver: LocationResolver | None = None,
) -> AppDependencies:
    return AppDependencies(
        store=store,
        manager=ShareLinkManager(store, public_base_url=settings.public_base_url),
        recorder=AccessRecorder(store, location_resolver=location_resolver),
        aggregator=StatsAggregator(store),
    )


def create_app(
    settings: VaultSettings | None = None,
    *,
    store: VaultStore | None = None,
    location_resolver: LocationResolver | None = None,
) -> FastAPI:
    """Create a configured docvault FastAPI application.

    Args:
        settings: Application settings. Defaults to local-dev settings.
        store: Store override. When None, local mode uses
            ``InMemoryVaultStore`` and other environments build a
            ``PostgrestVaultStore`` from the Supabase settings.
        location_resolver: Optional geolocation lookup for access logs.

    Raises:
        ValueError: If settings validation fails.
    """
    if settings is None:
        settings = VaultSettings()

    errors = settings.validate()
    if errors:
        raise ValueError(
            "docvault settings validation failed:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )

    configure_logging(level=settings.log_level, json_output=settings.log_json)

    if store is None:
        store = (
            InMemoryVaultStore()
            if settings.is_local
            else _build_postgrest_store(settings)
        )
    deps = build_dependencies(
        settings, store, location_resolver=location_resolver,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "docvault_startup",
            environment=settings.environment,
            store=type(store).__name__,
        )
        yield
        close = getattr(store, "aclose", None)
        if close is not None:
            await close()
        logger.info("docvault_shutdown")

    app = FastAPI(
        title="docvault",
        description="Document share links, access logging, and access statistics",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.deps = deps
    app.state.settings = settings

    # ── Middleware stack (applied in reverse order) ──────────────
    # Order of execution: RequestId -> Telemetry -> CORS -> route handler

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestTelemetryMiddleware)
    app.add_middleware(RequestIdMiddleware)

    # ── Error handling ──────────────────────────────────────────

    @app.exception_handler(VaultError)
    async def vault_error_handler(request: Request, exc: VaultError):
        if isinstance(exc, StorageFailure):
            logger.error(
                "storage_failure",
                path=normalize_path(request.url.path),
                error=type(exc).__name__,
                detail=exc.message,
            )
        else:
            logger.info("request_rejected", error=exc.code, detail=exc.message)
        return JSONResponse(status_code=exc.http_status, content=exc.to_dict())

    # ── Routes ──────────────────────────────────────────────────

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "environment": settings.environment,
        }

    @app.get("/metrics")
    async def metrics():
        body, content_type = metrics_text()
        return Response(content=body, media_type=content_type)

    app.include_router(
        create_share_router(
            deps.manager, expiring_window_days=settings.expiring_window_days,
        )
    )
    app.include_router(create_share_access_router(deps.manager, deps.recorder))
    app.include_router(
        create_access_log_router(deps.recorder, deps.aggregator, deps.store)
    )

    return app
