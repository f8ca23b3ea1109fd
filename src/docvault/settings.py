"""Runtime configuration for docvault.

``create_app()`` takes a ``VaultSettings`` instance rather than reading the
process environment itself; ``VaultSettings.from_env()`` is the only place
environment variables are parsed, so tests build settings by hand.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

VALID_ENVIRONMENTS = frozenset({"local", "dev", "staging", "production"})
VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR"})

DEFAULT_PUBLIC_BASE_URL = "http://localhost:8000"
DEFAULT_STORE_TIMEOUT_SECONDS = 10.0
DEFAULT_EXPIRING_WINDOW_DAYS = 7
DEFAULT_CORS_ORIGINS = (
    "http://localhost:5173",
    "http://localhost:3000",
)


def _split_origins(raw: str) -> tuple[str, ...]:
    origins = tuple(part.strip() for part in raw.split(",") if part.strip())
    return origins or DEFAULT_CORS_ORIGINS


@dataclass(frozen=True, slots=True)
class VaultSettings:
    """Settings for one docvault deployment.

    Defaults describe a local developer setup backed by the in-memory
    store. Any other environment talks to Supabase and therefore needs
    ``supabase_url`` and ``supabase_service_role_key``.
    """

    # ── Deployment ─────────────────────────────────────────────────
    environment: str = "local"
    """local, dev, staging or production."""

    public_base_url: str = DEFAULT_PUBLIC_BASE_URL
    """Origin used to build share links ({public_base_url}/share/{id})."""

    # ── Storage ────────────────────────────────────────────────────
    supabase_url: str = ""
    supabase_service_role_key: str = ""
    """Bypasses row-level security; must never be logged."""

    store_timeout_seconds: float = DEFAULT_STORE_TIMEOUT_SECONDS
    """Upper bound for one store round trip."""

    # ── Sharing ────────────────────────────────────────────────────
    expiring_window_days: int = DEFAULT_EXPIRING_WINDOW_DAYS
    """Default window for GET /api/v1/shares/expiring."""

    # ── HTTP ───────────────────────────────────────────────────────
    cors_origins: tuple[str, ...] = DEFAULT_CORS_ORIGINS

    # ── Logging ────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool = True
    """JSON lines when True (LOG_FORMAT=json), console output otherwise."""

    @property
    def is_local(self) -> bool:
        return self.environment == "local"

    def validate(self) -> list[str]:
        """Collect every configuration problem; an empty list means valid."""
        problems: list[str] = []
        if self.environment not in VALID_ENVIRONMENTS:
            problems.append(f"unknown environment: {self.environment!r}")
        if not self.public_base_url.startswith(("http://", "https://")):
            problems.append("public_base_url must be an http(s) URL")
        if self.store_timeout_seconds <= 0:
            problems.append("store_timeout_seconds must be > 0")
        if self.expiring_window_days < 0:
            problems.append("expiring_window_days must be >= 0")
        if self.log_level.upper() not in VALID_LOG_LEVELS:
            problems.append(f"unknown log level: {self.log_level!r}")

        if not self.is_local:
            for name in ("supabase_url", "supabase_service_role_key"):
                if not getattr(self, name):
                    problems.append(f"{self.environment}: {name} is required")
        return problems

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None) -> VaultSettings:
        """Read settings from ``env`` (default: ``os.environ``).

        Raises:
            ValueError: a numeric variable does not parse.
        """
        source = os.environ if env is None else env
        get = source.get

        return cls(
            environment=get("ENVIRONMENT", "local"),
            public_base_url=get("PUBLIC_BASE_URL", DEFAULT_PUBLIC_BASE_URL),
            supabase_url=get("SUPABASE_URL", ""),
            supabase_service_role_key=get("SUPABASE_SERVICE_ROLE_KEY", ""),
            store_timeout_seconds=float(
                get("STORE_TIMEOUT_SECONDS", DEFAULT_STORE_TIMEOUT_SECONDS),
            ),
            expiring_window_days=int(
                get("EXPIRING_WINDOW_DAYS", DEFAULT_EXPIRING_WINDOW_DAYS),
            ),
            cors_origins=_split_origins(get("CORS_ORIGINS", "")),
            log_level=get("LOG_LEVEL", "INFO"),
            log_json=get("LOG_FORMAT", "json").lower() == "json",
        )
