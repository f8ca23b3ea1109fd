"""structlog setup for docvault.

Call ``configure_logging`` once at startup; afterwards every module logs
through ``get_logger(__name__)`` with keyword context::

    logger.info("share_denied", grant=redact_token(grant_id), reason="expired")

Share grant ids are bearer secrets: whoever holds one can open the link.
Call sites pass them through ``redact_token``, and ``_scrub_secrets`` runs
as the last processor before rendering so a stray ``password`` or
``grant_id`` key cannot reach the output either.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from typing import Any

import structlog

# Correlation id of the request being served (set by RequestIdMiddleware).
request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)

TOKEN_PREFIX_LENGTH = 8
REDACTED = "<redacted>"

# Event keys whose values are dropped outright.
_SECRET_KEYS = frozenset({
    "password",
    "password_hash",
    "x_share_password",
    "service_role_key",
    "authorization",
})
# Event keys holding grant ids; reduced to a prefix.
_GRANT_KEYS = frozenset({"grant", "grant_id"})

_configured = False


def redact_token(token: str | None) -> str:
    """Shorten a grant id to a prefix that is safe to log."""
    if not token or len(token) < TOKEN_PREFIX_LENGTH:
        return REDACTED
    return f"{token[:TOKEN_PREFIX_LENGTH]}..."


def _add_request_id(_logger: Any, _method: str, event_dict: dict) -> dict:
    rid = request_id_ctx.get()
    if rid is not None:
        event_dict.setdefault("request_id", rid)
    return event_dict


def _scrub_secrets(_logger: Any, _method: str, event_dict: dict) -> dict:
    for key in _SECRET_KEYS & event_dict.keys():
        event_dict[key] = REDACTED
    for key in _GRANT_KEYS & event_dict.keys():
        value = event_dict[key]
        if isinstance(value, str) and not value.endswith(("...", REDACTED)):
            event_dict[key] = redact_token(value)
    return event_dict


def _pre_chain() -> list:
    return [
        structlog.contextvars.merge_contextvars,
        _add_request_id,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.format_exc_info,
    ]


def configure_logging(*, level: str = "INFO", json_output: bool = True) -> None:
    """Route structlog and stdlib logging through one stdout handler.

    Only the first call has an effect.

    Args:
        level: Root log level name.
        json_output: JSON lines when True, coloured console output otherwise.
    """
    global _configured
    if _configured:
        return
    _configured = True

    structlog.configure(
        processors=[
            *_pre_chain(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_pre_chain(),
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _scrub_secrets,
            structlog.processors.JSONRenderer()
            if json_output
            else structlog.dev.ConsoleRenderer(),
        ],
    ))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # uvicorn's access log would print raw share-link paths.
    logging.getLogger("uvicorn.access").disabled = True
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
