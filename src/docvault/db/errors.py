"""PostgREST client error hierarchy.

Every failure the client cannot translate into a domain error is a
``StorageFailure`` subclass, so the app-level handler renders it as a
retryable 503 without leaking httpx.Response objects (or secrets).
"""

from __future__ import annotations

from docvault.errors import StorageFailure


class PostgrestError(StorageFailure):
    """Transport failure or unexpected PostgREST response."""

    def __init__(
        self,
        status_code: int,
        message: str,
        *,
        code: str | None = None,
        details: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.pg_code = code
        self.details = details
        super().__init__(message)

    def __str__(self) -> str:
        bits: list[str] = [f"PostgrestError(status={self.status_code})", self.message]
        if self.pg_code:
            bits.append(f"code={self.pg_code}")
        if self.details:
            bits.append(f"details={self.details}")
        return " ".join(bits)


class PostgrestAuthError(PostgrestError):
    """401/403: bad service key or row-level security refusal."""


class PostgrestConflictError(PostgrestError):
    """409: unique or foreign-key violation."""
