"""Async PostgREST client for the vault schema on Supabase.

``PostgrestVaultStore`` talks HTTP only through this class. Every request
carries the configured timeout, so no store call can block indefinitely.

Failures are translated into docvault errors:

==============================  ==================================
transport error or timeout      PostgrestError (status 0)
SQLSTATE P0002 (no_data_found)  docvault.errors.NotFound
SQLSTATE 22023 (invalid value)  docvault.errors.InvalidArgument
HTTP 401 / 403                  PostgrestAuthError
HTTP 409                        PostgrestConflictError
any other status >= 400         PostgrestError
==============================  ==================================

The SQL functions raise P0002 with ``DETAIL`` holding the record kind and
``HINT`` holding the record id; they surface as ``NotFound.kind`` and
``NotFound.record_id``.
"""

from __future__ import annotations

from typing import Any, Mapping

import httpx

from docvault.errors import InvalidArgument, NotFound, VaultError

from .errors import PostgrestAuthError, PostgrestConflictError, PostgrestError

Filters = Mapping[str, Any]

SQLSTATE_NO_DATA_FOUND = "P0002"
SQLSTATE_INVALID_PARAMETER = "22023"

_WRITE_METHODS = frozenset({"POST", "PATCH", "DELETE"})
_RETURN_ROWS = {"Prefer": "return=representation"}


def _literal(value: Any) -> str:
    if isinstance(value, bool):
        return str(value).lower()
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def _condition(op: str, value: Any) -> str:
    """Render one ``op.value`` PostgREST condition."""
    if value is None:
        if op != "is":
            raise ValueError(f"filter {op!r} cannot compare against None")
        return "is.null"
    return f"{op}.{_literal(value)}"


def build_query(filters: Filters | None) -> dict[str, Any]:
    """Translate a filter mapping into PostgREST query parameters.

    Each column maps to a bare value (equality), an ``(op, value)`` pair, or
    a list of pairs. A list becomes repeated parameters, which PostgREST
    combines with AND.
    """
    query: dict[str, Any] = {}
    for column, condition in (filters or {}).items():
        if isinstance(condition, list):
            query[column] = [_condition(op, value) for op, value in condition]
        elif isinstance(condition, tuple):
            query[column] = _condition(*condition)
        else:
            query[column] = _condition("eq", condition)
    return query


def _error_for(resp: httpx.Response) -> VaultError:
    body: Any = None
    try:
        body = resp.json()
    except ValueError:
        pass
    if not isinstance(body, dict):
        body = {}

    message = body.get("message") or resp.text
    sqlstate = body.get("code")
    if sqlstate == SQLSTATE_NO_DATA_FOUND:
        return NotFound(body.get("details") or "record", body.get("hint") or "")
    if sqlstate == SQLSTATE_INVALID_PARAMETER:
        return InvalidArgument(message)

    if resp.status_code in (401, 403):
        cls = PostgrestAuthError
    elif resp.status_code == 409:
        cls = PostgrestConflictError
    else:
        cls = PostgrestError
    return cls(
        resp.status_code, message, code=sqlstate, details=body.get("details"),
    )


def _rows(payload: Any, operation: str) -> list[dict[str, Any]]:
    if not isinstance(payload, list):
        raise PostgrestError(500, f"{operation} did not return a row list")
    return payload


class PostgrestClient:
    """Service-role PostgREST access to one schema."""

    def __init__(
        self,
        *,
        supabase_url: str,
        service_role_key: str,
        schema: str = "vault",
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        if not supabase_url:
            raise ValueError("supabase_url is required")
        if not service_role_key:
            raise ValueError("service_role_key is required")

        self._rest_url = supabase_url.rstrip("/") + "/rest/v1"
        self._key = service_role_key
        self._schema = schema
        self._timeout = float(timeout_seconds)
        self._http = http_client if http_client is not None else httpx.AsyncClient()
        self._close_http = http_client is None

    @property
    def base_rest_url(self) -> str:
        return self._rest_url

    async def aclose(self) -> None:
        if self._close_http:
            await self._http.aclose()

    def _auth_headers(self, method: str) -> dict[str, str]:
        # Carries the service-role key; keep out of logs.
        headers = {
            "apikey": self._key,
            "Authorization": "Bearer " + self._key,
            "Accept-Profile": self._schema,
        }
        if method in _WRITE_METHODS:
            headers["Content-Profile"] = self._schema
        return headers

    async def _call(
        self,
        method: str,
        path: str,
        *,
        query: dict[str, Any] | None = None,
        body: Any = None,
        prefer: Mapping[str, str] | None = None,
    ) -> Any:
        try:
            resp = await self._http.request(
                method,
                f"{self._rest_url}/{path}",
                params=query,
                json=body,
                headers={**self._auth_headers(method), **(prefer or {})},
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            raise PostgrestError(0, f"{type(exc).__name__}: {exc}") from exc

        if resp.status_code >= 400:
            raise _error_for(resp)
        return resp.json() if resp.content else None

    async def select(
        self,
        table: str,
        filters: Filters | None = None,
        *,
        columns: str = "*",
        order: str | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[dict[str, Any]]:
        query = build_query(filters)
        query["select"] = columns
        if order:
            query["order"] = order
        if limit is not None:
            query["limit"] = str(int(limit))
        if offset:
            query["offset"] = str(int(offset))
        return _rows(await self._call("GET", table, query=query), "select")

    async def insert(
        self, table: str, data: Mapping[str, Any],
    ) -> list[dict[str, Any]]:
        payload = await self._call(
            "POST", table, body=dict(data), prefer=_RETURN_ROWS,
        )
        return _rows(payload, "insert")

    async def delete(
        self, table: str, filters: Filters,
    ) -> list[dict[str, Any]]:
        payload = await self._call(
            "DELETE", table, query=build_query(filters), prefer=_RETURN_ROWS,
        )
        return _rows(payload, "delete")

    async def rpc(
        self, function_name: str, params: Mapping[str, Any] | None = None,
    ) -> Any:
        """Call a SQL function; PostgREST runs each call in one transaction."""
        return await self._call(
            "POST", f"rpc/{function_name}", body=dict(params or {}),
        )
