"""Typed failures raised by the share-link core.

Expected user-facing denials (expired link, exhausted quota, bad password)
are NOT exceptions; they are ``Denied`` values from
``docvault.sharing.model``. The exceptions here cover the remaining cases:

  - ``NotFound``        a document/grant addressed by id does not exist.
  - ``InvalidArgument`` malformed input (past expiry, missing password).
  - ``StorageFailure``  the backing store is unavailable or aborted the
                        transaction. Retryable by the caller; ``revoke`` is
                        idempotent, ``create``/``record`` are not.
"""

from __future__ import annotations


class VaultError(Exception):
    """Base class for typed failures surfaced to API callers."""

    code = 'vault_error'
    http_status = 500
    retryable = False

    def __init__(self, message: str = '') -> None:
        self.message = message or self.__class__.__doc__ or self.code
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {'error': self.code, 'detail': self.message}
        if self.retryable:
            body['retryable'] = True
        return body


class NotFound(VaultError):
    """Referenced record does not exist."""

    code = 'not_found'
    http_status = 404

    def __init__(self, kind: str, record_id: str) -> None:
        self.kind = kind
        self.record_id = record_id
        super().__init__(f'{kind} {record_id!r} not found')


class InvalidArgument(VaultError):
    """Request arguments failed validation."""

    code = 'invalid_argument'
    http_status = 400


class StorageFailure(VaultError):
    """Backing store unavailable or transaction aborted."""

    code = 'storage_failure'
    http_status = 503
    retryable = True
