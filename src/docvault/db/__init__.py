"""Supabase/PostgREST persistence for the vault schema."""

from .errors import PostgrestAuthError, PostgrestConflictError, PostgrestError
from .postgrest_client import PostgrestClient
from .vault_repo import PostgrestVaultStore

__all__ = [
    "PostgrestAuthError",
    "PostgrestClient",
    "PostgrestConflictError",
    "PostgrestError",
    "PostgrestVaultStore",
]
