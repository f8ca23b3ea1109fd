"""docvault: document share links, access logging, and access statistics."""

from .main import create_app
from .settings import VaultSettings

__all__ = ["create_app", "VaultSettings"]
