"""Share grants: lifecycle, resolution, and access recording."""

from .access import create_share_access_router
from .manager import UNSET, ShareLinkManager
from .model import (
    Denied,
    DenialReason,
    ExpiringGrant,
    IncrementResult,
    Incremented,
    QuotaFull,
    ResolvedGrant,
    ShareGrant,
)
from .recorder import AccessRecorder, LocationResolver, UnknownLocationResolver
from .routes import create_share_router

__all__ = [
    'AccessRecorder',
    'Denied',
    'DenialReason',
    'ExpiringGrant',
    'IncrementResult',
    'Incremented',
    'LocationResolver',
    'QuotaFull',
    'ResolvedGrant',
    'ShareGrant',
    'ShareLinkManager',
    'UNSET',
    'UnknownLocationResolver',
    'create_share_access_router',
    'create_share_router',
]
