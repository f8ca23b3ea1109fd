"""Document record as seen by the share-link core.

Upload, storage, and search of documents live outside this service. The
core only reads a document's identity and mutates its sharing/counter
columns, so this is the row shape of ``vault.documents`` and nothing more.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone


@dataclass
class Document:
    """Row-level representation aligned with vault.documents.

    Attributes:
        id: Unique document identity.
        name: Display / stored name.
        original_name: Filename supplied at upload.
        size: Size in bytes.
        content_type: MIME type.
        uploaded_at: Upload timestamp.
        last_accessed: Time of the most recent recorded access.
        access_count: Number of AccessLog rows referencing the document.
        is_shared: True iff an active ShareGrant references the document.
        share_link: External link of the current grant.
        share_grant_id: Id of the current grant.
        expiry_date: Expiry of the current grant.
    """

    id: str
    name: str
    original_name: str
    size: int = 0
    content_type: str = 'application/octet-stream'
    uploaded_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
    last_accessed: datetime | None = None
    access_count: int = 0
    is_shared: bool = False
    share_link: str | None = None
    share_grant_id: str | None = None
    expiry_date: datetime | None = None

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'original_name': self.original_name,
            'size': self.size,
            'content_type': self.content_type,
            'uploaded_at': self.uploaded_at.isoformat(),
            'last_accessed': (
                self.last_accessed.isoformat() if self.last_accessed else None
            ),
            'access_count': self.access_count,
            'is_shared': self.is_shared,
            'share_link': self.share_link,
            'expiry_date': (
                self.expiry_date.isoformat() if self.expiry_date else None
            ),
        }
