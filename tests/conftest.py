"""Pytest configuration for docvault tests."""
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Add src/ to path for src-layout imports
_SRC = Path(__file__).parent.parent / 'src'
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

import pytest

from docvault.documents.model import Document
from docvault.inmemory import InMemoryVaultStore
from docvault.sharing.manager import ShareLinkManager
from docvault.sharing.recorder import AccessRecorder
from docvault.stats.aggregator import StatsAggregator

BASE_URL = 'https://vault.example.com'
NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def store():
    return InMemoryVaultStore()


@pytest.fixture
def manager(store):
    return ShareLinkManager(store, public_base_url=BASE_URL)


@pytest.fixture
def recorder(store):
    return AccessRecorder(store)


@pytest.fixture
def aggregator(store):
    return StatsAggregator(store)


def _make_document(document_id: str = 'doc-1', **overrides) -> Document:
    fields = {
        'id': document_id,
        'name': f'{document_id}.pdf',
        'original_name': f'{document_id} original.pdf',
        'size': 2048,
        'content_type': 'application/pdf',
        'uploaded_at': NOW - timedelta(days=10),
    }
    fields.update(overrides)
    return Document(**fields)


@pytest.fixture
def make_document():
    """Factory for Document rows with sensible defaults."""
    return _make_document
