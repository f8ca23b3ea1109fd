"""Tests for StatsAggregator rollups."""

from __future__ import annotations

from datetime import date, timedelta

import pytest

from docvault.errors import InvalidArgument, NotFound


@pytest.mark.asyncio
async def test_overview_counts_by_action(store, recorder, aggregator, make_document, now):
    await store.add_document(make_document('doc-1'))
    await recorder.record('doc-1', 'view', now=now - timedelta(hours=1))
    await recorder.record('doc-1', 'view', now=now - timedelta(hours=2))
    await recorder.record('doc-1', 'download', now=now - timedelta(hours=3))

    overview = await aggregator.overview(30, now=now)

    assert overview.total_accesses == 3
    assert overview.count_by_action == {'view': 2, 'download': 1}
    assert overview.unique_documents_accessed == 1


@pytest.mark.asyncio
async def test_overview_respects_window(store, recorder, aggregator, make_document, now):
    await store.add_document(make_document('doc-1'))
    await store.add_document(make_document('doc-2'))
    await recorder.record('doc-1', 'view', now=now - timedelta(days=2))
    await recorder.record('doc-2', 'view', now=now - timedelta(days=40))

    overview = await aggregator.overview(30, now=now)

    assert overview.total_accesses == 1
    assert overview.unique_documents_accessed == 1
    assert overview.count_by_action == {'view': 1, 'download': 0}


@pytest.mark.asyncio
async def test_overview_hour_distribution(store, recorder, aggregator, make_document, now):
    await store.add_document(make_document('doc-1'))
    # now is 12:00 UTC
    await recorder.record('doc-1', 'view', now=now - timedelta(minutes=30))
    await recorder.record('doc-1', 'view', now=now - timedelta(days=1, minutes=10))
    await recorder.record('doc-1', 'view', now=now - timedelta(hours=5))

    overview = await aggregator.overview(30, now=now)

    assert len(overview.distribution_by_hour) == 24
    assert overview.distribution_by_hour[11] == 2
    assert overview.distribution_by_hour[7] == 1
    assert sum(overview.distribution_by_hour.values()) == 3

    body = overview.to_dict()
    assert body['distribution_by_hour'][11] == {'hour': 11, 'count': 2}


@pytest.mark.asyncio
async def test_overview_empty(aggregator, now):
    overview = await aggregator.overview(now=now)
    assert overview.total_accesses == 0
    assert overview.count_by_action == {'download': 0, 'view': 0}
    assert set(overview.distribution_by_hour.values()) == {0}


@pytest.mark.asyncio
async def test_per_document_stats(store, recorder, aggregator, make_document, now):
    await store.add_document(make_document('doc-1'))
    await store.add_document(make_document('doc-2'))
    await recorder.record('doc-1', 'view', now=now - timedelta(hours=1))
    await recorder.record('doc-1', 'download', now=now - timedelta(hours=2))
    await recorder.record('doc-1', 'view', now=now - timedelta(days=1))
    await recorder.record('doc-1', 'view', now=now - timedelta(days=45))
    await recorder.record('doc-2', 'view', now=now - timedelta(hours=1))

    stats = await aggregator.per_document('doc-1', 30, now=now)

    assert stats.total_accesses == 3
    assert stats.daily_counts == (
        (date(2026, 3, 10), 2),
        (date(2026, 3, 9), 1),
    )
    # recent events are the latest events regardless of window
    assert len(stats.recent_events) == 4
    assert stats.recent_events[0].accessed_at == now - timedelta(hours=1)
    assert stats.recent_events[-1].accessed_at == now - timedelta(days=45)


@pytest.mark.asyncio
async def test_per_document_recent_events_bounded(
    store, recorder, aggregator, make_document, now,
):
    await store.add_document(make_document('doc-1'))
    for i in range(15):
        await recorder.record('doc-1', 'view', now=now - timedelta(minutes=i))

    stats = await aggregator.per_document('doc-1', now=now)

    assert len(stats.recent_events) == 10
    assert stats.recent_events[0].accessed_at == now
    assert stats.total_accesses == 15


@pytest.mark.asyncio
async def test_per_document_missing_document(aggregator, now):
    with pytest.raises(NotFound):
        await aggregator.per_document('ghost', now=now)


@pytest.mark.asyncio
async def test_window_must_be_positive(store, aggregator, make_document, now):
    await store.add_document(make_document('doc-1'))
    with pytest.raises(InvalidArgument):
        await aggregator.overview(0, now=now)
    with pytest.raises(InvalidArgument):
        await aggregator.per_document('doc-1', 0, now=now)
