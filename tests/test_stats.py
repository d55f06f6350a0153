from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from app.scanning.errors import BatchNotFoundError
from app.scanning.models import TicketBatch
from app.scanning.stats import AggregationReporter, summarize_ticket_states, usage_percentage


def test_summarize_ticket_states_counts_used_and_invalid():
    states = [(True, True)] * 3 + [(False, False)] + [(False, True)] * 6

    stats = summarize_ticket_states(states)

    assert stats.total_tickets == 10
    assert stats.tickets_used == 3
    assert stats.tickets_invalid == 1
    assert stats.tickets_remaining == 6
    assert stats.usage_percentage == 30


def test_summarize_empty_batch():
    stats = summarize_ticket_states([])

    assert stats.total_tickets == 0
    assert stats.tickets_remaining == 0
    assert stats.usage_percentage == 0
    assert stats.last_scan_time is None


@pytest.mark.parametrize(
    ("used", "total", "expected"),
    [(0, 10, 0), (1, 3, 33), (2, 3, 67), (1, 8, 13), (1, 200, 1), (1, 201, 0), (5, 5, 100), (0, 0, 0)],
)
def test_usage_percentage_rounds_half_up(used, total, expected):
    assert usage_percentage(used, total) == expected


@pytest.mark.asyncio
async def test_reporter_returns_batch_and_stats():
    last_scan = datetime(2024, 12, 31, 21, 0, tzinfo=timezone.utc)
    source = AsyncMock()
    source.get_batch = AsyncMock(return_value=TicketBatch("batch-1", "New Year Gala", "Main Hall"))
    source.list_batch_ticket_states = AsyncMock(return_value=[(True, True), (False, True)])
    source.get_last_scan_time = AsyncMock(return_value=last_scan)

    batch, stats = await AggregationReporter(source).report("batch-1")

    assert batch.event_title == "New Year Gala"
    assert stats.tickets_used == 1
    assert stats.usage_percentage == 50
    assert stats.last_scan_time == last_scan


@pytest.mark.asyncio
async def test_reporter_raises_for_unknown_batch():
    source = AsyncMock()
    source.get_batch = AsyncMock(return_value=None)

    with pytest.raises(BatchNotFoundError):
        await AggregationReporter(source).stats("missing")
    source.list_batch_ticket_states.assert_not_awaited()
