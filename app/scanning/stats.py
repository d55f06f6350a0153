from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Iterable, Protocol

from .errors import BatchNotFoundError
from .models import BatchStats, TicketBatch

logger = logging.getLogger(__name__)


class BatchStatsSource(Protocol):
    async def get_batch(self, batch_id: str) -> TicketBatch | None:
        ...

    async def list_batch_ticket_states(self, batch_id: str) -> list[tuple[bool, bool]]:
        ...

    async def get_last_scan_time(self, batch_id: str) -> datetime | None:
        ...


def usage_percentage(used: int, total: int) -> int:
    """Percentage of used tickets, rounded half up; 0 for an empty batch."""

    if total <= 0:
        return 0
    return math.floor(used * 100 / total + 0.5)


def summarize_ticket_states(
    states: Iterable[tuple[bool, bool]], *, last_scan_time: datetime | None = None
) -> BatchStats:
    total = used = invalid = 0
    for is_used, is_valid in states:
        total += 1
        if is_used:
            used += 1
        if not is_valid:
            invalid += 1
    return BatchStats(
        total_tickets=total,
        tickets_used=used,
        tickets_remaining=total - used - invalid,
        tickets_invalid=invalid,
        usage_percentage=usage_percentage(used, total),
        last_scan_time=last_scan_time,
    )


class AggregationReporter:
    """Read-only usage counters computed from current ticket state."""

    def __init__(self, source: BatchStatsSource) -> None:
        self._source = source

    async def stats(self, batch_id: str) -> BatchStats:
        _, stats = await self.report(batch_id)
        return stats

    async def report(self, batch_id: str) -> tuple[TicketBatch, BatchStats]:
        batch = await self._source.get_batch(batch_id)
        if batch is None:
            logger.warning("Batch %s not found", batch_id)
            raise BatchNotFoundError(f"Batch {batch_id} not found")
        states = await self._source.list_batch_ticket_states(batch_id)
        last_scan = await self._source.get_last_scan_time(batch_id)
        stats = summarize_ticket_states(states, last_scan_time=last_scan)
        logger.info(
            "Batch %s stats: %d total, %d used, %d invalid",
            batch_id,
            stats.total_tickets,
            stats.tickets_used,
            stats.tickets_invalid,
        )
        return batch, stats
