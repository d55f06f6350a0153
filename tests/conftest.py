from __future__ import annotations

import asyncio
import uuid
from collections import defaultdict
from dataclasses import replace
from datetime import datetime, timezone

import pytest

from app.scanning import AggregationReporter, ScannerService, ScanRecorder
from app.scanning.models import (
    ScanHistoryItem,
    ScanHistoryPage,
    ScanHistoryQuery,
    ScanRecord,
    Ticket,
    TicketBatch,
)
from app.scanning.state import ScanRecordResult, ScanResult, TicketStateMachine

SECRET_KEY = "test-qr-secret"


def make_ticket(
    ticket_number: str = "T-0001",
    *,
    batch_id: str = "batch-1",
    is_valid: bool = True,
    is_used: bool = False,
) -> Ticket:
    return Ticket(
        id=f"id-{ticket_number}",
        ticket_number=ticket_number,
        batch_id=batch_id,
        customer_name="Ada Lovelace",
        is_valid=is_valid,
        is_used=is_used,
        used_at=datetime.now(timezone.utc) if is_used else None,
        email="ada@example.com",
        event_date="2024-12-31",
        ticket_price=25.0,
        event_title="New Year Gala",
        venue="Main Hall",
    )


class InMemoryTicketStore:
    """Ticket store double that serialises writers per ticket like a row lock."""

    def __init__(self) -> None:
        self.tickets: dict[str, Ticket] = {}
        self.batches: dict[str, TicketBatch] = {}
        self.scans: list[ScanRecord] = []
        self.fail_with: Exception | None = None
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def add(self, ticket: Ticket) -> Ticket:
        self.tickets[ticket.ticket_number] = ticket
        self.batches.setdefault(ticket.batch_id, TicketBatch(ticket.batch_id, ticket.event_title or "", ticket.venue))
        return ticket

    def results(self) -> list[ScanRecordResult]:
        return [scan.scan_result for scan in self.scans]

    def _check(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    def _append(self, ticket: Ticket, result: ScanRecordResult, actor: str, note: str | None) -> None:
        self.scans.append(
            ScanRecord(
                id=str(uuid.uuid4()),
                ticket_id=ticket.id,
                batch_id=ticket.batch_id,
                scan_result=result,
                scanned_by=actor,
                scanned_at=datetime.now(timezone.utc),
                notes=note,
            )
        )

    async def get_ticket(self, ticket_number: str) -> Ticket | None:
        self._check()
        ticket = self.tickets.get(ticket_number)
        return replace(ticket) if ticket is not None else None

    async def consume_ticket(self, ticket_number, *, actor, note=None, success_result=ScanRecordResult.VALID_UNUSED):
        self._check()
        async with self._locks[ticket_number]:
            ticket = self.tickets.get(ticket_number)
            # Give competing scans a chance to interleave while the lock is held.
            await asyncio.sleep(0)
            result = TicketStateMachine.classify(ticket)
            if ticket is None:
                return result, None
            if result is ScanResult.VALID_UNUSED:
                ticket = replace(ticket, is_used=True, used_at=datetime.now(timezone.utc))
                self.tickets[ticket_number] = ticket
                self._append(ticket, success_result, actor, note)
            else:
                self._append(ticket, ScanRecordResult.from_scan_result(result), actor, note)
            return result, replace(ticket)

    async def revert_ticket(self, ticket_number, *, actor, note):
        self._check()
        async with self._locks[ticket_number]:
            ticket = self.tickets.get(ticket_number)
            if ticket is None or not TicketStateMachine.can_revert(ticket):
                return False, ticket
            ticket = replace(ticket, is_used=False, used_at=None)
            self.tickets[ticket_number] = ticket
            self._append(ticket, ScanRecordResult.SCAN_REVERTED, actor, note)
            return True, replace(ticket)

    async def add_scan(self, *, ticket_id, batch_id, result, actor, note=None):
        self._check()
        ticket = next(t for t in self.tickets.values() if t.id == ticket_id)
        self._append(ticket, result, actor, note)

    async def list_ticket_scans(self, ticket_id, *, limit):
        matching = [scan for scan in self.scans if scan.ticket_id == ticket_id]
        return list(reversed(matching))[:limit]

    async def query_scan_history(self, query: ScanHistoryQuery) -> ScanHistoryPage:
        self._check()
        numbers = {ticket.id: ticket for ticket in self.tickets.values()}
        matching = [
            scan
            for scan in reversed(self.scans)
            if (query.scanned_by is None or scan.scanned_by == query.scanned_by)
            and (query.batch_id is None or scan.batch_id == query.batch_id)
        ]
        window = matching[query.offset : query.offset + query.limit]
        items = [
            ScanHistoryItem(
                id=scan.id,
                ticket_number=numbers[scan.ticket_id].ticket_number,
                customer_name=numbers[scan.ticket_id].customer_name,
                scan_result=scan.scan_result.value,
                scanned_by=scan.scanned_by,
                scanned_at=scan.scanned_at,
                notes=scan.notes,
            )
            for scan in window
        ]
        return ScanHistoryPage(items=items, total=len(matching), limit=query.limit, offset=query.offset)

    async def get_batch(self, batch_id):
        return self.batches.get(batch_id)

    async def list_batch_ticket_states(self, batch_id):
        return [(t.is_used, t.is_valid) for t in self.tickets.values() if t.batch_id == batch_id]

    async def get_last_scan_time(self, batch_id):
        times = [scan.scanned_at for scan in self.scans if scan.batch_id == batch_id]
        return max(times) if times else None


@pytest.fixture
def store() -> InMemoryTicketStore:
    return InMemoryTicketStore()


@pytest.fixture
def recorder(store) -> ScanRecorder:
    return ScanRecorder(store)


@pytest.fixture
def scanner_service(store, recorder) -> ScannerService:
    return ScannerService(
        store,
        secret_key=SECRET_KEY,
        recorder=recorder,
        reporter=AggregationReporter(store),
    )


@pytest.fixture
def secret_key() -> str:
    return SECRET_KEY


@pytest.fixture
def ticket_factory():
    return make_ticket
