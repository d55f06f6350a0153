from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Sequence

from .state import ScanRecordResult, ScanResult


@dataclass(slots=True, frozen=True)
class TicketClaim:
    """Ticket assertion carried by a scanned QR payload."""

    ticket_number: str
    batch_id: str
    customer_name: str
    event_date: str


@dataclass(slots=True)
class Ticket:
    """Ticket row joined with the batch it was issued in."""

    id: str
    ticket_number: str
    batch_id: str
    customer_name: str
    is_valid: bool
    is_used: bool
    used_at: datetime | None = None
    email: str | None = None
    phone_number: str | None = None
    event_date: str | None = None
    ticket_price: float | None = None
    event_title: str | None = None
    venue: str | None = None


@dataclass(slots=True)
class ScanRecord:
    """Append-only audit entry for a single scan attempt."""

    id: str
    ticket_id: str
    batch_id: str | None
    scan_result: ScanRecordResult
    scanned_by: str | None
    scanned_at: datetime
    notes: str | None = None


@dataclass(slots=True)
class ScanOutcome:
    """Result handed back to the scanning device."""

    result: ScanResult
    message: str
    allow_entry: bool
    ticket: Ticket | None = None


@dataclass(slots=True)
class ScanHistoryQuery:
    scanned_by: str | None = None
    batch_id: str | None = None
    scanned_from: datetime | None = None
    scanned_to: datetime | None = None
    limit: int = 50
    offset: int = 0


@dataclass(slots=True)
class ScanHistoryItem:
    """Scan record enriched with the ticket it refers to."""

    id: str
    ticket_number: str
    customer_name: str
    scan_result: str
    scanned_by: str | None
    scanned_at: datetime
    notes: str | None


@dataclass(slots=True)
class ScanHistoryPage:
    items: Sequence[ScanHistoryItem]
    total: int
    limit: int
    offset: int

    @property
    def page(self) -> int:
        if self.limit <= 0:
            return 1
        return self.offset // self.limit + 1


@dataclass(slots=True)
class TicketBatch:
    id: str
    event_title: str
    venue: str | None


@dataclass(slots=True)
class BatchStats:
    """Point-in-time usage counters for a ticket batch."""

    total_tickets: int
    tickets_used: int
    tickets_remaining: int
    tickets_invalid: int
    usage_percentage: int
    last_scan_time: datetime | None


@dataclass(slots=True)
class TicketDetails:
    ticket: Ticket
    recent_scans: Sequence[ScanRecord] = field(default_factory=list)
