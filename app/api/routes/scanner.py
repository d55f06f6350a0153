from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Query
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.api.errors import api_error
from app.dependencies.auth import AdminAccess, CurrentScanner
from app.dependencies.scanning import ScannerServiceDep
from app.scanning.errors import BatchNotFoundError, TicketNotFoundError
from app.scanning.models import BatchStats, ScanHistoryItem, ScanHistoryQuery, ScanOutcome, ScanRecord, Ticket
from app.scanning.state import ScanResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/scanner", tags=["scanner"])


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Canonical claims are a few hundred bytes; anything far larger is not a ticket QR code.
MAX_QR_DATA_LENGTH = 4096


class ScanRequest(CamelModel):
    qr_data: str = Field(..., min_length=1, max_length=MAX_QR_DATA_LENGTH)
    signature: str = Field(..., min_length=1, max_length=128)
    scanner_name: str | None = Field(default=None, max_length=255)
    location: str | None = Field(default=None, max_length=255)
    mark_as_used: bool = True


class VerifyOnlyRequest(CamelModel):
    qr_data: str = Field(..., min_length=1, max_length=MAX_QR_DATA_LENGTH)
    signature: str = Field(..., min_length=1, max_length=128)
    scanner_name: str | None = Field(default=None, max_length=255)
    location: str | None = Field(default=None, max_length=255)


class ManualEntryRequest(CamelModel):
    ticket_number: str = Field(..., min_length=1, max_length=100)
    reason: str = Field(..., min_length=1, max_length=500)
    scanner_name: str | None = Field(default=None, max_length=255)


class UndoScanRequest(CamelModel):
    ticket_number: str = Field(..., min_length=1, max_length=100)
    admin_id: str = Field(..., min_length=1, max_length=255)
    reason: str = Field(..., min_length=1, max_length=500)


class TicketInfo(CamelModel):
    ticket_number: str
    customer_name: str
    email: str | None = None
    phone_number: str | None = None
    event_date: str | None = None
    ticket_price: float | None = None
    is_used: bool
    used_at: datetime | None = None


class BatchInfo(CamelModel):
    event_title: str | None = None
    venue: str | None = None


class ScanResponse(CamelModel):
    success: bool = True
    result: ScanResult
    message: str
    allow_entry: bool
    ticket: TicketInfo | None = None
    batch: BatchInfo | None = None
    scan_time: datetime


class ScanHistoryEntry(CamelModel):
    id: str
    ticket_number: str
    customer_name: str
    scan_result: str
    scanned_by: str | None
    scanned_at: datetime
    scan_notes: str | None


class ScanHistoryResponse(CamelModel):
    success: bool = True
    scans: list[ScanHistoryEntry]
    total: int
    page: int
    limit: int


class BatchStatsModel(CamelModel):
    total_tickets: int
    tickets_used: int
    tickets_remaining: int
    tickets_invalid: int
    usage_percentage: int
    last_scan_time: datetime | None


class BatchStatsResponse(CamelModel):
    success: bool = True
    batch_id: str
    event_title: str
    venue: str
    stats: BatchStatsModel


class TicketDetail(CamelModel):
    id: str
    ticket_number: str
    customer_name: str
    email: str | None
    phone_number: str | None
    event_date: str | None
    ticket_price: float | None
    is_valid: bool
    is_used: bool
    used_at: datetime | None


class TicketScanEntry(CamelModel):
    scanned_at: datetime
    scanned_by: str | None
    scan_result: str
    scan_notes: str | None


class TicketDetailsResponse(CamelModel):
    success: bool = True
    ticket: TicketDetail
    batch: BatchInfo
    scan_history: list[TicketScanEntry]


def _to_scan_response(outcome: ScanOutcome, scan_time: datetime) -> ScanResponse:
    ticket = outcome.ticket
    return ScanResponse(
        result=outcome.result,
        message=outcome.message,
        allow_entry=outcome.allow_entry,
        ticket=_to_ticket_info(ticket) if ticket is not None else None,
        batch=BatchInfo(event_title=ticket.event_title, venue=ticket.venue) if ticket is not None else None,
        scan_time=scan_time,
    )


def _to_ticket_info(ticket: Ticket) -> TicketInfo:
    return TicketInfo(
        ticket_number=ticket.ticket_number,
        customer_name=ticket.customer_name,
        email=ticket.email,
        phone_number=ticket.phone_number,
        event_date=ticket.event_date,
        ticket_price=ticket.ticket_price,
        is_used=ticket.is_used,
        used_at=ticket.used_at,
    )


def _to_history_entry(item: ScanHistoryItem) -> ScanHistoryEntry:
    return ScanHistoryEntry(
        id=item.id,
        ticket_number=item.ticket_number,
        customer_name=item.customer_name,
        scan_result=item.scan_result,
        scanned_by=item.scanned_by,
        scanned_at=item.scanned_at,
        scan_notes=item.notes,
    )


def _to_stats_model(stats: BatchStats) -> BatchStatsModel:
    return BatchStatsModel(
        total_tickets=stats.total_tickets,
        tickets_used=stats.tickets_used,
        tickets_remaining=stats.tickets_remaining,
        tickets_invalid=stats.tickets_invalid,
        usage_percentage=stats.usage_percentage,
        last_scan_time=stats.last_scan_time,
    )


def _to_scan_entry(record: ScanRecord) -> TicketScanEntry:
    return TicketScanEntry(
        scanned_at=record.scanned_at,
        scanned_by=record.scanned_by,
        scan_result=record.scan_result.value,
        scan_notes=record.notes,
    )


def _now() -> datetime:
    return datetime.now(timezone.utc)


@router.post("/verify-and-scan", response_model=ScanResponse, summary="Verify a QR code and admit the ticket")
async def verify_and_scan(payload: ScanRequest, scanner: CurrentScanner, service: ScannerServiceDep) -> ScanResponse:
    scan_time = _now()
    logger.info("Scan request from scanner %s (mark_as_used=%s)", scanner.scanner_id, payload.mark_as_used)
    outcome = await service.scan(
        payload.qr_data,
        payload.signature,
        scanner_id=scanner.scanner_id,
        scanner_name=scanner.display_name(payload.scanner_name),
        location=payload.location,
        consume=payload.mark_as_used,
    )
    return _to_scan_response(outcome, scan_time)


@router.post("/verify-only", response_model=ScanResponse, summary="Verify a QR code without admitting the ticket")
async def verify_only(payload: VerifyOnlyRequest, scanner: CurrentScanner, service: ScannerServiceDep) -> ScanResponse:
    scan_time = _now()
    outcome = await service.scan(
        payload.qr_data,
        payload.signature,
        scanner_id=scanner.scanner_id,
        scanner_name=scanner.display_name(payload.scanner_name),
        location=payload.location,
        consume=False,
    )
    return _to_scan_response(outcome, scan_time)


@router.post("/manual-entry", response_model=ScanResponse, summary="Admit a ticket whose QR code cannot be read")
async def manual_entry(payload: ManualEntryRequest, scanner: CurrentScanner, service: ScannerServiceDep) -> ScanResponse:
    scan_time = _now()
    actor = scanner.actor(payload.scanner_name)
    try:
        outcome = await service.manual_entry(payload.ticket_number, reason=payload.reason, actor=actor)
    except ValueError as exc:
        raise api_error(400, "invalid_request", str(exc)) from exc
    return _to_scan_response(outcome, scan_time)


@router.post("/undo-scan", response_model=ScanResponse, summary="Revert a ticket to unused (admin only)")
async def undo_scan(payload: UndoScanRequest, _: AdminAccess, service: ScannerServiceDep) -> ScanResponse:
    scan_time = _now()
    try:
        outcome = await service.revert(payload.ticket_number, admin_id=payload.admin_id, reason=payload.reason)
    except ValueError as exc:
        raise api_error(400, "invalid_request", str(exc)) from exc

    if outcome.result is ScanResult.NOT_FOUND:
        raise api_error(404, "not_found", outcome.message)
    if outcome.result is ScanResult.INVALID:
        raise api_error(409, "ticket_not_used", outcome.message)
    return _to_scan_response(outcome, scan_time)


@router.get("/scan-history", response_model=ScanHistoryResponse, summary="List recorded scans")
async def scan_history(
    _: CurrentScanner,
    service: ScannerServiceDep,
    scanner_id: str | None = Query(default=None, alias="scannerId"),
    batch_id: str | None = Query(default=None, alias="batchId"),
    scanned_from: datetime | None = Query(default=None, alias="from"),
    scanned_to: datetime | None = Query(default=None, alias="to"),
    limit: int | None = Query(default=None, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
) -> ScanHistoryResponse:
    page = await service.scan_history(
        ScanHistoryQuery(
            scanned_by=scanner_id,
            batch_id=batch_id,
            scanned_from=scanned_from,
            scanned_to=scanned_to,
            limit=limit or 0,
            offset=offset,
        )
    )
    return ScanHistoryResponse(
        scans=[_to_history_entry(item) for item in page.items],
        total=page.total,
        page=page.page,
        limit=page.limit,
    )


@router.get("/batch-stats", response_model=BatchStatsResponse, summary="Usage counters for a ticket batch")
async def batch_stats(
    _: CurrentScanner,
    service: ScannerServiceDep,
    batch_id: str = Query(..., alias="batchId", min_length=1),
) -> BatchStatsResponse:
    try:
        batch, stats = await service.batch_stats(batch_id)
    except BatchNotFoundError as exc:
        raise api_error(404, "not_found", "Batch not found") from exc
    return BatchStatsResponse(
        batch_id=batch.id,
        event_title=batch.event_title or "Unknown",
        venue=batch.venue or "Unknown",
        stats=_to_stats_model(stats),
    )


@router.get("/ticket-details", response_model=TicketDetailsResponse, summary="Look up a ticket by number")
async def ticket_details(
    _: CurrentScanner,
    service: ScannerServiceDep,
    ticket_number: str = Query(..., alias="ticketNumber", min_length=1),
) -> TicketDetailsResponse:
    try:
        details = await service.ticket_details(ticket_number)
    except TicketNotFoundError as exc:
        raise api_error(404, "not_found", "Ticket not found") from exc

    ticket = details.ticket
    return TicketDetailsResponse(
        ticket=TicketDetail(
            id=ticket.id,
            ticket_number=ticket.ticket_number,
            customer_name=ticket.customer_name,
            email=ticket.email,
            phone_number=ticket.phone_number,
            event_date=ticket.event_date,
            ticket_price=ticket.ticket_price,
            is_valid=ticket.is_valid,
            is_used=ticket.is_used,
            used_at=ticket.used_at,
        ),
        batch=BatchInfo(event_title=ticket.event_title, venue=ticket.venue),
        scan_history=[_to_scan_entry(record) for record in details.recent_scans],
    )
