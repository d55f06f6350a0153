from __future__ import annotations

import logging
import time
from dataclasses import replace
from typing import Protocol

from opentelemetry import trace

from .claims import parse_claim
from .errors import MalformedPayloadError, TicketNotFoundError
from .models import (
    BatchStats,
    ScanHistoryPage,
    ScanHistoryQuery,
    ScanOutcome,
    ScanRecord,
    Ticket,
    TicketBatch,
    TicketDetails,
)
from .recorder import ScanRecorder
from .signature import verify_signature
from .state import ScanRecordResult, ScanResult, TicketStateMachine
from .stats import AggregationReporter

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class TicketStore(Protocol):
    async def get_ticket(self, ticket_number: str) -> Ticket | None:
        ...

    async def consume_ticket(
        self,
        ticket_number: str,
        *,
        actor: str,
        note: str | None = None,
        success_result: ScanRecordResult = ScanRecordResult.VALID_UNUSED,
    ) -> tuple[ScanResult, Ticket | None]:
        ...

    async def revert_ticket(self, ticket_number: str, *, actor: str, note: str) -> tuple[bool, Ticket | None]:
        ...

    async def list_ticket_scans(self, ticket_id: str, *, limit: int) -> list[ScanRecord]:
        ...

    async def query_scan_history(self, query: ScanHistoryQuery) -> ScanHistoryPage:
        ...


def _outcome(result: ScanResult, ticket: Ticket | None = None, *, message: str | None = None) -> ScanOutcome:
    return ScanOutcome(
        result=result,
        message=message or TicketStateMachine.message_for(result),
        allow_entry=result is ScanResult.VALID_UNUSED,
        ticket=ticket,
    )


class ScannerService:
    """Entry-control operations for scanned and manually entered tickets."""

    def __init__(
        self,
        store: TicketStore,
        *,
        secret_key: str,
        recorder: ScanRecorder,
        reporter: AggregationReporter,
        history_default_limit: int = 50,
        history_max_limit: int = 500,
        details_history_limit: int = 10,
    ) -> None:
        if not secret_key:
            raise ValueError("QR secret key is not configured")
        self._store = store
        self._secret_key = secret_key
        self._recorder = recorder
        self._reporter = reporter
        self._history_default_limit = history_default_limit
        self._history_max_limit = history_max_limit
        self._details_history_limit = details_history_limit

    async def scan(
        self,
        payload: str,
        signature: str,
        *,
        scanner_id: str,
        scanner_name: str | None = None,
        location: str | None = None,
        consume: bool = True,
    ) -> ScanOutcome:
        """Verify a scanned QR payload and, when ``consume`` is set, mark the ticket used."""

        started = time.perf_counter()
        with tracer.start_as_current_span("scanner.scan") as span:
            span.set_attribute("scanner.id", scanner_id)
            span.set_attribute("scanner.consume", consume)

            if not verify_signature(payload, signature, self._secret_key):
                logger.warning("QR signature mismatch from scanner %s at %s", scanner_id, location or "unknown location")
                span.set_attribute("scanner.result", ScanResult.SIGNATURE_MISMATCH.value)
                return _outcome(ScanResult.SIGNATURE_MISMATCH)

            try:
                claim = parse_claim(payload)
            except MalformedPayloadError as exc:
                logger.warning("Signed QR payload from scanner %s is malformed: %s", scanner_id, exc)
                span.set_attribute("scanner.result", ScanResult.INVALID.value)
                return _outcome(ScanResult.INVALID, message="Invalid QR code data format")

            actor = scanner_name or scanner_id
            if consume:
                note = f"Scanned at {location}" if location else None
                outcome = await self.try_consume(claim.ticket_number, actor=actor, note=note)
            else:
                outcome = await self.verify_only(claim.ticket_number, actor=actor, location=location)

            span.set_attribute("scanner.result", outcome.result.value)
            logger.info(
                "Scan completed for ticket %s by %s: %s (allow_entry=%s, %.1fms)",
                claim.ticket_number,
                scanner_id,
                outcome.result.value,
                outcome.allow_entry,
                (time.perf_counter() - started) * 1000,
            )
            return outcome

    async def classify(self, ticket_number: str) -> ScanOutcome:
        ticket = await self._store.get_ticket(ticket_number)
        return _outcome(TicketStateMachine.classify(ticket), ticket)

    async def verify_only(self, ticket_number: str, *, actor: str, location: str | None = None) -> ScanOutcome:
        """Classify without consuming; the attempt is logged in the background."""

        outcome = await self.classify(ticket_number)
        if outcome.ticket is not None:
            self._recorder.schedule(
                ticket_id=outcome.ticket.id,
                batch_id=outcome.ticket.batch_id,
                result=ScanRecordResult.VERIFY_ONLY,
                actor=actor,
                note=f"Verify only at {location}" if location else "Verify only",
            )
        return outcome

    async def try_consume(self, ticket_number: str, *, actor: str, note: str | None = None) -> ScanOutcome:
        result, ticket = await self._store.consume_ticket(ticket_number, actor=actor, note=note)
        if result is ScanResult.VALID_UNUSED:
            logger.info("Ticket %s consumed by %s", ticket_number, actor)
        else:
            logger.warning("Ticket %s rejected for %s: %s", ticket_number, actor, result.value)
        return _outcome(result, ticket)

    async def manual_entry(self, ticket_number: str, *, reason: str, actor: str) -> ScanOutcome:
        """Consume a ticket whose QR code could not be scanned."""

        if not ticket_number or not ticket_number.strip():
            raise ValueError("Ticket number is required")
        if not reason or not reason.strip():
            raise ValueError("A reason is required for manual entry")

        with tracer.start_as_current_span("scanner.manual_entry"):
            logger.info("Manual entry for ticket %s by %s: %s", ticket_number, actor, reason)
            result, ticket = await self._store.consume_ticket(
                ticket_number,
                actor=actor,
                note=f"Manual entry: {reason}",
                success_result=ScanRecordResult.MANUAL_ENTRY,
            )
        if result is ScanResult.VALID_UNUSED:
            return _outcome(result, ticket, message="Ticket marked as used manually")
        return _outcome(result, ticket)

    async def revert(self, ticket_number: str, *, admin_id: str, reason: str) -> ScanOutcome:
        """Mark a used ticket unused again. Only administrators reach this path."""

        if not reason or not reason.strip():
            raise ValueError("A reason is required to revert a scan")

        with tracer.start_as_current_span("scanner.revert"):
            logger.info("Reverting scan of ticket %s by %s: %s", ticket_number, admin_id, reason)
            reverted, ticket = await self._store.revert_ticket(
                ticket_number, actor=admin_id, note=f"Scan reverted: {reason}"
            )

        if ticket is None:
            return _outcome(ScanResult.NOT_FOUND)
        if not reverted:
            return _outcome(ScanResult.INVALID, ticket, message="Ticket has not been used yet")

        logger.info("Scan of ticket %s reverted", ticket_number)
        return ScanOutcome(
            result=ScanResult.VALID_UNUSED,
            message="Ticket scan reverted successfully",
            allow_entry=False,
            ticket=ticket,
        )

    async def scan_history(self, query: ScanHistoryQuery) -> ScanHistoryPage:
        limit = query.limit if query.limit > 0 else self._history_default_limit
        bounded = replace(query, limit=min(limit, self._history_max_limit), offset=max(query.offset, 0))
        page = await self._store.query_scan_history(bounded)
        logger.info("Scan history returned %d of %d records", len(page.items), page.total)
        return page

    async def batch_stats(self, batch_id: str) -> tuple[TicketBatch, BatchStats]:
        return await self._reporter.report(batch_id)

    async def ticket_details(self, ticket_number: str) -> TicketDetails:
        ticket = await self._store.get_ticket(ticket_number)
        if ticket is None:
            raise TicketNotFoundError(f"Ticket {ticket_number} not found")
        scans = await self._store.list_ticket_scans(ticket.id, limit=self._details_history_limit)
        return TicketDetails(ticket=ticket, recent_scans=scans)
