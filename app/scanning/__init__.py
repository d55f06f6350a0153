"""Ticket scanning domain: verification, classification and the scan log."""

from .claims import parse_claim, serialize_claim
from .errors import (
    BatchNotFoundError,
    MalformedPayloadError,
    ScannerError,
    StoreUnavailableError,
    TicketNotFoundError,
)
from .models import BatchStats, ScanOutcome, ScanRecord, Ticket, TicketClaim
from .recorder import ScanRecorder
from .repository import TicketRepository
from .service import ScannerService
from .signature import sign_payload, verify_signature
from .state import ScanRecordResult, ScanResult, TicketStateMachine
from .stats import AggregationReporter

__all__ = [
    "AggregationReporter",
    "BatchNotFoundError",
    "BatchStats",
    "MalformedPayloadError",
    "ScanOutcome",
    "ScanRecord",
    "ScanRecordResult",
    "ScanRecorder",
    "ScanResult",
    "ScannerError",
    "ScannerService",
    "StoreUnavailableError",
    "Ticket",
    "TicketClaim",
    "TicketNotFoundError",
    "TicketRepository",
    "TicketStateMachine",
    "parse_claim",
    "serialize_claim",
    "sign_payload",
    "verify_signature",
]
