from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import Ticket


class ScanResult(str, Enum):
    """Outcome of checking a scanned ticket."""

    VALID_UNUSED = "valid_unused"
    ALREADY_USED = "already_used"
    INVALID = "invalid"
    NOT_FOUND = "not_found"
    SIGNATURE_MISMATCH = "signature_mismatch"
    EXPIRED = "expired"


class ScanRecordResult(str, Enum):
    """Values stored in the ``scan_result`` column of the scan log."""

    VALID_UNUSED = "valid_unused"
    ALREADY_USED = "already_used"
    INVALID = "invalid"
    NOT_FOUND = "not_found"
    SIGNATURE_MISMATCH = "signature_mismatch"
    EXPIRED = "expired"
    VERIFY_ONLY = "verify_only"
    MANUAL_ENTRY = "manual_entry"
    SCAN_REVERTED = "scan_reverted"

    @classmethod
    def from_scan_result(cls, result: ScanResult) -> "ScanRecordResult":
        return cls(result.value)


class TicketStateMachine:
    """Classify tickets and guard the used/unused transition.

    The checks in :meth:`classify` run in a fixed order and the first match
    wins: a missing ticket, then a vendor-revoked ticket, then a ticket that
    was already consumed. Every other ticket is fresh.
    """

    _MESSAGES: dict[ScanResult, str] = {
        ScanResult.VALID_UNUSED: "Ticket verified successfully - ALLOW ENTRY",
        ScanResult.ALREADY_USED: "Ticket has already been used",
        ScanResult.INVALID: "Ticket has been invalidated",
        ScanResult.NOT_FOUND: "Ticket not found",
        ScanResult.SIGNATURE_MISMATCH: "QR code signature is invalid (possible forgery)",
        ScanResult.EXPIRED: "Ticket has expired",
    }

    @classmethod
    def classify(cls, ticket: Ticket | None) -> ScanResult:
        if ticket is None:
            return ScanResult.NOT_FOUND
        if not ticket.is_valid:
            return ScanResult.INVALID
        if ticket.is_used:
            return ScanResult.ALREADY_USED
        return ScanResult.VALID_UNUSED

    @classmethod
    def can_revert(cls, ticket: Ticket | None) -> bool:
        return ticket is not None and ticket.is_used

    @classmethod
    def message_for(cls, result: ScanResult) -> str:
        return cls._MESSAGES[result]
