from __future__ import annotations


class ScannerError(RuntimeError):
    """Base error for scanner service issues."""


class MalformedPayloadError(ScannerError):
    """Raised when a QR payload cannot be decoded into a ticket claim."""


class TicketNotFoundError(ScannerError):
    """Raised when a ticket could not be located."""


class BatchNotFoundError(ScannerError):
    """Raised when a ticket batch could not be located."""


class StoreUnavailableError(ScannerError):
    """Raised when the ticket store failed or timed out.

    This never stands for a ticket classification: callers use it to tell
    "the ticket is invalid" apart from "validity could not be determined".
    """
