"""Decoding of the canonical QR payload into a :class:`TicketClaim`."""

from __future__ import annotations

import json
from typing import Any

from .errors import MalformedPayloadError
from .models import TicketClaim

# Wire name -> attribute name, in canonical serialisation order.
_CLAIM_FIELDS: tuple[tuple[str, str], ...] = (
    ("ticketNumber", "ticket_number"),
    ("batchId", "batch_id"),
    ("customerName", "customer_name"),
    ("eventDate", "event_date"),
)


def parse_claim(payload: str) -> TicketClaim:
    """Decode a signed payload; only call this once the signature checked out."""

    try:
        decoded: Any = json.loads(payload)
    except (TypeError, ValueError, RecursionError) as exc:
        raise MalformedPayloadError(f"Invalid QR code data format: {exc}") from exc

    if not isinstance(decoded, dict):
        raise MalformedPayloadError("Invalid QR code data format: expected a JSON object")

    values: dict[str, str] = {}
    missing: list[str] = []
    for wire_name, attribute in _CLAIM_FIELDS:
        value = decoded.get(wire_name)
        if not isinstance(value, str) or not value:
            missing.append(wire_name)
            continue
        values[attribute] = value

    if missing:
        raise MalformedPayloadError(
            f"Invalid QR code data format: missing required fields {', '.join(missing)}"
        )
    return TicketClaim(**values)


def serialize_claim(claim: TicketClaim) -> str:
    """Produce the canonical compact JSON that gets signed and encoded in the QR."""

    body = {wire_name: getattr(claim, attribute) for wire_name, attribute in _CLAIM_FIELDS}
    return json.dumps(body, separators=(",", ":"), ensure_ascii=False)
