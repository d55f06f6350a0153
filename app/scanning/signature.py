"""HMAC-SHA256 signing and verification of QR payloads."""

from __future__ import annotations

import hashlib
import hmac
import logging
import re

logger = logging.getLogger(__name__)

_HEX_RE = re.compile(r"[0-9a-fA-F]*")


def _as_bytes(value: str | bytes) -> bytes:
    if isinstance(value, bytes):
        return value
    return value.encode("utf-8")


def _digest(payload: str | bytes, secret_key: str) -> bytes:
    return hmac.new(_as_bytes(secret_key), _as_bytes(payload), hashlib.sha256).digest()


def sign_payload(payload: str | bytes, secret_key: str) -> str:
    """Return the hex-encoded HMAC-SHA256 of ``payload``."""

    return _digest(payload, secret_key).hex()


def _decode_hex(signature: object) -> bytes | None:
    if not isinstance(signature, str) or len(signature) % 2:
        return None
    if _HEX_RE.fullmatch(signature) is None:
        return None
    return bytes.fromhex(signature)


def verify_signature(payload: str | bytes, signature: str, secret_key: str) -> bool:
    """Check ``signature`` against the HMAC of the exact payload bytes.

    A signature that is not valid hex, or whose decoded length differs from
    the digest, fails without a content comparison. Equal-length buffers are
    compared with :func:`hmac.compare_digest`.
    """

    received = _decode_hex(signature)
    if received is None:
        logger.debug("Rejecting signature that is not valid hex")
        return False

    expected = _digest(payload, secret_key)
    if len(expected) != len(received):
        return False
    return hmac.compare_digest(expected, received)
