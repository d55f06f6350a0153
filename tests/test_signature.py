import pytest

from app.scanning.signature import sign_payload, verify_signature

PAYLOAD = '{"ticketNumber":"T-0001","batchId":"batch-1","customerName":"Ada Lovelace","eventDate":"2024-12-31"}'


def test_sign_payload_matches_rfc4231_vector():
    digest = sign_payload("what do ya want for nothing?", "Jefe")
    assert digest == "5bdcc146bf60754e6a042426089575c75a003f089d2739839dec58b964ec3843"


def test_verify_signature_accepts_own_signature():
    signature = sign_payload(PAYLOAD, "secret")
    assert verify_signature(PAYLOAD, signature, "secret") is True
    assert verify_signature(PAYLOAD, signature.upper(), "secret") is True


def test_verify_signature_rejects_other_key():
    signature = sign_payload(PAYLOAD, "secret")
    assert verify_signature(PAYLOAD, signature, "other-secret") is False


def test_verify_signature_rejects_every_single_bit_flip():
    signature = bytes.fromhex(sign_payload(PAYLOAD, "secret"))
    for index in range(len(signature)):
        for bit in range(8):
            mutated = bytearray(signature)
            mutated[index] ^= 1 << bit
            assert verify_signature(PAYLOAD, mutated.hex(), "secret") is False


def test_verify_signature_rejects_modified_payload():
    signature = sign_payload(PAYLOAD, "secret")
    tampered = PAYLOAD.replace("T-0001", "T-0002")
    assert verify_signature(tampered, signature, "secret") is False
    assert verify_signature(PAYLOAD + " ", signature, "secret") is False


@pytest.mark.parametrize(
    "signature",
    ["", "abc", "zz" * 32, "0x" + "00" * 31, "00" * 31, "00" * 33, " " + "00" * 32],
)
def test_verify_signature_rejects_malformed_signatures_without_raising(signature):
    assert verify_signature(PAYLOAD, signature, "secret") is False


def test_verify_signature_uses_exact_payload_bytes():
    payload = '{"customerName":"Zoë"}'
    signature = sign_payload(payload.encode("utf-8"), "secret")
    assert verify_signature(payload, signature, "secret") is True
