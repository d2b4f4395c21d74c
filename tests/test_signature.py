import base64
import hashlib
import hmac

from application.utils.signature import compute_signature, is_fresh_timestamp, verify_signature


BODY = b'{"data":{"order":{"order_id":"order_1"},"payment":{"payment_status":"SUCCESS"}}}'
SECRET = "whsec"


def _reference(body: bytes, ts: str, secret: str) -> str:
    mac = hmac.new(secret.encode(), ts.encode() + body, hashlib.sha256).digest()
    return base64.b64encode(mac).decode()


def test_compute_signature_is_base64_hmac_of_timestamp_and_body():
    assert compute_signature(BODY, "1700000000", SECRET) == _reference(BODY, "1700000000", SECRET)


def test_verify_accepts_matching_signature():
    sig = compute_signature(BODY, "1700000000", SECRET)
    assert verify_signature(BODY, "1700000000", sig, SECRET) is True


def test_verify_rejects_single_byte_change():
    sig = compute_signature(BODY, "1700000000", SECRET)
    tampered = BODY.replace(b"SUCCESS", b"SUCCESs")
    assert verify_signature(tampered, "1700000000", sig, SECRET) is False


def test_verify_rejects_reserialized_body():
    # same JSON, different bytes
    sig = compute_signature(BODY, "1700000000", SECRET)
    spaced = BODY.replace(b":", b": ")
    assert verify_signature(spaced, "1700000000", sig, SECRET) is False


def test_verify_rejects_wrong_timestamp_or_secret():
    sig = compute_signature(BODY, "1700000000", SECRET)
    assert verify_signature(BODY, "1700000001", sig, SECRET) is False
    assert verify_signature(BODY, "1700000000", sig, "other") is False


def test_verify_rejects_missing_inputs_without_raising():
    sig = compute_signature(BODY, "1700000000", SECRET)
    assert verify_signature(None, "1700000000", sig, SECRET) is False
    assert verify_signature(b"", "1700000000", sig, SECRET) is False
    assert verify_signature(BODY, None, sig, SECRET) is False
    assert verify_signature(BODY, "1700000000", None, SECRET) is False
    assert verify_signature(BODY, "1700000000", sig, None) is False
    assert verify_signature(BODY, "1700000000", "not-base64-at-all", SECRET) is False


def test_fresh_timestamp_window():
    assert is_fresh_timestamp("1000", 0, now=999999.0) is True  # disabled
    assert is_fresh_timestamp("1000", 60, now=1030.0) is True
    assert is_fresh_timestamp("1000", 60, now=1100.0) is False
    assert is_fresh_timestamp("1700000000000", 60, now=1700000010.0) is True  # milliseconds
    assert is_fresh_timestamp("garbage", 60, now=1000.0) is False
    assert is_fresh_timestamp(None, 60, now=1000.0) is False
