from core.logging_config import redact_secrets


def test_secret_fields_are_masked():
    event = redact_secrets(None, "info", {
        "event": "payment_session_created",
        "payment_session_id": "session_abc",
        "X-Webhook-Signature": "c2lnbmF0dXJl",
        "order_id": "order_1",
        "secret": None,
    })
    assert event["payment_session_id"] == "***"
    assert event["X-Webhook-Signature"] == "***"
    assert event["order_id"] == "order_1"
    assert event["secret"] is None
