import pytest

from app.webhook_security import (
    WebhookSignatureError,
    build_signature_header,
    compute_hmac_sha256,
    parse_signature_header,
    verify_stripe_signature,
)

SECRET = "whsec_test"
NOW = 1_772_400_000
PAYLOAD = b'{"id": "evt_1", "type": "payment_intent.succeeded"}'


def test_valid_signature_passes():
    header = build_signature_header(PAYLOAD, SECRET, NOW)
    verify_stripe_signature(PAYLOAD, header, SECRET, now=NOW + 10)


def test_tampered_body_is_rejected():
    header = build_signature_header(PAYLOAD, SECRET, NOW)

    with pytest.raises(WebhookSignatureError, match="mismatch"):
        verify_stripe_signature(PAYLOAD.replace(b"evt_1", b"evt_2"), header, SECRET, now=NOW)


def test_wrong_secret_is_rejected():
    header = build_signature_header(PAYLOAD, "whsec_other", NOW)

    with pytest.raises(WebhookSignatureError, match="mismatch"):
        verify_stripe_signature(PAYLOAD, header, SECRET, now=NOW)


def test_stale_delivery_is_rejected():
    header = build_signature_header(PAYLOAD, SECRET, NOW)

    with pytest.raises(WebhookSignatureError, match="tolerance"):
        verify_stripe_signature(PAYLOAD, header, SECRET, now=NOW + 301)


def test_missing_or_malformed_header():
    with pytest.raises(WebhookSignatureError, match="Missing"):
        verify_stripe_signature(PAYLOAD, None, SECRET, now=NOW)
    with pytest.raises(WebhookSignatureError, match="Malformed"):
        verify_stripe_signature(PAYLOAD, f"t={NOW}", SECRET, now=NOW)


def test_unconfigured_secret_rejects_everything():
    header = build_signature_header(PAYLOAD, SECRET, NOW)

    with pytest.raises(WebhookSignatureError, match="not configured"):
        verify_stripe_signature(PAYLOAD, header, "", now=NOW)


def test_any_matching_v1_signature_is_accepted():
    good = compute_hmac_sha256(SECRET, f"{NOW}.".encode() + PAYLOAD)
    header = f"t={NOW},v1=deadbeef,v0=ignored,v1={good}"

    assert parse_signature_header(header) == (str(NOW), ["deadbeef", good])
    verify_stripe_signature(PAYLOAD, header, SECRET, now=NOW)
