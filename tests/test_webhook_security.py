"""
Tests for Stripe webhook signature verification.

Run with: pytest tests/test_webhook_security.py -v
"""

import time

import pytest

from buuk.webhook_security import (
    WebhookSignatureError,
    create_stripe_signature,
    parse_stripe_signature_header,
    verify_stripe_signature,
    verify_timestamp,
)

SECRET = "whsec_unit"
BODY = b'{"id": "evt_1", "type": "checkout.session.completed"}'


def test_valid_signature_passes():
    header = create_stripe_signature(SECRET, BODY)
    verify_stripe_signature(BODY, header, SECRET)


def test_any_v1_signature_may_match():
    timestamp = int(time.time())
    valid = create_stripe_signature(SECRET, BODY, timestamp).split("v1=")[1]
    header = f"t={timestamp},v1=deadbeef,v1={valid}"
    verify_stripe_signature(BODY, header, SECRET)


def test_tampered_body_fails():
    header = create_stripe_signature(SECRET, BODY)
    with pytest.raises(WebhookSignatureError):
        verify_stripe_signature(BODY + b" ", header, SECRET)


def test_wrong_secret_fails():
    header = create_stripe_signature("whsec_other", BODY)
    with pytest.raises(WebhookSignatureError):
        verify_stripe_signature(BODY, header, SECRET)


def test_old_timestamp_fails():
    header = create_stripe_signature(SECRET, BODY, timestamp=int(time.time()) - 3600)
    with pytest.raises(WebhookSignatureError):
        verify_stripe_signature(BODY, header, SECRET, tolerance=300)


@pytest.mark.parametrize("header", [None, "", "garbage", "t=123", "v1=abc"])
def test_malformed_headers_fail(header):
    with pytest.raises(WebhookSignatureError):
        verify_stripe_signature(BODY, header, SECRET)


def test_missing_secret_fails():
    header = create_stripe_signature(SECRET, BODY)
    with pytest.raises(WebhookSignatureError):
        verify_stripe_signature(BODY, header, None)


def test_parse_header():
    assert parse_stripe_signature_header("t=1,v1=a,v0=b,v1=c") == ("1", ["a", "c"])


def test_verify_timestamp():
    now = 1_700_000_000
    assert verify_timestamp(str(now - 10), max_age=300, now=now)
    assert not verify_timestamp(str(now - 301), max_age=300, now=now)
    assert not verify_timestamp(None, max_age=300, now=now)
    assert not verify_timestamp("soon", max_age=300, now=now)
