"""
Tests for correlation references carried through payment providers.

Run with: pytest tests/test_correlation.py -v
"""

from datetime import datetime

import pytest

from buuk.domain.payments.correlation import (
    BookingRef,
    ExistingGiftCardRef,
    NewGiftCardRef,
    PendingGiftCardRef,
    from_metadata,
    parse_short_token,
    to_metadata,
    to_short_token,
)
from buuk.domain.payments.errors import CorrelationTokenError

BUSINESS_ID = "3f6c1a2e-9b7d-4c1e-8f3a-2d5b6e7f8a9b"


def test_booking_metadata_round_trip():
    ref = BookingRef("b-123")
    metadata = to_metadata(ref, business_id=BUSINESS_ID, customer_name="Alex")

    assert metadata["type"] == "booking"
    assert metadata["business_id"] == BUSINESS_ID
    assert from_metadata(metadata) == ref


def test_new_gift_card_metadata_round_trip():
    ref = NewGiftCardRef(
        business_id=BUSINESS_ID,
        code="GC-ABCD-EFGH",
        amount_cents=5000,
        recipient_email="friend@example.com",
        expires_at=datetime(2026, 12, 31, 23, 59),
        message="Happy birthday",
        purchaser_name="Alex",
    )
    metadata = to_metadata(ref)

    assert all(isinstance(value, str) for value in metadata.values())
    assert metadata["gc_amount"] == "5000"
    assert from_metadata(metadata) == ref


def test_existing_gift_card_metadata_round_trip():
    ref = ExistingGiftCardRef("gc-1")
    assert from_metadata(to_metadata(ref)) == ref


def test_expiry_with_timezone_is_normalized_to_utc():
    metadata = {
        "type": "gift_card_new",
        "business_id": BUSINESS_ID,
        "gc_code": "GC1",
        "gc_amount": "1000",
        "gc_expires_at": "2026-01-01T01:00:00+01:00",
    }
    assert from_metadata(metadata).expires_at == datetime(2026, 1, 1, 0, 0)


@pytest.mark.parametrize(
    "metadata",
    [
        None,
        {},
        {"type": "booking"},
        {"type": "subscription", "booking_id": "b"},
        {"type": "gift_card_new", "business_id": BUSINESS_ID, "gc_code": "GC1", "gc_amount": "0"},
        {"type": "gift_card_new", "business_id": BUSINESS_ID, "gc_code": "GC1", "gc_amount": "abc"},
        {"type": "gift_card_new", "gc_code": "GC1", "gc_amount": "100"},
    ],
)
def test_incomplete_metadata_is_rejected(metadata):
    with pytest.raises(CorrelationTokenError):
        from_metadata(metadata)


def test_short_tokens():
    assert to_short_token(BookingRef("b-123")) == "bk|b-123"
    assert parse_short_token("bk|b-123") == BookingRef("b-123")

    token = to_short_token(NewGiftCardRef(business_id=BUSINESS_ID, code="GC1", amount_cents=100))
    assert token == "gc|3f6c1a2e|GC1"
    assert parse_short_token(token) == PendingGiftCardRef(business_prefix="3f6c1a2e", code="GC1")


def test_short_token_limits():
    with pytest.raises(CorrelationTokenError):
        to_short_token(BookingRef("x" * 130))
    with pytest.raises(CorrelationTokenError):
        to_short_token(NewGiftCardRef(business_id=BUSINESS_ID, code="A|B", amount_cents=100))
    with pytest.raises(CorrelationTokenError):
        to_short_token(ExistingGiftCardRef("gc-1"))


@pytest.mark.parametrize("token", [None, "", "bk", "bk|", "gc|only", "xx|1", "bk|a|b"])
def test_malformed_short_tokens(token):
    with pytest.raises(CorrelationTokenError):
        parse_short_token(token)
