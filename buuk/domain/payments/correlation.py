"""
Correlation tokens: what a provider payment is paying for.

A checkout carries one of three references:
- BookingRef: an existing booking
- NewGiftCardRef: a gift card to be created once the payment settles
- ExistingGiftCardRef: a gift card row that already exists

Stripe sessions carry the long form (a metadata map). PayPal's custom_id is capped
at 127 characters, so PayPal carries the short form ("bk|<booking_id>" or
"gc|<business_id[:8]>|<code>") and the gift card descriptor is stored in
pending_gift_card_purchases until the capture arrives.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union

from .errors import CorrelationTokenError

SHORT_TOKEN_MAX_LENGTH = 127
SHORT_TOKEN_SEPARATOR = "|"
BUSINESS_PREFIX_LENGTH = 8

TYPE_BOOKING = "booking"
TYPE_GIFT_CARD_NEW = "gift_card_new"
TYPE_GIFT_CARD = "gift_card"


@dataclass(frozen=True)
class BookingRef:
    booking_id: str


@dataclass(frozen=True)
class NewGiftCardRef:
    business_id: str
    code: str
    amount_cents: int
    recipient_email: Optional[str] = None
    expires_at: Optional[datetime] = None
    message: Optional[str] = None
    purchaser_name: Optional[str] = None


@dataclass(frozen=True)
class ExistingGiftCardRef:
    gift_card_id: str


@dataclass(frozen=True)
class PendingGiftCardRef:
    """Short-form gift card token before it is hydrated from the pending purchase"""

    business_prefix: str
    code: str


Correlation = Union[BookingRef, NewGiftCardRef, ExistingGiftCardRef]


def _parse_expires_at(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise CorrelationTokenError(f"Invalid gc_expires_at: {value!r}") from e
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _parse_amount(value: Optional[str]) -> int:
    try:
        amount = int(value)
    except (TypeError, ValueError) as e:
        raise CorrelationTokenError(f"Invalid gc_amount: {value!r}") from e
    if amount <= 0:
        raise CorrelationTokenError("gc_amount must be positive")
    return amount


def to_metadata(
    ref: Correlation, business_id: Optional[str] = None, customer_name: Optional[str] = None
) -> dict[str, str]:
    """Long form: a flat string map suitable for Stripe session metadata"""
    metadata: dict[str, str] = {}
    if customer_name:
        metadata["customer_name"] = customer_name
    if business_id:
        metadata["business_id"] = business_id

    if isinstance(ref, BookingRef):
        metadata["type"] = TYPE_BOOKING
        metadata["booking_id"] = ref.booking_id
    elif isinstance(ref, ExistingGiftCardRef):
        metadata["type"] = TYPE_GIFT_CARD
        metadata["gift_card_id"] = ref.gift_card_id
    elif isinstance(ref, NewGiftCardRef):
        metadata["type"] = TYPE_GIFT_CARD_NEW
        metadata["business_id"] = ref.business_id
        metadata["gc_code"] = ref.code
        metadata["gc_amount"] = str(ref.amount_cents)
        if ref.recipient_email:
            metadata["gc_recipient_email"] = ref.recipient_email
        if ref.expires_at:
            metadata["gc_expires_at"] = ref.expires_at.isoformat()
        if ref.message:
            metadata["gc_message"] = ref.message
        if ref.purchaser_name:
            metadata["customer_name"] = ref.purchaser_name
    else:
        raise TypeError(f"Unsupported correlation reference: {ref!r}")
    return metadata


def from_metadata(metadata: Optional[dict]) -> Correlation:
    """Parse the long form; raises CorrelationTokenError when incomplete"""
    if not metadata:
        raise CorrelationTokenError("Missing correlation metadata")

    kind = metadata.get("type")
    if kind == TYPE_BOOKING:
        booking_id = metadata.get("booking_id")
        if not booking_id:
            raise CorrelationTokenError("booking metadata without booking_id")
        return BookingRef(booking_id=booking_id)

    if kind == TYPE_GIFT_CARD:
        gift_card_id = metadata.get("gift_card_id")
        if not gift_card_id:
            raise CorrelationTokenError("gift_card metadata without gift_card_id")
        return ExistingGiftCardRef(gift_card_id=gift_card_id)

    if kind == TYPE_GIFT_CARD_NEW:
        code = metadata.get("gc_code")
        business_id = metadata.get("business_id")
        if not code or not business_id:
            raise CorrelationTokenError("gift_card_new metadata without gc_code or business_id")
        return NewGiftCardRef(
            business_id=business_id,
            code=code,
            amount_cents=_parse_amount(metadata.get("gc_amount")),
            recipient_email=metadata.get("gc_recipient_email") or None,
            expires_at=_parse_expires_at(metadata.get("gc_expires_at")),
            message=metadata.get("gc_message") or None,
            purchaser_name=metadata.get("customer_name") or None,
        )

    raise CorrelationTokenError(f"Unknown correlation type: {kind!r}")


def _check_field(name: str, value: str) -> str:
    if not value:
        raise CorrelationTokenError(f"Empty {name} in correlation token")
    if SHORT_TOKEN_SEPARATOR in value:
        raise CorrelationTokenError(f"{name} must not contain '{SHORT_TOKEN_SEPARATOR}'")
    return value


def to_short_token(ref: Correlation) -> str:
    """Short form for providers with a 127-character reference field"""
    if isinstance(ref, BookingRef):
        token = f"bk|{_check_field('booking_id', ref.booking_id)}"
    elif isinstance(ref, NewGiftCardRef):
        prefix = _check_field("business_id", ref.business_id)[:BUSINESS_PREFIX_LENGTH]
        token = f"gc|{prefix}|{_check_field('code', ref.code)}"
    else:
        raise CorrelationTokenError(f"{type(ref).__name__} has no short form")

    if len(token) > SHORT_TOKEN_MAX_LENGTH:
        raise CorrelationTokenError(f"Correlation token longer than {SHORT_TOKEN_MAX_LENGTH} chars")
    return token


def parse_short_token(token: Optional[str]) -> Union[BookingRef, PendingGiftCardRef]:
    """Parse the short form; gift card tokens still need hydration"""
    if not token:
        raise CorrelationTokenError("Missing correlation token")
    if len(token) > SHORT_TOKEN_MAX_LENGTH:
        raise CorrelationTokenError(f"Correlation token longer than {SHORT_TOKEN_MAX_LENGTH} chars")

    parts = token.split(SHORT_TOKEN_SEPARATOR)
    if parts[0] == "bk" and len(parts) == 2 and parts[1]:
        return BookingRef(booking_id=parts[1])
    if parts[0] == "gc" and len(parts) == 3 and parts[1] and parts[2]:
        return PendingGiftCardRef(business_prefix=parts[1], code=parts[2])
    raise CorrelationTokenError(f"Malformed correlation token: {token!r}")


def describe(ref) -> str:
    """Compact text for logs and the ledger's correlation column"""
    if isinstance(ref, BookingRef):
        return f"booking:{ref.booking_id}"
    if isinstance(ref, NewGiftCardRef):
        return f"gift_card_new:{ref.code}"
    if isinstance(ref, ExistingGiftCardRef):
        return f"gift_card:{ref.gift_card_id}"
    if isinstance(ref, PendingGiftCardRef):
        return f"gift_card_new:{ref.code}"
    return "none"
