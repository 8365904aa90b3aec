"""
Payment provider adapters.

Each provider turns a raw webhook delivery into a PaymentEvent: it verifies the
signature, classifies the event and extracts the correlation reference. The
reconciliation service only ever sees PaymentEvent values.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Optional

from ...config import STRIPE_WEBHOOK_SECRET, STRIPE_WEBHOOK_TOLERANCE_SECONDS
from ...webhook_security import WebhookSignatureError, verify_stripe_signature
from .correlation import from_metadata, parse_short_token
from .errors import MalformedEventError
from .paypal_service import PayPalClient

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    PURCHASE_COMPLETED = "purchase_completed"
    PURCHASE_FAILED = "purchase_failed"
    ACCOUNT_UPDATED = "account_updated"
    ACCOUNT_DEAUTHORIZED = "account_deauthorized"
    IGNORED = "ignored"


@dataclass
class PaymentEvent:
    """A provider event reduced to what reconciliation needs"""

    provider: str
    event_id: str  # idempotency ledger key
    event_type: str
    kind: EventKind
    provider_reference: Optional[str] = None  # Stripe session id / PayPal order id
    business_id: Optional[str] = None
    account_id: Optional[str] = None  # Stripe Connect account
    data: dict = field(default_factory=dict)


def _lower_headers(headers: Mapping[str, str]) -> dict[str, str]:
    return {key.lower(): value for key, value in headers.items()}


def _load_json(raw_body: bytes) -> dict:
    try:
        payload = json.loads(raw_body)
    except (ValueError, UnicodeDecodeError) as e:
        raise MalformedEventError("Webhook body is not valid JSON") from e
    if not isinstance(payload, dict):
        raise MalformedEventError("Webhook body is not a JSON object")
    return payload


class PaymentProvider(ABC):
    """Capability interface every payment provider implements"""

    name: str

    @abstractmethod
    async def verify_signature(self, raw_body: bytes, headers: Mapping[str, str]) -> None:
        """Raise WebhookSignatureError unless the delivery is authentic"""

    @abstractmethod
    def parse_event(self, raw_body: bytes) -> PaymentEvent:
        """Classify a verified delivery; raise MalformedEventError on bad payloads"""

    @abstractmethod
    def extract_correlation(self, event: PaymentEvent):
        """Return the correlation reference a purchase event pays for"""


# ============================================================================
# STRIPE
# ============================================================================

STRIPE_COMPLETED_EVENTS = {"checkout.session.completed", "checkout.session.async_payment_succeeded"}
STRIPE_FAILED_EVENTS = {"checkout.session.expired", "checkout.session.async_payment_failed"}


class StripeProvider(PaymentProvider):
    """Stripe webhooks: one platform endpoint secret for all tenants"""

    name = "stripe"

    def __init__(
        self,
        webhook_secret: Optional[str] = STRIPE_WEBHOOK_SECRET,
        tolerance: int = STRIPE_WEBHOOK_TOLERANCE_SECONDS,
    ):
        self.webhook_secret = webhook_secret
        self.tolerance = tolerance

    async def verify_signature(self, raw_body: bytes, headers: Mapping[str, str]) -> None:
        verify_stripe_signature(
            raw_body,
            _lower_headers(headers).get("stripe-signature"),
            self.webhook_secret,
            tolerance=self.tolerance,
        )

    def parse_event(self, raw_body: bytes) -> PaymentEvent:
        payload = _load_json(raw_body)
        event_id = payload.get("id")
        event_type = payload.get("type")
        obj = (payload.get("data") or {}).get("object")
        if not event_id or not event_type or not isinstance(obj, dict):
            raise MalformedEventError("Stripe event without id, type or data.object")

        event = PaymentEvent(
            provider=self.name,
            event_id=event_id,
            event_type=event_type,
            kind=EventKind.IGNORED,
            data=obj,
        )

        if event_type in STRIPE_COMPLETED_EVENTS:
            # Delayed payment methods complete the session unpaid and settle later
            if obj.get("mode") == "payment" and obj.get("payment_status") == "paid":
                event.kind = EventKind.PURCHASE_COMPLETED
                event.provider_reference = obj.get("id")
        elif event_type in STRIPE_FAILED_EVENTS:
            if obj.get("mode") == "payment":
                event.kind = EventKind.PURCHASE_FAILED
                event.provider_reference = obj.get("id")
        elif event_type == "account.updated":
            event.kind = EventKind.ACCOUNT_UPDATED
            event.account_id = obj.get("id")
        elif event_type == "account.application.deauthorized":
            event.kind = EventKind.ACCOUNT_DEAUTHORIZED
            event.account_id = payload.get("account")

        if event.kind in (EventKind.PURCHASE_COMPLETED, EventKind.PURCHASE_FAILED):
            event.business_id = (obj.get("metadata") or {}).get("business_id")

        return event

    def extract_correlation(self, event: PaymentEvent):
        return from_metadata(event.data.get("metadata"))

    def event_from_session(self, session: dict) -> PaymentEvent:
        """
        Build the purchase event from a Checkout Session fetched on the success page.

        Completed only once the session is paid; the session id stands in for the
        event id.
        """
        if not session.get("id"):
            raise MalformedEventError("Stripe checkout session without id")
        paid = session.get("mode") == "payment" and session.get("payment_status") == "paid"
        return PaymentEvent(
            provider=self.name,
            event_id=session["id"],
            event_type="checkout.session.retrieved",
            kind=EventKind.PURCHASE_COMPLETED if paid else EventKind.IGNORED,
            provider_reference=session["id"],
            business_id=(session.get("metadata") or {}).get("business_id"),
            data=session,
        )


# ============================================================================
# PAYPAL
# ============================================================================


class PayPalProvider(PaymentProvider):
    """
    PayPal webhooks for one business.

    PayPal signs with per-app certificates, so verification is delegated to the
    verify-webhook-signature API with the business's own credentials and webhook id.
    """

    name = "paypal"

    def __init__(
        self,
        client: PayPalClient,
        business_id: str,
        client_id: str,
        secret: str,
        webhook_id: Optional[str] = None,
    ):
        self.client = client
        self.business_id = business_id
        self.client_id = client_id
        self.secret = secret
        self.webhook_id = webhook_id

    async def access_token(self) -> str:
        return await self.client.get_access_token(self.client_id, self.secret)

    async def verify_signature(self, raw_body: bytes, headers: Mapping[str, str]) -> None:
        if not self.webhook_id:
            logger.error(f"❌ PayPal webhook id not configured for business {self.business_id}")
            raise WebhookSignatureError("PayPal webhook id not configured")

        headers = _lower_headers(headers)
        if not headers.get("paypal-transmission-sig"):
            logger.warning("🚫 PayPal webhook missing transmission signature")
            raise WebhookSignatureError("Missing webhook signature")

        event = _load_json(raw_body)
        token = await self.access_token()
        if not await self.client.verify_webhook_signature(token, headers, self.webhook_id, event):
            logger.warning(f"🚫 PayPal webhook signature rejected for business {self.business_id}")
            raise WebhookSignatureError("Invalid webhook signature")

    def parse_event(self, raw_body: bytes) -> PaymentEvent:
        payload = _load_json(raw_body)
        event_id = payload.get("id")
        event_type = payload.get("event_type")
        resource = payload.get("resource")
        if not event_id or not event_type or not isinstance(resource, dict):
            raise MalformedEventError("PayPal event without id, event_type or resource")

        event = PaymentEvent(
            provider=self.name,
            event_id=event_id,
            event_type=event_type,
            kind=EventKind.IGNORED,
            business_id=self.business_id,
            data=resource,
        )

        order_id = ((resource.get("supplementary_data") or {}).get("related_ids") or {}).get("order_id")
        if event_type == "PAYMENT.CAPTURE.COMPLETED":
            if not resource.get("id"):
                raise MalformedEventError("PayPal capture without id")
            # Keyed by capture id so the synchronous capture and this webhook dedupe
            event.kind = EventKind.PURCHASE_COMPLETED
            event.event_id = resource["id"]
            event.provider_reference = order_id
        elif event_type == "PAYMENT.CAPTURE.DENIED":
            event.kind = EventKind.PURCHASE_FAILED
            event.provider_reference = order_id

        return event

    def event_from_capture(self, order: dict) -> Optional[PaymentEvent]:
        """
        Build the completed-purchase event from a synchronous capture response.

        Returns None unless the capture completed; pending and declined captures are
        left to the webhook.
        """
        units = order.get("purchase_units") or []
        unit = units[0] if units else {}
        captures = (unit.get("payments") or {}).get("captures") or []
        capture = captures[0] if captures else {}

        if order.get("status") != "COMPLETED" or capture.get("status") != "COMPLETED":
            return None
        if not capture.get("id"):
            raise MalformedEventError("PayPal capture response without capture id")

        return PaymentEvent(
            provider=self.name,
            event_id=capture["id"],
            event_type="PAYMENT.CAPTURE.COMPLETED",
            kind=EventKind.PURCHASE_COMPLETED,
            provider_reference=order.get("id"),
            business_id=self.business_id,
            data={"custom_id": capture.get("custom_id") or unit.get("custom_id")},
        )

    def extract_correlation(self, event: PaymentEvent):
        return parse_short_token(event.data.get("custom_id"))
