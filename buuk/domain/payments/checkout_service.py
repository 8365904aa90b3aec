"""Checkout service - Starting and capturing customer payments"""

import logging
import secrets
import string
from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...config import (
    DEFAULT_PLATFORM_FEE_PERCENTAGE,
    FRONTEND_URL,
    PAYMENT_CURRENCY,
    STRIPE_SECRET_KEY,
)
from ...models import Booking, Business
from .correlation import BookingRef, ExistingGiftCardRef, NewGiftCardRef, to_metadata, to_short_token
from .errors import (
    CorrelationTokenError,
    MalformedEventError,
    PaymentConfigurationError,
    PaymentNotCompletedError,
    ProviderAPIError,
)
from .paypal_service import PayPalClient
from .providers import PayPalProvider, StripeProvider
from .reconciliation import ReconciliationService
from .repository import PaymentRepository
from .schemas import CheckoutRequest
from .state import InvalidTransitionError, PaymentState, transition
from .stripe_service import StripeClient

logger = logging.getLogger(__name__)

GIFT_CARD_CODE_ALPHABET = "".join(c for c in string.ascii_uppercase + string.digits if c not in "0O1I")

PAYPAL_SETTINGS = ["paypal_enabled", "paypal_client_id", "paypal_secret", "paypal_webhook_id"]


def generate_gift_card_code() -> str:
    """Random code like GC-7KQ4-M2XP"""
    groups = ["".join(secrets.choice(GIFT_CARD_CODE_ALPHABET) for _ in range(4)) for _ in range(2)]
    return "GC-" + "-".join(groups)


def paypal_provider_for_business(db: Session, business_id: str, client: PayPalClient) -> PayPalProvider:
    """Build the PayPal adapter from a business's stored credentials"""
    settings = PaymentRepository.get_settings(db, business_id, PAYPAL_SETTINGS)
    if settings.get("paypal_enabled") == "false":
        raise PaymentConfigurationError("PayPal is disabled for this business")
    client_id = settings.get("paypal_client_id")
    secret = settings.get("paypal_secret")
    if not client_id or not secret:
        raise PaymentConfigurationError(
            "PayPal credentials not configured for this business. "
            "Please add your PayPal Client ID and Secret in Payment Settings."
        )
    return PayPalProvider(
        client,
        business_id=business_id,
        client_id=client_id,
        secret=secret,
        webhook_id=settings.get("paypal_webhook_id") or None,
    )


def resolve_stripe_secret_key(db: Session, business: Business, require_enabled: bool = True) -> str:
    """Tenant key from site settings, else the platform key"""
    settings = PaymentRepository.get_settings(db, business.id, ["stripe_enabled", "stripe_secret_key"])
    if require_enabled and settings.get("stripe_enabled") == "false":
        raise PaymentConfigurationError("Card payments are disabled for this business")
    secret_key = settings.get("stripe_secret_key", "").strip()
    if secret_key:
        return secret_key
    if STRIPE_SECRET_KEY:
        logger.info(f"Using platform Stripe key for business {business.id}")
        return STRIPE_SECRET_KEY
    raise PaymentConfigurationError("Stripe secret key not configured")


@dataclass
class CheckoutTarget:
    """What a checkout pays for, resolved against the database"""

    business: Business
    ref: object
    amount_cents: int
    product_name: str
    description: str
    booking: Optional[Booking] = None
    gift_card_code: Optional[str] = None


class CheckoutService:
    """Service for starting Stripe and PayPal payments"""

    def __init__(self, db: Session, stripe_client: StripeClient, paypal_client: PayPalClient):
        self.db = db
        self.stripe = stripe_client
        self.paypal = paypal_client
        self.repo = PaymentRepository()

    # ------------------------------------------------------------------
    # Target resolution
    # ------------------------------------------------------------------

    def _resolve_target(self, request: CheckoutRequest) -> CheckoutTarget:
        if request.booking_id:
            booking = self.repo.get_booking(self.db, request.booking_id)
            if not booking:
                raise HTTPException(status_code=404, detail="Booking not found")
            if request.business_id and request.business_id != booking.business_id:
                raise HTTPException(status_code=400, detail="Booking does not belong to this business")
            if booking.status == "cancelled":
                raise HTTPException(status_code=409, detail="Booking has been cancelled")
            if booking.payment_method in ("in_person", "free"):
                raise HTTPException(status_code=400, detail="Booking does not require online payment")
            try:
                transition(booking.payment_state, PaymentState.AWAITING_CAPTURE)
            except InvalidTransitionError as e:
                raise HTTPException(status_code=409, detail="Booking payment is already closed") from e

            service_name = booking.service.name if booking.service else "Appointment"
            specialist_name = booking.specialist.name if booking.specialist else "Any Available Specialist"
            return CheckoutTarget(
                business=self._business(booking.business_id),
                ref=BookingRef(booking.id),
                amount_cents=booking.amount_cents,
                product_name=request.product_name or f"{service_name} with {specialist_name}",
                description=request.description
                or f"Appointment on {booking.booking_date.isoformat()} {booking.start_time.strftime('%H:%M')}",
                booking=booking,
            )

        if request.gift_card_id:
            gift_card = self.repo.get_gift_card(self.db, request.gift_card_id)
            if not gift_card:
                raise HTTPException(status_code=404, detail="Gift card not found")
            return CheckoutTarget(
                business=self._business(gift_card.business_id),
                ref=ExistingGiftCardRef(gift_card.id),
                amount_cents=gift_card.original_value_cents,
                product_name=request.product_name or "Gift Card",
                description=request.description or f"Gift card {gift_card.code}",
                gift_card_code=gift_card.code,
            )

        purchase = request.gift_card
        code = purchase.code or generate_gift_card_code()
        if self.repo.find_gift_card(self.db, code):
            raise HTTPException(status_code=409, detail="Gift card code already in use")
        business = self._business(request.business_id)
        return CheckoutTarget(
            business=business,
            ref=NewGiftCardRef(
                business_id=business.id,
                code=code,
                amount_cents=purchase.amount_cents,
                recipient_email=purchase.recipient_email,
                expires_at=purchase.expires_at,
                message=purchase.message,
                purchaser_name=request.customer_name,
            ),
            amount_cents=purchase.amount_cents,
            product_name=request.product_name or f"{business.name} Gift Card",
            description=request.description or "Gift card",
            gift_card_code=code,
        )

    def _business(self, business_id: str) -> Business:
        business = self.repo.get_business(self.db, business_id)
        if not business:
            raise HTTPException(status_code=404, detail="Business not found")
        return business

    def _urls(self, target: CheckoutTarget, provider: str) -> tuple[str, str]:
        cancel_params = f"?from={target.business.subdomain}" if target.business.subdomain else ""
        cancel_url = f"{FRONTEND_URL}/payment-cancelled{cancel_params}"
        if isinstance(target.ref, BookingRef):
            success = f"{FRONTEND_URL}/booking-success?booking_id={target.ref.booking_id}"
        else:
            success = f"{FRONTEND_URL}/gift-card-success?business_id={target.business.id}"
        if provider == "stripe":
            success += "&session_id={CHECKOUT_SESSION_ID}"
        else:
            success += "&paypal=true"
        return success, cancel_url

    # ------------------------------------------------------------------
    # Stripe
    # ------------------------------------------------------------------

    def connect_fee(self, business: Business, amount_cents: int) -> Optional[dict]:
        """Destination-charge parameters when the business is Connect-onboarded"""
        if not (
            business.stripe_connect_account_id
            and business.stripe_connect_onboarding_complete
            and business.stripe_connect_charges_enabled
        ):
            return None
        percentage = business.platform_fee_percentage or DEFAULT_PLATFORM_FEE_PERCENTAGE
        return {
            "account_id": business.stripe_connect_account_id,
            "percentage": percentage,
            "application_fee": int(round(amount_cents * percentage / 100)),
        }

    async def create_checkout_session(self, request: CheckoutRequest) -> dict:
        """Create a Stripe Checkout Session for a booking or gift card"""
        target = self._resolve_target(request)
        if target.amount_cents <= 0:
            raise HTTPException(status_code=400, detail="Amount must be greater than zero")

        try:
            secret_key = resolve_stripe_secret_key(self.db, target.business)
        except PaymentConfigurationError as e:
            logger.error(f"❌ Stripe not configured for business {target.business.id}: {e}")
            raise HTTPException(status_code=400, detail=str(e)) from e

        metadata = to_metadata(target.ref, business_id=target.business.id, customer_name=request.customer_name)
        success_url, cancel_url = self._urls(target, "stripe")
        params = {
            "mode": "payment",
            "success_url": success_url,
            "cancel_url": cancel_url,
            "customer_email": request.customer_email,
            "allow_promotion_codes": True,
            "line_items": [
                {
                    "price_data": {
                        "currency": PAYMENT_CURRENCY,
                        "product_data": {"name": target.product_name, "description": target.description},
                        "unit_amount": target.amount_cents,
                    },
                    "quantity": 1,
                }
            ],
        }

        fee = self.connect_fee(target.business, target.amount_cents)
        if fee:
            params["payment_intent_data"] = {
                "application_fee_amount": fee["application_fee"],
                "on_behalf_of": fee["account_id"],
                "transfer_data": {"destination": fee["account_id"]},
            }
            metadata["connected_account_id"] = fee["account_id"]
            metadata["platform_fee"] = str(fee["application_fee"])
            metadata["platform_fee_percentage"] = str(fee["percentage"])
            logger.info(
                f"Using Stripe Connect for business {target.business.id}, fee: {fee['percentage']}%"
            )
        params["metadata"] = metadata

        try:
            session = await self.stripe.create_checkout_session(secret_key, params)
        except ProviderAPIError as e:
            raise HTTPException(status_code=502, detail="Failed to create checkout session") from e

        if target.booking is not None:
            booking = target.booking
            booking.payment_state = transition(booking.payment_state, PaymentState.AWAITING_CAPTURE).value
            booking.stripe_session_id = session["id"]
            booking.payment_method = "card"
            self.db.commit()

        logger.info(f"✅ Created checkout session {session['id']} for business {target.business.id}")
        return {
            "session_id": session["id"],
            "url": session.get("url"),
            "gift_card_code": target.gift_card_code,
        }

    # ------------------------------------------------------------------
    # PayPal
    # ------------------------------------------------------------------

    def _paypal_provider(self, business_id: str) -> PayPalProvider:
        try:
            return paypal_provider_for_business(self.db, business_id, self.paypal)
        except PaymentConfigurationError as e:
            logger.error(f"❌ PayPal not configured for business {business_id}: {e}")
            raise HTTPException(status_code=400, detail=str(e)) from e

    async def create_paypal_order(self, request: CheckoutRequest) -> dict:
        """Create a PayPal order; custom_id carries the short correlation token"""
        target = self._resolve_target(request)
        if target.amount_cents <= 0:
            raise HTTPException(status_code=400, detail="Amount must be greater than zero")

        try:
            custom_id = to_short_token(target.ref)
        except CorrelationTokenError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e

        provider = self._paypal_provider(target.business.id)

        if isinstance(target.ref, NewGiftCardRef):
            ref = target.ref
            self.repo.save_pending_purchase(
                self.db,
                business_id=ref.business_id,
                code=ref.code,
                amount_cents=ref.amount_cents,
                purchaser_name=request.customer_name,
                purchaser_email=request.customer_email,
                recipient_email=ref.recipient_email,
                message=ref.message,
                expires_at=ref.expires_at,
            )

        success_url, cancel_url = self._urls(target, "paypal")
        order_body = {
            "intent": "CAPTURE",
            "purchase_units": [
                {
                    "reference_id": target.booking.id if target.booking else target.gift_card_code,
                    "description": target.product_name[:127],
                    "custom_id": custom_id,
                    "amount": {
                        "currency_code": PAYMENT_CURRENCY.upper(),
                        "value": f"{target.amount_cents / 100:.2f}",
                    },
                }
            ],
            "payment_source": {
                "paypal": {
                    "experience_context": {
                        "payment_method_preference": "IMMEDIATE_PAYMENT_REQUIRED",
                        "brand_name": target.business.name[:127],
                        "landing_page": "LOGIN",
                        "shipping_preference": "NO_SHIPPING",
                        "user_action": "PAY_NOW",
                        "return_url": success_url,
                        "cancel_url": cancel_url,
                    }
                }
            },
        }

        try:
            token = await provider.access_token()
            order = await self.paypal.create_order(token, order_body, request_id=f"{custom_id}-{secrets.token_hex(8)}")
        except ProviderAPIError as e:
            self.db.rollback()
            raise HTTPException(status_code=502, detail="Failed to create PayPal order") from e

        if target.booking is not None:
            booking = target.booking
            booking.payment_state = transition(booking.payment_state, PaymentState.AWAITING_CAPTURE).value
            booking.paypal_order_id = order["id"]
            booking.payment_method = "paypal"
        self.db.commit()

        approve_url = next(
            (link.get("href") for link in order.get("links", []) if link.get("rel") in ("payer-action", "approve")),
            None,
        )
        logger.info(f"✅ PayPal order {order['id']} created for business {target.business.id}")
        return {
            "order_id": order["id"],
            "status": order.get("status"),
            "approve_url": approve_url,
            "gift_card_code": target.gift_card_code,
        }

    async def capture_paypal_order(
        self, order_id: str, business_id: str, reconciliation: ReconciliationService
    ) -> dict:
        """Capture an approved order and reconcile it through the webhook path"""
        provider = self._paypal_provider(business_id)
        try:
            token = await provider.access_token()
            order = await self.paypal.capture_order(token, order_id)
        except ProviderAPIError as e:
            raise HTTPException(status_code=502, detail="Failed to capture PayPal order") from e

        status = order.get("status", "UNKNOWN")
        event = provider.event_from_capture(order)
        if event is None:
            logger.warning(f"⚠️ PayPal order {order_id} capture not completed: {status}")
            return {"order_id": order_id, "status": status, "outcome": None}

        try:
            result = await reconciliation.process_event(provider, event)
        except CorrelationTokenError as e:
            logger.error(f"❌ PayPal order {order_id} has an unusable custom_id: {e}")
            raise HTTPException(status_code=400, detail="Order cannot be matched to a purchase") from e

        return {"order_id": order_id, "status": status, "outcome": result.outcome}

    # ------------------------------------------------------------------
    # Gift card success page
    # ------------------------------------------------------------------

    async def process_gift_card_session(
        self,
        session_id: str,
        business_id: str,
        provider: StripeProvider,
        reconciliation: ReconciliationService,
    ) -> dict:
        """Create the gift card for a paid Stripe session if the webhook has not yet"""
        business = self._business(business_id)

        existing = self.repo.get_gift_card_by_session(self.db, session_id)
        if existing and existing.business_id == business.id:
            logger.info(f"🔄 Gift card already exists for session {session_id}: {existing.id}")
            return {
                "session_id": session_id,
                "outcome": "already_created",
                "gift_card_id": existing.id,
                "gift_card_code": existing.code,
            }

        try:
            secret_key = resolve_stripe_secret_key(self.db, business)
        except PaymentConfigurationError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        try:
            session = await self.stripe.retrieve_checkout_session(secret_key, session_id)
        except ProviderAPIError as e:
            raise HTTPException(status_code=502, detail="Failed to retrieve checkout session") from e

        metadata = session.get("metadata") or {}
        if metadata.get("business_id") != business.id:
            logger.error(f"❌ Checkout session {session_id} does not belong to business {business.id}")
            raise HTTPException(status_code=400, detail="Checkout session does not belong to this business")

        try:
            result = await reconciliation.process_gift_card_session(provider, session)
        except PaymentNotCompletedError as e:
            logger.warning(f"⚠️ {e}")
            raise HTTPException(status_code=409, detail="Payment has not been completed") from e
        except (CorrelationTokenError, MalformedEventError) as e:
            raise HTTPException(status_code=400, detail=str(e)) from e

        gift_card = self.repo.find_gift_card(
            self.db, metadata.get("gc_code", ""), stripe_session_id=session_id
        )
        return {
            "session_id": session_id,
            "outcome": result.outcome,
            "gift_card_id": gift_card.id if gift_card else None,
            "gift_card_code": gift_card.code if gift_card else None,
        }
