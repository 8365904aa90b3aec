"""Payments router - checkout endpoints and provider webhooks"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from ...database import get_db
from ...rate_limiter import rate_limit_checkout, rate_limit_webhooks
from .checkout_service import CheckoutService, paypal_provider_for_business
from .connect_service import ConnectService
from .errors import CorrelationTokenError, MalformedEventError, PaymentConfigurationError, WebhookSignatureError
from .notifications import PaymentNotifier
from .paypal_service import PayPalClient, paypal_client
from .providers import PaymentProvider, StripeProvider
from .reconciliation import ReconciliationService
from .schemas import (
    CheckoutRequest,
    CheckoutSessionResponse,
    ConnectAccountLinkRequest,
    ConnectAccountLinkResponse,
    ConnectAccountStatusResponse,
    ConnectVerifyRequest,
    GiftCardSessionRequest,
    GiftCardSessionResponse,
    PayPalCaptureRequest,
    PayPalCaptureResponse,
    PayPalOrderResponse,
    WebhookResponse,
)
from .stripe_service import StripeClient, stripe_client

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])
webhooks_router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


def get_stripe_client() -> StripeClient:
    return stripe_client


def get_paypal_client() -> PayPalClient:
    return paypal_client


def get_stripe_provider() -> StripeProvider:
    return StripeProvider()


def get_notifier(db: Session = Depends(get_db)) -> PaymentNotifier:
    return PaymentNotifier(db)


def get_reconciliation_service(
    db: Session = Depends(get_db), notifier: PaymentNotifier = Depends(get_notifier)
) -> ReconciliationService:
    """Dependency injection for ReconciliationService"""
    return ReconciliationService(db, notifier)


def get_checkout_service(
    db: Session = Depends(get_db),
    stripe: StripeClient = Depends(get_stripe_client),
    paypal: PayPalClient = Depends(get_paypal_client),
) -> CheckoutService:
    """Dependency injection for CheckoutService"""
    return CheckoutService(db, stripe, paypal)


def get_connect_service(
    db: Session = Depends(get_db), stripe: StripeClient = Depends(get_stripe_client)
) -> ConnectService:
    return ConnectService(db, stripe)


# ============================================================================
# CHECKOUT
# ============================================================================


@router.post("/checkout-session", response_model=CheckoutSessionResponse)
async def create_checkout_session(
    body: CheckoutRequest,
    service: CheckoutService = Depends(get_checkout_service),
    _: None = Depends(rate_limit_checkout),
):
    """Create a Stripe Checkout Session for a booking or gift card"""
    return await service.create_checkout_session(body)


@router.post("/paypal/orders", response_model=PayPalOrderResponse)
async def create_paypal_order(
    body: CheckoutRequest,
    service: CheckoutService = Depends(get_checkout_service),
    _: None = Depends(rate_limit_checkout),
):
    """Create a PayPal order for a booking or gift card"""
    return await service.create_paypal_order(body)


@router.post("/paypal/orders/{order_id}/capture", response_model=PayPalCaptureResponse)
async def capture_paypal_order(
    order_id: str,
    body: PayPalCaptureRequest,
    service: CheckoutService = Depends(get_checkout_service),
    reconciliation: ReconciliationService = Depends(get_reconciliation_service),
    _: None = Depends(rate_limit_checkout),
):
    """Capture an approved PayPal order after the customer returns"""
    return await service.capture_paypal_order(order_id, body.business_id, reconciliation)


@router.post("/gift-cards/process-session", response_model=GiftCardSessionResponse)
async def process_gift_card_session(
    body: GiftCardSessionRequest,
    service: CheckoutService = Depends(get_checkout_service),
    provider: StripeProvider = Depends(get_stripe_provider),
    reconciliation: ReconciliationService = Depends(get_reconciliation_service),
    _: None = Depends(rate_limit_checkout),
):
    """Create the gift card from the success page in case the webhook is late"""
    return await service.process_gift_card_session(body.session_id, body.business_id, provider, reconciliation)


# ============================================================================
# STRIPE CONNECT
# ============================================================================


@router.post("/connect/account-link", response_model=ConnectAccountLinkResponse)
async def create_connect_account_link(
    body: ConnectAccountLinkRequest,
    service: ConnectService = Depends(get_connect_service),
    _: None = Depends(rate_limit_checkout),
):
    """Start or resume Stripe Connect onboarding for a business"""
    return await service.create_account_link(body.business_id, body.country, body.account_type)


@router.post("/connect/verify", response_model=ConnectAccountStatusResponse)
async def verify_connect_account(
    body: ConnectVerifyRequest,
    service: ConnectService = Depends(get_connect_service),
    _: None = Depends(rate_limit_checkout),
):
    """Refresh the cached Connect capability flags from Stripe"""
    return await service.verify_account(body.business_id)


# ============================================================================
# WEBHOOKS
# ============================================================================


async def _handle_webhook(
    request: Request, provider: PaymentProvider, reconciliation: ReconciliationService
) -> dict:
    raw_body = await request.body()
    try:
        result = await reconciliation.handle_webhook(provider, raw_body, request.headers)
    except WebhookSignatureError as e:
        logger.warning(f"🚫 Rejected {provider.name} webhook: {e}")
        raise HTTPException(status_code=400, detail="Invalid webhook signature") from e
    except (MalformedEventError, CorrelationTokenError) as e:
        logger.error(f"❌ Unprocessable {provider.name} webhook: {e}")
        raise HTTPException(status_code=400, detail=str(e)) from e
    except Exception as e:
        logger.exception(f"❌ Error processing {provider.name} webhook: {e}")
        raise HTTPException(status_code=500, detail="Webhook processing failed") from e

    return {"received": True, "status": result.status, "outcome": result.outcome}


@webhooks_router.post("/stripe", response_model=WebhookResponse)
async def stripe_webhook(
    request: Request,
    provider: StripeProvider = Depends(get_stripe_provider),
    reconciliation: ReconciliationService = Depends(get_reconciliation_service),
    _: None = Depends(rate_limit_webhooks),
):
    """
    Stripe webhook for all tenants.

    Signed with the platform endpoint secret (Stripe-Signature header). Returns 2xx
    for processed and duplicate events, 400 for deliveries that will never
    succeed and 500 so that Stripe retries transient failures.
    """
    if not provider.webhook_secret:
        logger.error("❌ STRIPE_WEBHOOK_SECRET not configured")
        raise HTTPException(status_code=500, detail="Webhook not configured")
    return await _handle_webhook(request, provider, reconciliation)


@webhooks_router.post("/paypal/{business_id}", response_model=WebhookResponse)
async def paypal_webhook(
    business_id: str,
    request: Request,
    db: Session = Depends(get_db),
    client: PayPalClient = Depends(get_paypal_client),
    reconciliation: ReconciliationService = Depends(get_reconciliation_service),
    _: None = Depends(rate_limit_webhooks),
):
    """PayPal webhook for one business, verified with its own credentials"""
    try:
        provider = paypal_provider_for_business(db, business_id, client)
    except PaymentConfigurationError as e:
        logger.error(f"❌ PayPal webhook for unconfigured business {business_id}: {e}")
        raise HTTPException(status_code=400, detail=str(e)) from e
    return await _handle_webhook(request, provider, reconciliation)
