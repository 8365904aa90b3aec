"""Connect service - Stripe Connect onboarding and account status"""

import logging
from datetime import datetime

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...config import FRONTEND_URL
from ...models import Business
from .checkout_service import resolve_stripe_secret_key
from .errors import PaymentConfigurationError, ProviderAPIError
from .repository import PaymentRepository
from .stripe_service import StripeClient

logger = logging.getLogger(__name__)


class ConnectService:
    """Service for a business's Stripe Connect account"""

    def __init__(self, db: Session, stripe_client: StripeClient):
        self.db = db
        self.stripe = stripe_client
        self.repo = PaymentRepository()

    def _business(self, business_id: str) -> Business:
        business = self.repo.get_business(self.db, business_id)
        if not business:
            raise HTTPException(status_code=404, detail="Business not found")
        return business

    def _secret_key(self, business: Business) -> str:
        try:
            return resolve_stripe_secret_key(self.db, business, require_enabled=False)
        except PaymentConfigurationError as e:
            logger.error(f"❌ Stripe not configured for business {business.id}: {e}")
            raise HTTPException(status_code=400, detail=str(e)) from e

    async def create_account_link(self, business_id: str, country: str, account_type: str = "standard") -> dict:
        """
        Return a hosted onboarding link, creating the Connect account on first use.

        The account id is committed before the link is requested, so a failed link
        call never orphans a freshly created account.
        """
        business = self._business(business_id)
        secret_key = self._secret_key(business)

        account_id = business.stripe_connect_account_id
        if not account_id:
            params = {
                "type": account_type,
                "country": country,
                "email": business.email,
                "capabilities": {
                    "card_payments": {"requested": True},
                    "transfers": {"requested": True},
                },
            }
            try:
                account = await self.stripe.create_account(secret_key, params)
            except ProviderAPIError as e:
                raise HTTPException(status_code=502, detail="Failed to create Stripe account") from e

            account_id = account["id"]
            business.stripe_connect_account_id = account_id
            business.stripe_account_type = account_type
            business.stripe_connect_country = country
            business.stripe_connect_created_at = datetime.utcnow()
            self.db.commit()
            logger.info(f"✅ Connect account {account_id} attached to business {business.id}")

        link_params = {
            "account": account_id,
            "refresh_url": f"{FRONTEND_URL}/admin?connect_refresh=true",
            "return_url": f"{FRONTEND_URL}/admin?connect_return=true",
            "type": "account_onboarding",
        }
        try:
            link = await self.stripe.create_account_link(secret_key, link_params)
        except ProviderAPIError as e:
            raise HTTPException(status_code=502, detail="Failed to create account link") from e

        return {"url": link["url"], "account_id": account_id}

    async def verify_account(self, business_id: str) -> dict:
        """Fetch the Connect account from Stripe and refresh the cached capability flags"""
        business = self._business(business_id)
        if not business.stripe_connect_account_id:
            raise HTTPException(status_code=400, detail="No Stripe Connect account found for this business")
        secret_key = self._secret_key(business)

        try:
            account = await self.stripe.retrieve_account(secret_key, business.stripe_connect_account_id)
        except ProviderAPIError as e:
            raise HTTPException(status_code=502, detail="Failed to fetch Stripe account") from e

        self.repo.update_connect_status(self.db, business, account)
        self.db.commit()
        self.db.refresh(business)
        logger.info(
            f"✅ Connect status verified for business {business.id} "
            f"(charges_enabled={business.stripe_connect_charges_enabled})"
        )

        return {
            "account_id": business.stripe_connect_account_id,
            "charges_enabled": business.stripe_connect_charges_enabled,
            "payouts_enabled": business.stripe_connect_payouts_enabled,
            "details_submitted": business.stripe_connect_details_submitted,
            "onboarding_complete": business.stripe_connect_onboarding_complete,
            "country": account.get("country"),
            "email": account.get("email"),
        }
