"""Payments domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator, model_validator


class GiftCardPurchase(BaseModel):
    """A gift card to be created once its payment settles"""

    code: Optional[str] = None  # generated when omitted
    amount_cents: int
    recipient_email: Optional[str] = None
    expires_at: Optional[datetime] = None
    message: Optional[str] = None

    @field_validator("amount_cents")
    @classmethod
    def validate_amount(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("amount_cents must be positive")
        return v

    @field_validator("code")
    @classmethod
    def validate_code(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip().upper()
        if not v or "|" in v or len(v) > 50:
            raise ValueError("code must be 1-50 characters without '|'")
        return v


class CheckoutRequest(BaseModel):
    """
    Schema for starting a payment (Stripe session or PayPal order).

    Exactly one of booking_id, gift_card_id or gift_card must be provided.
    """

    business_id: Optional[str] = None  # derived from the booking / gift card when omitted
    booking_id: Optional[str] = None
    gift_card_id: Optional[str] = None
    gift_card: Optional[GiftCardPurchase] = None
    customer_email: str
    customer_name: str
    product_name: Optional[str] = None
    description: Optional[str] = None

    @model_validator(mode="after")
    def validate_target(self) -> "CheckoutRequest":
        targets = [t for t in (self.booking_id, self.gift_card_id, self.gift_card) if t]
        if len(targets) != 1:
            raise ValueError("Provide exactly one of booking_id, gift_card_id or gift_card")
        if self.gift_card and not self.business_id:
            raise ValueError("business_id is required when purchasing a new gift card")
        return self

    @field_validator("customer_email", "customer_name")
    @classmethod
    def validate_required(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("field is required")
        return v.strip()


class CheckoutSessionResponse(BaseModel):
    session_id: str
    url: Optional[str] = None
    gift_card_code: Optional[str] = None


class PayPalOrderResponse(BaseModel):
    order_id: str
    status: Optional[str] = None
    approve_url: Optional[str] = None
    gift_card_code: Optional[str] = None


class PayPalCaptureRequest(BaseModel):
    business_id: str


class PayPalCaptureResponse(BaseModel):
    order_id: str
    status: str
    outcome: Optional[str] = None


class WebhookResponse(BaseModel):
    received: bool = True
    status: str
    outcome: str


class GiftCardSessionRequest(BaseModel):
    session_id: str
    business_id: str


class GiftCardSessionResponse(BaseModel):
    session_id: str
    outcome: str
    gift_card_id: Optional[str] = None
    gift_card_code: Optional[str] = None


# ============================================================================
# STRIPE CONNECT
# ============================================================================


class ConnectAccountLinkRequest(BaseModel):
    """Schema for starting (or resuming) Stripe Connect onboarding"""

    business_id: str
    country: str
    account_type: str = "standard"

    @field_validator("country")
    @classmethod
    def validate_country(cls, v: str) -> str:
        v = v.strip().upper()
        if len(v) != 2 or not v.isalpha():
            raise ValueError("country must be a two-letter ISO code")
        return v

    @field_validator("account_type")
    @classmethod
    def validate_account_type(cls, v: str) -> str:
        if v not in ("standard", "express"):
            raise ValueError("account_type must be standard or express")
        return v


class ConnectAccountLinkResponse(BaseModel):
    url: str
    account_id: str


class ConnectVerifyRequest(BaseModel):
    business_id: str


class ConnectAccountStatusResponse(BaseModel):
    account_id: str
    charges_enabled: bool
    payouts_enabled: bool
    details_submitted: bool
    onboarding_complete: bool
    country: Optional[str] = None
    email: Optional[str] = None
