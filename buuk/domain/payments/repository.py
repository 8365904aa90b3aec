"""Payments repository - Database operations for checkout and reconciliation"""

import json
import logging
from datetime import datetime
from typing import Iterable, Optional

from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy.orm import Session

from ...config import PAYMENT_SECRETS_ENCRYPTION_KEY
from ...models import (
    Booking,
    Business,
    GiftCard,
    GiftCardTransaction,
    PendingGiftCardPurchase,
    ProcessedPaymentEvent,
    SiteSetting,
)
from .errors import PaymentConfigurationError
from .state import PaymentState, project_booking_status

logger = logging.getLogger(__name__)

# Secret site settings written through the admin panel are stored as "enc:<fernet token>"
ENCRYPTED_PREFIX = "enc:"


def decrypt_setting_value(value: str) -> str:
    """Decrypt an encrypted site setting; plain values pass through"""
    if not value.startswith(ENCRYPTED_PREFIX):
        return value
    if not PAYMENT_SECRETS_ENCRYPTION_KEY:
        raise PaymentConfigurationError("PAYMENT_SECRETS_ENCRYPTION_KEY is not configured")
    try:
        cipher_suite = Fernet(PAYMENT_SECRETS_ENCRYPTION_KEY.encode())
        return cipher_suite.decrypt(value[len(ENCRYPTED_PREFIX):].encode()).decode()
    except InvalidToken as e:
        raise PaymentConfigurationError("Stored payment secret cannot be decrypted") from e


def normalize_setting_value(value: Optional[str]) -> str:
    """Undo JSON-stringified or quoted values written by the settings screens"""
    if value is None:
        return ""
    try:
        parsed = json.loads(value)
        if isinstance(parsed, bool):
            value = str(parsed).lower()
        elif isinstance(parsed, str):
            value = parsed
    except ValueError:
        pass
    value = value.strip()
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        value = value[1:-1]
    return decrypt_setting_value(value.strip())


class PaymentRepository:
    """Repository for payment database operations"""

    # ------------------------------------------------------------------
    # Tenants
    # ------------------------------------------------------------------

    @staticmethod
    def get_business(db: Session, business_id: str) -> Optional[Business]:
        """Get business by ID"""
        return db.query(Business).filter(Business.id == business_id).first()

    @staticmethod
    def get_business_by_connect_account(db: Session, account_id: str) -> Optional[Business]:
        """Get business by Stripe Connect account ID"""
        return db.query(Business).filter(Business.stripe_connect_account_id == account_id).first()

    @staticmethod
    def get_settings(db: Session, business_id: str, keys: Iterable[str]) -> dict[str, str]:
        """Get normalized (and decrypted) site settings for a business"""
        rows = (
            db.query(SiteSetting)
            .filter(SiteSetting.business_id == business_id, SiteSetting.key.in_(list(keys)))
            .all()
        )
        return {row.key: normalize_setting_value(row.value) for row in rows}

    @staticmethod
    def update_connect_status(db: Session, business: Business, account: dict) -> Business:
        """Refresh cached Connect capability flags from a Stripe account object"""
        charges_enabled = bool(account.get("charges_enabled"))
        details_submitted = bool(account.get("details_submitted"))
        business.stripe_connect_charges_enabled = charges_enabled
        business.stripe_connect_payouts_enabled = bool(account.get("payouts_enabled"))
        business.stripe_connect_details_submitted = details_submitted
        business.stripe_connect_onboarding_complete = details_submitted and charges_enabled
        return business

    @staticmethod
    def clear_connect_account(db: Session, account_id: str) -> int:
        """Detach a deauthorized Connect account from its business"""
        return (
            db.query(Business)
            .filter(Business.stripe_connect_account_id == account_id)
            .update(
                {
                    Business.stripe_connect_account_id: None,
                    Business.stripe_connect_charges_enabled: False,
                    Business.stripe_connect_payouts_enabled: False,
                    Business.stripe_connect_details_submitted: False,
                    Business.stripe_connect_onboarding_complete: False,
                },
                synchronize_session=False,
            )
        )

    # ------------------------------------------------------------------
    # Bookings
    # ------------------------------------------------------------------

    @staticmethod
    def get_booking(db: Session, booking_id: str) -> Optional[Booking]:
        """Get booking by ID"""
        return db.query(Booking).filter(Booking.id == booking_id).first()

    @staticmethod
    def confirm_booking(db: Session, booking: Booking, provider_fields: dict) -> int:
        """
        Settle a booking's payment with a conditional update.

        Only matches while the booking is not cancelled, not completed and not yet
        settled. Returns the number of rows changed (0 or 1).
        """
        status, payment_status = project_booking_status(PaymentState.SETTLED, booking.payment_method)
        values = {
            Booking.status: status,
            Booking.payment_status: payment_status,
            Booking.payment_state: PaymentState.SETTLED.value,
            Booking.confirmed_at: datetime.utcnow(),
        }
        values.update({getattr(Booking, name): value for name, value in provider_fields.items()})
        return (
            db.query(Booking)
            .filter(
                Booking.id == booking.id,
                Booking.status.notin_(["cancelled", "completed"]),
                Booking.payment_state != PaymentState.SETTLED.value,
            )
            .update(values, synchronize_session=False)
        )

    @staticmethod
    def fail_booking_payment(db: Session, booking: Booking) -> int:
        """Mark an open payment as failed; the booking itself stays pending"""
        return (
            db.query(Booking)
            .filter(
                Booking.id == booking.id,
                Booking.payment_state.in_(
                    [PaymentState.INITIATED.value, PaymentState.AWAITING_CAPTURE.value]
                ),
            )
            .update({Booking.payment_state: PaymentState.FAILED.value}, synchronize_session=False)
        )

    # ------------------------------------------------------------------
    # Gift cards
    # ------------------------------------------------------------------

    @staticmethod
    def get_gift_card(db: Session, gift_card_id: str) -> Optional[GiftCard]:
        """Get gift card by ID"""
        return db.query(GiftCard).filter(GiftCard.id == gift_card_id).first()

    @staticmethod
    def get_gift_card_by_session(db: Session, stripe_session_id: str) -> Optional[GiftCard]:
        """Get the gift card paid for by a Stripe Checkout Session"""
        return db.query(GiftCard).filter(GiftCard.stripe_session_id == stripe_session_id).first()

    @staticmethod
    def find_gift_card(
        db: Session,
        code: str,
        stripe_session_id: Optional[str] = None,
        paypal_order_id: Optional[str] = None,
    ) -> Optional[GiftCard]:
        """Find a gift card by code or by the provider reference that paid for it"""
        gift_card = db.query(GiftCard).filter(GiftCard.code == code).first()
        if gift_card:
            return gift_card
        if stripe_session_id:
            gift_card = db.query(GiftCard).filter(GiftCard.stripe_session_id == stripe_session_id).first()
        elif paypal_order_id:
            gift_card = db.query(GiftCard).filter(GiftCard.paypal_order_id == paypal_order_id).first()
        return gift_card

    @staticmethod
    def create_gift_card(db: Session, **kwargs) -> GiftCard:
        """Insert a gift card and flush so unique violations surface here"""
        gift_card = GiftCard(**kwargs)
        db.add(gift_card)
        db.flush()
        return gift_card

    @staticmethod
    def add_gift_card_transaction(
        db: Session, gift_card: GiftCard, amount_cents: int, transaction_type: str, description: str
    ) -> GiftCardTransaction:
        transaction = GiftCardTransaction(
            gift_card_id=gift_card.id,
            amount_cents=amount_cents,
            transaction_type=transaction_type,
            description=description,
        )
        db.add(transaction)
        return transaction

    @staticmethod
    def get_pending_purchase(db: Session, code: str) -> Optional[PendingGiftCardPurchase]:
        """Get a pending PayPal gift card purchase by code"""
        return db.query(PendingGiftCardPurchase).filter(PendingGiftCardPurchase.code == code).first()

    @staticmethod
    def save_pending_purchase(db: Session, business_id: str, code: str, **fields) -> PendingGiftCardPurchase:
        """Create or replace the pending purchase for a gift card code"""
        pending = PaymentRepository.get_pending_purchase(db, code)
        if pending is None:
            pending = PendingGiftCardPurchase(business_id=business_id, code=code, **fields)
            db.add(pending)
        else:
            pending.business_id = business_id
            for key, value in fields.items():
                setattr(pending, key, value)
        return pending

    @staticmethod
    def delete_pending_purchase(db: Session, code: str) -> None:
        db.query(PendingGiftCardPurchase).filter(PendingGiftCardPurchase.code == code).delete(
            synchronize_session=False
        )

    # ------------------------------------------------------------------
    # Idempotency ledger
    # ------------------------------------------------------------------

    @staticmethod
    def is_event_processed(db: Session, provider: str, event_id: str) -> bool:
        """Check whether a provider event was already applied"""
        return (
            db.query(ProcessedPaymentEvent.id)
            .filter(
                ProcessedPaymentEvent.provider == provider,
                ProcessedPaymentEvent.event_id == event_id,
            )
            .first()
            is not None
        )

    @staticmethod
    def record_event(
        db: Session,
        provider: str,
        event_id: str,
        event_type: str,
        outcome: str,
        correlation: Optional[str] = None,
    ) -> ProcessedPaymentEvent:
        """Add a ledger row to the current transaction (committed with the mutation)"""
        entry = ProcessedPaymentEvent(
            provider=provider,
            event_id=event_id,
            event_type=event_type,
            outcome=outcome,
            correlation=correlation,
        )
        db.add(entry)
        return entry
