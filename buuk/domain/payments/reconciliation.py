"""
Payment reconciliation - applies provider events to bookings and gift cards.

Every event is applied at most once. The idempotency ledger row is written in the
same transaction as the mutation it records, so a crash between the two cannot
leave an applied-but-unrecorded event. When two deliveries of one event race, the
unique (provider, event_id) constraint rejects the second commit and that
delivery is acknowledged as a duplicate.

Emails are sent only after the commit and never undo it.
"""

import logging
from dataclasses import dataclass
from typing import Mapping, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models import Booking
from .correlation import (
    BookingRef,
    ExistingGiftCardRef,
    NewGiftCardRef,
    PendingGiftCardRef,
    describe,
)
from .errors import CorrelationTokenError, PaymentNotCompletedError
from .notifications import Notification, PaymentNotifier
from .providers import EventKind, PaymentEvent, PaymentProvider, StripeProvider
from .repository import PaymentRepository
from .state import PaymentState, can_transition

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationResult:
    status: str  # processed, duplicate
    outcome: str
    event_id: str


class ReconciliationService:
    """Service layer for provider event reconciliation"""

    def __init__(self, db: Session, notifier: PaymentNotifier):
        self.db = db
        self.notifier = notifier
        self.repo = PaymentRepository()

    async def handle_webhook(
        self, provider: PaymentProvider, raw_body: bytes, headers: Mapping[str, str]
    ) -> ReconciliationResult:
        """
        Verify, deduplicate and apply one webhook delivery.

        Raises WebhookSignatureError / MalformedEventError / CorrelationTokenError for
        deliveries that must be rejected without touching the ledger; any other error
        rolls back and propagates so the provider retries.
        """
        await provider.verify_signature(raw_body, headers)
        event = provider.parse_event(raw_body)
        logger.info(f"📥 {provider.name} webhook {event.event_type} ({event.event_id})")
        return await self.process_event(provider, event)

    async def process_event(self, provider: PaymentProvider, event: PaymentEvent) -> ReconciliationResult:
        """Apply a verified event exactly once, then send its notifications"""
        if self.repo.is_event_processed(self.db, event.provider, event.event_id):
            logger.info(f"🔄 {event.provider} event {event.event_id} already processed, skipping")
            return ReconciliationResult("duplicate", "duplicate", event.event_id)

        notifications: list[Notification] = []
        try:
            outcome, correlation = self._apply(provider, event, notifications)
            self.repo.record_event(
                self.db,
                provider=event.provider,
                event_id=event.event_id,
                event_type=event.event_type,
                outcome=outcome,
                correlation=correlation,
            )
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            if self.repo.is_event_processed(self.db, event.provider, event.event_id):
                logger.info(f"🔄 {event.provider} event {event.event_id} processed concurrently")
                return ReconciliationResult("duplicate", "duplicate", event.event_id)
            raise
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"✅ {event.provider} event {event.event_id} reconciled: {outcome}")
        await self.notifier.dispatch(notifications)
        return ReconciliationResult("processed", outcome, event.event_id)

    async def process_gift_card_session(
        self, provider: StripeProvider, session: dict
    ) -> ReconciliationResult:
        """
        Create the gift card for a paid Checkout Session fetched on the success page.

        Runs alongside the checkout.session.completed webhook. Whichever comes second
        finds the card by code or session id, or loses on the unique index, and
        reports already_created. Nothing is ledgered: the session is not an event.
        """
        event = provider.event_from_session(session)
        if event.kind != EventKind.PURCHASE_COMPLETED:
            raise PaymentNotCompletedError(
                f"Checkout session {event.event_id} is not paid ({session.get('payment_status')})"
            )
        ref = provider.extract_correlation(event)
        if not isinstance(ref, NewGiftCardRef):
            raise CorrelationTokenError(f"Checkout session {event.event_id} is not a gift card purchase")

        notifications: list[Notification] = []
        try:
            outcome = self._create_gift_card(ref, event, notifications, self._purchaser_email(event))
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"✅ Gift card session {event.event_id} processed: {outcome}")
        await self.notifier.dispatch(notifications)
        return ReconciliationResult("processed", outcome, event.event_id)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _apply(
        self, provider: PaymentProvider, event: PaymentEvent, notifications: list[Notification]
    ) -> tuple[str, Optional[str]]:
        if event.kind == EventKind.ACCOUNT_UPDATED:
            return self._account_updated(event), event.account_id
        if event.kind == EventKind.ACCOUNT_DEAUTHORIZED:
            return self._account_deauthorized(event), event.account_id
        if event.kind == EventKind.IGNORED:
            logger.debug(f"Ignoring {event.provider} event type {event.event_type}")
            return "ignored", None

        ref = provider.extract_correlation(event)

        if event.kind == EventKind.PURCHASE_FAILED:
            return self._purchase_failed(ref, event), describe(ref)

        purchaser_email = self._purchaser_email(event)
        if isinstance(ref, PendingGiftCardRef):
            hydrated = self._hydrate_gift_card(ref)
            if hydrated is None:
                return self._missing_gift_card_purchase(ref, event), describe(ref)
            ref, purchaser_email = hydrated

        if isinstance(ref, BookingRef):
            outcome = self._confirm_booking(ref, event, notifications)
        elif isinstance(ref, NewGiftCardRef):
            outcome = self._create_gift_card(ref, event, notifications, purchaser_email)
        elif isinstance(ref, ExistingGiftCardRef):
            outcome = self._existing_gift_card_paid(ref, event)
        else:
            raise CorrelationTokenError(f"Unsupported correlation reference: {ref!r}")
        return outcome, describe(ref)

    # ------------------------------------------------------------------
    # Bookings
    # ------------------------------------------------------------------

    def _purchaser_email(self, event: PaymentEvent) -> Optional[str]:
        return event.data.get("customer_email") or (event.data.get("customer_details") or {}).get("email")

    def _provider_fields(self, event: PaymentEvent) -> dict:
        if not event.provider_reference:
            return {}
        if event.provider == "stripe":
            return {"stripe_session_id": event.provider_reference}
        if event.provider == "paypal":
            return {"paypal_order_id": event.provider_reference}
        return {}

    def _load_booking(self, ref: BookingRef, event: PaymentEvent) -> Optional[Booking]:
        booking = self.repo.get_booking(self.db, ref.booking_id)
        if not booking:
            logger.error(f"❌ {event.provider} event {event.event_id} references unknown booking {ref.booking_id}")
            return None
        if event.business_id and booking.business_id != event.business_id:
            logger.error(
                f"❌ {event.provider} event {event.event_id} business {event.business_id} "
                f"does not own booking {booking.id}"
            )
            return None
        return booking

    def _confirm_booking(
        self, ref: BookingRef, event: PaymentEvent, notifications: list[Notification]
    ) -> str:
        booking = self._load_booking(ref, event)
        if booking is None:
            return "not_found"

        if can_transition(booking.payment_state, PaymentState.SETTLED) and booking.status not in (
            "cancelled",
            "completed",
        ):
            if self.repo.confirm_booking(self.db, booking, self._provider_fields(event)):
                notifications.append(Notification("booking_confirmed", booking.id))
                logger.info(f"✅ Booking {booking.id} confirmed by {event.provider} payment")
                return "confirmed"

        # Conditional update matched nothing: look at what the row is now
        self.db.refresh(booking)
        if booking.status == "cancelled":
            logger.warning(
                f"⚠️ Reconciliation conflict: {event.provider} payment {event.provider_reference} "
                f"settled for cancelled booking {booking.id}; booking stays cancelled"
            )
            return "conflict"
        if booking.payment_state == PaymentState.SETTLED.value:
            logger.info(f"🔄 Booking {booking.id} already settled")
            return "already_settled"
        logger.info(f"🔄 Booking {booking.id} is {booking.status}; payment not applied")
        return "noop"

    def _purchase_failed(self, ref, event: PaymentEvent) -> str:
        if isinstance(ref, BookingRef):
            booking = self._load_booking(ref, event)
            if booking is None:
                return "not_found"
            if self.repo.fail_booking_payment(self.db, booking):
                logger.info(f"⚠️ Payment for booking {booking.id} failed ({event.event_type})")
                return "payment_failed"
            return "noop"
        if isinstance(ref, PendingGiftCardRef) and self._hydrate_gift_card(ref) is not None:
            self.repo.delete_pending_purchase(self.db, ref.code)
        logger.info(f"⚠️ Gift card payment failed ({event.event_type}): {describe(ref)}")
        return "payment_failed"

    # ------------------------------------------------------------------
    # Gift cards
    # ------------------------------------------------------------------

    def _hydrate_gift_card(self, ref: PendingGiftCardRef) -> Optional[tuple[NewGiftCardRef, Optional[str]]]:
        pending = self.repo.get_pending_purchase(self.db, ref.code)
        if pending is None:
            return None
        if not pending.business_id.startswith(ref.business_prefix):
            raise CorrelationTokenError(
                f"Gift card token business prefix {ref.business_prefix} does not match purchase {ref.code}"
            )
        hydrated = NewGiftCardRef(
            business_id=pending.business_id,
            code=pending.code,
            amount_cents=pending.amount_cents,
            recipient_email=pending.recipient_email,
            expires_at=pending.expires_at,
            message=pending.message,
            purchaser_name=pending.purchaser_name,
        )
        return hydrated, pending.purchaser_email

    def _missing_gift_card_purchase(self, ref: PendingGiftCardRef, event: PaymentEvent) -> str:
        if self.repo.find_gift_card(self.db, ref.code, paypal_order_id=event.provider_reference):
            logger.info(f"🔄 Gift card {ref.code} already created")
            return "already_created"
        logger.error(f"❌ No pending purchase for gift card {ref.code} ({event.event_id})")
        return "not_found"

    def _create_gift_card(
        self,
        ref: NewGiftCardRef,
        event: PaymentEvent,
        notifications: list[Notification],
        purchaser_email: Optional[str],
    ) -> str:
        provider_fields = self._provider_fields(event)
        existing = self.repo.find_gift_card(self.db, ref.code, **provider_fields)
        if existing:
            logger.info(f"🔄 Gift card {existing.code} already exists, skipping creation")
            self.repo.delete_pending_purchase(self.db, ref.code)
            return "already_created"

        try:
            with self.db.begin_nested():
                gift_card = self.repo.create_gift_card(
                    self.db,
                    business_id=ref.business_id,
                    code=ref.code,
                    original_value_cents=ref.amount_cents,
                    current_balance_cents=ref.amount_cents,
                    status="active",
                    purchased_for_email=ref.recipient_email,
                    expires_at=ref.expires_at,
                    **provider_fields,
                )
        except IntegrityError:
            logger.info(f"🔄 Gift card {ref.code} created concurrently, skipping creation")
            self.repo.delete_pending_purchase(self.db, ref.code)
            return "already_created"

        self.repo.add_gift_card_transaction(
            self.db,
            gift_card,
            amount_cents=ref.amount_cents,
            transaction_type="purchase",
            description=f"Purchased by {ref.purchaser_name or 'Customer'} via {event.provider}",
        )
        self.repo.delete_pending_purchase(self.db, ref.code)

        recipient = (ref.recipient_email or "").strip().lower()
        if recipient and recipient != (purchaser_email or "").strip().lower():
            notifications.append(
                Notification(
                    "gift_card_received",
                    gift_card.id,
                    {"sender_name": ref.purchaser_name, "message": ref.message},
                )
            )

        logger.info(f"✅ Gift card {gift_card.code} created ({ref.amount_cents} cents)")
        return "created"

    def _existing_gift_card_paid(self, ref: ExistingGiftCardRef, event: PaymentEvent) -> str:
        gift_card = self.repo.get_gift_card(self.db, ref.gift_card_id)
        if not gift_card:
            logger.error(f"❌ {event.provider} event {event.event_id} references unknown gift card {ref.gift_card_id}")
            return "not_found"
        if event.business_id and gift_card.business_id != event.business_id:
            logger.error(
                f"❌ {event.provider} event {event.event_id} business {event.business_id} "
                f"does not own gift card {gift_card.id}"
            )
            return "not_found"

        for name, value in self._provider_fields(event).items():
            if getattr(gift_card, name) is None:
                setattr(gift_card, name, value)
        gift_card.status = "active"
        logger.info(f"✅ Gift card {gift_card.id} payment recorded")
        return "gift_card_paid"

    # ------------------------------------------------------------------
    # Stripe Connect accounts
    # ------------------------------------------------------------------

    def _account_updated(self, event: PaymentEvent) -> str:
        business = self.repo.get_business_by_connect_account(self.db, event.account_id)
        if not business:
            logger.info(f"No business found for Connect account {event.account_id}")
            return "unknown_account"
        self.repo.update_connect_status(self.db, business, event.data)
        logger.info(
            f"✅ Connect status updated for business {business.id} "
            f"(charges_enabled={business.stripe_connect_charges_enabled})"
        )
        return "account_updated"

    def _account_deauthorized(self, event: PaymentEvent) -> str:
        if not event.account_id:
            return "unknown_account"
        cleared = self.repo.clear_connect_account(self.db, event.account_id)
        logger.warning(f"⚠️ Connect account {event.account_id} deauthorized ({cleared} business)")
        return "account_deauthorized" if cleared else "unknown_account"
