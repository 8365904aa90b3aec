"""Payment notifications - emails sent after a reconciliation commits"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...config import FRONTEND_URL, PAYMENT_CURRENCY
from ...email_service import send_booking_confirmation_email, send_gift_card_received_email
from ...models import Booking, Business, GiftCard

logger = logging.getLogger(__name__)

CURRENCY_SYMBOLS = {"eur": "€", "usd": "$", "gbp": "£"}


@dataclass
class Notification:
    """A notification queued during reconciliation and sent after commit"""

    kind: str  # booking_confirmed, gift_card_received
    target_id: str
    extra: dict = field(default_factory=dict)


def format_amount(amount_cents: int, currency: str = PAYMENT_CURRENCY) -> str:
    symbol = CURRENCY_SYMBOLS.get(currency.lower(), f"{currency.upper()} ")
    return f"{symbol}{amount_cents / 100:.2f}"


def format_booking_date(day: date) -> str:
    return day.strftime("%A, %B %d, %Y")


def booking_end_time(start: time, duration_minutes: Optional[int]) -> str:
    if not duration_minutes:
        return start.strftime("%H:%M")
    end = datetime.combine(date.min, start) + timedelta(minutes=duration_minutes)
    return end.strftime("%H:%M")


def emails_enabled(business: Optional[Business], toggle: str) -> bool:
    """Check the business-wide switch and the per-email toggle"""
    if business is None:
        return False
    return bool(business.emails_enabled) and bool(getattr(business, toggle, True))


class PaymentNotifier:
    """Sends customer emails for settled payments; failures never propagate"""

    def __init__(self, db: Session):
        self.db = db

    async def dispatch(self, notifications: list[Notification]) -> None:
        for notification in notifications:
            try:
                if notification.kind == "booking_confirmed":
                    await self.send_booking_confirmation(notification.target_id)
                elif notification.kind == "gift_card_received":
                    await self.send_gift_card_received(notification.target_id, **notification.extra)
                else:
                    logger.warning(f"⚠️ Unknown notification kind: {notification.kind}")
            except Exception as e:
                logger.error(
                    f"❌ Failed to send {notification.kind} notification for {notification.target_id}: {e}"
                )

    async def send_booking_confirmation(self, booking_id: str) -> None:
        booking = self.db.query(Booking).filter(Booking.id == booking_id).first()
        if not booking:
            return
        business = booking.business
        if not emails_enabled(business, "send_booking_confirmations"):
            logger.info(f"Booking confirmations disabled for business {booking.business_id}")
            return

        duration = booking.duration
        await send_booking_confirmation_email(
            to=booking.customer_email,
            customer_name=booking.customer_name,
            business_name=business.name,
            service_name=booking.service.name if booking.service else "Service",
            specialist_name=booking.specialist.name if booking.specialist else "Any Available Specialist",
            booking_date=format_booking_date(booking.booking_date),
            booking_time=booking.start_time.strftime("%H:%M"),
            booking_end_time=booking_end_time(
                booking.start_time, duration.duration_minutes if duration else None
            ),
            service_price=format_amount(duration.price_cents) if duration else "N/A",
            business_address=business.address or "",
            business_phone=business.phone or "",
            cancellation_link=f"{FRONTEND_URL}/cancel?id={booking.id}",
        )
        logger.info(f"✅ Booking confirmation email sent for {booking.id}")

    async def send_gift_card_received(
        self, gift_card_id: str, sender_name: Optional[str] = None, message: Optional[str] = None
    ) -> None:
        gift_card = self.db.query(GiftCard).filter(GiftCard.id == gift_card_id).first()
        if not gift_card or not gift_card.purchased_for_email:
            return
        business = self.db.query(Business).filter(Business.id == gift_card.business_id).first()
        if not emails_enabled(business, "emails_enabled"):
            return

        await send_gift_card_received_email(
            to=gift_card.purchased_for_email,
            business_name=business.name,
            gift_card_code=gift_card.code,
            amount=format_amount(gift_card.original_value_cents),
            sender_name=sender_name or "Someone",
            message=message or "",
            expires_at=gift_card.expires_at.strftime("%B %d, %Y") if gift_card.expires_at else None,
        )
        logger.info(f"✅ Gift card email sent for {gift_card.code}")
