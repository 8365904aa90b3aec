import uuid

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


def generate_id():
    """Generate a UUID string primary key (portable across PostgreSQL and SQLite)"""
    return str(uuid.uuid4())


class Business(Base):
    __tablename__ = "businesses"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(255), nullable=False)
    subdomain = Column(String(100), nullable=True, unique=True)
    address = Column(String(500), nullable=True)
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    # Stripe Connect (flags cached from account.updated webhooks and verification)
    stripe_connect_account_id = Column(String(255), nullable=True, index=True)
    stripe_connect_charges_enabled = Column(Boolean, default=False, nullable=False)
    stripe_connect_payouts_enabled = Column(Boolean, default=False, nullable=False)
    stripe_connect_details_submitted = Column(Boolean, default=False, nullable=False)
    stripe_connect_onboarding_complete = Column(Boolean, default=False, nullable=False)
    stripe_account_type = Column(String(20), nullable=True)  # standard, express
    stripe_connect_country = Column(String(2), nullable=True)
    stripe_connect_created_at = Column(DateTime, nullable=True)
    platform_fee_percentage = Column(Float, nullable=True)  # null = platform default

    # Transactional email preferences
    emails_enabled = Column(Boolean, default=True, nullable=False)
    send_booking_confirmations = Column(Boolean, default=True, nullable=False)
    send_booking_reminders = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    specialists = relationship("Specialist", back_populates="business")
    services = relationship("Service", back_populates="business")


class SiteSetting(Base):
    """Per-business key/value settings (payment credentials, feature flags)"""

    __tablename__ = "site_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    business_id = Column(String(36), ForeignKey("businesses.id"), nullable=False, index=True)
    key = Column(String(100), nullable=False)
    value = Column(Text, nullable=True)
    category = Column(String(50), nullable=True)  # payments, email, ...
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (UniqueConstraint("business_id", "key", name="uq_site_settings_business_key"),)


class Service(Base):
    __tablename__ = "services"

    id = Column(String(36), primary_key=True, default=generate_id)
    business_id = Column(String(36), ForeignKey("businesses.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    buffer_before = Column(Integer, nullable=True)  # minutes, null = 0
    buffer_after = Column(Integer, nullable=True)  # minutes, null = 0
    is_active = Column(Boolean, default=True, nullable=False)

    business = relationship("Business", back_populates="services")
    durations = relationship("ServiceDuration", back_populates="service")


class ServiceDuration(Base):
    __tablename__ = "service_durations"

    id = Column(String(36), primary_key=True, default=generate_id)
    service_id = Column(String(36), ForeignKey("services.id"), nullable=False, index=True)
    duration_minutes = Column(Integer, nullable=False)
    price_cents = Column(Integer, nullable=False, default=0)

    service = relationship("Service", back_populates="durations")


class Specialist(Base):
    __tablename__ = "specialists"

    id = Column(String(36), primary_key=True, default=generate_id)
    business_id = Column(String(36), ForeignKey("businesses.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    business = relationship("Business", back_populates="specialists")
    working_hours = relationship("WorkingHours", back_populates="specialist")


class WorkingHours(Base):
    __tablename__ = "working_hours"

    id = Column(Integer, primary_key=True, autoincrement=True)
    specialist_id = Column(String(36), ForeignKey("specialists.id"), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)  # 0=Sunday ... 6=Saturday
    is_available = Column(Boolean, default=True, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    specialist = relationship("Specialist", back_populates="working_hours")

    __table_args__ = (
        UniqueConstraint("specialist_id", "day_of_week", name="uq_working_hours_specialist_day"),
    )


class TimeBlock(Base):
    """Manual unavailability (vacation, break) in business-local time"""

    __tablename__ = "time_blocks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    specialist_id = Column(String(36), ForeignKey("specialists.id"), nullable=False, index=True)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    reason = Column(String(255), nullable=True)


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, default=generate_id)
    business_id = Column(String(36), ForeignKey("businesses.id"), nullable=False, index=True)
    service_id = Column(String(36), ForeignKey("services.id"), nullable=False)
    duration_id = Column(String(36), ForeignKey("service_durations.id"), nullable=True)
    specialist_id = Column(
        String(36), ForeignKey("specialists.id"), nullable=True, index=True
    )  # null = any available specialist
    booking_date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)

    customer_name = Column(String(255), nullable=False)
    customer_email = Column(String(255), nullable=False)
    customer_phone = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)

    # Visible state: projection of payment_state + business state (see domain.payments.state)
    status = Column(String(20), default="pending", nullable=False)  # pending, confirmed, completed, cancelled
    payment_status = Column(String(20), default="pending", nullable=False)  # pending, completed
    payment_state = Column(
        String(30), default="initiated", nullable=False
    )  # initiated, awaiting_capture, settled, failed, cancelled_by_user
    payment_method = Column(String(20), default="card", nullable=False)  # card, paypal, in_person, free
    amount_cents = Column(Integer, nullable=False, default=0)
    no_show = Column(Boolean, default=False, nullable=False)
    reminder_sent = Column(Boolean, default=False, nullable=False)

    # Payment provider correlation
    stripe_session_id = Column(String(255), nullable=True, index=True)
    paypal_order_id = Column(String(255), nullable=True, index=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
    confirmed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    service = relationship("Service")
    duration = relationship("ServiceDuration")
    specialist = relationship("Specialist")
    business = relationship("Business")

    __table_args__ = (
        # A specialist can hold one live booking per start time; overlap beyond the
        # exact start is enforced by the availability check under an advisory lock.
        Index(
            "uq_bookings_specialist_slot",
            "specialist_id",
            "booking_date",
            "start_time",
            unique=True,
            postgresql_where=text("status <> 'cancelled'"),
            sqlite_where=text("status <> 'cancelled'"),
        ),
    )


class GiftCard(Base):
    __tablename__ = "gift_cards"

    id = Column(String(36), primary_key=True, default=generate_id)
    business_id = Column(String(36), ForeignKey("businesses.id"), nullable=False, index=True)
    code = Column(String(50), nullable=False, unique=True)
    original_value_cents = Column(Integer, nullable=False)
    current_balance_cents = Column(Integer, nullable=False)
    status = Column(String(20), default="active", nullable=False)  # active, redeemed, expired, disabled
    purchased_for_email = Column(String(255), nullable=True)
    expires_at = Column(DateTime, nullable=True)

    stripe_session_id = Column(String(255), nullable=True, unique=True)
    paypal_order_id = Column(String(255), nullable=True, unique=True)

    created_at = Column(DateTime, server_default=func.now())

    transactions = relationship("GiftCardTransaction", back_populates="gift_card")


class GiftCardTransaction(Base):
    __tablename__ = "gift_card_transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    gift_card_id = Column(String(36), ForeignKey("gift_cards.id"), nullable=False, index=True)
    amount_cents = Column(Integer, nullable=False)
    transaction_type = Column(String(20), nullable=False)  # purchase, redemption, refund
    description = Column(String(500), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    gift_card = relationship("GiftCard", back_populates="transactions")


class PendingGiftCardPurchase(Base):
    """
    Gift card purchase details awaiting a PayPal capture.

    PayPal's custom_id only carries a short token (gc|business|code), so the rest of
    the purchase descriptor is kept here until the capture arrives.
    """

    __tablename__ = "pending_gift_card_purchases"

    id = Column(Integer, primary_key=True, autoincrement=True)
    business_id = Column(String(36), ForeignKey("businesses.id"), nullable=False)
    code = Column(String(50), nullable=False, unique=True)
    amount_cents = Column(Integer, nullable=False)
    purchaser_name = Column(String(255), nullable=True)
    purchaser_email = Column(String(255), nullable=True)
    recipient_email = Column(String(255), nullable=True)
    message = Column(Text, nullable=True)
    expires_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class ProcessedPaymentEvent(Base):
    """Idempotency ledger: one row per provider event that was durably applied"""

    __tablename__ = "processed_payment_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    provider = Column(String(20), nullable=False)  # stripe, paypal
    event_id = Column(String(255), nullable=False)  # Stripe event id / PayPal capture id
    event_type = Column(String(100), nullable=False)
    outcome = Column(String(30), nullable=False)  # confirmed, created, conflict, ignored, ...
    correlation = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("provider", "event_id", name="uq_processed_payment_events_provider_event"),
    )
