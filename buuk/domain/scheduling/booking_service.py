"""Booking service - Booking creation and admin state changes"""

import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models import Booking
from ..payments.state import PaymentState, project_booking_status
from .availability_service import AvailabilityNotFoundError, AvailabilityService
from .repository import SchedulingRepository
from .schemas import BookingCreate
from .time_calculator import parse_hhmm

logger = logging.getLogger(__name__)


class BookingNotFoundError(Exception):
    """Raised when a booking id does not resolve"""


class SlotUnavailableError(Exception):
    """Raised when the requested start time is no longer bookable"""


class BookingStateError(Exception):
    """Raised for admin changes that the booking's current status does not allow"""


class BookingService:
    """Service layer for booking business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = SchedulingRepository()
        self.availability = AvailabilityService(db)

    def get_booking(self, booking_id: str) -> Booking:
        booking = self.repo.get_booking(self.db, booking_id)
        if not booking:
            raise BookingNotFoundError(f"Booking {booking_id} not found")
        return booking

    def create_booking(self, data: BookingCreate) -> Booking:
        """
        Create a booking after re-checking the slot.

        Creation for a specialist-day is serialized with an advisory lock and the
        partial unique index on (specialist, date, start) rejects whatever still
        races through. Paid bookings start pending; free and in-person bookings
        start confirmed.
        """
        logger.info(f"📥 Creating booking for business {data.business_id} on {data.booking_date}")

        service = self.repo.get_service(self.db, data.service_id)
        if not service or service.business_id != data.business_id:
            raise AvailabilityNotFoundError(f"Service {data.service_id} not found")
        duration = self.repo.get_duration(self.db, data.duration_id)
        if not duration or duration.service_id != service.id:
            raise AvailabilityNotFoundError(f"Duration {data.duration_id} not found")

        if data.specialist_id:
            specialist = self.repo.get_specialist(self.db, data.specialist_id)
            if not specialist or specialist.business_id != data.business_id:
                raise AvailabilityNotFoundError(f"Specialist {data.specialist_id} not found")

            self.repo.lock_specialist_day(self.db, data.specialist_id, data.booking_date)
            slots = self.availability.compute_available_slots(
                data.specialist_id, data.booking_date, duration.duration_minutes, service.id
            )
            if data.start_time not in slots:
                self.db.rollback()
                logger.warning(
                    f"⚠️ Slot {data.booking_date} {data.start_time} unavailable for specialist {data.specialist_id}"
                )
                raise SlotUnavailableError("The selected time is no longer available")

        payment_state = PaymentState.SETTLED if data.payment_method == "free" else PaymentState.INITIATED
        status, payment_status = project_booking_status(payment_state, data.payment_method)

        try:
            booking = self.repo.create_booking(
                self.db,
                business_id=data.business_id,
                service_id=service.id,
                duration_id=duration.id,
                specialist_id=data.specialist_id,
                booking_date=data.booking_date,
                start_time=parse_hhmm(data.start_time),
                customer_name=data.customer_name,
                customer_email=data.customer_email,
                customer_phone=data.customer_phone,
                notes=data.notes,
                payment_method=data.payment_method,
                payment_state=payment_state.value,
                status=status,
                payment_status=payment_status,
                amount_cents=0 if data.payment_method == "free" else duration.price_cents,
                confirmed_at=datetime.utcnow() if status == "confirmed" else None,
            )
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"⚠️ Concurrent booking won slot {data.booking_date} {data.start_time}: {e.orig}")
            raise SlotUnavailableError("The selected time is no longer available") from e

        self.db.refresh(booking)
        logger.info(f"✅ Created booking {booking.id} ({booking.status}/{booking.payment_status})")
        return booking

    def cancel_booking(self, booking_id: str) -> Booking:
        """
        Cancel a booking; an open payment is marked cancelled by the user.

        The row is locked and the payment change is conditional on the stored
        state, so a payment settled by a concurrent webhook stays settled and the
        booking is cancelled with its captured payment on record.
        """
        booking = self.repo.get_booking(self.db, booking_id, for_update=True)
        if not booking:
            raise BookingNotFoundError(f"Booking {booking_id} not found")
        if booking.status == "cancelled":
            self.db.rollback()
            return booking

        if not self.repo.cancel_open_payment(self.db, booking.id):
            logger.info(f"🔄 Booking {booking.id} payment is no longer open; keeping it")
        self.db.refresh(booking)
        booking.status, booking.payment_status = project_booking_status(
            booking.payment_state, booking.payment_method, cancelled=True
        )
        booking.cancelled_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(booking)
        logger.info(f"🔄 Booking {booking.id} cancelled")
        return booking

    def complete_booking(self, booking_id: str) -> Booking:
        """Mark a booking as completed (service delivered)"""
        booking = self.get_booking(booking_id)
        if booking.status == "cancelled":
            raise BookingStateError("Cancelled bookings cannot be completed")

        booking.status, booking.payment_status = project_booking_status(
            booking.payment_state, booking.payment_method, completed=True
        )
        self.db.commit()
        self.db.refresh(booking)
        logger.info(f"✅ Booking {booking.id} completed")
        return booking

    def mark_no_show(self, booking_id: str) -> Booking:
        """Flag that the customer did not show up"""
        booking = self.get_booking(booking_id)
        if booking.status == "cancelled":
            raise BookingStateError("Cancelled bookings cannot be marked as no-show")

        booking.no_show = True
        self.db.commit()
        self.db.refresh(booking)
        logger.info(f"⚠️ Booking {booking.id} marked as no-show")
        return booking
