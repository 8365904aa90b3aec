"""Scheduling repository - Database operations for availability and bookings"""

from datetime import date, datetime, time, timedelta
from typing import Optional

from sqlalchemy import text
from sqlalchemy.orm import Session

from ...models import Booking, Service, ServiceDuration, Specialist, TimeBlock, WorkingHours
from ..payments.state import PaymentState


class SchedulingRepository:
    """Repository for scheduling database operations"""

    @staticmethod
    def get_service(db: Session, service_id: str) -> Optional[Service]:
        """Get service by ID"""
        return db.query(Service).filter(Service.id == service_id).first()

    @staticmethod
    def get_duration(db: Session, duration_id: str) -> Optional[ServiceDuration]:
        """Get service duration by ID"""
        return db.query(ServiceDuration).filter(ServiceDuration.id == duration_id).first()

    @staticmethod
    def get_specialist(db: Session, specialist_id: str) -> Optional[Specialist]:
        """Get specialist by ID"""
        return db.query(Specialist).filter(Specialist.id == specialist_id).first()

    @staticmethod
    def get_active_specialists(db: Session, business_id: str) -> list[Specialist]:
        """Get all active specialists of a business"""
        return (
            db.query(Specialist)
            .filter(Specialist.business_id == business_id, Specialist.is_active == True)  # noqa: E712
            .order_by(Specialist.name)
            .all()
        )

    @staticmethod
    def get_working_hours(
        db: Session, specialist_id: str, day_of_week: int
    ) -> Optional[WorkingHours]:
        """Get a specialist's working hours for a weekday (0=Sunday)"""
        return (
            db.query(WorkingHours)
            .filter(
                WorkingHours.specialist_id == specialist_id,
                WorkingHours.day_of_week == day_of_week,
            )
            .first()
        )

    @staticmethod
    def get_time_blocks(db: Session, specialist_id: str, day: date) -> list[TimeBlock]:
        """Get time blocks for a specialist that touch the given day"""
        day_start = datetime.combine(day, time.min)
        day_end = day_start + timedelta(days=1)
        return (
            db.query(TimeBlock)
            .filter(
                TimeBlock.specialist_id == specialist_id,
                TimeBlock.start_time < day_end,
                TimeBlock.end_time > day_start,
            )
            .all()
        )

    @staticmethod
    def get_active_bookings(db: Session, specialist_id: str, day: date) -> list[Booking]:
        """Get non-cancelled bookings for a specialist on a day"""
        return (
            db.query(Booking)
            .filter(
                Booking.specialist_id == specialist_id,
                Booking.booking_date == day,
                Booking.status != "cancelled",
            )
            .order_by(Booking.start_time)
            .all()
        )

    @staticmethod
    def get_booking(db: Session, booking_id: str, for_update: bool = False) -> Optional[Booking]:
        """Get booking by ID, optionally locking the row until commit"""
        query = db.query(Booking).filter(Booking.id == booking_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def cancel_open_payment(db: Session, booking_id: str) -> int:
        """
        Mark a payment that is still open as cancelled by the user.

        Conditional on the stored state, so a payment settled by a concurrent
        webhook is left settled. Returns the number of rows changed (0 or 1).
        """
        return (
            db.query(Booking)
            .filter(
                Booking.id == booking_id,
                Booking.payment_state.in_(
                    [PaymentState.INITIATED.value, PaymentState.AWAITING_CAPTURE.value]
                ),
            )
            .update(
                {Booking.payment_state: PaymentState.CANCELLED_BY_USER.value},
                synchronize_session=False,
            )
        )

    @staticmethod
    def lock_specialist_day(db: Session, specialist_id: str, day: date) -> None:
        """
        Serialize booking creation for one specialist-day.

        Takes a transaction-scoped PostgreSQL advisory lock; other dialects have no
        equivalent and rely on the partial unique index alone.
        """
        if db.get_bind().dialect.name != "postgresql":
            return
        db.execute(
            text("SELECT pg_advisory_xact_lock(hashtext(:key))"),
            {"key": f"booking:{specialist_id}:{day.isoformat()}"},
        )

    @staticmethod
    def create_booking(db: Session, **kwargs) -> Booking:
        """Insert a booking and flush to surface constraint violations"""
        booking = Booking(**kwargs)
        db.add(booking)
        db.flush()
        return booking
