"""Availability service - Bookable start times per specialist"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from .repository import SchedulingRepository
from .time_calculator import booking_busy_interval, day_of_week_index, filter_available_slots

logger = logging.getLogger(__name__)


class InvalidAvailabilityRequest(Exception):
    """Raised for malformed availability input (bad duration, unknown service)"""

    status_code = 400


class AvailabilityNotFoundError(InvalidAvailabilityRequest):
    """Raised when the referenced service or specialist does not exist"""

    status_code = 404


class AvailabilityService:
    """Computes available slots from working hours, time blocks and bookings"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = SchedulingRepository()

    def _service_buffers(self, service_id: str, business_id: Optional[str] = None) -> tuple[int, int]:
        service = self.repo.get_service(self.db, service_id)
        if not service or (business_id and service.business_id != business_id):
            raise AvailabilityNotFoundError(f"Service {service_id} not found")
        return service.buffer_before or 0, service.buffer_after or 0

    def _slots_for_specialist(
        self, specialist_id: str, day: date, duration_minutes: int, buffers: tuple[int, int]
    ) -> list[str]:
        buffer_before, buffer_after = buffers
        total_duration = duration_minutes + buffer_before + buffer_after

        hours = self.repo.get_working_hours(self.db, specialist_id, day_of_week_index(day))
        if not hours or not hours.is_available:
            return []

        blocks = [
            (block.start_time, block.end_time)
            for block in self.repo.get_time_blocks(self.db, specialist_id, day)
        ]
        busy = [
            booking_busy_interval(
                booking.start_time,
                booking.duration.duration_minutes if booking.duration else None,
                buffer_before,
                buffer_after,
            )
            for booking in self.repo.get_active_bookings(self.db, specialist_id, day)
        ]

        return filter_available_slots(
            day, hours.start_time, hours.end_time, total_duration, blocks, busy
        )

    def compute_available_slots(
        self, specialist_id: str, day: date, duration_minutes: int, service_id: str
    ) -> list[str]:
        """
        Bookable start times ('HH:MM', chronological) for one specialist on one day.

        Returns an empty list when the specialist does not work that weekday or is
        inactive.
        """
        if duration_minutes <= 0:
            raise InvalidAvailabilityRequest("duration_minutes must be positive")

        buffers = self._service_buffers(service_id)

        specialist = self.repo.get_specialist(self.db, specialist_id)
        if not specialist:
            raise AvailabilityNotFoundError(f"Specialist {specialist_id} not found")
        if not specialist.is_active:
            return []

        return self._slots_for_specialist(specialist_id, day, duration_minutes, buffers)

    def compute_available_slots_for_all_specialists(
        self, day: date, service_id: str, duration_minutes: int, business_id: str
    ) -> dict[str, list[str]]:
        """Available slots for every active specialist of a business, keyed by specialist id"""
        if duration_minutes <= 0:
            raise InvalidAvailabilityRequest("duration_minutes must be positive")

        buffers = self._service_buffers(service_id, business_id)
        specialists = self.repo.get_active_specialists(self.db, business_id)

        slots = {
            specialist.id: self._slots_for_specialist(specialist.id, day, duration_minutes, buffers)
            for specialist in specialists
        }
        logger.debug(f"Computed availability for {len(slots)} specialists on {day}")
        return slots
