"""Scheduling router - FastAPI endpoints for availability and bookings"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...database import get_db
from ...models import Booking
from ...rate_limiter import rate_limit_bookings
from ..payments.state import InvalidTransitionError
from .availability_service import AvailabilityService, InvalidAvailabilityRequest
from .booking_service import (
    BookingNotFoundError,
    BookingService,
    BookingStateError,
    SlotUnavailableError,
)
from .schemas import AllSlotsResponse, BookingCreate, BookingResponse, SlotsResponse
from .time_calculator import parse_date

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Scheduling"])


def get_availability_service(db: Session = Depends(get_db)) -> AvailabilityService:
    """Dependency injection for AvailabilityService"""
    return AvailabilityService(db)


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    """Dependency injection for BookingService"""
    return BookingService(db)


def _parse_date_param(value: str):
    try:
        return parse_date(value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail="date must be YYYY-MM-DD") from e


def _booking_response(booking: Booking) -> BookingResponse:
    return BookingResponse(
        id=booking.id,
        business_id=booking.business_id,
        service_id=booking.service_id,
        duration_id=booking.duration_id,
        specialist_id=booking.specialist_id,
        booking_date=booking.booking_date,
        start_time=booking.start_time.strftime("%H:%M"),
        customer_name=booking.customer_name,
        customer_email=booking.customer_email,
        status=booking.status,
        payment_status=booking.payment_status,
        payment_method=booking.payment_method,
        amount_cents=booking.amount_cents,
        no_show=booking.no_show,
    )


# ============================================================================
# AVAILABILITY
# ============================================================================


@router.get("/availability/slots", response_model=SlotsResponse)
async def get_available_slots(
    specialist_id: str,
    service_id: str,
    date: str,
    duration_minutes: int = Query(..., gt=0),
    service: AvailabilityService = Depends(get_availability_service),
):
    """Get bookable start times for one specialist"""
    day = _parse_date_param(date)
    try:
        slots = service.compute_available_slots(specialist_id, day, duration_minutes, service_id)
    except InvalidAvailabilityRequest as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return SlotsResponse(specialist_id=specialist_id, date=day, slots=slots)


@router.get("/availability/slots/all", response_model=AllSlotsResponse)
async def get_available_slots_for_all_specialists(
    business_id: str,
    service_id: str,
    date: str,
    duration_minutes: int = Query(..., gt=0),
    service: AvailabilityService = Depends(get_availability_service),
):
    """Get bookable start times for every active specialist of a business"""
    day = _parse_date_param(date)
    try:
        slots = service.compute_available_slots_for_all_specialists(
            day, service_id, duration_minutes, business_id
        )
    except InvalidAvailabilityRequest as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return AllSlotsResponse(business_id=business_id, date=day, slots=slots)


# ============================================================================
# BOOKINGS
# ============================================================================


@router.post("/bookings", response_model=BookingResponse, status_code=201)
async def create_booking(
    body: BookingCreate,
    _: None = Depends(rate_limit_bookings),
    service: BookingService = Depends(get_booking_service),
):
    """Create a booking for an available slot"""
    try:
        booking = service.create_booking(body)
    except InvalidAvailabilityRequest as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    except SlotUnavailableError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    return _booking_response(booking)


def _admin_action(action, booking_id: str) -> BookingResponse:
    try:
        return _booking_response(action(booking_id))
    except BookingNotFoundError as e:
        raise HTTPException(status_code=404, detail="Booking not found") from e
    except (BookingStateError, InvalidTransitionError) as e:
        raise HTTPException(status_code=409, detail=str(e)) from e


@router.post("/bookings/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(booking_id: str, service: BookingService = Depends(get_booking_service)):
    """Cancel a booking"""
    return _admin_action(service.cancel_booking, booking_id)


@router.post("/bookings/{booking_id}/complete", response_model=BookingResponse)
async def complete_booking(booking_id: str, service: BookingService = Depends(get_booking_service)):
    """Mark a booking as completed"""
    return _admin_action(service.complete_booking, booking_id)


@router.post("/bookings/{booking_id}/no-show", response_model=BookingResponse)
async def mark_no_show(booking_id: str, service: BookingService = Depends(get_booking_service)):
    """Flag a booking as a no-show"""
    return _admin_action(service.mark_no_show, booking_id)
