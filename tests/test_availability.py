"""
Tests for the availability engine against the database.

Run with: pytest tests/test_availability.py -v
"""

from datetime import date, datetime, time

import pytest

from buuk.domain.scheduling.availability_service import (
    AvailabilityNotFoundError,
    AvailabilityService,
    InvalidAvailabilityRequest,
)
from buuk.models import Business, Service, ServiceDuration, Specialist, TimeBlock, WorkingHours
from conftest import BOOKING_DAY, make_booking


@pytest.fixture
def buffered(db, salon):
    """A 50-minute service with 5 minute buffers on both sides"""
    service = Service(
        business_id=salon["business"].id, name="Color", buffer_before=5, buffer_after=5
    )
    db.add(service)
    db.flush()
    duration = ServiceDuration(service_id=service.id, duration_minutes=50, price_cents=8000)
    db.add(duration)
    db.commit()
    return {**salon, "service": service, "duration": duration}


# ============================================================================
# SINGLE SPECIALIST
# ============================================================================


def test_buffers_keep_slots_clear_of_existing_booking(db, buffered):
    """Booking 10:00 (50 + 5 + 5 min) blocks 10:30 but leaves 09:00 and 11:30"""
    make_booking(db, buffered, start=time(10, 0), status="confirmed", payment_state="settled")

    slots = AvailabilityService(db).compute_available_slots(
        buffered["specialist"].id, BOOKING_DAY, 30, buffered["service"].id
    )

    assert "09:00" in slots
    assert "10:00" not in slots
    assert "10:30" not in slots
    assert "11:30" in slots
    assert slots == sorted(slots)


def test_no_working_hours_means_no_slots(db, salon):
    wednesday = date(2025, 6, 11)
    slots = AvailabilityService(db).compute_available_slots(
        salon["specialist"].id, wednesday, 60, salon["service"].id
    )
    assert slots == []


def test_unavailable_day_means_no_slots(db, salon):
    hours = db.query(WorkingHours).filter(WorkingHours.specialist_id == salon["specialist"].id).first()
    hours.is_available = False
    db.commit()

    slots = AvailabilityService(db).compute_available_slots(
        salon["specialist"].id, BOOKING_DAY, 60, salon["service"].id
    )
    assert slots == []


def test_time_block_removes_overlapping_slots(db, salon):
    db.add(
        TimeBlock(
            specialist_id=salon["specialist"].id,
            start_time=datetime(2025, 6, 10, 12, 0),
            end_time=datetime(2025, 6, 10, 13, 0),
            reason="Lunch",
        )
    )
    db.commit()

    slots = AvailabilityService(db).compute_available_slots(
        salon["specialist"].id, BOOKING_DAY, 60, salon["service"].id
    )

    assert "11:00" in slots
    assert "11:30" not in slots
    assert "12:00" not in slots
    assert "12:30" not in slots
    assert "13:00" in slots


def test_cancelled_bookings_do_not_block(db, salon):
    make_booking(db, salon, start=time(10, 0), status="cancelled", payment_state="cancelled_by_user")

    slots = AvailabilityService(db).compute_available_slots(
        salon["specialist"].id, BOOKING_DAY, 60, salon["service"].id
    )
    assert "10:00" in slots


def test_inactive_specialist_has_no_slots(db, salon):
    salon["specialist"].is_active = False
    db.commit()

    slots = AvailabilityService(db).compute_available_slots(
        salon["specialist"].id, BOOKING_DAY, 60, salon["service"].id
    )
    assert slots == []


def test_invalid_requests_raise(db, salon):
    service = AvailabilityService(db)
    with pytest.raises(InvalidAvailabilityRequest):
        service.compute_available_slots(salon["specialist"].id, BOOKING_DAY, 0, salon["service"].id)
    with pytest.raises(AvailabilityNotFoundError):
        service.compute_available_slots(salon["specialist"].id, BOOKING_DAY, 60, "missing")
    with pytest.raises(AvailabilityNotFoundError):
        service.compute_available_slots("missing", BOOKING_DAY, 60, salon["service"].id)


# ============================================================================
# ALL SPECIALISTS
# ============================================================================


def test_all_specialists_keyed_by_id(db, salon):
    other = Specialist(business_id=salon["business"].id, name="Robin")
    db.add(other)
    db.flush()
    db.add(
        WorkingHours(
            specialist_id=other.id,
            day_of_week=2,
            is_available=True,
            start_time=time(14, 0),
            end_time=time(16, 0),
        )
    )
    db.commit()

    slots = AvailabilityService(db).compute_available_slots_for_all_specialists(
        BOOKING_DAY, salon["service"].id, 60, salon["business"].id
    )

    assert set(slots) == {salon["specialist"].id, other.id}
    assert slots[other.id] == ["14:00", "14:30", "15:00", "15:30"]
    assert slots[salon["specialist"].id][0] == "09:00"


def test_all_specialists_rejects_service_of_other_business(db, salon):
    other = Business(name="Other Studio", subdomain="other-studio")
    db.add(other)
    db.flush()
    foreign = Service(business_id=other.id, name="Long Color", buffer_before=30, buffer_after=30)
    db.add(foreign)
    db.commit()

    with pytest.raises(AvailabilityNotFoundError):
        AvailabilityService(db).compute_available_slots_for_all_specialists(
            BOOKING_DAY, foreign.id, 60, salon["business"].id
        )


# ============================================================================
# HTTP
# ============================================================================


def test_slots_endpoint(client, salon):
    response = client.get(
        "/availability/slots",
        params={
            "specialist_id": salon["specialist"].id,
            "service_id": salon["service"].id,
            "date": "2025-06-10",
            "duration_minutes": 60,
        },
    )
    assert response.status_code == 200
    body = response.json()
    assert body["date"] == "2025-06-10"
    assert body["slots"][0] == "09:00"


def test_slots_endpoint_rejects_bad_input(client, salon):
    params = {
        "specialist_id": salon["specialist"].id,
        "service_id": salon["service"].id,
        "date": "10-06-2025",
        "duration_minutes": 60,
    }
    assert client.get("/availability/slots", params=params).status_code == 400

    params["date"] = "2025-06-10"
    params["specialist_id"] = "missing"
    assert client.get("/availability/slots", params=params).status_code == 404

    params["duration_minutes"] = 0
    assert client.get("/availability/slots", params=params).status_code == 422
