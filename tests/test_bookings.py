"""
Tests for booking creation and admin state changes.

Run with: pytest tests/test_bookings.py -v
"""

from datetime import time

import pytest

from buuk.domain.payments.repository import PaymentRepository
from buuk.domain.scheduling.booking_service import BookingService, SlotUnavailableError
from buuk.domain.scheduling.repository import SchedulingRepository
from buuk.domain.scheduling.schemas import BookingCreate
from buuk.models import Booking
from conftest import make_booking


def booking_payload(salon, **overrides) -> dict:
    payload = {
        "business_id": salon["business"].id,
        "service_id": salon["service"].id,
        "duration_id": salon["duration"].id,
        "specialist_id": salon["specialist"].id,
        "booking_date": "2025-06-10",
        "start_time": "10:00",
        "customer_name": "Alex Doe",
        "customer_email": "alex@example.com",
        "payment_method": "card",
    }
    payload.update(overrides)
    return payload


# ============================================================================
# CREATION
# ============================================================================


def test_create_paid_booking_starts_pending(client, salon):
    response = client.post("/bookings", json=booking_payload(salon))

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "pending"
    assert body["payment_status"] == "pending"
    assert body["amount_cents"] == 5000
    assert body["start_time"] == "10:00"


@pytest.mark.parametrize(
    "payment_method,status,payment_status",
    [("in_person", "confirmed", "pending"), ("free", "confirmed", "completed")],
)
def test_unpaid_methods_are_confirmed_immediately(client, db, salon, payment_method, status, payment_status):
    response = client.post("/bookings", json=booking_payload(salon, payment_method=payment_method))

    assert response.status_code == 201
    body = response.json()
    assert (body["status"], body["payment_status"]) == (status, payment_status)
    booking = db.query(Booking).filter(Booking.id == body["id"]).one()
    assert booking.confirmed_at is not None


def test_second_booking_for_same_slot_conflicts(client, salon):
    assert client.post("/bookings", json=booking_payload(salon)).status_code == 201

    response = client.post("/bookings", json=booking_payload(salon, customer_email="other@example.com"))
    assert response.status_code == 409


def test_overlapping_start_conflicts(client, salon):
    assert client.post("/bookings", json=booking_payload(salon)).status_code == 201

    response = client.post("/bookings", json=booking_payload(salon, start_time="10:30"))
    assert response.status_code == 409


def test_slot_outside_working_hours_conflicts(client, salon):
    response = client.post("/bookings", json=booking_payload(salon, start_time="18:00"))
    assert response.status_code == 409


def test_unknown_service_is_404(client, salon):
    response = client.post("/bookings", json=booking_payload(salon, service_id="missing"))
    assert response.status_code == 404


def test_invalid_payload_is_422(client, salon):
    response = client.post("/bookings", json=booking_payload(salon, payment_method="cash"))
    assert response.status_code == 422


def test_unique_index_rejects_race_past_availability_check(db, salon, monkeypatch):
    """A concurrent insert that slipped past the re-check loses on the index"""
    make_booking(db, salon, start=time(10, 0))
    service = BookingService(db)
    monkeypatch.setattr(
        service.availability, "compute_available_slots", lambda *args, **kwargs: ["10:00"]
    )

    data = BookingCreate(**booking_payload(salon))
    with pytest.raises(SlotUnavailableError):
        service.create_booking(data)

    assert db.query(Booking).count() == 1


def test_booking_after_cancellation_reuses_slot(client, db, salon):
    make_booking(db, salon, start=time(10, 0), status="cancelled", payment_state="cancelled_by_user")

    response = client.post("/bookings", json=booking_payload(salon))
    assert response.status_code == 201


# ============================================================================
# ADMIN ACTIONS
# ============================================================================


def test_cancel_closes_open_payment(client, db, salon):
    booking = make_booking(db, salon)

    response = client.post(f"/bookings/{booking.id}/cancel")

    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
    db.refresh(booking)
    assert booking.payment_state == "cancelled_by_user"
    assert booking.cancelled_at is not None


def test_cancel_is_idempotent(client, db, salon):
    booking = make_booking(db, salon)
    client.post(f"/bookings/{booking.id}/cancel")

    response = client.post(f"/bookings/{booking.id}/cancel")
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"


def test_cancel_settled_booking_keeps_payment(client, db, salon):
    booking = make_booking(
        db, salon, status="confirmed", payment_status="completed", payment_state="settled"
    )

    response = client.post(f"/bookings/{booking.id}/cancel")

    assert response.json()["status"] == "cancelled"
    assert response.json()["payment_status"] == "completed"
    db.refresh(booking)
    assert booking.payment_state == "settled"


def test_cancel_racing_a_settlement_keeps_the_payment(db, salon, monkeypatch):
    booking = make_booking(db, salon, stripe_session_id="cs_test_race")
    read_booking = SchedulingRepository.get_booking

    def read_then_settle(session, booking_id, for_update=False):
        found = read_booking(session, booking_id, for_update=for_update)
        # The webhook settles the payment after the cancel has read the row
        assert PaymentRepository.confirm_booking(session, found, {}) == 1
        return found

    monkeypatch.setattr(SchedulingRepository, "get_booking", staticmethod(read_then_settle))

    cancelled = BookingService(db).cancel_booking(booking.id)

    assert cancelled.status == "cancelled"
    assert cancelled.payment_state == "settled"
    assert cancelled.payment_status == "completed"


def test_complete_and_no_show(client, db, salon):
    booking = make_booking(db, salon, status="confirmed", payment_state="settled")

    assert client.post(f"/bookings/{booking.id}/no-show").json()["no_show"] is True
    assert client.post(f"/bookings/{booking.id}/complete").json()["status"] == "completed"


def test_cancelled_booking_cannot_be_completed(client, db, salon):
    booking = make_booking(db, salon, status="cancelled", payment_state="cancelled_by_user")

    assert client.post(f"/bookings/{booking.id}/complete").status_code == 409
    assert client.post(f"/bookings/{booking.id}/no-show").status_code == 409


def test_admin_action_on_missing_booking(client):
    assert client.post("/bookings/missing/cancel").status_code == 404
