"""
Tests for the booking reminder job.

Run with: pytest tests/test_worker.py -v
"""

from datetime import date, time

import pytest
from sqlalchemy.orm import sessionmaker

from buuk import worker
from buuk.models import Booking
from conftest import BOOKING_DAY, make_booking


@pytest.fixture
def sent(monkeypatch):
    calls = []

    async def fake_send(**kwargs):
        calls.append(kwargs)

    monkeypatch.setattr(worker, "send_booking_reminder_email", fake_send)
    return calls


def confirmed(db, salon, start, **overrides):
    values = dict(status="confirmed", payment_status="completed", payment_state="settled")
    values.update(overrides)
    return make_booking(db, salon, start=start, **values)


@pytest.mark.asyncio
async def test_reminders_go_to_confirmed_bookings_only(db, salon, sent):
    reminded = confirmed(db, salon, time(9, 0))
    confirmed(db, salon, time(11, 0), reminder_sent=True)
    make_booking(db, salon, start=time(13, 0))  # still pending payment
    confirmed(db, salon, time(9, 0), booking_date=date(2025, 6, 11))

    summary = await worker.send_reminders_for_day(db, BOOKING_DAY)

    assert summary == {"sent": 1, "failed": 0, "total": 1}
    assert [call["to"] for call in sent] == ["alex@example.com"]
    assert sent[0]["booking_time"] == "09:00"
    assert sent[0]["service_name"] == "Haircut"
    assert sent[0]["booking_date"] == "Tuesday, June 10, 2025"
    db.refresh(reminded)
    assert reminded.reminder_sent is True


@pytest.mark.asyncio
async def test_business_toggle_disables_reminders(db, salon, sent):
    confirmed(db, salon, time(9, 0))
    salon["business"].send_booking_reminders = False
    db.commit()

    summary = await worker.send_reminders_for_day(db, BOOKING_DAY)

    assert summary["total"] == 0
    assert sent == []


@pytest.mark.asyncio
async def test_failed_send_is_counted_and_retried_next_run(db, salon, monkeypatch):
    booking = confirmed(db, salon, time(9, 0))

    async def failing_send(**kwargs):
        raise RuntimeError("mail provider down")

    monkeypatch.setattr(worker, "send_booking_reminder_email", failing_send)

    summary = await worker.send_reminders_for_day(db, BOOKING_DAY)

    assert summary == {"sent": 0, "failed": 1, "total": 1}
    db.refresh(booking)
    assert booking.reminder_sent is False


@pytest.mark.asyncio
async def test_cron_job_targets_tomorrow(engine, db, salon, sent):
    booking_id = confirmed(db, salon, time(9, 0)).id
    db.commit()
    ctx = {"session_factory": sessionmaker(autocommit=False, autoflush=False, bind=engine)}

    summary = await worker.send_booking_reminders(ctx, today=date(2025, 6, 9))

    assert summary["sent"] == 1
    assert db.query(Booking).filter(Booking.id == booking_id).one().reminder_sent is True
