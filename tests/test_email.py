"""
Tests for email templates and sending.

Run with: pytest tests/test_email.py -v
"""

import pytest

from buuk import email_service
from buuk.email_templates import booking_confirmation_template, gift_card_received_template


def test_confirmation_template_escapes_customer_input():
    mjml = booking_confirmation_template(
        customer_name="<script>alert(1)</script>",
        business_name="Studio Nord",
        service_name="Haircut",
        specialist_name="Sam",
        booking_date="Tuesday, June 10, 2025",
        booking_time="10:00",
        booking_end_time="11:00",
        service_price="€50.00",
        cancellation_link="https://buuk.test/cancel?id=b1",
    )
    assert "<script>" not in mjml
    assert "&lt;script&gt;" in mjml
    assert "10:00 - 11:00" in mjml
    assert "https://buuk.test/cancel?id=b1" in mjml


def test_gift_card_template_optional_sections():
    with_message = gift_card_received_template("Studio Nord", "GC-1", "€25.00", "Alex", message="Enjoy!")
    without_message = gift_card_received_template("Studio Nord", "GC-1", "€25.00", "Alex")

    assert "Enjoy!" in with_message
    assert "Valid until" not in with_message
    assert "font-style" not in without_message


def test_sender_uses_business_name():
    assert email_service.get_sender_email("Studio Nord") == "Studio Nord <bookings@buuk.app>"
    assert email_service.get_sender_email(None) == email_service.EMAIL_FROM_ADDRESS


@pytest.mark.asyncio
async def test_send_email_requires_api_key(monkeypatch):
    monkeypatch.setattr(email_service, "RESEND_API_KEY", None)
    with pytest.raises(email_service.EmailDeliveryError):
        await email_service.send_email("alex@example.com", "Hi", "<mjml></mjml>")


@pytest.mark.asyncio
async def test_send_gift_card_email_goes_through_resend(monkeypatch):
    sent = []
    monkeypatch.setattr(email_service, "RESEND_API_KEY", "re_test")
    monkeypatch.setattr(email_service, "compile_mjml_to_html", lambda mjml: "<html></html>")
    monkeypatch.setattr(email_service.resend.Emails, "send", lambda params: sent.append(params) or {"id": "email_1"})

    response = await email_service.send_gift_card_received_email(
        to="friend@example.com",
        business_name="Studio Nord",
        gift_card_code="GC-1",
        amount="€25.00",
        sender_name="Alex",
    )

    assert response == {"id": "email_1"}
    assert sent[0]["to"] == ["friend@example.com"]
    assert sent[0]["from"] == "Studio Nord <bookings@buuk.app>"
    assert sent[0]["subject"] == "You received a gift card from Alex"


@pytest.mark.asyncio
async def test_resend_failure_is_wrapped(monkeypatch):
    def failing_send(params):
        raise RuntimeError("rate limited")

    monkeypatch.setattr(email_service, "RESEND_API_KEY", "re_test")
    monkeypatch.setattr(email_service, "compile_mjml_to_html", lambda mjml: "<html></html>")
    monkeypatch.setattr(email_service.resend.Emails, "send", failing_send)

    with pytest.raises(email_service.EmailDeliveryError):
        await email_service.send_email("alex@example.com", "Hi", "<mjml></mjml>")
