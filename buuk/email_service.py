"""
Transactional email service using Resend
Emails are written as MJML templates and compiled to responsive HTML
"""

import logging
from email.utils import parseaddr
from typing import Optional, Union

import resend
from mjml import mjml2html as mjml_to_html

from .config import EMAIL_FROM_ADDRESS, RESEND_API_KEY
from .email_templates import (
    booking_confirmation_template,
    booking_reminder_template,
    gift_card_received_template,
)

logger = logging.getLogger(__name__)

resend.api_key = RESEND_API_KEY


class EmailDeliveryError(Exception):
    """Raised when an email cannot be rendered or sent"""


def get_sender_email(business_name: Optional[str] = None) -> str:
    """Send as the business name from the platform address"""
    if not business_name:
        return EMAIL_FROM_ADDRESS
    _, address = parseaddr(EMAIL_FROM_ADDRESS)
    return f"{business_name} <{address}>"


def compile_mjml_to_html(mjml_content: str) -> str:
    """Compile MJML template to production-ready HTML"""
    try:
        result = mjml_to_html(mjml_content)
    except Exception as e:
        logger.error(f"MJML compilation error: {e}")
        raise EmailDeliveryError(f"Failed to compile MJML template: {e}") from e

    # mjml_to_html returns a mapping with 'html' and 'errors' keys
    if isinstance(result, dict):
        if result.get("errors"):
            logger.warning(f"MJML compilation warnings: {result['errors']}")
        return result.get("html", "")
    return str(result)


async def send_email(
    to: Union[str, list[str]],
    subject: str,
    mjml_content: str,
    from_address: Optional[str] = None,
) -> dict:
    """
    Send an email through Resend

    Args:
        to: Recipient email(s)
        subject: Email subject line
        mjml_content: MJML template content (will be compiled to HTML)
        from_address: Optional custom from address

    Returns:
        Send response dict
    """
    if not RESEND_API_KEY:
        logger.error("❌ No email service configured - RESEND_API_KEY missing")
        raise EmailDeliveryError("Email service not configured")

    html_content = compile_mjml_to_html(mjml_content)
    recipients = [to] if isinstance(to, str) else to

    try:
        logger.info(f"📧 Sending email via Resend to: {recipients}")
        response = resend.Emails.send(
            {
                "from": from_address or EMAIL_FROM_ADDRESS,
                "to": recipients,
                "subject": subject,
                "html": html_content,
            }
        )
        logger.info(f"✅ Email sent successfully via Resend: {response}")
        return response
    except Exception as e:
        logger.error(f"❌ Email send error to {recipients}: {e}")
        raise EmailDeliveryError(f"Failed to send email: {e}") from e


# ============================================
# Booking and gift card emails
# ============================================


async def send_booking_confirmation_email(
    to: str,
    customer_name: str,
    business_name: str,
    service_name: str,
    specialist_name: str,
    booking_date: str,
    booking_time: str,
    booking_end_time: str,
    service_price: str,
    business_address: str = "",
    business_phone: str = "",
    cancellation_link: Optional[str] = None,
) -> dict:
    """Send booking confirmation email to the customer"""
    mjml_content = booking_confirmation_template(
        customer_name=customer_name,
        business_name=business_name,
        service_name=service_name,
        specialist_name=specialist_name,
        booking_date=booking_date,
        booking_time=booking_time,
        booking_end_time=booking_end_time,
        service_price=service_price,
        business_address=business_address,
        business_phone=business_phone,
        cancellation_link=cancellation_link,
    )
    return await send_email(
        to=to,
        subject=f"Booking confirmed - {business_name}",
        mjml_content=mjml_content,
        from_address=get_sender_email(business_name),
    )


async def send_booking_reminder_email(
    to: str,
    customer_name: str,
    business_name: str,
    service_name: str,
    specialist_name: str,
    booking_date: str,
    booking_time: str,
    business_address: str = "",
) -> dict:
    """Send the day-before reminder to the customer"""
    mjml_content = booking_reminder_template(
        customer_name=customer_name,
        business_name=business_name,
        service_name=service_name,
        specialist_name=specialist_name,
        booking_date=booking_date,
        booking_time=booking_time,
        business_address=business_address,
    )
    return await send_email(
        to=to,
        subject=f"Reminder: your appointment tomorrow - {business_name}",
        mjml_content=mjml_content,
        from_address=get_sender_email(business_name),
    )


async def send_gift_card_received_email(
    to: str,
    business_name: str,
    gift_card_code: str,
    amount: str,
    sender_name: str,
    message: str = "",
    expires_at: Optional[str] = None,
) -> dict:
    """Send a purchased gift card to its recipient"""
    mjml_content = gift_card_received_template(
        business_name=business_name,
        gift_card_code=gift_card_code,
        amount=amount,
        sender_name=sender_name,
        message=message,
        expires_at=expires_at,
    )
    return await send_email(
        to=to,
        subject=f"You received a gift card from {sender_name}",
        mjml_content=mjml_content,
        from_address=get_sender_email(business_name),
    )
