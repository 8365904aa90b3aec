"""
MJML Email Templates
Transactional emails sent on behalf of a business, using MJML for responsive,
cross-client compatibility
"""

from html import escape
from typing import Optional

# Buuk theme colors
THEME = {
    "primary": "#6366f1",
    "primary_dark": "#4f46e5",
    "background": "#f8fafc",
    "card_bg": "#ffffff",
    "text_primary": "#0f172a",
    "text_secondary": "#334155",
    "text_muted": "#64748b",
    "border": "#e2e8f0",
    "success": "#10b981",
}


def get_base_template(
    title: str,
    preview_text: str,
    content_sections: str,
    business_name: str,
    cta_url: Optional[str] = None,
    cta_label: Optional[str] = None,
) -> str:
    """Base MJML template wrapper for all emails"""

    cta_section = ""
    if cta_url and cta_label:
        cta_section = f"""
        <mj-section padding="20px 0">
          <mj-column>
            <mj-button
              href="{cta_url}"
              background-color="{THEME['primary']}"
              color="#ffffff"
              font-weight="600"
              border-radius="8px"
              padding="18px 40px"
              font-size="16px">
              {cta_label}
            </mj-button>
          </mj-column>
        </mj-section>
        """

    return f"""
    <mjml>
      <mj-head>
        <mj-title>{title}</mj-title>
        <mj-preview>{preview_text}</mj-preview>
        <mj-attributes>
          <mj-all font-family="-apple-system, BlinkMacSystemFont, 'Segoe UI', 'Helvetica Neue', Arial, sans-serif" />
          <mj-text font-size="16px" line-height="1.6" color="{THEME['text_secondary']}" />
        </mj-attributes>
      </mj-head>
      <mj-body background-color="{THEME['background']}">
        <mj-section background-color="#ffffff" padding="32px 20px 0 20px">
          <mj-column>
            <mj-text font-size="20px" font-weight="700" color="{THEME['text_primary']}" align="center">
              {escape(business_name)}
            </mj-text>
            <mj-divider border-color="{THEME['border']}" border-width="1px" padding="16px 0 24px 0" />
          </mj-column>
        </mj-section>

        <!-- Main Content -->
        <mj-section background-color="#ffffff" padding="0 40px 48px 40px">
          <mj-column>
            <mj-text font-size="24px" font-weight="600" color="{THEME['text_primary']}" line-height="1.3" padding="0 0 16px 0">
              {title}
            </mj-text>

            {content_sections}
          </mj-column>
        </mj-section>

        {cta_section}

        <!-- Footer -->
        <mj-section padding="32px 20px">
          <mj-column>
            <mj-text align="center" font-size="13px" color="#94a3b8" padding="0">
              Powered by Buuk
            </mj-text>
          </mj-column>
        </mj-section>
      </mj-body>
    </mjml>
    """


def _detail_rows(rows: list[tuple[str, str]]) -> str:
    cells = "".join(
        f"""
        <tr>
          <td style="padding: 6px 0; color: {THEME['text_muted']};">{label}</td>
          <td style="padding: 6px 0; color: {THEME['text_primary']}; font-weight: 600;">{escape(value)}</td>
        </tr>"""
        for label, value in rows
        if value
    )
    return f"""
    <mj-table padding="8px 0 20px 0">
      {cells}
    </mj-table>
    """


def booking_confirmation_template(
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
) -> str:
    """Booking confirmed (payment settled or pay-in-person booking)"""
    details = _detail_rows(
        [
            ("Service", service_name),
            ("Specialist", specialist_name),
            ("Date", booking_date),
            ("Time", f"{booking_time} - {booking_end_time}"),
            ("Price", service_price),
            ("Address", business_address),
            ("Phone", business_phone),
        ]
    )
    content = f"""
    <mj-text>
      Hi {escape(customer_name)},
    </mj-text>

    <mj-text>
      Your appointment at <strong>{escape(business_name)}</strong> is confirmed.
    </mj-text>

    {details}

    <mj-text font-size="14px" color="{THEME['text_muted']}">
      Need to change plans? You can cancel your booking using the link below.
    </mj-text>
    """

    return get_base_template(
        title="Your booking is confirmed ✓",
        preview_text=f"Booking confirmed - {business_name}",
        content_sections=content,
        business_name=business_name,
        cta_url=cancellation_link,
        cta_label="Manage booking" if cancellation_link else None,
    )


def booking_reminder_template(
    customer_name: str,
    business_name: str,
    service_name: str,
    specialist_name: str,
    booking_date: str,
    booking_time: str,
    business_address: str = "",
) -> str:
    """Reminder sent the day before an appointment"""
    details = _detail_rows(
        [
            ("Service", service_name),
            ("Specialist", specialist_name),
            ("Address", business_address),
        ]
    )
    content = f"""
    <mj-text>
      Hi {escape(customer_name)},
    </mj-text>

    <mj-text>
      This is a friendly reminder of your appointment tomorrow at <strong>{escape(business_name)}</strong>.
    </mj-text>

    <mj-text align="center" font-size="16px" color="{THEME['text_primary']}" padding="20px 0 0 0">
      📅 {booking_date}
    </mj-text>

    <mj-text align="center" font-size="16px" color="{THEME['text_primary']}" padding="0 0 20px 0">
      ⏰ {booking_time}
    </mj-text>

    {details}
    """

    return get_base_template(
        title="See you tomorrow!",
        preview_text=f"Appointment reminder - {business_name}",
        content_sections=content,
        business_name=business_name,
    )


def gift_card_received_template(
    business_name: str,
    gift_card_code: str,
    amount: str,
    sender_name: str,
    message: str = "",
    expires_at: Optional[str] = None,
) -> str:
    """Gift card delivered to its recipient"""
    message_section = ""
    if message:
        message_section = f"""
    <mj-text font-style="italic" color="{THEME['text_secondary']}" padding="0 0 20px 0">
      "{escape(message)}"
    </mj-text>
    """

    expiry_section = ""
    if expires_at:
        expiry_section = f"""
    <mj-text font-size="14px" color="{THEME['text_muted']}">
      Valid until {expires_at}.
    </mj-text>
    """

    content = f"""
    <mj-text>
      <strong>{escape(sender_name)}</strong> sent you a gift card for <strong>{escape(business_name)}</strong>.
    </mj-text>

    {message_section}

    <mj-text align="center" font-size="32px" font-weight="700" color="{THEME['success']}" padding="20px 0 0 0">
      {amount}
    </mj-text>

    <mj-text align="center" font-size="20px" letter-spacing="3px" color="{THEME['text_primary']}" padding="8px 0 20px 0">
      {escape(gift_card_code)}
    </mj-text>

    <mj-text>
      Enter this code when booking to redeem your gift card.
    </mj-text>

    {expiry_section}
    """

    return get_base_template(
        title="You received a gift card 🎁",
        preview_text=f"A gift card for {business_name}",
        content_sections=content,
        business_name=business_name,
    )
