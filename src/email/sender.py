from __future__ import annotations

import logging
from dataclasses import dataclass
from html import escape
from typing import Any

import httpx

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


@dataclass(frozen=True)
class EmailTemplate:
    subject: str
    heading: str
    body_text: str
    button_text: str


TEMPLATES: dict[str, EmailTemplate] = {
    "school_verification": EmailTemplate(
        subject="Verify your school email - {center_name}",
        heading="Verify your school email",
        body_text=(
            "Center {center_number} ({center_name}) was registered with this address. "
            "Click the button below to confirm it."
        ),
        button_text="Verify School Email",
    ),
    "admin_verification": EmailTemplate(
        subject="Verify your administrator email",
        heading="Hello {recipient_name}",
        body_text="Click the button below to verify your administrator email address.",
        button_text="Verify Email",
    ),
}


def _render(template: EmailTemplate, variables: dict[str, Any]) -> tuple[str, str, str]:
    safe = {key: escape(str(value)) for key, value in variables.items()}
    link = safe["verification_link"]
    expiry_hours = safe.get("expiry_hours", "24")
    subject = template.subject.format(**variables)
    heading = template.heading.format(**safe)
    body_text = template.body_text.format(**safe)
    expiry_text = f"This link expires in {expiry_hours} hours."
    ignore_text = "If you didn't request this, you can safely ignore this email."

    html = f"""\
<!DOCTYPE html>
<html lang="en">
<head><meta charset="utf-8"></head>
<body style="margin:0;padding:0;background-color:#f4f4f5;font-family:system-ui,-apple-system,sans-serif;">
  <table width="100%" cellpadding="0" cellspacing="0" style="padding:40px 20px;">
    <tr><td align="center">
      <table width="480" cellpadding="0" cellspacing="0"
        style="background:#ffffff;border-radius:12px;padding:40px;max-width:480px;">
        <tr><td style="text-align:center;">
          <h1 style="margin:0 0 16px;font-size:22px;color:#111827;">{heading}</h1>
          <p style="margin:0 0 24px;font-size:15px;line-height:1.6;color:#4b5563;">{body_text}</p>
          <a href="{link}"
             style="display:inline-block;padding:12px 32px;background-color:#166534;color:#ffffff;
                    text-decoration:none;border-radius:8px;font-size:15px;font-weight:600;">
            {template.button_text}
          </a>
          <p style="margin:24px 0 0;font-size:13px;color:#9ca3af;">{expiry_text}</p>
          <p style="margin:8px 0 0;font-size:12px;color:#d1d5db;">{ignore_text}</p>
        </td></tr>
      </table>
    </td></tr>
  </table>
</body>
</html>"""

    plain_text = (
        f"{template.heading.format(**variables)}\n\n"
        f"{template.body_text.format(**variables)}\n{variables['verification_link']}\n\n"
        f"{expiry_text}"
    )
    return subject, html, plain_text


def _resend_id(response: httpx.Response) -> str:
    # A 2xx reply without a JSON id still counts as delivered.
    try:
        body = response.json()
    except ValueError:
        return "unknown"
    if isinstance(body, dict):
        return str(body.get("id", "unknown"))
    return "unknown"


async def send_email(
    *,
    to: str,
    template: str,
    variables: dict[str, Any],
    resend_api_key: str | None,
    email_from: str,
    http_timeout_seconds: float,
) -> bool:
    """Render ``template`` with ``variables`` and deliver it through Resend.

    Returns True if sent (or logged in dev mode), False on failure.
    """
    if template not in TEMPLATES:
        raise ValueError(f"Unknown email template: {template}")

    if not resend_api_key:
        logger.info(
            "Email %s for %s: %s (email sending disabled, no RESEND_API_KEY)",
            template,
            to,
            variables.get("verification_link"),
        )
        return True

    subject, html, plain_text = _render(TEMPLATES[template], variables)
    payload = {
        "from": email_from,
        "to": [to],
        "subject": subject,
        "html": html,
        "text": plain_text,
    }

    try:
        async with httpx.AsyncClient(timeout=http_timeout_seconds) as client:
            response = await client.post(
                RESEND_API_URL,
                json=payload,
                headers={
                    "Authorization": f"Bearer {resend_api_key}",
                    "Content-Type": "application/json",
                },
            )
        if response.status_code >= 400:
            logger.error("Resend API error %d: %s", response.status_code, response.text)
            return False
        logger.info("Email %s sent to %s (Resend ID: %s)", template, to, _resend_id(response))
        return True
    except httpx.HTTPError:
        logger.exception("Failed to send %s email to %s", template, to)
        return False
