"""
Outbound e-mail via the Resend HTTP API.

In demo mode (EMAIL_DEMO_MODE, the default) nothing is sent: the message is
logged so confirmation codes can be read from the server log.
"""
from __future__ import annotations

import html
import logging
from dataclasses import dataclass, field

import httpx

from app.config import settings

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    pass


@dataclass
class ReminderEmail:
    recipient_email: str
    policy_title: str
    portal_name: str
    policy_url: str
    custom_message: str | None = None


@dataclass
class BulkSendResult:
    sent: int = 0
    failed: int = 0
    errors: list[dict] = field(default_factory=list)


async def send_email(to: str, subject: str, text: str, html_body: str) -> None:
    if settings.EMAIL_DEMO_MODE:
        logger.info("[DEMO MODE] Email to %s | %s\n%s", to, subject, text)
        return

    if not settings.RESEND_API_KEY:
        raise EmailDeliveryError("RESEND_API_KEY is not configured")

    payload = {
        "from": settings.EMAIL_FROM,
        "to": [to],
        "subject": subject,
        "text": text,
        "html": html_body,
    }
    try:
        async with httpx.AsyncClient(timeout=30) as client:
            resp = await client.post(
                f"{settings.RESEND_ENDPOINT.rstrip('/')}/emails",
                json=payload,
                headers={"Authorization": f"Bearer {settings.RESEND_API_KEY}"},
            )
            resp.raise_for_status()
    except httpx.HTTPError as exc:
        logger.error("Resend delivery to %s failed: %s", to, exc)
        raise EmailDeliveryError("Failed to send email") from exc

    logger.info("Email '%s' sent to %s", subject, to)


async def send_confirmation_code(to: str, code: str) -> None:
    ttl = settings.ACK_CODE_TTL_MINUTES
    await send_email(
        to,
        "Policy Acknowledgment Confirmation Code",
        f"Your confirmation code is: {code}. This code will expire in {ttl} minutes.",
        f"<p>Your confirmation code is: <strong>{code}</strong>. "
        f"This code will expire in {ttl} minutes.</p>",
    )


def _reminder_bodies(r: ReminderEmail) -> tuple[str, str]:
    lines = [
        f"This is a reminder to review and acknowledge the policy \"{r.policy_title}\" "
        f"in {r.portal_name}.",
    ]
    if r.custom_message:
        lines.append(r.custom_message)
    lines.append(f"Open the policy: {r.policy_url}")
    text = "\n\n".join(lines)

    parts = [f"<p>{html.escape(line)}</p>" for line in lines[:-1]]
    parts.append(f'<p><a href="{html.escape(r.policy_url, quote=True)}">Review and acknowledge the policy</a></p>')
    return text, "".join(parts)


async def send_policy_reminders(reminders: list[ReminderEmail]) -> BulkSendResult:
    """Send reminders one by one; a failure is counted, not raised."""
    result = BulkSendResult()
    for r in reminders:
        text, html_body = _reminder_bodies(r)
        try:
            await send_email(r.recipient_email, f"Reminder: please acknowledge \"{r.policy_title}\"", text, html_body)
        except EmailDeliveryError as exc:
            result.failed += 1
            result.errors.append({"email": r.recipient_email, "error": str(exc)})
            continue
        result.sent += 1
    return result
