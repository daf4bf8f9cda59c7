"""Outbound email via the Resend HTTP API.

Delivery is fire-and-forget: failures are logged and never raised, so
endpoints schedule these coroutines as background tasks.
"""

import logging

import httpx

from notekeep.core.config import settings

logger = logging.getLogger(__name__)

_RESEND_API_URL = "https://api.resend.com/emails"
_RESEND_TIMEOUT = 10.0


async def send_email(*, to: str, subject: str, text: str) -> bool:
    """Send a plain-text email.

    Returns:
        True if Resend accepted the message.
    """
    api_key = settings.resend_api_key.get_secret_value()
    if not api_key:
        logger.warning(
            "RESEND_API_KEY not set; email not sent",
            extra={"subject": subject},
        )
        return False

    try:
        async with httpx.AsyncClient() as client:
            resp = await client.post(
                _RESEND_API_URL,
                headers={"Authorization": f"Bearer {api_key}"},
                json={
                    "from": settings.email_from,
                    "to": to,
                    "subject": subject,
                    "text": text,
                },
                timeout=_RESEND_TIMEOUT,
            )
            resp.raise_for_status()
    except httpx.HTTPError:
        logger.warning(
            "Failed to send email", extra={"subject": subject}, exc_info=True
        )
        return False
    return True


def _format_validity(seconds: int) -> str:
    if seconds >= 60 and seconds % 60 == 0:
        minutes = seconds // 60
        return f"{minutes} minute" if minutes == 1 else f"{minutes} minutes"
    return f"{seconds} seconds"


async def send_verification_code_email(
    *, to: str, subject: str, code: str, verify_url: str, expires_in: int
) -> bool:
    """Send a one-time code with a link that pre-fills it.

    Args:
        expires_in: Code validity in seconds, rendered in the message.
    """
    text = (
        f"Your verification code is: {code}\n\n"
        f"Or open this link to verify:\n\n{verify_url}\n\n"
        f"The code expires in {_format_validity(expires_in)}. "
        "If you didn't request this, you can safely ignore this email."
    )
    return await send_email(to=to, subject=subject, text=text)


async def send_email_changed_notice(*, to: str, new_email: str) -> bool:
    """Tell the previous address that the account email was changed."""
    text = (
        f"The email address on your Notekeep account was changed to {new_email}.\n\n"
        "If you did not make this change, contact support immediately."
    )
    return await send_email(
        to=to, subject="Your Notekeep email has changed", text=text
    )
