import asyncio
import html
import logging
import re
from email.message import EmailMessage
from typing import Optional

import aiosmtplib

from ..core.config import settings

logger = logging.getLogger(__name__)

_NAME_PLACEHOLDER = re.compile(r"\{\{\s*name\s*\}\}")


def email_configured() -> bool:
    return bool(settings.EMAIL_ENABLED and settings.SMTP_HOST)


async def _send_async(msg: EmailMessage) -> None:
    await aiosmtplib.send(
        msg,
        hostname=settings.SMTP_HOST,
        port=settings.SMTP_PORT,
        username=settings.SMTP_USERNAME or None,
        password=settings.SMTP_PASSWORD or None,
        start_tls=bool(settings.SMTP_USERNAME),
    )


def personalize(body: str, full_name: Optional[str]) -> str:
    """Replace ``{{name}}`` with the recipient's first name."""
    first = (full_name or "").strip().split(" ")[0] if full_name else ""
    return _NAME_PLACEHOLDER.sub(first or "there", body)


def render_branded_html(body: str) -> str:
    """Wrap plain text in the Ziyawa email shell, keeping line breaks."""
    content = html.escape(body).replace("\n", "<br>")
    return (
        '<div style="font-family: sans-serif; max-width: 600px; margin: 0 auto;">'
        '<div style="padding: 20px; background-color: #f5f5f5;">'
        f'<h1 style="color: #333; margin: 0;">{html.escape(settings.APP_NAME)}</h1>'
        "</div>"
        f'<div style="padding: 20px;">{content}</div>'
        '<div style="padding: 20px; background-color: #f5f5f5; font-size: 12px; color: #666;">'
        f"<p>This email was sent from {html.escape(settings.APP_NAME)}. "
        "If you did not expect this email, please ignore it.</p>"
        "</div></div>"
    )


def send_email(recipient: str, subject: str, body: str, html_body: Optional[str] = None) -> bool:
    """Send an email via SMTP and log failures. Returns True on success."""
    if not email_configured():
        logger.warning("Email disabled; not sending '%s' to %s", subject, recipient)
        return False
    msg = EmailMessage()
    msg["From"] = settings.SMTP_FROM
    msg["To"] = recipient
    msg["Subject"] = subject
    msg.set_content(body)
    if html_body:
        msg.add_alternative(html_body, subtype="html")
    try:
        asyncio.run(_send_async(msg))
    except (aiosmtplib.SMTPException, OSError) as exc:  # pragma: no cover - network issues
        logger.error("Failed to send email to %s: %s", recipient, exc)
        return False
    logger.info("Sent email to %s", recipient)
    return True


def send_branded_email(recipient: str, subject: str, body: str) -> bool:
    return send_email(recipient, subject, body, html_body=render_branded_html(body))
