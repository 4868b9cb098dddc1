"""Email service for sending transactional emails via Postmark.

Security notes:
- All email headers are sanitized to prevent injection attacks
- Postmark API key stored in environment variables only
- Email addresses validated before sending
- Letter bodies are never sent by email, only titles
"""

import asyncio
import logging
import re
from pathlib import Path
from typing import Any, Dict, Optional

import html2text
from jinja2 import Environment, FileSystemLoader, select_autoescape
from postmarker.core import PostmarkClient

from reindeer_letter.core.config import settings
from reindeer_letter.core.errors import DependencyError

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent.parent.parent / "templates" / "emails"

_template_env = None


def get_template_env() -> Environment:
    """Get or create Jinja2 environment for email templates."""
    global _template_env
    if _template_env is None:
        _template_env = Environment(
            loader=FileSystemLoader(str(TEMPLATE_DIR)),
            autoescape=select_autoescape(["html", "xml"])
        )
    return _template_env


def render_email_template(template_name: str, data: Dict[str, Any]) -> tuple[str, str]:
    """
    Render email template (HTML + text version).

    Args:
        template_name: Template filename (e.g., "letter_delivered.html")
        data: Template variables dict

    Returns:
        Tuple of (html_body, text_body)
    """
    env = get_template_env()
    template = env.get_template(template_name)
    html_body = template.render(**data)

    h = html2text.HTML2Text()
    h.ignore_links = False
    h.ignore_images = True
    h.body_width = 78
    text_body = h.handle(html_body)

    return html_body, text_body


def get_postmark_client() -> PostmarkClient:
    """
    Get Postmark API client instance.

    Raises:
        ValueError: If POSTMARK_API_KEY not configured
    """
    if not settings.POSTMARK_API_KEY:
        raise ValueError("POSTMARK_API_KEY not configured in environment")

    return PostmarkClient(server_token=settings.POSTMARK_API_KEY)


def sanitize_email_header(value: str) -> str:
    """
    Sanitize email header to prevent injection attacks.

    Example:
        >>> sanitize_email_header("user@example.com\\r\\nBcc: attacker@evil.com")
        'user@example.comBcc: attacker@evil.com'
    """
    sanitized = re.sub(r"[\x00-\x1f\x7f]", "", value)
    return sanitized.strip()


def validate_email(email: str) -> bool:
    """Basic email validation."""
    pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"
    return bool(re.match(pattern, email))


def mask_email(email: str) -> str:
    """Mask the local part for logging, e.g. "sen***@example.com"."""
    if "@" not in email:
        return "***@unknown"
    local, domain = email.split("@", 1)
    masked_local = local[:3] + "***" if len(local) > 3 else "***"
    return f"{masked_local}@{domain}"


async def send_email(
    to: str,
    subject: str,
    html_body: str,
    text_body: str,
    from_email: Optional[str] = None,
    tag: Optional[str] = None
) -> bool:
    """
    Send transactional email via Postmark.

    Returns:
        True if email sent successfully, False otherwise

    Security:
        - All headers sanitized before sending
        - Email addresses validated
        - Errors logged but not raised (fail gracefully)
    """

    def _send_email_sync() -> bool:
        """Synchronous email sending function to run in thread pool."""
        to_sanitized = sanitize_email_header(to)
        if not validate_email(to_sanitized):
            logger.warning(f"Invalid email address: {mask_email(to_sanitized)}")
            return False

        try:
            client = get_postmark_client()
            response = client.emails.send(
                From=sanitize_email_header(from_email or settings.FROM_EMAIL),
                To=to_sanitized,
                Subject=sanitize_email_header(subject),
                HtmlBody=html_body,
                TextBody=text_body,
                Tag=tag,
            )
        except Exception as e:
            # Log error (but NOT the email content)
            logger.error(
                f"Failed to send email to {mask_email(to_sanitized)}: {e}",
                extra={"tag": tag}
            )
            return False

        logger.info(
            f"Email sent to {mask_email(to_sanitized)}",
            extra={"tag": tag, "postmark_message_id": response.get("MessageID")}
        )
        return True

    # Postmark client is synchronous, keep it off the event loop
    return await asyncio.to_thread(_send_email_sync)


async def send_letter_notification(to: str, letter_title: str) -> bool:
    """Tell a recipient that a letter has arrived."""
    html_body, text_body = render_email_template(
        "letter_delivered.html",
        {
            "app_name": settings.APP_NAME,
            "letter_title": letter_title,
            "inbox_link": settings.FRONTEND_URL,
        },
    )
    return await send_email(
        to=to,
        subject="A new letter has arrived!",
        html_body=html_body,
        text_body=text_body,
        tag="letter-delivered",
    )


async def send_verification_email(to: str, code: str) -> bool:
    """Send a sign-up verification code."""
    html_body, text_body = render_email_template(
        "verification_code.html",
        {
            "app_name": settings.APP_NAME,
            "code": code,
            "ttl_minutes": settings.VERIFICATION_CODE_TTL_MINUTES,
        },
    )
    return await send_email(
        to=to,
        subject=f"{settings.APP_NAME} email verification",
        html_body=html_body,
        text_body=text_body,
        tag="email-verification",
    )


class EmailNotifier:
    """
    Delivery notifier used by the sweeper.

    Unlike send_email, failures raise DependencyError so the caller decides
    whether to swallow them.
    """

    async def notify_delivery(self, recipient_email: str, letter_title: str) -> None:
        sent = await send_letter_notification(recipient_email, letter_title)
        if not sent:
            raise DependencyError(f"Delivery notification to {mask_email(recipient_email)} failed")
