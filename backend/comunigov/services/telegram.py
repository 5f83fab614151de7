"""
Telegram channel through the Bot API ``sendMessage`` method.
"""
import logging
import re

import httpx

from comunigov.core.config import settings
from comunigov.schemas.communication import DeliveryResult

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org/bot{token}/sendMessage"

USERNAME_RE = re.compile(r"^@?[A-Za-z][A-Za-z0-9_]{4,31}$")
CHAT_ID_RE = re.compile(r"^-?\d+$")
MARKDOWN_SPECIAL_RE = re.compile(r"([_*\[\]()~`>#+\-=|{}.!\\])")


def is_valid_identifier(value: str) -> bool:
    """Username (optionally with ``@``) or numeric chat id."""
    value = (value or "").strip()
    return bool(USERNAME_RE.match(value) or CHAT_ID_RE.match(value))


def to_chat_id(value: str) -> str:
    value = value.strip()
    if CHAT_ID_RE.match(value) or value.startswith("@"):
        return value
    return "@" + value


def escape_markdown(text: str) -> str:
    """Escape MarkdownV2 reserved characters."""
    return MARKDOWN_SPECIAL_RE.sub(r"\\\1", text)


def format_telegram_message(
    recipient_name: str,
    sender_name: str,
    subject: str,
    content: str,
    has_attachments: bool = False
) -> str:
    message = f"*ComuniGov: {escape_markdown(subject)}*\n\n"
    message += f"Hello {escape_markdown(recipient_name)},\n\n"
    message += f"You have received a message from *{escape_markdown(sender_name)}*\\.\n\n"
    message += f"*Message:*\n{escape_markdown(content)}\n\n"
    if has_attachments:
        message += "_This message has attachments\\. Please log in to ComuniGov to view them\\._\n\n"
    message += escape_markdown(settings.SITE_URL)
    return message


async def send_telegram_message(
    to: str,
    recipient_name: str,
    sender_name: str,
    subject: str,
    content: str,
    has_attachments: bool = False
) -> DeliveryResult:
    """Send a communication over Telegram. Never raises."""
    if not settings.TELEGRAM_ENABLED:
        logger.info("Telegram messaging is disabled; skipping %s", recipient_name)
        return DeliveryResult(channel="telegram", success=False, recipient=to,
                              error="Telegram messaging is disabled")
    if not settings.TELEGRAM_BOT_TOKEN:
        return DeliveryResult(channel="telegram", success=False, recipient=to,
                              error="Telegram bot token is not configured")
    if not is_valid_identifier(to):
        logger.warning("Invalid Telegram identifier for %s", recipient_name)
        return DeliveryResult(channel="telegram", success=False, recipient=to,
                              error=f"Invalid Telegram identifier: {to}")

    payload = {
        "chat_id": to_chat_id(to),
        "text": format_telegram_message(recipient_name, sender_name, subject, content, has_attachments),
        "parse_mode": "MarkdownV2",
    }
    try:
        async with httpx.AsyncClient(timeout=settings.MESSAGING_TIMEOUT) as client:
            response = await client.post(
                TELEGRAM_API_URL.format(token=settings.TELEGRAM_BOT_TOKEN),
                json=payload,
            )
        data = response.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.error("Telegram request failed: %s", e)
        return DeliveryResult(channel="telegram", success=False, recipient=to, error=str(e))

    if not data.get("ok"):
        error = data.get("description") or f"HTTP {response.status_code}"
        logger.warning("Telegram message to %s failed: %s", recipient_name, error)
        return DeliveryResult(channel="telegram", success=False, recipient=to, error=error)

    logger.info("Telegram message sent to %s", recipient_name)
    message_id = data.get("result", {}).get("message_id")
    return DeliveryResult(channel="telegram", success=True, recipient=to,
                          message_id=str(message_id) if message_id is not None else None)
