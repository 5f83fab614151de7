"""
WhatsApp channel via CallMeBot (HTTP GET) or Twilio (HTTP POST).

Disabled unless ``WHATSAPP_ENABLED`` is set.
"""
import logging
import re
from typing import Optional

import httpx

from comunigov.core.config import settings
from comunigov.schemas.communication import DeliveryResult

logger = logging.getLogger(__name__)

CALLMEBOT_API_URL = "https://api.callmebot.com/whatsapp.php"
TWILIO_API_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"

MIN_DIGITS = 11


def normalize_number(phone: Optional[str], with_plus: bool = False) -> str:
    """Strip everything but digits; prefix ``+`` when asked (Twilio)."""
    digits = re.sub(r"\D", "", phone or "")
    if with_plus and digits:
        return "+" + digits
    return digits


def is_valid_number(phone: Optional[str]) -> bool:
    return len(normalize_number(phone)) >= MIN_DIGITS


def format_whatsapp_message(
    recipient_name: str,
    sender_name: str,
    subject: str,
    content: str,
    has_attachments: bool = False
) -> str:
    lines = [
        f"*ComuniGov: {subject}*",
        "",
        f"Hello {recipient_name},",
        "",
        f"You have received a message from {sender_name}.",
        "",
        "*Message:*",
        content,
        "",
    ]
    if has_attachments:
        lines += ["This message has attachments. Please log in to ComuniGov to view them.", ""]
    lines.append(settings.SITE_URL)
    return "\n".join(lines)


async def _send_callmebot(client: httpx.AsyncClient, number: str, text: str) -> DeliveryResult:
    if not settings.CALLMEBOT_API_KEY:
        return DeliveryResult(channel="whatsapp", success=False, recipient=number,
                              error="CallMeBot API key is not configured")

    response = await client.get(
        CALLMEBOT_API_URL,
        params={"phone": number, "text": text, "apikey": settings.CALLMEBOT_API_KEY},
    )
    # CallMeBot answers 200 with an HTML page; failures carry "ERROR" in the body
    if response.status_code != 200 or "ERROR" in response.text.upper():
        return DeliveryResult(channel="whatsapp", success=False, recipient=number,
                              error=f"CallMeBot rejected the message (HTTP {response.status_code})")
    return DeliveryResult(channel="whatsapp", success=True, recipient=number)


async def _send_twilio(client: httpx.AsyncClient, number: str, text: str) -> DeliveryResult:
    sid = settings.TWILIO_ACCOUNT_SID
    token = settings.TWILIO_AUTH_TOKEN
    sender = settings.TWILIO_WHATSAPP_NUMBER
    if not (sid and token and sender):
        return DeliveryResult(channel="whatsapp", success=False, recipient=number,
                              error="Twilio credentials are not configured")

    response = await client.post(
        TWILIO_API_URL.format(sid=sid),
        auth=(sid, token),
        data={
            "From": f"whatsapp:{normalize_number(sender, with_plus=True)}",
            "To": f"whatsapp:{number}",
            "Body": text,
        },
    )
    if response.status_code >= 400:
        return DeliveryResult(channel="whatsapp", success=False, recipient=number,
                              error=f"Twilio error (HTTP {response.status_code})")
    return DeliveryResult(channel="whatsapp", success=True, recipient=number,
                          message_id=response.json().get("sid"))


async def send_whatsapp_message(
    to: str,
    recipient_name: str,
    sender_name: str,
    subject: str,
    content: str,
    has_attachments: bool = False
) -> DeliveryResult:
    """Send a communication over WhatsApp. Never raises."""
    if not settings.WHATSAPP_ENABLED:
        logger.info("WhatsApp messaging is disabled; skipping %s", recipient_name)
        return DeliveryResult(channel="whatsapp", success=False, recipient=to,
                              error="WhatsApp messaging is disabled")

    if not is_valid_number(to):
        logger.warning("Invalid WhatsApp number for %s", recipient_name)
        return DeliveryResult(channel="whatsapp", success=False, recipient=to,
                              error=f"Invalid WhatsApp number: {to}")

    provider = settings.WHATSAPP_PROVIDER.lower()
    number = normalize_number(to, with_plus=(provider == "twilio"))
    text = format_whatsapp_message(recipient_name, sender_name, subject, content, has_attachments)

    try:
        async with httpx.AsyncClient(timeout=settings.MESSAGING_TIMEOUT) as client:
            if provider == "twilio":
                result = await _send_twilio(client, number, text)
            elif provider == "callmebot":
                result = await _send_callmebot(client, number, text)
            else:
                result = DeliveryResult(channel="whatsapp", success=False, recipient=number,
                                        error=f"Unknown WhatsApp provider: {provider}")
    except (httpx.HTTPError, ValueError) as e:
        logger.error("WhatsApp request to %s failed: %s", provider, e)
        return DeliveryResult(channel="whatsapp", success=False, recipient=number, error=str(e))

    if result.success:
        logger.info("WhatsApp message sent to %s via %s", recipient_name, provider)
    else:
        logger.warning("WhatsApp message to %s failed: %s", recipient_name, result.error)
    return result
