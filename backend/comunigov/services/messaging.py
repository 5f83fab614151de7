"""
Multi-channel message delivery.

A message is tried on the requested channel first, then on the remaining
channels (email, WhatsApp, Telegram) until one succeeds. Each attempt yields
a ``DeliveryResult``; senders never raise.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from comunigov.models.communication import (
    Communication,
    CommunicationChannel,
    CommunicationFile,
    CommunicationRecipient,
)
from comunigov.models.entity import Entity
from comunigov.models.user import User
from comunigov.schemas.communication import DeliveryResult
from comunigov.services.email import Attachment, email_service
from comunigov.services.storage import resolve_path
from comunigov.services.telegram import send_telegram_message
from comunigov.services.whatsapp import send_whatsapp_message

logger = logging.getLogger(__name__)

FALLBACK_CHANNELS = [
    CommunicationChannel.EMAIL,
    CommunicationChannel.WHATSAPP,
    CommunicationChannel.TELEGRAM,
]


@dataclass
class MessageRecipient:
    """A delivery target with its address on each channel."""
    name: str
    contact_info: dict[str, Optional[str]] = field(default_factory=dict)
    user_id: Optional[str] = None
    entity_id: Optional[str] = None

    @property
    def key(self) -> str:
        return f"{self.user_id or ''}:{self.entity_id or ''}:{self.name}"


def _channel_value(channel) -> str:
    return channel.value if isinstance(channel, CommunicationChannel) else str(channel)


async def send_message(
    channel,
    to: str,
    recipient_name: str,
    sender_name: str,
    subject: str,
    content: str,
    communication_id: Optional[str] = None,
    has_attachments: bool = False,
    attachments: Optional[list[Attachment]] = None,
) -> DeliveryResult:
    """Deliver one message on one channel."""
    name = _channel_value(channel)
    try:
        if name == CommunicationChannel.EMAIL.value:
            ok = await email_service.send_communication_email(
                to, recipient_name, sender_name, subject, content,
                attachments if has_attachments else None
            )
            return DeliveryResult(
                channel=name, success=ok, recipient=to,
                error=None if ok else "Email delivery failed"
            )
        if name == CommunicationChannel.WHATSAPP.value:
            return await send_whatsapp_message(
                to, recipient_name, sender_name, subject, content, has_attachments
            )
        if name == CommunicationChannel.TELEGRAM.value:
            return await send_telegram_message(
                to, recipient_name, sender_name, subject, content, has_attachments
            )
        if name == CommunicationChannel.SYSTEM_NOTIFICATION.value:
            # The recipient row is the notification
            logger.info("System notification for %s (communication %s)", recipient_name, communication_id)
            return DeliveryResult(channel=name, success=True, recipient=to)
    except Exception as e:
        logger.exception("Error sending message via %s", name)
        return DeliveryResult(channel=name, success=False, recipient=to, error=str(e))

    return DeliveryResult(channel=name, success=False, recipient=to, error=f"Unsupported channel: {name}")


async def send_with_fallback(
    channels: list,
    contact_info: dict[str, Optional[str]],
    recipient_name: str,
    sender_name: str,
    subject: str,
    content: str,
    communication_id: Optional[str] = None,
    has_attachments: bool = False,
    attachments: Optional[list[Attachment]] = None,
) -> list[DeliveryResult]:
    """Try channels in order, stopping after the first success."""
    results: list[DeliveryResult] = []
    for channel in channels:
        name = _channel_value(channel)
        to = contact_info.get(name)
        if not to:
            logger.debug("Skipping %s for %s: no contact information", name, recipient_name)
            results.append(DeliveryResult(
                channel=name, success=False,
                error=f"No contact information available for {name}"
            ))
            continue

        result = await send_message(
            name, to, recipient_name, sender_name, subject, content,
            communication_id, has_attachments, attachments
        )
        results.append(result)
        if result.success:
            break
    return results


async def send_to_all(
    recipients: list[MessageRecipient],
    default_channel,
    sender_name: str,
    subject: str,
    content: str,
    communication_id: Optional[str] = None,
    has_attachments: bool = False,
    attachments: Optional[list[Attachment]] = None,
) -> dict[str, list[DeliveryResult]]:
    """Deliver to every recipient: default channel first, then the fallbacks."""
    default = _channel_value(default_channel)
    channels = [default] + [c.value for c in FALLBACK_CHANNELS if c.value != default]

    results: dict[str, list[DeliveryResult]] = {}
    for recipient in recipients:
        results[recipient.key] = await send_with_fallback(
            channels, recipient.contact_info, recipient.name, sender_name,
            subject, content, communication_id, has_attachments, attachments
        )

    delivered = sum(1 for attempts in results.values() if attempts and attempts[-1].success)
    logger.info(
        "Delivered communication %s to %d/%d recipients (default channel %s)",
        communication_id, delivered, len(recipients), default
    )
    return results


def _user_recipient(user: User, entity_id: Optional[str] = None) -> MessageRecipient:
    return MessageRecipient(
        name=user.full_name,
        user_id=user.id,
        entity_id=entity_id,
        contact_info={
            CommunicationChannel.EMAIL.value: user.email,
            CommunicationChannel.WHATSAPP.value: user.whatsapp,
            CommunicationChannel.TELEGRAM.value: user.telegram,
            CommunicationChannel.SYSTEM_NOTIFICATION.value: user.id,
        },
    )


async def expand_recipients(
    db: AsyncSession,
    rows: list[CommunicationRecipient],
) -> list[MessageRecipient]:
    """Turn recipient rows into delivery targets.

    A user row yields the user. An entity row yields the entity head (email
    only) and every user of the entity. Users reached twice are kept once.
    """
    expanded: list[MessageRecipient] = []
    seen_users: set[str] = set()

    for row in rows:
        if row.user_id:
            result = await db.execute(select(User).where(User.id == row.user_id))
            user = result.scalar_one_or_none()
            if user and user.id not in seen_users:
                seen_users.add(user.id)
                expanded.append(_user_recipient(user))
            continue

        if row.entity_id:
            result = await db.execute(select(Entity).where(Entity.id == row.entity_id))
            entity = result.scalar_one_or_none()
            if entity is None:
                continue
            expanded.append(MessageRecipient(
                name=entity.head_name,
                entity_id=entity.id,
                contact_info={CommunicationChannel.EMAIL.value: entity.head_email},
            ))
            members = await db.execute(
                select(User).where(User.entity_id == entity.id, User.is_active.is_(True))
            )
            for user in members.scalars().all():
                if user.id in seen_users:
                    continue
                seen_users.add(user.id)
                expanded.append(_user_recipient(user, entity.id))

    return expanded


def recipients_without_whatsapp(recipients: list[MessageRecipient]) -> list[str]:
    """Names of registered users that have no WhatsApp number."""
    return [
        r.name for r in recipients
        if r.user_id and not r.contact_info.get(CommunicationChannel.WHATSAPP.value)
    ]


async def deliver_communication(
    db: AsyncSession,
    communication: Communication,
    sender: User,
) -> tuple[dict[str, list[DeliveryResult]], list[str]]:
    """Deliver a stored communication to all of its recipients.

    Returns the per-recipient results and, for WhatsApp, the names of users
    without a WhatsApp number.
    """
    rows = await db.execute(
        select(CommunicationRecipient).where(
            CommunicationRecipient.communication_id == communication.id
        )
    )
    recipients = await expand_recipients(db, list(rows.scalars().all()))

    files = await db.execute(
        select(CommunicationFile).where(CommunicationFile.communication_id == communication.id)
    )
    attachments = [
        Attachment(filename=f.name, path=resolve_path(f.file_path), content_type=f.type)
        for f in files.scalars().all()
    ]

    missing_whatsapp: list[str] = []
    if communication.channel == CommunicationChannel.WHATSAPP:
        missing_whatsapp = recipients_without_whatsapp(recipients)

    results = await send_to_all(
        recipients,
        communication.channel,
        sender.full_name,
        communication.subject,
        communication.content,
        communication_id=communication.id,
        has_attachments=communication.has_attachments or bool(attachments),
        attachments=attachments,
    )
    return results, missing_whatsapp
