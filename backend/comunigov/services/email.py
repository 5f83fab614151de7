"""
Email channel for ComuniGov.

In debug mode messages are appended to ``EMAIL_LOG_PATH`` instead of being
sent. Otherwise they go out through SMTP (implicit SSL on port 465,
STARTTLS when ``SMTP_TLS`` is set), with files attached.
"""
import asyncio
import logging
import mimetypes
import smtplib
import ssl
from dataclasses import dataclass
from datetime import datetime
from email.message import EmailMessage
from email.utils import formataddr
from pathlib import Path
from typing import Optional

from comunigov.core.config import settings

logger = logging.getLogger(__name__)


@dataclass
class Attachment:
    """File on disk to attach to an outgoing email."""
    filename: str
    path: str
    content_type: Optional[str] = None


class EmailService:
    """
    Email service for sending notifications.

    In development mode, emails are logged to a file.
    In production, SMTP settings are required.
    """

    def __init__(self):
        self.from_email = settings.SMTP_SENDER
        self.from_name = settings.SMTP_SENDER_NAME
        self.site_url = settings.SITE_URL
        self.debug = settings.DEBUG
        self.email_log_path = Path(settings.EMAIL_LOG_PATH)

    def _log_email(
        self,
        to: str,
        subject: str,
        body: str,
        html: Optional[str] = None,
        attachments: Optional[list[Attachment]] = None
    ):
        """Log email to file for development/testing."""
        timestamp = datetime.now().isoformat()
        log_entry = f"""
================================================================================
EMAIL SENT: {timestamp}
================================================================================
TO: {to}
FROM: {self.from_name} <{self.from_email}>
SUBJECT: {subject}
--------------------------------------------------------------------------------
BODY:
{body}
--------------------------------------------------------------------------------
"""
        if html:
            log_entry += f"""
HTML:
{html}
--------------------------------------------------------------------------------
"""
        if attachments:
            names = ", ".join(a.filename for a in attachments)
            log_entry += f"ATTACHMENTS: {names}\n"

        self.email_log_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.email_log_path, "a", encoding="utf-8") as f:
            f.write(log_entry)

        logger.info("Email logged: to=%s, subject=%s", to, subject)

    def _build_message(
        self,
        to: str,
        subject: str,
        body: str,
        html: Optional[str],
        attachments: Optional[list[Attachment]]
    ) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = formataddr((self.from_name, self.from_email))
        message["To"] = to
        message.set_content(body)
        if html:
            message.add_alternative(html, subtype="html")

        for attachment in attachments or []:
            path = Path(attachment.path)
            if not path.exists():
                logger.warning("Attachment missing on disk: %s", path)
                continue
            content_type = attachment.content_type or mimetypes.guess_type(attachment.filename)[0]
            maintype, _, subtype = (content_type or "application/octet-stream").partition("/")
            message.add_attachment(
                path.read_bytes(),
                maintype=maintype,
                subtype=subtype or "octet-stream",
                filename=attachment.filename,
            )
        return message

    def _send_smtp(self, message: EmailMessage) -> None:
        if not settings.SMTP_HOST:
            raise RuntimeError("SMTP_HOST is not configured")

        context = ssl.create_default_context()
        if settings.SMTP_PORT == 465:
            server = smtplib.SMTP_SSL(settings.SMTP_HOST, settings.SMTP_PORT, context=context, timeout=30)
        else:
            server = smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=30)
        with server:
            if settings.SMTP_PORT != 465 and settings.SMTP_TLS:
                server.starttls(context=context)
            if settings.SMTP_USERNAME and settings.SMTP_PASSWORD:
                server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
            server.send_message(message)

    async def send_email(
        self,
        to: str,
        subject: str,
        body: str,
        html: Optional[str] = None,
        attachments: Optional[list[Attachment]] = None
    ) -> bool:
        """
        Send an email.

        Returns:
            True if email was sent/logged successfully
        """
        try:
            if self.debug:
                self._log_email(to, subject, body, html, attachments)
                return True

            message = self._build_message(to, subject, body, html, attachments)
            await asyncio.to_thread(self._send_smtp, message)
            logger.info("Email sent: to=%s, subject=%s", to, subject)
            return True

        except (OSError, smtplib.SMTPException, RuntimeError) as e:
            logger.error("Failed to send email to %s: %s", to, e)
            return False

    def _wrap_html(self, title: str, inner: str) -> str:
        return f"""
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <style>
        body {{ font-family: 'Segoe UI', Arial, sans-serif; line-height: 1.6; color: #333; }}
        .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
        .logo {{ font-size: 24px; font-weight: bold; color: #1d4ed8; text-align: center; }}
        .content {{ background: #f8fafc; border-radius: 12px; padding: 30px; margin: 20px 0; }}
        .footer {{ text-align: center; color: #64748b; font-size: 14px; }}
    </style>
</head>
<body>
    <div class="container">
        <div class="logo">ComuniGov</div>
        <div class="content">
            <h2>{title}</h2>
            {inner}
        </div>
        <div class="footer"><p>ComuniGov - {self.site_url}</p></div>
    </div>
</body>
</html>
"""

    async def send_communication_email(
        self,
        to: str,
        recipient_name: str,
        sender_name: str,
        subject: str,
        content: str,
        attachments: Optional[list[Attachment]] = None
    ) -> bool:
        """Deliver a communication by email, with its files attached."""
        body = f"""Hello {recipient_name},

You have received a message from {sender_name}.

{content}
"""
        if attachments:
            body += f"\nThis message has {len(attachments)} attachment(s).\n"
        body += f"\nComuniGov - {self.site_url}\n"

        paragraphs = "".join(f"<p>{line}</p>" for line in content.splitlines() if line.strip())
        html = self._wrap_html(
            subject,
            f"<p>Hello {recipient_name},</p>"
            f"<p>You have received a message from <strong>{sender_name}</strong>.</p>"
            f"{paragraphs}"
        )
        return await self.send_email(to, f"ComuniGov: {subject}", body, html, attachments)

    async def send_meeting_invitation(
        self,
        to: str,
        recipient_name: str,
        meeting_name: str,
        meeting_date: datetime,
        start_time: str,
        end_time: str,
        agenda: str,
        location: Optional[str] = None,
        organizer_name: Optional[str] = None
    ) -> bool:
        """Invite an attendee to a meeting."""
        formatted_date = meeting_date.strftime("%d/%m/%Y")
        subject = f"Meeting invitation: {meeting_name}"
        body = f"""Hello {recipient_name},

You have been invited to a meeting{f' by {organizer_name}' if organizer_name else ''}.

Meeting: {meeting_name}
Date: {formatted_date}
Time: {start_time} - {end_time}
Location: {location or 'To be defined'}

Agenda:
{agenda}

Log in to ComuniGov to confirm your attendance: {self.site_url}
"""
        html = self._wrap_html(
            "Meeting invitation",
            f"<p>Hello {recipient_name},</p>"
            f"<p><strong>Meeting:</strong> {meeting_name}</p>"
            f"<p><strong>Date:</strong> {formatted_date}</p>"
            f"<p><strong>Time:</strong> {start_time} - {end_time}</p>"
            f"<p><strong>Location:</strong> {location or 'To be defined'}</p>"
            f"<p><strong>Agenda:</strong><br>{agenda}</p>"
        )
        return await self.send_email(to, subject, body, html)

    async def send_welcome_email(
        self,
        to: str,
        full_name: str,
        username: str,
        password: str,
        entity_name: Optional[str] = None
    ) -> bool:
        """Send login credentials to a newly created user."""
        subject = "Welcome to ComuniGov"
        body = f"""Hello {full_name},

An account was created for you{f' at {entity_name}' if entity_name else ''}.

Username: {username}
Temporary password: {password}

You will be asked to change your password on first login.
Access: {self.site_url}
"""
        html = self._wrap_html(
            "Welcome to ComuniGov",
            f"<p>Hello {full_name},</p>"
            f"<p>An account was created for you{f' at <strong>{entity_name}</strong>' if entity_name else ''}.</p>"
            f"<p><strong>Username:</strong> {username}<br>"
            f"<strong>Temporary password:</strong> {password}</p>"
            f"<p>You will be asked to change your password on first login.</p>"
        )
        return await self.send_email(to, subject, body, html)

    async def send_password_reset_email(
        self,
        to: str,
        full_name: str,
        username: str,
        password: str
    ) -> bool:
        """Send a password set by an administrator."""
        subject = "ComuniGov: your password was reset"
        body = f"""Hello {full_name},

Your password was reset by an administrator.

Username: {username}
New password: {password}

You will be asked to change it on your next login.
Access: {self.site_url}
"""
        return await self.send_email(to, subject, body)


# Singleton instance
email_service = EmailService()
