from __future__ import annotations

import logging
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import Protocol

from hirebit.config import Settings, get_settings
from hirebit.types import OutboundEmail

logger = logging.getLogger(__name__)


class MailTransport(Protocol):
    def send(self, message: OutboundEmail) -> bool: ...


def build_message(message: OutboundEmail, *, sender: str, sender_name: str) -> EmailMessage:
    email = EmailMessage()
    email["From"] = formataddr((sender_name, sender))
    email["To"] = message.to
    email["Subject"] = message.subject
    email["Message-ID"] = make_msgid(domain=sender.rpartition("@")[2] or None)
    if message.reply_to:
        email["Reply-To"] = message.reply_to

    email.set_content(message.text)
    if message.html:
        email.add_alternative(message.html, subtype="html")

    for attachment in message.attachments:
        maintype, _, subtype = attachment.content_type.partition("/")
        email.add_attachment(
            attachment.content,
            maintype=maintype or "application",
            subtype=subtype or "octet-stream",
            filename=attachment.filename,
        )
    return email


class SMTPTransport:
    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    @property
    def configured(self) -> bool:
        return bool(self.settings.smtp_host)

    def send(self, message: OutboundEmail) -> bool:
        """Send one message. Returns False when no SMTP host is configured; raises on delivery errors."""
        if not self.configured:
            logger.warning("SMTP_HOST not set; dropping email to=%s subject=%r", message.to, message.subject)
            return False

        email = build_message(
            message,
            sender=self.settings.mail_from,
            sender_name=self.settings.mail_from_name,
        )
        timeout = float(self.settings.smtp_timeout_sec)
        if self.settings.smtp_use_ssl:
            server = smtplib.SMTP_SSL(
                self.settings.smtp_host,
                self.settings.smtp_port,
                timeout=timeout,
                context=ssl.create_default_context(),
            )
        else:
            server = smtplib.SMTP(self.settings.smtp_host, self.settings.smtp_port, timeout=timeout)

        with server:
            if self.settings.smtp_starttls and not self.settings.smtp_use_ssl:
                server.starttls(context=ssl.create_default_context())
            if self.settings.smtp_user and self.settings.smtp_password:
                server.login(self.settings.smtp_user, self.settings.smtp_password)
            server.send_message(email)

        logger.info("Email sent to=%s subject=%r", message.to, message.subject)
        return True
