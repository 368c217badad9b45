from __future__ import annotations

import imaplib
import logging
from dataclasses import dataclass, field
from datetime import datetime
from email import message_from_bytes, policy
from email.message import EmailMessage
from email.utils import parseaddr, parsedate_to_datetime
from typing import Protocol

from bs4 import BeautifulSoup

from hirebit.config import Settings, get_settings

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class MailAttachment:
    filename: str
    content_type: str
    data: bytes


@dataclass(slots=True)
class InboundMessage:
    uid: str
    sender_email: str
    sender_name: str = ""
    subject: str = ""
    body_text: str = ""
    message_id: str = ""
    received_at: datetime | None = None
    attachments: list[MailAttachment] = field(default_factory=list)

    @property
    def first_attachment(self) -> MailAttachment | None:
        return self.attachments[0] if self.attachments else None


class Mailbox(Protocol):
    def fetch_unseen(self, limit: int) -> list[InboundMessage]: ...

    def mark_seen(self, uid: str) -> None: ...


class ImapMailbox:
    """Reads unread messages without flagging them; callers mark each one seen explicitly."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self._conn: imaplib.IMAP4 | None = None

    def __enter__(self) -> "ImapMailbox":
        self.connect()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def connect(self) -> None:
        settings = self.settings
        logger.info("Connecting to IMAP server %s:%s", settings.imap_host, settings.imap_port)
        if settings.imap_tls:
            conn: imaplib.IMAP4 = imaplib.IMAP4_SSL(settings.imap_host, settings.imap_port)
        else:
            conn = imaplib.IMAP4(settings.imap_host, settings.imap_port)
        conn.login(settings.imap_user, settings.imap_password)
        status, _ = conn.select(settings.imap_folder)
        if status != "OK":
            conn.logout()
            raise imaplib.IMAP4.error(f"could not select folder {settings.imap_folder!r}")
        self._conn = conn

    def close(self) -> None:
        if self._conn is None:
            return
        try:
            self._conn.close()
        except imaplib.IMAP4.error:
            pass
        finally:
            self._conn.logout()
            self._conn = None

    @property
    def conn(self) -> imaplib.IMAP4:
        if self._conn is None:
            raise RuntimeError("mailbox is not connected")
        return self._conn

    def fetch_unseen(self, limit: int) -> list[InboundMessage]:
        status, data = self.conn.uid("SEARCH", None, "UNSEEN")
        if status != "OK" or not data or not data[0]:
            return []

        uids = [uid.decode() for uid in data[0].split()][:limit]
        messages: list[InboundMessage] = []
        for uid in uids:
            status, payload = self.conn.uid("FETCH", uid, "(BODY.PEEK[])")
            raw = _raw_bytes(payload)
            if status != "OK" or raw is None:
                logger.warning("Failed to fetch message uid=%s status=%s", uid, status)
                continue
            messages.append(parse_message(uid, raw))
        return messages

    def mark_seen(self, uid: str) -> None:
        status, _ = self.conn.uid("STORE", uid, "+FLAGS", "(\\Seen)")
        if status != "OK":
            logger.warning("Failed to mark message uid=%s as seen", uid)


def _raw_bytes(payload) -> bytes | None:
    for item in payload or []:
        if isinstance(item, tuple) and len(item) >= 2 and isinstance(item[1], bytes):
            return item[1]
    return None


def parse_message(uid: str, raw: bytes) -> InboundMessage:
    message: EmailMessage = message_from_bytes(raw, policy=policy.default)
    sender_name, sender_email = parseaddr(str(message.get("From", "")))

    received_at = None
    if message.get("Date"):
        try:
            received_at = parsedate_to_datetime(str(message["Date"]))
        except (TypeError, ValueError):
            received_at = None

    attachments: list[MailAttachment] = []
    for part in message.walk():
        if part.is_multipart():
            continue
        filename = part.get_filename()
        if not filename or part.get_content_disposition() not in {"attachment", "inline"}:
            continue
        data = part.get_payload(decode=True)
        if data:
            attachments.append(MailAttachment(filename=filename, content_type=part.get_content_type(), data=data))

    return InboundMessage(
        uid=uid,
        sender_email=sender_email.strip().lower(),
        sender_name=sender_name.strip(),
        subject=str(message.get("Subject", "")).strip(),
        body_text=_body_text(message),
        message_id=str(message.get("Message-ID", "")).strip(),
        received_at=received_at,
        attachments=attachments,
    )


def _body_text(message: EmailMessage) -> str:
    body = message.get_body(preferencelist=("plain", "html"))
    if body is None:
        return ""
    try:
        content = body.get_content()
    except (LookupError, UnicodeDecodeError):
        payload = body.get_payload(decode=True) or b""
        content = payload.decode("utf-8", errors="replace")
    if body.get_content_type() == "text/html":
        return BeautifulSoup(content, "html.parser").get_text(separator="\n", strip=True)
    return content.strip()
