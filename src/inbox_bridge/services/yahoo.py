"""Yahoo implementation of EmailService over IMAP and SMTP with XOAUTH2.

Every operation opens its own IMAP (or SMTP) session, does one thing by UID
and logs out. The blocking imaplib/smtplib calls run in the default executor.
"""

import base64
import email
import email.message
import imaplib
import logging
import smtplib
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid
from typing import Any, Callable, Dict, List, Optional, TypeVar, Union

from .. import config
from ..models import Attachment, SendResult
from .base import (
    ARCHIVED,
    MARKED_READ,
    TRASHED,
    EmailContent,
    EmailSummary,
    RefreshHook,
    describe_error,
    error_text,
    open_link,
    reply_subject,
    run_blocking,
)

T = TypeVar("T")

logger = logging.getLogger(__name__)

OPEN_URL = "https://mail.yahoo.com/d/folders/1/messages/{email_id}"
TRASH_FOLDER = "Trash"
ARCHIVE_FOLDER = "Archive"

# Queries starting with one of these are passed to IMAP SEARCH unchanged
IMAP_SEARCH_KEYS = {
    "ALL", "ANSWERED", "BCC", "BEFORE", "BODY", "CC", "DELETED", "DRAFT",
    "FLAGGED", "FROM", "HEADER", "KEYWORD", "LARGER", "NEW", "NOT", "OLD",
    "ON", "OR", "RECENT", "SEEN", "SENTBEFORE", "SENTON", "SENTSINCE",
    "SINCE", "SMALLER", "SUBJECT", "TEXT", "TO", "UID", "UNANSWERED",
    "UNDELETED", "UNDRAFT", "UNFLAGGED", "UNKEYWORD", "UNSEEN",
}


class YahooAuthError(Exception):
    """Raised when Yahoo rejects the XOAUTH2 credentials.

    Triggers the one-time token refresh when the service has a refresh hook.
    """

    pass


class YahooMailboxError(Exception):
    """Raised when an IMAP command does not answer OK or finds no message."""

    pass


def xoauth2_string(user: str, access_token: str) -> str:
    return f"user={user}\x01auth=Bearer {access_token}\x01\x01"


def imap_search_criteria(query: str) -> str:
    """Turn a free-text query into ``TEXT "<query>"`` unless it is already IMAP syntax."""
    query = query.strip()
    first = query.split(None, 1)[0].upper() if query else ""
    if first in IMAP_SEARCH_KEYS or query.startswith("("):
        return query
    escaped = query.replace("\\", "\\\\").replace('"', '\\"')
    return f'TEXT "{escaped}"'


def parse_uids(data: List[Any]) -> List[str]:
    if not data or not data[0]:
        return []
    return [uid.decode() for uid in data[0].split()]


def _check(result: Any, action: str) -> Any:
    status, data = result
    if status != "OK":
        raise YahooMailboxError(f"Failed to {action}: {data!r}")
    return data


def _message_bytes(data: List[Any]) -> Optional[bytes]:
    for item in data or []:
        if isinstance(item, tuple) and len(item) > 1:
            return item[1]
    return None


class YahooService:
    """EmailService for Yahoo accounts.

    Attributes:
        access_token: Plaintext OAuth access token used for XOAUTH2
        user_email: Mailbox address, also the XOAUTH2 user
        imap_server: IMAP hostname
        smtp_server: SMTP hostname
    """

    def __init__(
        self,
        access_token: str,
        user_email: str,
        refresh_access_token: Optional[RefreshHook] = None,
        imap_server: str = config.YAHOO_IMAP_SERVER,
        imap_port: int = config.YAHOO_IMAP_PORT,
        smtp_server: str = config.YAHOO_SMTP_SERVER,
        smtp_port: int = config.YAHOO_SMTP_PORT,
        timeout: float = config.PROVIDER_TIMEOUT,
    ) -> None:
        self.access_token = access_token
        self.user_email = user_email
        self.imap_server = imap_server
        self.imap_port = imap_port
        self.smtp_server = smtp_server
        self.smtp_port = smtp_port
        self.timeout = timeout
        self._refresh_access_token = refresh_access_token
        self._refreshed = False

    async def _run(self, func: Callable[[], T]) -> T:
        return await run_blocking(func, self.timeout)

    async def _with_refresh(self, func: Callable[[], T]) -> T:
        """Run ``func`` and, on an XOAUTH2 rejection, refresh the token once and retry."""
        try:
            return await self._run(func)
        except YahooAuthError:
            if not self._refresh_access_token or self._refreshed:
                raise
            logger.info("Yahoo rejected the access token, refreshing once")
            self._refreshed = True
            self.access_token = await self._refresh_access_token()
            return await self._run(func)

    def _open_imap(self) -> imaplib.IMAP4_SSL:
        mail = imaplib.IMAP4_SSL(self.imap_server, self.imap_port, timeout=self.timeout)
        auth_string = xoauth2_string(self.user_email, self.access_token)
        try:
            mail.authenticate("XOAUTH2", lambda _: auth_string.encode())
        except imaplib.IMAP4.error as e:
            mail.shutdown()
            raise YahooAuthError(f"IMAP authentication failed: {e!s}") from e
        return mail

    def close_imap_connection(self, mail: imaplib.IMAP4_SSL) -> None:
        """Close the IMAP session; failures here are logged, not raised."""
        try:
            if getattr(mail, "state", None) == "SELECTED":
                mail.close()
            mail.logout()
            logger.info("IMAP connection closed")
        except (imaplib.IMAP4.error, OSError) as e:
            logger.warning(f"Error closing IMAP connection: {e!s}")

    def _imap_session(self, operation: Callable[[imaplib.IMAP4_SSL], T]) -> T:
        """Connect, select INBOX, run ``operation`` and log out, all on the calling thread.

        Each socket read is bounded by the ``timeout`` given to ``IMAP4_SSL``.
        """
        mail = self._open_imap()
        try:
            _check(mail.select("INBOX"), "select INBOX")
            return operation(mail)
        finally:
            self.close_imap_connection(mail)

    async def _imap(self, operation: Callable[[imaplib.IMAP4_SSL], T]) -> T:
        logger.info(f"Connecting to IMAP server: {self.imap_server}")
        return await self._with_refresh(lambda: self._imap_session(operation))

    async def _search(self, criteria: str) -> List[EmailSummary]:
        data = await self._imap(lambda mail: _check(mail.uid("SEARCH", None, criteria), "search"))
        return [{"id": uid, "threadId": None} for uid in parse_uids(data)]

    async def _fetch(self, email_id: str, parts: str) -> email.message.Message:
        data = await self._imap(lambda mail: _check(mail.uid("FETCH", email_id, parts), "fetch"))
        raw = _message_bytes(data)
        if raw is None:
            raise YahooMailboxError(f"Email {email_id} not found")
        return email.message_from_bytes(raw)

    @staticmethod
    def _move_sync(mail: imaplib.IMAP4_SSL, email_id: str, folder: str) -> None:
        capabilities = getattr(mail, "capabilities", ())
        if "MOVE" in capabilities:
            _check(mail.uid("MOVE", email_id, folder), f"move to {folder}")
            return
        _check(mail.uid("COPY", email_id, folder), f"copy to {folder}")
        _check(mail.uid("STORE", email_id, "+FLAGS", "(\\Deleted)"), "flag deleted")
        # Plain EXPUNGE removes every \Deleted message in the folder
        if "UIDPLUS" in capabilities:
            _check(mail.uid("EXPUNGE", email_id), "expunge")

    async def _move(self, email_id: str, folder: str) -> None:
        await self._imap(lambda mail: self._move_sync(mail, email_id, folder))
        logger.info(f"Moved message {email_id} to {folder}")

    def _send_sync(self, msg: MIMEMultipart, recipient: str) -> None:
        with smtplib.SMTP_SSL(self.smtp_server, self.smtp_port, timeout=self.timeout) as smtp:
            smtp.ehlo()
            auth_string = xoauth2_string(self.user_email, self.access_token)
            code, response = smtp.docmd(
                "AUTH", "XOAUTH2 " + base64.b64encode(auth_string.encode()).decode()
            )
            if code != 235:
                raise YahooAuthError(f"SMTP authentication failed: {code} {response!r}")
            refused = smtp.send_message(msg, self.user_email, [recipient])
            if refused:
                raise YahooMailboxError(f"Failed to send to some recipients: {refused}")

    def _build_message(
        self,
        recipient: str,
        subject: str,
        body: str,
        attachments: Optional[List[Attachment]],
        headers: Optional[Dict[str, str]] = None,
    ) -> MIMEMultipart:
        msg = MIMEMultipart()
        msg["From"] = self.user_email
        msg["To"] = recipient
        msg["Subject"] = subject
        domain = self.user_email.rpartition("@")[2] or None
        msg["Message-ID"] = make_msgid(domain=domain)
        for name, value in (headers or {}).items():
            msg[name] = value
        msg.attach(MIMEText(body, "plain", "utf-8"))
        for attachment in attachments or []:
            part = MIMEApplication(attachment.content, Name=attachment.filename)
            part.replace_header("Content-Type", attachment.content_type)
            part.add_header("Content-Disposition", "attachment", filename=attachment.filename)
            msg.attach(part)
        return msg

    async def send_email(
        self,
        recipient_id: str,
        subject: str,
        message: str,
        attachments: Optional[List[Attachment]] = None,
    ) -> SendResult:
        try:
            msg = self._build_message(recipient_id, subject, message, attachments)
            await self._with_refresh(lambda: self._send_sync(msg, recipient_id))
            logger.info("Yahoo email sent successfully")
            return SendResult.success(msg["Message-ID"])
        except Exception as e:
            logger.error(f"Error in send_email: {e!s}", exc_info=True)
            return SendResult.error(describe_error(e))

    async def get_unread_emails(self) -> Union[List[EmailSummary], str]:
        try:
            return await self._search("UNSEEN")
        except Exception as e:
            logger.error(f"Error listing unread Yahoo messages: {e!s}", exc_info=True)
            return error_text(e)

    async def read_email(self, email_id: str) -> Union[EmailContent, str]:
        """Fetch a message without touching flags, then mark it read."""
        try:
            msg = await self._fetch(email_id, "(BODY.PEEK[])")
            content = self._format_email_content(msg)
        except Exception as e:
            logger.error(f"Error fetching email content: {e!s}", exc_info=True)
            return error_text(e)

        await self.mark_email_as_read(email_id)
        return content

    async def trash_email(self, email_id: str) -> str:
        try:
            await self._move(email_id, TRASH_FOLDER)
            return TRASHED
        except Exception as e:
            logger.error(f"Error moving email to trash: {e!s}", exc_info=True)
            return error_text(e)

    async def archive_email(self, email_id: str) -> str:
        try:
            await self._move(email_id, ARCHIVE_FOLDER)
            return ARCHIVED
        except Exception as e:
            logger.error(f"Error archiving email: {e!s}", exc_info=True)
            return error_text(e)

    async def mark_email_as_read(self, email_id: str) -> str:
        try:
            await self._imap(
                lambda mail: _check(mail.uid("STORE", email_id, "+FLAGS", "(\\Seen)"), "flag seen")
            )
            return MARKED_READ
        except Exception as e:
            logger.error(f"Error marking email as read: {e!s}", exc_info=True)
            return error_text(e)

    async def open_email(self, email_id: str) -> str:
        return open_link(OPEN_URL.format(email_id=email_id))

    async def search_emails(self, query: str) -> Union[List[EmailSummary], str]:
        try:
            return await self._search(imap_search_criteria(query))
        except Exception as e:
            logger.error(f"Error searching Yahoo for {query!r}: {e!s}", exc_info=True)
            return error_text(e)

    async def reply_to_email(
        self,
        email_id: str,
        message: str,
        attachments: Optional[List[Attachment]] = None,
    ) -> SendResult:
        try:
            original = await self._fetch(
                email_id,
                "(BODY.PEEK[HEADER.FIELDS (SUBJECT FROM REPLY-TO MESSAGE-ID REFERENCES)])",
            )
            recipient = original.get("Reply-To") or original.get("From", "")
            headers = {}
            original_id = original.get("Message-ID")
            if original_id:
                references = original.get("References")
                headers["In-Reply-To"] = original_id
                headers["References"] = f"{references} {original_id}" if references else original_id
            msg = self._build_message(
                recipient, reply_subject(original.get("Subject", "")), message, attachments, headers
            )
            await self._with_refresh(lambda: self._send_sync(msg, recipient))
            logger.info(f"Yahoo reply to {email_id} sent")
            return SendResult.success(msg["Message-ID"])
        except Exception as e:
            logger.error(f"Error replying to Yahoo message {email_id}: {e!s}", exc_info=True)
            return SendResult.error(describe_error(e))

    def _format_email_content(self, msg: email.message.Message) -> EmailContent:
        """Format an email message into a dict with full content."""
        body = ""
        if msg.is_multipart():
            for part in msg.walk():
                if part.get_content_type() == "text/plain":
                    payload = part.get_payload(decode=True)
                    if isinstance(payload, bytes):
                        body = payload.decode(part.get_content_charset() or "utf-8", errors="replace")
                    break
                elif part.get_content_type() == "text/html":
                    if not body:
                        payload = part.get_payload(decode=True)
                        if isinstance(payload, bytes):
                            body = payload.decode(part.get_content_charset() or "utf-8", errors="replace")
        else:
            payload = msg.get_payload(decode=True)
            if isinstance(payload, bytes):
                body = payload.decode(msg.get_content_charset() or "utf-8", errors="replace")

        return {
            "from": msg.get("From", "Unknown"),
            "to": msg.get("To", "Unknown"),
            "date": msg.get("Date", "Unknown"),
            "subject": msg.get("Subject", "No Subject"),
            "content": body,
        }
