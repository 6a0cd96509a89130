"""Gmail implementation of EmailService over the Gmail REST API."""

import base64
import logging
from typing import Any, Dict, List, Optional, Union

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build

from .. import config
from ..models import Attachment, SendResult
from .base import (
    ARCHIVED,
    MARKED_READ,
    TRASHED,
    EmailContent,
    EmailSummary,
    describe_error,
    error_text,
    open_link,
    reply_subject,
    run_blocking,
)
from .mime import build_raw_message

logger = logging.getLogger(__name__)

UNREAD_QUERY = "in:inbox is:unread category:primary"
OPEN_URL = "https://mail.google.com/mail/u/0/#inbox/{email_id}"


def decode_base64url(data: str) -> str:
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")


def find_plain_text(payload: Dict[str, Any]) -> str:
    """Return the first text/plain body in a (possibly nested) message payload."""
    parts = payload.get("parts")
    if parts:
        for part in parts:
            if part.get("mimeType") == "text/plain" and part.get("body", {}).get("data"):
                return decode_base64url(part["body"]["data"])
        for part in parts:
            if part.get("parts"):
                body = find_plain_text(part)
                if body:
                    return body
        return ""
    data = payload.get("body", {}).get("data")
    return decode_base64url(data) if data else ""


def header_value(headers: List[Dict[str, str]], name: str) -> str:
    """Case-insensitive header lookup (Gmail returns both Message-ID and Message-Id)."""
    wanted = name.lower()
    for header in headers:
        if header.get("name", "").lower() == wanted:
            return header.get("value", "")
    return ""


def summarize_messages(messages: Optional[List[Dict[str, Any]]]) -> List[EmailSummary]:
    return [{"id": m.get("id"), "threadId": m.get("threadId")} for m in messages or []]


class GmailService:
    """EmailService for Google accounts.

    The googleapiclient resource is synchronous, so each ``execute()`` runs in
    the default executor.

    Args:
        access_token: Plaintext OAuth access token
        user_email: Address used in the From header
        gmail: Prebuilt Gmail API resource (built from the token when omitted)
        timeout: Upper bound in seconds for each API call
    """

    def __init__(
        self,
        access_token: str,
        user_email: str,
        gmail: Any = None,
        timeout: float = config.PROVIDER_TIMEOUT,
    ) -> None:
        self.user_email = user_email
        self.timeout = timeout
        self.gmail = gmail or build(
            "gmail", "v1", credentials=Credentials(token=access_token), cache_discovery=False
        )

    def _messages(self) -> Any:
        return self.gmail.users().messages()

    async def _execute(self, request: Any) -> Dict[str, Any]:
        return await run_blocking(request.execute, self.timeout)

    async def send_email(
        self,
        recipient_id: str,
        subject: str,
        message: str,
        attachments: Optional[List[Attachment]] = None,
    ) -> SendResult:
        try:
            raw = build_raw_message(self.user_email, recipient_id, subject, message, attachments)
            response = await self._execute(
                self._messages().send(userId="me", body={"raw": raw})
            )
            logger.info(f"Gmail message sent: {response.get('id')}")
            return SendResult.success(response.get("id"))
        except Exception as e:
            logger.error(f"Error sending Gmail message: {e!s}", exc_info=True)
            return SendResult.error(describe_error(e))

    async def get_unread_emails(self) -> Union[List[EmailSummary], str]:
        try:
            response = await self._execute(self._messages().list(userId="me", q=UNREAD_QUERY))
            return summarize_messages(response.get("messages"))
        except Exception as e:
            logger.error(f"Error listing unread Gmail messages: {e!s}", exc_info=True)
            return error_text(e)

    async def read_email(self, email_id: str) -> Union[EmailContent, str]:
        """Fetch a message and mark it read."""
        try:
            msg = await self._execute(
                self._messages().get(userId="me", id=email_id, format="full")
            )
            payload = msg.get("payload", {})
            headers = payload.get("headers", [])
            content = {
                "content": find_plain_text(payload),
                "subject": header_value(headers, "Subject"),
                "from": header_value(headers, "From"),
                "to": header_value(headers, "To"),
                "date": header_value(headers, "Date"),
            }
        except Exception as e:
            logger.error(f"Error reading Gmail message {email_id}: {e!s}", exc_info=True)
            return error_text(e)

        await self.mark_email_as_read(email_id)
        return content

    async def trash_email(self, email_id: str) -> str:
        try:
            await self._execute(self._messages().trash(userId="me", id=email_id))
            return TRASHED
        except Exception as e:
            logger.error(f"Error trashing Gmail message {email_id}: {e!s}", exc_info=True)
            return error_text(e)

    async def archive_email(self, email_id: str) -> str:
        return await self._remove_label(email_id, "INBOX", ARCHIVED)

    async def mark_email_as_read(self, email_id: str) -> str:
        return await self._remove_label(email_id, "UNREAD", MARKED_READ)

    async def _remove_label(self, email_id: str, label: str, done: str) -> str:
        try:
            await self._execute(
                self._messages().modify(
                    userId="me", id=email_id, body={"removeLabelIds": [label]}
                )
            )
            return done
        except Exception as e:
            logger.error(f"Error removing {label} from Gmail message {email_id}: {e!s}", exc_info=True)
            return error_text(e)

    async def open_email(self, email_id: str) -> str:
        return open_link(OPEN_URL.format(email_id=email_id))

    async def search_emails(self, query: str) -> Union[List[EmailSummary], str]:
        try:
            response = await self._execute(self._messages().list(userId="me", q=query))
            return summarize_messages(response.get("messages"))
        except Exception as e:
            logger.error(f"Error searching Gmail for {query!r}: {e!s}", exc_info=True)
            return error_text(e)

    async def reply_to_email(
        self,
        email_id: str,
        message: str,
        attachments: Optional[List[Attachment]] = None,
    ) -> SendResult:
        """Reply in the original thread, keeping In-Reply-To/References intact."""
        try:
            original = await self._execute(
                self._messages().get(
                    userId="me",
                    id=email_id,
                    format="metadata",
                    metadataHeaders=["Subject", "From", "Reply-To", "Message-ID"],
                )
            )
            headers = original.get("payload", {}).get("headers", [])
            recipient = header_value(headers, "Reply-To") or header_value(headers, "From")
            raw = build_raw_message(
                self.user_email,
                recipient,
                reply_subject(header_value(headers, "Subject")),
                message,
                attachments,
                in_reply_to=header_value(headers, "Message-ID") or None,
            )
            body = {"raw": raw}
            if original.get("threadId"):
                body["threadId"] = original["threadId"]
            response = await self._execute(self._messages().send(userId="me", body=body))
            logger.info(f"Gmail reply sent: {response.get('id')}")
            return SendResult.success(response.get("id"))
        except Exception as e:
            logger.error(f"Error replying to Gmail message {email_id}: {e!s}", exc_info=True)
            return SendResult.error(describe_error(e))
