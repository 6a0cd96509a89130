"""Outlook implementation of EmailService over Microsoft Graph."""

import asyncio
import base64
import logging
from typing import Any, Dict, List, Optional, Union
from urllib.parse import quote

import httpx

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
)

logger = logging.getLogger(__name__)

# Well-known Graph folder ids
DELETED_ITEMS = "deleteditems"
ARCHIVE = "archive"


def file_attachment(attachment: Attachment) -> Dict[str, str]:
    return {
        "@odata.type": "#microsoft.graph.fileAttachment",
        "name": attachment.filename,
        "contentType": attachment.content_type,
        "contentBytes": base64.b64encode(attachment.content).decode("ascii"),
    }


def message_path(email_id: str, action: str = "") -> str:
    path = f"/me/messages/{quote(email_id, safe='')}"
    return f"{path}/{action}" if action else path


def summarize_messages(data: Dict[str, Any]) -> List[EmailSummary]:
    return [
        {"id": msg.get("id"), "threadId": msg.get("conversationId")}
        for msg in data.get("value", [])
    ]


class OutlookService:
    """EmailService for Microsoft accounts.

    Every request opens its own ``httpx.AsyncClient``. If Graph answers 401
    and a refresh hook was given, the hook is awaited once for a new access
    token and the request is retried; later 401s are returned as errors.

    Args:
        access_token: Plaintext Graph access token
        user_email: Address of the signed-in mailbox
        refresh_access_token: Coroutine function returning a new access token
        transport: httpx transport override (tests)
        timeout: Upper bound in seconds for each Graph round trip
    """

    def __init__(
        self,
        access_token: str,
        user_email: str,
        refresh_access_token: Optional[RefreshHook] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = config.PROVIDER_TIMEOUT,
    ) -> None:
        self.access_token = access_token
        self.user_email = user_email
        self.timeout = timeout
        self._refresh_access_token = refresh_access_token
        self._transport = transport
        self._refreshed = False

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        """Send one Graph request and raise for any non-2xx status."""
        async with asyncio.timeout(self.timeout):
            async with httpx.AsyncClient(
                base_url=config.GRAPH_API_URL, transport=self._transport, timeout=self.timeout
            ) as client:

                def send() -> Any:
                    request_headers = {"Authorization": f"Bearer {self.access_token}"}
                    request_headers.update(headers or {})
                    return client.request(
                        method, path, json=json, params=params, headers=request_headers
                    )

                response = await send()
                if response.status_code == 401 and self._refresh_access_token and not self._refreshed:
                    logger.info("Graph rejected the access token, refreshing once")
                    self._refreshed = True
                    self.access_token = await self._refresh_access_token()
                    response = await send()
                response.raise_for_status()
                return response

    async def send_email(
        self,
        recipient_id: str,
        subject: str,
        message: str,
        attachments: Optional[List[Attachment]] = None,
    ) -> SendResult:
        payload: Dict[str, Any] = {
            "subject": subject,
            "body": {"contentType": "Text", "content": message},
            "toRecipients": [{"emailAddress": {"address": recipient_id}}],
        }
        if attachments:
            payload["attachments"] = [file_attachment(a) for a in attachments]
        try:
            await self._request(
                "POST", "/me/sendMail", json={"message": payload, "saveToSentItems": True}
            )
            # sendMail answers 202 with no body, so there is no message id
            return SendResult.success()
        except Exception as e:
            logger.error(f"Error sending Graph message: {e!s}", exc_info=True)
            return SendResult.error(describe_error(e))

    async def get_unread_emails(self) -> Union[List[EmailSummary], str]:
        try:
            response = await self._request(
                "GET",
                "/me/mailFolders/inbox/messages",
                params={"$filter": "isRead eq false", "$select": "id,conversationId"},
            )
            return summarize_messages(response.json())
        except Exception as e:
            logger.error(f"Error listing unread Graph messages: {e!s}", exc_info=True)
            return error_text(e)

    async def read_email(self, email_id: str) -> Union[EmailContent, str]:
        try:
            response = await self._request(
                "GET",
                message_path(email_id),
                headers={"Prefer": 'outlook.body-content-type="text"'},
            )
            data = response.json()
            recipients = data.get("toRecipients") or []
            content = {
                "content": (data.get("body") or {}).get("content", ""),
                "subject": data.get("subject") or "",
                "from": ((data.get("from") or {}).get("emailAddress") or {}).get("address", ""),
                "to": recipients[0]["emailAddress"]["address"] if recipients else "",
                "date": data.get("receivedDateTime") or "",
            }
        except Exception as e:
            logger.error(f"Error reading Graph message {email_id}: {e!s}", exc_info=True)
            return error_text(e)

        await self.mark_email_as_read(email_id)
        return content

    async def trash_email(self, email_id: str) -> str:
        return await self._move(email_id, DELETED_ITEMS, TRASHED)

    async def archive_email(self, email_id: str) -> str:
        return await self._move(email_id, ARCHIVE, ARCHIVED)

    async def _move(self, email_id: str, destination: str, done: str) -> str:
        try:
            await self._request(
                "POST", message_path(email_id, "move"), json={"destinationId": destination}
            )
            return done
        except Exception as e:
            logger.error(f"Error moving Graph message {email_id} to {destination}: {e!s}", exc_info=True)
            return error_text(e)

    async def mark_email_as_read(self, email_id: str) -> str:
        try:
            await self._request("PATCH", message_path(email_id), json={"isRead": True})
            return MARKED_READ
        except Exception as e:
            logger.error(f"Error marking Graph message {email_id} as read: {e!s}", exc_info=True)
            return error_text(e)

    async def open_email(self, email_id: str) -> str:
        try:
            response = await self._request(
                "GET", message_path(email_id), params={"$select": "webLink"}
            )
            return open_link(response.json().get("webLink"))
        except Exception as e:
            logger.error(f"Error fetching webLink for {email_id}: {e!s}", exc_info=True)
            return error_text(e)

    async def search_emails(self, query: str) -> Union[List[EmailSummary], str]:
        try:
            escaped = query.replace('"', '\\"')
            response = await self._request(
                "GET",
                "/me/messages",
                params={"$search": f'"{escaped}"', "$select": "id,conversationId"},
            )
            return summarize_messages(response.json())
        except Exception as e:
            logger.error(f"Error searching Graph for {query!r}: {e!s}", exc_info=True)
            return error_text(e)

    async def reply_to_email(
        self,
        email_id: str,
        message: str,
        attachments: Optional[List[Attachment]] = None,
    ) -> SendResult:
        """Create a reply draft, attach files to it, then send the draft."""
        try:
            response = await self._request(
                "POST", message_path(email_id, "createReply"), json={"comment": message}
            )
            draft_id = response.json()["id"]
            for attachment in attachments or []:
                await self._request(
                    "POST", message_path(draft_id, "attachments"), json=file_attachment(attachment)
                )
            await self._request("POST", message_path(draft_id, "send"))
            return SendResult.success(draft_id)
        except Exception as e:
            logger.error(f"Error replying to Graph message {email_id}: {e!s}", exc_info=True)
            return SendResult.error(describe_error(e))
