"""The contract every email service implements, plus helpers they share.

Service methods never raise for provider failures. A failed send or reply
comes back as ``SendResult(status="error")`` and every other failure comes
back as a string starting with ``"An error occurred: "``.
"""

import asyncio
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, TypeVar, Union

from ..models import Attachment, SendResult

T = TypeVar("T")

# Coroutine returning a fresh plaintext access token
RefreshHook = Callable[[], Awaitable[str]]

EmailSummary = Dict[str, Optional[str]]
EmailContent = Dict[str, str]

ERROR_PREFIX = "An error occurred: "
TRASHED = "Email moved to trash successfully."
ARCHIVED = "Email archived successfully."
MARKED_READ = "Email marked as read."

_REPLY_PREFIX = re.compile(r"^Re: ", re.IGNORECASE)


class EmailService(Protocol):
    """Mailbox operations for one user on one provider."""

    async def send_email(
        self,
        recipient_id: str,
        subject: str,
        message: str,
        attachments: Optional[List[Attachment]] = None,
    ) -> SendResult:
        ...

    async def get_unread_emails(self) -> Union[List[EmailSummary], str]:
        ...

    async def read_email(self, email_id: str) -> Union[EmailContent, str]:
        ...

    async def trash_email(self, email_id: str) -> str:
        ...

    async def archive_email(self, email_id: str) -> str:
        ...

    async def mark_email_as_read(self, email_id: str) -> str:
        ...

    async def open_email(self, email_id: str) -> str:
        ...

    async def search_emails(self, query: str) -> Union[List[EmailSummary], str]:
        ...

    async def reply_to_email(
        self,
        email_id: str,
        message: str,
        attachments: Optional[List[Attachment]] = None,
    ) -> SendResult:
        ...


def describe_error(e: BaseException) -> str:
    if isinstance(e, TimeoutError) and not str(e):
        return "Provider request timed out"
    return str(e) or e.__class__.__name__


def error_text(e: BaseException) -> str:
    """Render an exception as a service result string."""
    return f"{ERROR_PREFIX}{describe_error(e)}"


def open_link(url: Any) -> str:
    return f"Email can be opened at: {url}"


def reply_subject(subject: str) -> str:
    """Prefix ``Re: `` exactly once."""
    return f"Re: {_REPLY_PREFIX.sub('', subject or '')}"


async def run_blocking(func: Callable[[], T], timeout: float) -> T:
    """Run a blocking call in the default executor, bounded by ``timeout`` seconds."""
    loop = asyncio.get_event_loop()
    async with asyncio.timeout(timeout):
        return await loop.run_in_executor(None, func)
