"""Email MCP server: the tool and prompt catalog over one user's mailbox."""

import argparse
import logging
import os
from typing import Dict, List, Optional, Union

from mcp import types

from mcp_catalog import BaseMCPServer, ToolError, assistant_message, mcp_prompt, mcp_tool, user_message

from . import config
from .errors import BadRequestError, ProviderError
from .llm import LiteLLMTextGenerator, TextGenerator
from .models import Attachment, SendResult
from .services import EmailService
from .services.base import EmailContent, EmailSummary

logger = logging.getLogger(__name__)

SERVER_NAME = "inbox-bridge"
SERVER_VERSION = "0.1.0"

EMAIL_ADMIN_PROMPTS = """You are an email administrator powered by Grok from xAI.
You can draft, edit, read, trash, archive, reply to, search, open, and send emails.
You've been given access to a specific email account.
You have the following tools available:
- Send an email (send-email)
- Retrieve unread emails (get-unread-emails)
- Read email content (read-email)
- Trash email (trash-email)
- Archive email (archive-email)
- Reply to email (reply-to-email)
- Search emails (search-emails)
- Open email in browser (open-email)
Never send an email draft, trash, or archive an email unless the user confirms first.
Always ask for approval if not already given. Use Grok's AI capabilities to assist with drafting and editing emails when requested."""


def _parse_attachments(attachments: Optional[List[Dict[str, str]]]) -> Optional[List[Attachment]]:
    if not attachments:
        return None
    try:
        return [Attachment.from_dict(item) for item in attachments]
    except ValueError as e:
        raise ToolError(str(e)) from e


def _render_send_result(result: SendResult, sent: str, failed: str) -> str:
    if not result.ok:
        return f"{failed}: {result.error_message}"
    if result.message_id:
        return f"{sent} Message ID: {result.message_id}"
    return sent


class EmailMCPServer(BaseMCPServer):
    """Tools and prompts for managing one mailbox with AI assistance.

    Args:
        email_service: Service bound to the user's provider. When omitted the
            service is built for ``--user-id`` before serving over stdio.
        text_generator: Generates prompt replies and summaries
    """

    def __init__(
        self,
        email_service: Optional[EmailService] = None,
        text_generator: Optional[TextGenerator] = None,
    ) -> None:
        self.email_service = email_service
        self.text_generator = text_generator or LiteLLMTextGenerator()
        self.user_id: Optional[str] = None
        super().__init__(SERVER_NAME, SERVER_VERSION, log_level=config.LOG_LEVEL)

    @mcp_prompt(name="manage-email")
    async def manage_email(self) -> List[types.PromptMessage]:
        """Act like an email administrator with AI assistance"""
        welcome = await self.text_generator.generate("Welcome to email management with Groq!")
        return [user_message(EMAIL_ADMIN_PROMPTS), assistant_message(welcome)]

    @mcp_prompt(name="draft-email")
    async def draft_email(self, content: str, recipient: str, recipient_email: str) -> List[types.PromptMessage]:
        """Draft an email with AI assistance from Grok

        Args:
            content: What the email is about
            recipient: Who should the email be addressed to
            recipient_email: Recipient's email address
        """
        draft = await self.text_generator.generate(
            f"Draft an email about {content} for {recipient} ({recipient_email}). "
            "Include a subject line starting with 'Subject:' on the first line. "
            "Do not send the email yet, just draft it and ask the user for their thoughts."
        )
        return [
            user_message(f"Please draft an email about {content} for {recipient} ({recipient_email})."),
            assistant_message(f"{draft}\n\nWhat do you think of this draft?"),
        ]

    @mcp_prompt(name="edit-draft")
    async def edit_draft(self, changes: str, current_draft: str) -> List[types.PromptMessage]:
        """Edit an existing email draft with AI assistance from Grok

        Args:
            changes: What changes should be made to the draft
            current_draft: The current draft to edit
        """
        edited = await self.text_generator.generate(
            f"Edit this draft: {current_draft} with changes: {changes}"
        )
        return [
            user_message(
                f"Please revise the current email draft:\n{current_draft}\n\nRequested changes:\n{changes}"
            ),
            assistant_message(edited),
        ]

    @mcp_tool(
        name="send-email",
        description=(
            "Sends email to recipient. Do not use if user only asked to draft email. "
            "Drafts must be approved before sending."
        ),
    )
    async def send_email(
        self,
        recipient_id: str,
        subject: str,
        message: str,
        attachments: Optional[List[Dict[str, str]]] = None,
    ) -> str:
        """Send an email.

        Args:
            recipient_id: Recipient email address
            subject: Email subject
            message: Email content text
            attachments: Files to attach, each {filename, content_type, data} with base64 data
        """
        result = await self.email_service.send_email(
            recipient_id, subject, message, _parse_attachments(attachments)
        )
        return _render_send_result(result, "Email sent successfully.", "Failed to send email")

    @mcp_tool(name="get-unread-emails")
    async def get_unread_emails(self) -> Union[List[EmailSummary], str]:
        """Retrieve unread emails"""
        return await self.email_service.get_unread_emails()

    @mcp_tool(name="read-email")
    async def read_email(self, email_id: str) -> Union[EmailContent, str]:
        """Retrieves given email content

        Args:
            email_id: Email ID
        """
        return await self.email_service.read_email(email_id)

    @mcp_tool(name="trash-email")
    async def trash_email(self, email_id: str) -> str:
        """Moves email to trash. Confirm before moving email to trash.

        Args:
            email_id: Email ID
        """
        return await self.email_service.trash_email(email_id)

    @mcp_tool(name="archive-email")
    async def archive_email(self, email_id: str) -> str:
        """Archives an email. Confirm before archiving.

        Args:
            email_id: Email ID
        """
        return await self.email_service.archive_email(email_id)

    @mcp_tool(name="reply-to-email")
    async def reply_to_email(
        self,
        email_id: str,
        message: str,
        attachments: Optional[List[Dict[str, str]]] = None,
    ) -> str:
        """Replies to an existing email.

        Args:
            email_id: Email ID to reply to
            message: Reply content
            attachments: Files to attach, each {filename, content_type, data} with base64 data
        """
        result = await self.email_service.reply_to_email(
            email_id, message, _parse_attachments(attachments)
        )
        return _render_send_result(result, "Reply sent successfully.", "Failed to send reply")

    @mcp_tool(name="search-emails")
    async def search_emails(self, query: str) -> Union[List[EmailSummary], str]:
        """Searches emails based on a query

        Args:
            query: Search query
        """
        return await self.email_service.search_emails(query)

    @mcp_tool(name="mark-email-as-read")
    async def mark_email_as_read(self, email_id: str) -> str:
        """Marks given email as read

        Args:
            email_id: Email ID
        """
        return await self.email_service.mark_email_as_read(email_id)

    @mcp_tool(name="open-email")
    async def open_email(self, email_id: str) -> str:
        """Open email in browser

        Args:
            email_id: Email ID
        """
        return await self.email_service.open_email(email_id)

    @mcp_tool(name="summarize-email")
    async def summarize_email(self, email_id: str) -> str:
        """Summarizes the content of an email

        Args:
            email_id: Email ID
        """
        email_content = await self.email_service.read_email(email_id)
        if isinstance(email_content, str):
            raise ProviderError(email_content)
        return await self.text_generator.generate(
            f"Summarize this email content: {email_content['content']}"
        )

    def add_arguments(self, parser: argparse.ArgumentParser) -> None:
        parser.add_argument(
            "--user-id",
            default=os.getenv("INBOX_BRIDGE_USER_ID"),
            help="Serve the mailbox of this user (default: $INBOX_BRIDGE_USER_ID)",
        )

    def configure(self, parsed_args: argparse.Namespace) -> None:
        self.user_id = parsed_args.user_id

    async def run(self) -> None:
        if self.email_service is None:
            if not self.user_id:
                raise BadRequestError("A user id is required to serve a mailbox (--user-id)")
            # Imported here so --describe works without a database
            from .dependencies import get_app_context
            from .factory import create_email_service

            context = get_app_context()
            self.email_service = await create_email_service(
                self.user_id,
                users=context.users,
                cipher=context.cipher,
                refresher=context.refresher,
            )
        await super().run()


def main() -> None:
    """Main entry point for the MCP server."""
    EmailMCPServer().main()


if __name__ == "__main__":
    main()
