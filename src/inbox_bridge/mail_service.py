"""Service functions called by the HTTP controllers.

Each call builds a fresh EmailService for the user, wraps it in an
EmailMCPServer and runs exactly one tool or prompt. Tools whose result is
structured return the artifact data; the others return the text.
"""

import base64
from typing import Any, Dict, List, Optional

from mcp import types

from .dependencies import AppContext, get_app_context
from .factory import create_email_service
from .models import Attachment
from .server import EmailMCPServer


def _attachment_payload(attachments: Optional[List[Attachment]]) -> Optional[List[Dict[str, str]]]:
    if not attachments:
        return None
    return [
        {
            "filename": a.filename,
            "content_type": a.content_type,
            "data": base64.b64encode(a.content).decode("ascii"),
        }
        for a in attachments
    ]


async def _server_for(user_id: str, context: Optional[AppContext]) -> EmailMCPServer:
    context = context or get_app_context()
    email_service = await create_email_service(
        user_id,
        users=context.users,
        cipher=context.cipher,
        refresher=context.refresher,
    )
    return EmailMCPServer(email_service, context.text_generator)


async def _tool_text(user_id: str, context: Optional[AppContext], name: str, arguments: Dict[str, Any]) -> str:
    server = await _server_for(user_id, context)
    return (await server.call_tool(name, arguments))[0].text


async def _tool_data(user_id: str, context: Optional[AppContext], name: str, arguments: Dict[str, Any]) -> Any:
    server = await _server_for(user_id, context)
    content = (await server.call_tool(name, arguments))[0]
    # Error strings from the service carry no artifact
    return content.artifact["data"] if content.artifact else content.text


async def fetch_emails(user_id: str, context: Optional[AppContext] = None) -> Any:
    """Unread emails as ``[{"id", "threadId"}]`` (or the provider error text)."""
    return await _tool_data(user_id, context, "get-unread-emails", {})


async def send_email(
    user_id: str,
    to: str,
    subject: str,
    message: str,
    attachments: Optional[List[Attachment]] = None,
    context: Optional[AppContext] = None,
) -> str:
    arguments: Dict[str, Any] = {"recipient_id": to, "subject": subject, "message": message}
    payload = _attachment_payload(attachments)
    if payload:
        arguments["attachments"] = payload
    return await _tool_text(user_id, context, "send-email", arguments)


async def read_email(user_id: str, email_id: str, context: Optional[AppContext] = None) -> Any:
    return await _tool_data(user_id, context, "read-email", {"email_id": email_id})


async def trash_email(user_id: str, email_id: str, context: Optional[AppContext] = None) -> str:
    return await _tool_text(user_id, context, "trash-email", {"email_id": email_id})


async def archive_email(user_id: str, email_id: str, context: Optional[AppContext] = None) -> str:
    return await _tool_text(user_id, context, "archive-email", {"email_id": email_id})


async def reply_to_email(
    user_id: str,
    email_id: str,
    message: str,
    attachments: Optional[List[Attachment]] = None,
    context: Optional[AppContext] = None,
) -> str:
    arguments: Dict[str, Any] = {"email_id": email_id, "message": message}
    payload = _attachment_payload(attachments)
    if payload:
        arguments["attachments"] = payload
    return await _tool_text(user_id, context, "reply-to-email", arguments)


async def search_emails(user_id: str, query: str, context: Optional[AppContext] = None) -> Any:
    return await _tool_data(user_id, context, "search-emails", {"query": query})


async def mark_email_as_read(user_id: str, email_id: str, context: Optional[AppContext] = None) -> str:
    return await _tool_text(user_id, context, "mark-email-as-read", {"email_id": email_id})


async def summarize_email(user_id: str, email_id: str, context: Optional[AppContext] = None) -> str:
    return await _tool_text(user_id, context, "summarize-email", {"email_id": email_id})


async def open_email(user_id: str, email_id: str, context: Optional[AppContext] = None) -> str:
    return await _tool_text(user_id, context, "open-email", {"email_id": email_id})


async def get_prompt(
    user_id: str,
    name: str,
    arguments: Optional[Dict[str, str]] = None,
    context: Optional[AppContext] = None,
) -> types.GetPromptResult:
    server = await _server_for(user_id, context)
    return await server.get_prompt(name, arguments)


async def list_prompts(user_id: str, context: Optional[AppContext] = None) -> List[types.Prompt]:
    server = await _server_for(user_id, context)
    return server.list_prompts()


async def list_tools(user_id: str, context: Optional[AppContext] = None) -> List[types.Tool]:
    server = await _server_for(user_id, context)
    return server.list_tools()
