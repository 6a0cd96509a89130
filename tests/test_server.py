"""Tests for the email tool and prompt catalog."""

import base64
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from inbox_bridge.errors import BadRequestError, ProviderError
from inbox_bridge.models import SendResult
from inbox_bridge.server import EMAIL_ADMIN_PROMPTS, EmailMCPServer
from mcp_catalog import MissingArgumentsError, ToolError, UnknownPromptError, UnknownToolError

from fakes import FakeEmailService, FakeTextGenerator

TOOL_NAMES = {
    "send-email",
    "get-unread-emails",
    "read-email",
    "trash-email",
    "archive-email",
    "reply-to-email",
    "search-emails",
    "mark-email-as-read",
    "open-email",
    "summarize-email",
}


@pytest.fixture
def email_service():
    return FakeEmailService()


@pytest.fixture
def generator():
    return FakeTextGenerator("Generated text")


@pytest.fixture
def server(email_service, generator):
    return EmailMCPServer(email_service, generator)


class TestCatalog:

    def test_tool_names(self, server):
        assert {tool.name for tool in server.list_tools()} == TOOL_NAMES

    def test_required_arguments(self, server):
        tools = {tool.name: tool for tool in server.list_tools()}

        assert tools["send-email"].inputSchema["required"] == ["recipient_id", "subject", "message"]
        assert tools["reply-to-email"].inputSchema["required"] == ["email_id", "message"]
        assert tools["search-emails"].inputSchema["required"] == ["query"]
        assert "required" not in tools["get-unread-emails"].inputSchema
        assert tools["send-email"].inputSchema["properties"]["attachments"]["type"] == "array"

    def test_descriptions(self, server):
        tools = {tool.name: tool for tool in server.list_tools()}

        assert tools["send-email"].description.startswith("Sends email to recipient.")
        assert tools["read-email"].description == "Retrieves given email content"
        assert tools["read-email"].inputSchema["properties"]["email_id"]["description"] == "Email ID"

    def test_prompts(self, server):
        prompts = {prompt.name: prompt for prompt in server.list_prompts()}

        assert set(prompts) == {"manage-email", "draft-email", "edit-draft"}
        assert prompts["manage-email"].arguments == []
        assert [(a.name, a.required) for a in prompts["draft-email"].arguments] == [
            ("content", True),
            ("recipient", True),
            ("recipient_email", True),
        ]
        assert {a.name for a in prompts["edit-draft"].arguments} == {"changes", "current_draft"}

    def test_describe_tools(self, server, capsys):
        server.describe_tools()
        out = capsys.readouterr().out

        assert "inbox-bridge v0.1.0" in out
        assert "Tool: send-email" in out
        assert "- recipient_id: string (required)" in out
        assert "- attachments: array[object] (optional)" in out
        assert "Prompt: draft-email" in out

    def test_describe_flag_exits(self, server, capsys):
        with pytest.raises(SystemExit) as exc_info:
            server.main(["--describe"])
        assert exc_info.value.code == 0
        assert "Available Tools" in capsys.readouterr().out

    def test_user_id_argument(self, server):
        server.configure(server.parse_args(["--user-id", "user-42"]))
        assert server.user_id == "user-42"


class TestToolCalls:

    @pytest.mark.asyncio
    async def test_missing_arguments_are_rejected_before_dispatch(self, server, email_service):
        with pytest.raises(MissingArgumentsError) as exc_info:
            await server.call_tool("send-email", {})

        assert exc_info.value.missing == ["recipient_id", "subject", "message"]
        assert str(exc_info.value) == "Missing required parameters: recipient_id, subject, message"
        assert exc_info.value.status_code == 400
        assert email_service.calls == []

    @pytest.mark.asyncio
    async def test_empty_strings_count_as_missing(self, server, email_service):
        with pytest.raises(MissingArgumentsError) as exc_info:
            await server.call_tool("send-email", {"recipient_id": "bob@example.com", "subject": "", "message": "hi"})

        assert exc_info.value.missing == ["subject"]
        assert email_service.calls == []

    @pytest.mark.asyncio
    async def test_unknown_tool(self, server):
        with pytest.raises(UnknownToolError, match="Unknown tool: delete-everything"):
            await server.call_tool("delete-everything", {})

    @pytest.mark.asyncio
    async def test_send_email_text(self, server, email_service):
        result = await server.call_tool(
            "send-email", {"recipient_id": "bob@example.com", "subject": "Hello", "message": "Hi Bob"}
        )

        assert result[0].text == "Email sent successfully. Message ID: sent-1"
        assert result[0].artifact is None
        assert email_service.calls == [("send_email", "bob@example.com", "Hello", "Hi Bob", None)]

    @pytest.mark.asyncio
    async def test_send_without_message_id(self, server, email_service):
        email_service.send_result = SendResult.success()
        result = await server.call_tool(
            "send-email", {"recipient_id": "bob@example.com", "subject": "Hello", "message": "Hi Bob"}
        )
        assert result[0].text == "Email sent successfully."

    @pytest.mark.asyncio
    async def test_send_failure_text(self, server, email_service):
        email_service.send_result = SendResult.error("quota exceeded")
        result = await server.call_tool(
            "send-email", {"recipient_id": "bob@example.com", "subject": "Hello", "message": "Hi Bob"}
        )
        assert result[0].text == "Failed to send email: quota exceeded"

    @pytest.mark.asyncio
    async def test_send_with_attachments(self, server, email_service):
        await server.call_tool("send-email", {
            "recipient_id": "bob@example.com",
            "subject": "Report",
            "message": "Attached",
            "attachments": [{
                "filename": "report.csv",
                "content_type": "text/csv",
                "data": base64.b64encode(b"a,b\n1,2\n").decode(),
            }],
        })

        attachment = email_service.calls[0][4][0]
        assert attachment.filename == "report.csv"
        assert attachment.content_type == "text/csv"
        assert attachment.content == b"a,b\n1,2\n"

    @pytest.mark.asyncio
    async def test_invalid_attachment(self, server, email_service):
        with pytest.raises(ToolError):
            await server.call_tool("send-email", {
                "recipient_id": "bob@example.com",
                "subject": "Report",
                "message": "Attached",
                "attachments": [{"filename": "report.csv", "data": "not base64!"}],
            })
        assert email_service.calls == []

    @pytest.mark.asyncio
    async def test_unread_emails_json_and_artifact(self, server, email_service):
        result = await server.call_tool("get-unread-emails", {})

        assert result[0].artifact == {"type": "json", "data": email_service.unread}
        assert json.loads(result[0].text) == email_service.unread

    @pytest.mark.asyncio
    async def test_read_email_dictionary_artifact(self, server, email_service):
        result = await server.call_tool("read-email", {"email_id": "m1"})

        assert result[0].artifact["type"] == "dictionary"
        assert result[0].artifact["data"]["subject"] == "Q3 report"
        assert json.loads(result[0].text) == email_service.emails["m1"]

    @pytest.mark.asyncio
    async def test_provider_error_string_passes_through(self, server):
        result = await server.call_tool("read-email", {"email_id": "missing"})

        assert result[0].text == "An error occurred: Email missing not found"
        assert result[0].artifact is None

    @pytest.mark.asyncio
    async def test_extra_arguments_are_ignored(self, server, email_service):
        await server.call_tool("trash-email", {"email_id": "m1", "confirm": True})
        assert email_service.calls == [("trash_email", "m1")]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("tool, expected", [
        ("trash-email", "Email moved to trash successfully."),
        ("archive-email", "Email archived successfully."),
        ("mark-email-as-read", "Email marked as read."),
        ("open-email", "Email can be opened at: https://mail.example.com/m1"),
    ])
    async def test_mailbox_actions(self, server, tool, expected):
        result = await server.call_tool(tool, {"email_id": "m1"})
        assert result[0].text == expected

    @pytest.mark.asyncio
    async def test_search(self, server, email_service):
        result = await server.call_tool("search-emails", {"query": "from:alice"})

        assert result[0].artifact["data"] == [{"id": "m1", "threadId": "t1"}]
        assert email_service.calls == [("search_emails", "from:alice")]

    @pytest.mark.asyncio
    async def test_reply(self, server, email_service):
        result = await server.call_tool("reply-to-email", {"email_id": "m1", "message": "Thanks"})

        assert result[0].text == "Reply sent successfully. Message ID: sent-1"
        assert email_service.calls == [("reply_to_email", "m1", "Thanks", None)]

    @pytest.mark.asyncio
    async def test_reply_failure(self, server, email_service):
        email_service.send_result = SendResult.error("not found")
        result = await server.call_tool("reply-to-email", {"email_id": "m1", "message": "Thanks"})
        assert result[0].text == "Failed to send reply: not found"

    @pytest.mark.asyncio
    async def test_summarize(self, server, generator):
        result = await server.call_tool("summarize-email", {"email_id": "m1"})

        assert result[0].text == "Generated text"
        assert generator.prompts == ["Summarize this email content: Quarterly numbers are attached."]

    @pytest.mark.asyncio
    async def test_summarize_unreadable_email(self, server, generator):
        with pytest.raises(ProviderError):
            await server.call_tool("summarize-email", {"email_id": "missing"})
        assert generator.prompts == []


class TestPrompts:

    @pytest.mark.asyncio
    async def test_manage_email(self, server, generator):
        result = await server.get_prompt("manage-email", {})

        assert [m.role for m in result.messages] == ["user", "assistant"]
        assert result.messages[0].content.text == EMAIL_ADMIN_PROMPTS
        assert result.messages[1].content.text == "Generated text"
        assert generator.prompts == ["Welcome to email management with Groq!"]

    @pytest.mark.asyncio
    async def test_draft_email(self, server, generator):
        result = await server.get_prompt("draft-email", {
            "content": "the offsite",
            "recipient": "Bob",
            "recipient_email": "bob@example.com",
        })

        assert result.messages[0].content.text == (
            "Please draft an email about the offsite for Bob (bob@example.com)."
        )
        assert result.messages[1].content.text == "Generated text\n\nWhat do you think of this draft?"
        assert generator.prompts[0].startswith("Draft an email about the offsite for Bob (bob@example.com).")

    @pytest.mark.asyncio
    async def test_edit_draft(self, server, generator):
        result = await server.get_prompt("edit-draft", {"changes": "shorter", "current_draft": "Hi Bob, ..."})

        assert "Hi Bob, ..." in result.messages[0].content.text
        assert "shorter" in result.messages[0].content.text
        assert generator.prompts == ["Edit this draft: Hi Bob, ... with changes: shorter"]

    @pytest.mark.asyncio
    async def test_unknown_prompt(self, server):
        with pytest.raises(UnknownPromptError, match="Prompt not found: write-novel"):
            await server.get_prompt("write-novel", {})

    @pytest.mark.asyncio
    async def test_missing_prompt_arguments(self, server, generator):
        with pytest.raises(MissingArgumentsError) as exc_info:
            await server.get_prompt("draft-email", {"content": "the offsite"})

        assert exc_info.value.missing == ["recipient", "recipient_email"]
        assert generator.prompts == []


class TestServe:

    @pytest.mark.asyncio
    async def test_run_requires_user_id_without_service(self, generator):
        server = EmailMCPServer(text_generator=generator)
        with pytest.raises(BadRequestError):
            await server.run()

    @pytest.mark.asyncio
    async def test_run_builds_service_for_user(self, generator, email_service):
        server = EmailMCPServer(text_generator=generator)
        server.user_id = "user-1"
        context = MagicMock()

        with patch("inbox_bridge.dependencies.get_app_context", return_value=context), \
                patch("inbox_bridge.factory.create_email_service", new=AsyncMock(return_value=email_service)) as factory, \
                patch.object(server.server, "run", new_callable=AsyncMock), \
                patch("mcp.server.stdio.stdio_server") as mock_stdio:
            mock_stdio.return_value.__aenter__.return_value = (AsyncMock(), AsyncMock())
            await server.run()

        factory.assert_awaited_once_with(
            "user-1", users=context.users, cipher=context.cipher, refresher=context.refresher
        )
        assert server.email_service is email_service
