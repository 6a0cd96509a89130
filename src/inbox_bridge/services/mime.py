"""Hand-assembled RFC 2822 messages for the Gmail ``raw`` send field.

Gmail takes the whole message as one base64url string, so the message is
built line by line with CRLF endings rather than through ``email.mime``.
"""

import base64
import time
from email.header import Header
from typing import List, Optional, Sequence

from ..models import Attachment

CRLF = "\r\n"
BASE64_LINE_LENGTH = 76


def new_boundary() -> str:
    """Boundary derived from the current time in milliseconds, in hex."""
    return f"boundary_{int(time.time() * 1000):x}"


def encode_header(value: str) -> str:
    """RFC 2047-encode a header value when it is not plain ASCII."""
    if value.isascii():
        return value
    return Header(value, "utf-8").encode(linesep="\r\n")


def encode_base64url(data: bytes) -> str:
    """base64url with the trailing ``=`` padding removed."""
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def chunk_base64(content: bytes, width: int = BASE64_LINE_LENGTH) -> List[str]:
    encoded = base64.b64encode(content).decode("ascii")
    return [encoded[i:i + width] for i in range(0, len(encoded), width)]


def build_message(
    sender: str,
    recipient: str,
    subject: str,
    body: str,
    attachments: Optional[Sequence[Attachment]] = None,
    in_reply_to: Optional[str] = None,
    boundary: Optional[str] = None,
) -> str:
    """Assemble the message text.

    Args:
        sender: From address
        recipient: To address
        subject: Subject line
        body: Plain-text body
        attachments: Files to attach; turns the message into multipart/mixed
        in_reply_to: Message-ID being answered, echoed into In-Reply-To and References
        boundary: Multipart boundary (generated when omitted)

    Returns:
        The message with CRLF line endings
    """
    lines = [
        f"From: {sender}",
        f"To: {recipient}",
        f"Subject: {encode_header(subject)}",
    ]
    if in_reply_to:
        lines.append(f"In-Reply-To: {in_reply_to}")
        lines.append(f"References: {in_reply_to}")
    lines.append("MIME-Version: 1.0")

    transfer_encoding = "7bit" if body.isascii() else "8bit"
    if attachments:
        boundary = boundary or new_boundary()
        lines.append(f"Content-Type: multipart/mixed; boundary={boundary}")
        lines.append("")
        lines.append(f"--{boundary}")
        lines.append("Content-Type: text/plain; charset=UTF-8")
        lines.append(f"Content-Transfer-Encoding: {transfer_encoding}")
        lines.append("")
        lines.append(body)
        lines.append("")
        for attachment in attachments:
            lines.append(f"--{boundary}")
            lines.append(f"Content-Type: {attachment.content_type or 'application/octet-stream'}")
            lines.append("Content-Transfer-Encoding: base64")
            lines.append(f'Content-Disposition: attachment; filename="{attachment.filename}"')
            lines.append("")
            lines.extend(chunk_base64(attachment.content))
            lines.append("")
        lines.append(f"--{boundary}--")
    else:
        lines.append("Content-Type: text/plain; charset=UTF-8")
        if transfer_encoding != "7bit":
            lines.append(f"Content-Transfer-Encoding: {transfer_encoding}")
        lines.append("")
        lines.append(body)

    return CRLF.join(lines)


def build_raw_message(*args, **kwargs) -> str:
    """``build_message`` encoded for the Gmail API ``raw`` field."""
    return encode_base64url(build_message(*args, **kwargs).encode("utf-8"))
