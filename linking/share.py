"""
Gmail helpers — mail a local file as an attachment and list recent messages.

Both calls go through the same refreshing ``httpx.AsyncClient`` as Drive, so
they need the ``gmail.send`` / ``gmail.readonly`` scopes on the stored
credential.
"""

from __future__ import annotations

import base64
import logging
import mimetypes
from email import encoders
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import parseaddr
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel

from connectors.errors import ShareFailed
from linking.filesystem import PathLike, normalize_path

logger = logging.getLogger(__name__)

_GMAIL_MESSAGES_URL = "https://gmail.googleapis.com/gmail/v1/users/me/messages"
_METADATA_HEADERS = ("Subject", "From", "Date")


class GmailMessage(BaseModel):
    id: str
    subject: str = ""
    sender: str = ""
    snippet: str = ""
    date: str = ""


# ── Helpers ──────────────────────────────────────────────────────────────


def build_share_message(
    sender: Optional[str],
    recipient: str,
    filename: str,
    content: bytes,
) -> MIMEMultipart:
    """
    Create a multipart message carrying ``content`` as an attachment.

    Parameters
    ----------
    sender : str | None
        ``From`` address.  Left out when unknown; Gmail then fills in the
        authenticated account.
    recipient : str
        Single recipient address.
    filename : str
        Attachment name; its extension picks the content type.
    content : bytes
        Raw file bytes.
    """
    mime = MIMEMultipart()
    if sender and "@" in sender:
        mime["from"] = sender
    mime["to"] = recipient
    mime["subject"] = f"Shared file: {filename}"
    mime.attach(MIMEText(f"I'm sharing the file '{filename}' with you.", "plain"))

    content_type, _ = mimetypes.guess_type(filename)
    maintype, subtype = (content_type or "application/octet-stream").split("/", 1)
    attachment = MIMEBase(maintype, subtype)
    attachment.set_payload(content)
    encoders.encode_base64(attachment)
    attachment.add_header("Content-Disposition", "attachment", filename=filename)
    mime.attach(attachment)
    return mime


def _encode_raw(mime: MIMEMultipart) -> str:
    return base64.urlsafe_b64encode(mime.as_bytes()).decode()


def _parse_message(msg: Dict[str, Any]) -> GmailMessage:
    headers = {h["name"]: h["value"] for h in msg.get("payload", {}).get("headers", [])}
    return GmailMessage(
        id=msg["id"],
        subject=headers.get("Subject", ""),
        sender=headers.get("From", ""),
        snippet=msg.get("snippet", ""),
        date=headers.get("Date", ""),
    )


# ── Mailbox ──────────────────────────────────────────────────────────────


class GmailMailbox:
    """The signed-in account's Gmail ``messages`` resource."""

    def __init__(self, client: httpx.AsyncClient):
        self._client = client

    async def share_file(self, path: PathLike, recipient: str, *, sender: Optional[str] = None) -> str:
        """
        Mail the file at ``path`` to ``recipient``. Returns the sent message id.

        Raises ``ShareFailed`` for a bad address, an unreadable file or a
        rejected send.
        """
        _, address = parseaddr(recipient)
        if "@" not in address:
            raise ShareFailed(f"Invalid recipient address: {recipient!r}")

        source = normalize_path(path)
        try:
            content = source.read_bytes()
        except OSError as exc:
            raise ShareFailed(f"Failed to read {source}: {exc}") from exc

        raw = _encode_raw(build_share_message(sender, address, source.name, content))
        try:
            resp = await self._client.post(f"{_GMAIL_MESSAGES_URL}/send", json={"raw": raw})
            resp.raise_for_status()
            message_id = resp.json().get("id", "")
        except (httpx.HTTPError, ValueError, AttributeError) as exc:
            raise ShareFailed(f"Failed to send {source.name} to {address}: {exc}") from exc

        logger.info("Shared %s with %s (message %s)", source.name, address, message_id)
        return message_id

    async def list_messages(self, max_results: int = 50) -> List[GmailMessage]:
        """
        Most recent messages with Subject / From / Date headers.

        A message whose details cannot be fetched is logged and skipped.
        """
        try:
            resp = await self._client.get(_GMAIL_MESSAGES_URL, params={"maxResults": max_results})
            resp.raise_for_status()
            listed = resp.json().get("messages", [])
        except (httpx.HTTPError, ValueError, AttributeError) as exc:
            raise ShareFailed(f"Failed to list messages: {exc}") from exc

        messages: List[GmailMessage] = []
        for item in listed:
            try:
                detail = await self._client.get(
                    f"{_GMAIL_MESSAGES_URL}/{item['id']}",
                    params={"format": "metadata", "metadataHeaders": list(_METADATA_HEADERS)},
                )
                detail.raise_for_status()
                messages.append(_parse_message(detail.json()))
            except (httpx.HTTPError, ValueError, KeyError, TypeError) as exc:
                logger.warning("Skipping message %s: %s", item.get("id"), exc)
        return messages
