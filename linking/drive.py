"""
Google Drive helpers over an authenticated ``httpx.AsyncClient``.

Only the two calls the linking layer needs: create an empty Google Doc and
list the user's Docs / Sheets / Slides.
"""

from __future__ import annotations

import logging
from typing import List

import httpx
from pydantic import BaseModel

from connectors.errors import LinkError, RemoteCreateFailed

logger = logging.getLogger(__name__)

_DRIVE_FILES_URL = "https://www.googleapis.com/drive/v3/files"

GOOGLE_DOC_MIME = "application/vnd.google-apps.document"
GOOGLE_SHEET_MIME = "application/vnd.google-apps.spreadsheet"
GOOGLE_SLIDES_MIME = "application/vnd.google-apps.presentation"


class RemoteDocument(BaseModel):
    id: str
    name: str
    mime_type: str
    link: str = ""


class DriveDocuments:
    """Thin wrapper around the Drive v3 ``files`` resource."""

    def __init__(self, client: httpx.AsyncClient):
        self._client = client

    async def create_document(self, name: str) -> str:
        """
        Create an empty Google Doc named ``name`` and return its file id.

        Raises ``RemoteCreateFailed`` on any transport or API error.
        """
        try:
            resp = await self._client.post(
                _DRIVE_FILES_URL,
                params={"fields": "id, name, mimeType, webViewLink"},
                json={"name": name, "mimeType": GOOGLE_DOC_MIME},
            )
            resp.raise_for_status()
            file_id = resp.json()["id"]
        except (httpx.HTTPError, KeyError, ValueError) as exc:
            raise RemoteCreateFailed(f"Failed to create Google Doc {name!r}: {exc}") from exc

        logger.info("Created Google Doc %r (%s)", name, file_id)
        return file_id

    async def list_documents(self, page_size: int = 100) -> List[RemoteDocument]:
        """Docs, Sheets and Slides visible to the app (first page)."""
        query = " or ".join(
            f"mimeType='{mime}'" for mime in (GOOGLE_DOC_MIME, GOOGLE_SHEET_MIME, GOOGLE_SLIDES_MIME)
        )
        try:
            resp = await self._client.get(
                _DRIVE_FILES_URL,
                params={
                    "q": query,
                    "fields": "files(id, name, mimeType, webViewLink)",
                    "pageSize": page_size,
                },
            )
            resp.raise_for_status()
            files = resp.json().get("files", [])
        except (httpx.HTTPError, ValueError) as exc:
            raise LinkError(f"Failed to list files: {exc}") from exc

        return [
            RemoteDocument(
                id=f["id"],
                name=f.get("name", ""),
                mime_type=f.get("mimeType", ""),
                link=f.get("webViewLink", ""),
            )
            for f in files
        ]
