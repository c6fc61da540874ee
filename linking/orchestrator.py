"""
Link orchestrator — create and open cloud-backed documents.

A linked document lives in two places: a local pointer file whose content is
the remote file id, and an ``external_files`` row mapping the pointer path to
that id.  The pointer file is authoritative; the row is a lookup cache.

Create order is remote → pointer file → row, so a failed remote create leaves
nothing behind locally.  If the row insert fails after the pointer was
written, ``open_linked_document`` still works by reading the pointer and
re-inserts the row on the way.  Rows whose pointer file has gone are dropped
when they are next touched.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, List, Optional

import httpx

from config.settings import Settings
from connectors.client_factory import AuthenticatedClientFactory
from connectors.errors import DuplicatePath, LinkError, StorageFailure, UnresolvedReference
from database.external_files import ExternalFileRow, ExternalReferenceStore
from linking.drive import DriveDocuments, RemoteDocument
from linking.filesystem import LocalFileSystem, PathLike, normalize_path
from linking.opener import platform_open

logger = logging.getLogger(__name__)

RESOURCE_TYPE = "google_doc"
_DOCUMENT_URL = "https://docs.google.com/document/d/{file_id}/edit"


def document_url(remote_id: str) -> str:
    return _DOCUMENT_URL.format(file_id=remote_id)


class LinkOrchestrator:
    """Keeps pointer files and the reference table in step."""

    def __init__(
        self,
        settings: Settings,
        client_factory: AuthenticatedClientFactory,
        references: ExternalReferenceStore,
        *,
        filesystem: Optional[LocalFileSystem] = None,
        opener: Optional[Callable[[str], None]] = None,
        documents_factory: Callable[[httpx.AsyncClient], DriveDocuments] = DriveDocuments,
    ):
        self._extension = settings.pointer_extension
        self._client_factory = client_factory
        self._references = references
        self._fs = filesystem or LocalFileSystem()
        self._opener = opener or platform_open
        self._documents_factory = documents_factory

    def is_pointer(self, path: PathLike) -> bool:
        return Path(path).suffix == self._extension

    def pointer_path(self, directory: PathLike, name: str) -> Path:
        return normalize_path(directory) / f"{name}{self._extension}"

    async def create_linked_document(self, directory: PathLike, name: str) -> Path:
        """
        Create a Google Doc named ``name`` and a pointer to it in ``directory``.

        Returns the pointer path.

        Raises
        ------
        NotConnected
            No stored credential.
        DuplicatePath
            The pointer file already exists (checked before anything remote).
        RemoteCreateFailed
            Drive rejected the create; nothing local was written.
        StorageFailure
            The pointer file could not be written, or the row insert failed
            (the pointer file is then left in place and still opens).
        """
        pointer = self.pointer_path(directory, name)

        async with self._client_factory.get_client() as client:
            if self._fs.exists(pointer):
                raise DuplicatePath(str(pointer))
            # a row without its pointer file is left over from a deletion
            # done outside the app
            if await self._references.remove(pointer):
                logger.info("Dropped stale mapping for %s", pointer)
            remote_id = await self._documents_factory(client).create_document(name)

        try:
            self._fs.create_file(pointer, remote_id)
        except OSError as exc:
            raise StorageFailure(f"Failed to create local pointer file {pointer}: {exc}") from exc

        await self._references.add(RESOURCE_TYPE, pointer, remote_id)
        logger.info("Created linked document %s → %s", pointer, remote_id)
        return pointer

    async def resolve_remote_id(self, path: PathLike) -> str:
        """
        Remote id for a pointer.

        The pointer file's content is authoritative and the mapping row is a
        cache.  A row is only trusted while its pointer file exists; a row
        that disagrees with the file is rewritten, and a missing row is
        restored.  The row alone answers when the file exists but cannot be
        read or is empty.
        """
        pointer = normalize_path(path)
        try:
            row = await self._references.get_by_path(pointer)
        except StorageFailure as exc:
            logger.warning("Reference lookup failed for %s, reading pointer file: %s", pointer, exc)
            row = None

        try:
            remote_id = self._fs.read_file(pointer).strip()
        except FileNotFoundError as exc:
            if row is not None:
                logger.warning("Pointer %s no longer exists; dropping its mapping", pointer)
                await self._forget(pointer)
            raise UnresolvedReference(str(pointer), "pointer file does not exist") from exc
        except OSError as exc:
            if row is not None:
                logger.warning("Could not read %s, using mapped id: %s", pointer, exc)
                return row.remote_id
            raise UnresolvedReference(str(pointer), f"failed to read pointer file: {exc}") from exc

        if not remote_id:
            if row is not None:
                return row.remote_id
            raise UnresolvedReference(str(pointer), "pointer file is empty")

        if row is None:
            await self._relink(pointer, remote_id)
        elif row.remote_id != remote_id:
            logger.warning("Mapping for %s is stale (%s); pointer says %s", pointer, row.remote_id, remote_id)
            await self._forget(pointer)
            await self._relink(pointer, remote_id)
        return remote_id

    async def _relink(self, pointer: Path, remote_id: str) -> None:
        """Restore a missing mapping row from the pointer file."""
        try:
            await self._references.add(RESOURCE_TYPE, pointer, remote_id)
        except LinkError as exc:
            logger.warning("Could not restore mapping for %s: %s", pointer, exc)

    async def _forget(self, pointer: Path) -> None:
        try:
            await self._references.remove(pointer)
        except LinkError as exc:
            logger.warning("Could not drop mapping for %s: %s", pointer, exc)

    async def open_linked_document(self, path: PathLike) -> str:
        """Resolve ``path`` and open the document in the browser. Returns the URL."""
        url = document_url(await self.resolve_remote_id(path))
        self._opener(url)
        return url

    async def open_path(self, path: PathLike) -> str:
        """Open any file: pointers go to the browser, the rest to the OS."""
        if self.is_pointer(path):
            return await self.open_linked_document(path)
        target = str(normalize_path(path))
        self._opener(target)
        return target

    async def rename_pointer(self, old_path: PathLike, new_path: PathLike) -> Path:
        """Move a pointer file and carry its mapping along."""
        old, new = normalize_path(old_path), normalize_path(new_path)
        self._fs.rename(old, new)
        await self._references.update_path(old, new)
        return new

    async def delete_pointer(self, path: PathLike) -> None:
        """Delete a pointer file and its mapping. The remote document is kept."""
        pointer = normalize_path(path)
        try:
            self._fs.delete(pointer)
        except FileNotFoundError:
            logger.info("Pointer %s was already deleted; dropping its mapping", pointer)
        await self._references.remove(pointer)

    async def list_linked_documents(self) -> List[ExternalFileRow]:
        return await self._references.list_by_type(RESOURCE_TYPE)

    async def list_remote_documents(self) -> List[RemoteDocument]:
        async with self._client_factory.get_client() as client:
            return await self._documents_factory(client).list_documents()
