"""
Workspace — the outward-facing API for account linking and linked files.

Builds every component from one ``Settings`` instance::

    workspace = Workspace(Settings())
    await workspace.open()
    url = workspace.start_login()
    ...
    workspace.wait_for_login()
    await workspace.create_linked_document("~/Documents", "Report")
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, List, Optional

from config.settings import Settings
from connectors.client_factory import AuthenticatedClientFactory
from connectors.credential_store import CredentialStore
from connectors.errors import StorageFailure
from connectors.google import GoogleConnector
from connectors.oauth_server import OAuthFlowController
from database.external_files import ExternalReferenceStore
from database.session import Database
from linking.filesystem import PathLike
from linking.orchestrator import LinkOrchestrator
from linking.share import GmailMailbox, GmailMessage

logger = logging.getLogger(__name__)


class Workspace:
    def __init__(
        self,
        settings: Settings,
        *,
        transport: Optional[Any] = None,
        opener: Optional[Callable[[str], None]] = None,
    ):
        self.settings = settings
        self.connector = GoogleConnector(settings, transport=transport)
        if not self.connector.is_configured():
            logger.warning("Google client id/secret not set — login will fail")
        self.credentials = CredentialStore(settings, self.connector.provider_name)
        self.oauth = OAuthFlowController(settings, self.connector, self.credentials)
        self.client_factory = AuthenticatedClientFactory(
            settings, self.credentials, self.connector, transport=transport
        )
        self.database = Database(settings.resolved_database_url, echo=settings.debug)
        self.references = ExternalReferenceStore(self.database)
        self.links = LinkOrchestrator(
            settings, self.client_factory, self.references, opener=opener
        )

    async def open(self) -> None:
        await self.database.init()

    async def close(self) -> None:
        self.oauth.stop()
        await self.database.dispose()

    # ── Identity ────────────────────────────────────────────────────────

    def start_login(self) -> str:
        return self.oauth.start_login()

    def wait_for_login(self, timeout: Optional[float] = None) -> None:
        self.oauth.wait_for_login(timeout=timeout)

    def login_and_wait(self, *, open_browser: bool = True, timeout: Optional[float] = None) -> None:
        self.oauth.login_and_wait(open_browser=open_browser, timeout=timeout)

    async def disconnect(self) -> None:
        """Revoke (best effort) and delete the stored credential."""
        try:
            record = self.credentials.load()
        except StorageFailure as exc:
            logger.warning("Stored credential is unreadable, skipping revoke: %s", exc)
            record = None
        if record is not None:
            token = record.refresh_token or record.access_token
            if not await self.connector.revoke_token(token):
                logger.info("Token was not revoked at %s; deleting locally", self.connector.display_name)
        self.credentials.delete()
        logger.info("Disconnected %s", self.connector.display_name)

    def is_connected(self) -> bool:
        return self.credentials.is_connected()

    def connected_email(self) -> Optional[str]:
        try:
            record = self.credentials.load()
        except StorageFailure as exc:
            logger.warning("Stored credential is unreadable: %s", exc)
            return None
        if record is None or not record.refresh_token:
            return None
        return record.account_email

    # ── Linked documents ────────────────────────────────────────────────

    async def create_linked_document(self, directory: PathLike, name: str) -> Path:
        return await self.links.create_linked_document(directory, name)

    async def open_linked_document(self, path: PathLike) -> str:
        return await self.links.open_linked_document(path)

    # ── Mail ────────────────────────────────────────────────────────────

    async def share_file(self, path: PathLike, recipient: str) -> str:
        """Mail a local file to ``recipient`` from the connected account."""
        async with self.client_factory.get_client() as client:
            return await GmailMailbox(client).share_file(path, recipient, sender=self.connected_email())

    async def list_messages(self, max_results: int = 50) -> List[GmailMessage]:
        async with self.client_factory.get_client() as client:
            return await GmailMailbox(client).list_messages(max_results)
