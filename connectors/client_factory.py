"""
Authenticated client factory — httpx clients that refresh their own token.

This is the single interface the Drive helpers use to talk to Google.
The access token is refreshed on the first request that finds it expired,
and the refreshed record is written back to the credential store so the
next process start reuses it.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, AsyncGenerator, Generator, Optional

import httpx

from config.settings import Settings
from connectors.base import BaseConnector
from connectors.credential_store import CredentialRecord, CredentialStore
from connectors.errors import NotConnected

logger = logging.getLogger(__name__)

# Refresh slightly early so a token doesn't expire in flight
_EXPIRY_SKEW_SECONDS = 60


class RefreshingTokenAuth(httpx.Auth):
    """Bearer auth that performs a refresh-token grant when expired."""

    requires_response_body = True

    def __init__(
        self,
        record: CredentialRecord,
        connector: BaseConnector,
        credential_store: CredentialStore,
    ):
        self._record = record
        self._connector = connector
        self._store = credential_store

    @property
    def record(self) -> CredentialRecord:
        return self._record

    def is_expired(self) -> bool:
        return self._record.expires_at <= int(time.time()) + _EXPIRY_SKEW_SECONDS

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        if self.is_expired():
            refresh_response = yield self._connector.build_refresh_request(self._record.refresh_token)
            self._store.save(self._refreshed(refresh_response))
            logger.info("Refreshed %s access token", self._connector.provider_name)

        request.headers["Authorization"] = f"Bearer {self._record.access_token}"
        yield request

    async def async_auth_flow(self, request: httpx.Request) -> AsyncGenerator[httpx.Request, httpx.Response]:
        # Same flow; the keyring write runs off the event loop
        if self.is_expired():
            refresh_response = yield self._connector.build_refresh_request(self._record.refresh_token)
            await refresh_response.aread()
            await asyncio.to_thread(self._store.save, self._refreshed(refresh_response))
            logger.info("Refreshed %s access token", self._connector.provider_name)

        request.headers["Authorization"] = f"Bearer {self._record.access_token}"
        yield request

    def _refreshed(self, response: httpx.Response) -> CredentialRecord:
        self._record = self._connector.apply_refresh_response(self._record, response)
        return self._record


class AuthenticatedClientFactory:
    """Builds httpx clients from the stored credential."""

    def __init__(
        self,
        settings: Settings,
        credential_store: CredentialStore,
        connector: BaseConnector,
        *,
        transport: Optional[Any] = None,
    ):
        self._settings = settings
        self._store = credential_store
        self._connector = connector
        self._transport = transport

    def _auth(self) -> RefreshingTokenAuth:
        record = self._store.load()
        if record is None or not record.refresh_token:
            raise NotConnected(f"Not connected to {self._connector.display_name}")
        return RefreshingTokenAuth(record, self._connector, self._store)

    def get_client(self) -> httpx.AsyncClient:
        """
        Return an ``httpx.AsyncClient`` carrying refreshing bearer auth.

        Raises ``NotConnected`` if no usable credential is stored.
        """
        return httpx.AsyncClient(auth=self._auth(), transport=self._transport, timeout=30.0)

    def get_sync_client(self) -> httpx.Client:
        """Blocking variant of :meth:`get_client`."""
        return httpx.Client(auth=self._auth(), transport=self._transport, timeout=30.0)
