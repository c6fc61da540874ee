"""
BaseConnector — abstract interface for OAuth2 identity providers.

A provider subclasses this and implements URL building, the
authorization-code exchange and the refresh-token exchange.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List

import httpx

from connectors.credential_store import CredentialRecord


class BaseConnector(ABC):
    """Abstract base for OAuth2 connectors."""

    # ── Identity ────────────────────────────────────────────────────────
    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Unique slug used in the callback path: 'google'."""
        ...

    @property
    @abstractmethod
    def display_name(self) -> str:
        """Human-readable: 'Google'."""
        ...

    @property
    @abstractmethod
    def scopes(self) -> List[str]:
        """OAuth scopes required by this connector."""
        ...

    # ── OAuth flow ──────────────────────────────────────────────────────

    @abstractmethod
    def get_auth_url(self, state: str) -> str:
        """
        Build the provider's OAuth2 authorization URL.

        Parameters
        ----------
        state : str
            Opaque CSRF token echoed back on the callback.

        Returns
        -------
        The full URL to open in the user's browser.
        """
        ...

    @abstractmethod
    async def handle_callback(self, code: str) -> CredentialRecord:
        """
        Exchange the authorization code for tokens.

        Raises
        ------
        connectors.errors.ExchangeFailed
            If the token endpoint rejects the code.
        """
        ...

    @abstractmethod
    def build_refresh_request(self, refresh_token: str) -> httpx.Request:
        """Build the token-endpoint request for a refresh-token grant."""
        ...

    @abstractmethod
    def apply_refresh_response(
        self, record: CredentialRecord, response: httpx.Response
    ) -> CredentialRecord:
        """
        Merge a refresh-token response into ``record``.

        Returns a new record; the refresh token is kept unless the provider
        rotated it.
        """
        ...

    async def revoke_token(self, token: str) -> bool:
        """
        Revoke the token at the provider (optional).
        Returns True on success, False if the provider doesn't support it.
        """
        return False

    # ── Helpers ─────────────────────────────────────────────────────────

    def is_configured(self) -> bool:
        """Return True if client id / secret are present."""
        return True
