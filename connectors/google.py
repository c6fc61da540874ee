"""
GoogleConnector — OAuth2 installed-app flow for Google Drive and Gmail.

The redirect lands on the local loopback listener
(``http://localhost:<port>/auth/google/callback``); see
:mod:`connectors.oauth_server`.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import httpx

from config.settings import Settings
from connectors.base import BaseConnector
from connectors.credential_store import CredentialRecord
from connectors.errors import ExchangeFailed

logger = logging.getLogger(__name__)

# Google OAuth2 endpoints
_GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
_GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
_GOOGLE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"
_GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"

UNKNOWN_EMAIL = "unknown"


def _error_detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(body, dict):
        return body.get("error_description") or str(body.get("error", body))
    return str(body)


class GoogleConnector(BaseConnector):
    """OAuth2 connector for Google (Drive, Gmail and account email)."""

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._settings = settings
        self._transport = transport

    @property
    def provider_name(self) -> str:
        return "google"

    @property
    def display_name(self) -> str:
        return "Google"

    @property
    def scopes(self) -> List[str]:
        return [
            "https://www.googleapis.com/auth/drive.file",
            "https://www.googleapis.com/auth/drive.metadata.readonly",
            "https://www.googleapis.com/auth/userinfo.email",
            "https://www.googleapis.com/auth/gmail.readonly",
            "https://www.googleapis.com/auth/gmail.send",
        ]

    def is_configured(self) -> bool:
        return bool(self._settings.google_client_id and self._settings.google_client_secret)

    def get_auth_url(self, state: str) -> str:
        params = {
            "client_id": self._settings.google_client_id,
            "redirect_uri": self._settings.oauth_redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.scopes),
            "access_type": "offline",       # gets refresh_token
            "prompt": "consent",            # force consent to always get refresh_token
            "state": state,
        }
        return f"{_GOOGLE_AUTH_URL}?{urlencode(params)}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=30.0)

    async def handle_callback(self, code: str) -> CredentialRecord:
        """Exchange auth code for tokens, then look up the account email."""
        async with self._client() as client:
            try:
                token_resp = await client.post(
                    _GOOGLE_TOKEN_URL,
                    data={
                        "code": code,
                        "client_id": self._settings.google_client_id,
                        "client_secret": self._settings.google_client_secret,
                        "redirect_uri": self._settings.oauth_redirect_uri,
                        "grant_type": "authorization_code",
                    },
                )
            except httpx.HTTPError as exc:
                raise ExchangeFailed(f"Token request failed: {exc}") from exc
            if token_resp.is_error:
                raise ExchangeFailed(
                    f"Token exchange rejected ({token_resp.status_code}): "
                    f"{_error_detail(token_resp)}"
                )
            token_data = self._token_payload(token_resp)

            try:
                email = await self.get_account_email(token_data["access_token"], client=client)
            except Exception as exc:
                logger.warning("Could not get account email: %s", exc)
                email = UNKNOWN_EMAIL

        logger.info(
            "Token received from Google (access %s…, expires in %ss)",
            token_data["access_token"][:8],
            token_data.get("expires_in", 3600),
        )
        return CredentialRecord(
            access_token=token_data["access_token"],
            refresh_token=token_data.get("refresh_token") or "",
            account_email=email or UNKNOWN_EMAIL,
            expires_at=int(time.time()) + int(token_data.get("expires_in", 3600)),
        )

    async def get_account_email(
        self, access_token: str, *, client: Optional[httpx.AsyncClient] = None
    ) -> str:
        """Fetch the signed-in account's email from the userinfo endpoint."""
        headers = {"Authorization": f"Bearer {access_token}"}
        if client is None:
            async with self._client() as own:
                resp = await own.get(_GOOGLE_USERINFO_URL, headers=headers)
        else:
            resp = await client.get(_GOOGLE_USERINFO_URL, headers=headers)
        resp.raise_for_status()
        return resp.json()["email"]

    def build_refresh_request(self, refresh_token: str) -> httpx.Request:
        return httpx.Request(
            "POST",
            _GOOGLE_TOKEN_URL,
            data={
                "client_id": self._settings.google_client_id,
                "client_secret": self._settings.google_client_secret,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            },
        )

    def apply_refresh_response(
        self, record: CredentialRecord, response: httpx.Response
    ) -> CredentialRecord:
        if response.is_error:
            raise ExchangeFailed(
                f"Token refresh rejected ({response.status_code}): {_error_detail(response)}"
            )
        data = self._token_payload(response)
        return record.model_copy(
            update={
                "access_token": data["access_token"],
                "expires_at": int(time.time()) + int(data.get("expires_in", 3600)),
                # Google only sends a refresh_token here when it rotates it
                "refresh_token": data.get("refresh_token") or record.refresh_token,
            }
        )

    async def revoke_token(self, token: str) -> bool:
        """Revoke the token at Google."""
        try:
            async with self._client() as client:
                resp = await client.post(_GOOGLE_REVOKE_URL, params={"token": token})
                return resp.status_code == 200
        except httpx.HTTPError as exc:
            logger.warning("Token revocation failed: %s", exc)
            return False

    @staticmethod
    def _token_payload(resp: httpx.Response) -> Dict[str, Any]:
        try:
            data = resp.json()
        except ValueError as exc:
            raise ExchangeFailed("Token endpoint returned invalid JSON") from exc
        if not isinstance(data, dict) or not data.get("access_token"):
            raise ExchangeFailed("Token endpoint response has no access_token")
        return data
