"""
Shared fixtures: an in-memory keyring, a stubbed Google, sqlite on tmp_path.
"""

import json
import socket
import time
from typing import Dict, List, Tuple
from urllib.parse import parse_qs

import httpx
import keyring
import pytest
import pytest_asyncio
from cryptography.fernet import Fernet
from keyring.backend import KeyringBackend
from keyring.errors import PasswordDeleteError

from config.settings import Settings
from connectors.credential_store import CredentialRecord, CredentialStore
from connectors.google import GoogleConnector
from database.external_files import ExternalReferenceStore
from database.session import Database
from linking.workspace import Workspace


class MemoryKeyring(KeyringBackend):
    priority = 1

    def __init__(self):
        super().__init__()
        self.passwords: Dict[Tuple[str, str], str] = {}

    def get_password(self, service, username):
        return self.passwords.get((service, username))

    def set_password(self, service, username, password):
        self.passwords[(service, username)] = password

    def delete_password(self, service, username):
        try:
            del self.passwords[(service, username)]
        except KeyError:
            raise PasswordDeleteError("not found")


class FakeGoogle:
    """MockTransport handler for the token, userinfo, revoke, Drive and Gmail endpoints."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.email = "user@example.com"
        self.userinfo_fails = False
        self.userinfo_body = None
        self.issue_refresh_token = True
        self.refresh_fails = False
        self.create_fails = False
        self.created_id = "abc123"
        self.created_names: List[str] = []
        self.files = [
            {"id": "d1", "name": "Notes", "mimeType": "application/vnd.google-apps.document",
             "webViewLink": "https://docs.google.com/document/d/d1/edit"},
        ]
        self.send_fails = False
        self.sent: List[dict] = []
        self.messages = {
            "m1": {"id": "m1", "threadId": "t1", "snippet": "See attached",
                   "payload": {"headers": [
                       {"name": "Subject", "value": "Quarterly report"},
                       {"name": "From", "value": "Ana <ana@example.com>"},
                       {"name": "Date", "value": "Mon, 5 Oct 2026 09:30:00 +0000"},
                   ]}},
        }
        self.transport = httpx.MockTransport(self.handler)

    def calls(self, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host, path = request.url.host, request.url.path

        if host == "oauth2.googleapis.com" and path == "/token":
            form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
            if form["grant_type"] == "authorization_code":
                if form["code"] == "bad-code":
                    return httpx.Response(400, json={"error": "invalid_grant", "error_description": "Bad code"})
                body = {"access_token": f"at-{form['code']}", "expires_in": 3600}
                if self.issue_refresh_token:
                    body["refresh_token"] = "rt-1"
                return httpx.Response(200, json=body)
            if self.refresh_fails:
                return httpx.Response(400, json={"error": "invalid_grant"})
            return httpx.Response(200, json={"access_token": "at-refreshed", "expires_in": 3600})

        if host == "oauth2.googleapis.com" and path == "/revoke":
            return httpx.Response(200)

        if path == "/oauth2/v2/userinfo":
            if self.userinfo_fails:
                return httpx.Response(500)
            if self.userinfo_body is not None:
                return httpx.Response(200, json=self.userinfo_body)
            return httpx.Response(200, json={"email": self.email, "id": "42"})

        if path == "/drive/v3/files" and request.method == "POST":
            if self.create_fails:
                return httpx.Response(503, json={"error": {"message": "backend error"}})
            self.created_names.append(json.loads(request.content)["name"])
            return httpx.Response(200, json={"id": self.created_id})

        if path == "/drive/v3/files" and request.method == "GET":
            return httpx.Response(200, json={"files": self.files})

        if path == "/gmail/v1/users/me/messages/send":
            if self.send_fails:
                return httpx.Response(403, json={"error": {"message": "insufficient scope"}})
            self.sent.append(json.loads(request.content))
            return httpx.Response(200, json={"id": "sent-1", "threadId": "t9"})

        if path == "/gmail/v1/users/me/messages":
            listed = [{"id": key, "threadId": "t1"} for key in self.messages]
            return httpx.Response(200, json={"messages": listed, "resultSizeEstimate": len(listed)})

        if path.startswith("/gmail/v1/users/me/messages/"):
            message = self.messages.get(path.rsplit("/", 1)[-1])
            if message is None:
                return httpx.Response(404)
            return httpx.Response(200, json=message)

        return httpx.Response(404)


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture(autouse=True)
def memory_keyring():
    previous = keyring.get_keyring()
    backend = MemoryKeyring()
    keyring.set_keyring(backend)
    yield backend
    keyring.set_keyring(previous)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        google_client_id="client-id",
        google_client_secret="client-secret",
        oauth_callback_host="127.0.0.1",
        oauth_callback_port=_free_port(),
        oauth_login_timeout_seconds=10,
        keyring_service="finder-tests",
        token_encryption_key=Fernet.generate_key().decode(),
        app_data_dir=str(tmp_path / "appdata"),
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'finder.db'}",
    )


@pytest.fixture
def google() -> FakeGoogle:
    return FakeGoogle()


@pytest.fixture
def connector(settings, google) -> GoogleConnector:
    return GoogleConnector(settings, transport=google.transport)


@pytest.fixture
def credential_store(settings) -> CredentialStore:
    return CredentialStore(settings)


@pytest.fixture
def connected(credential_store) -> CredentialRecord:
    record = CredentialRecord(
        access_token="at-live",
        refresh_token="rt-1",
        account_email="user@example.com",
        expires_at=int(time.time()) + 3600,
    )
    credential_store.save(record)
    return record


@pytest_asyncio.fixture
async def database(settings):
    db = Database(settings.resolved_database_url)
    await db.init()
    yield db
    await db.dispose()


@pytest.fixture
def references(database) -> ExternalReferenceStore:
    return ExternalReferenceStore(database)


@pytest_asyncio.fixture
async def workspace(settings, google):
    opened = []
    ws = Workspace(settings, transport=google.transport, opener=opened.append)
    ws.opened = opened
    await ws.open()
    yield ws
    await ws.close()
