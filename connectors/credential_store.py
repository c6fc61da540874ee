"""
Credential store — one OAuth record per provider in the OS secret store.

Backed by ``keyring`` (macOS Keychain, Windows Credential Locker, Secret
Service on Linux).  The record is serialised to JSON and optionally wrapped
with :class:`connectors.encryption.TokenCipher`.  Nothing is cached in
process: every call goes back to the secret store.
"""

from __future__ import annotations

import logging
from typing import Optional

import keyring
from keyring.errors import KeyringError, PasswordDeleteError
from pydantic import BaseModel, ValidationError

from config.settings import Settings
from connectors.encryption import TokenCipher
from connectors.errors import StorageFailure

logger = logging.getLogger(__name__)


class CredentialRecord(BaseModel):
    access_token: str
    refresh_token: str = ""
    account_email: str = ""
    expires_at: int = 0  # unix seconds


class CredentialStore:
    """get / set / delete the credential record for one provider."""

    def __init__(
        self,
        settings: Settings,
        provider: str = "google",
        cipher: Optional[TokenCipher] = None,
    ):
        self.service_name = settings.keyring_service
        self.username = f"{provider}-oauth"
        self._cipher = cipher or TokenCipher(settings.token_encryption_key)

    def save(self, record: CredentialRecord) -> None:
        payload = self._cipher.encrypt(record.model_dump_json())
        try:
            keyring.set_password(self.service_name, self.username, payload)
        except KeyringError as exc:
            raise StorageFailure(f"Failed to save credential: {exc}") from exc
        logger.info("Saved %s credential for %s", self.username, record.account_email)

    def load(self) -> Optional[CredentialRecord]:
        try:
            payload = keyring.get_password(self.service_name, self.username)
        except KeyringError as exc:
            raise StorageFailure(f"Failed to read credential: {exc}") from exc
        if payload is None:
            return None
        try:
            return CredentialRecord.model_validate_json(self._cipher.decrypt(payload))
        except ValidationError as exc:
            raise StorageFailure(f"Stored credential is corrupt: {exc}") from exc

    def delete(self) -> None:
        """Remove the record. Deleting an absent record is not an error."""
        try:
            keyring.delete_password(self.service_name, self.username)
        except PasswordDeleteError:
            return
        except KeyringError as exc:
            raise StorageFailure(f"Failed to delete credential: {exc}") from exc
        logger.info("Deleted %s credential", self.username)

    def is_connected(self) -> bool:
        """True iff a readable record with a refresh token is stored."""
        try:
            record = self.load()
        except StorageFailure as exc:
            logger.warning("Treating unreadable %s credential as not connected: %s", self.username, exc)
            return False
        return record is not None and bool(record.refresh_token)
