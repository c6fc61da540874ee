"""
Error taxonomy for the account-linking subsystem.

Every failure is raised to the immediate caller; nothing here is retried.
"""

from __future__ import annotations


class LinkError(Exception):
    """Base class for all linking errors."""


# ── OAuth flow ─────────────────────────────────────────────────────────


class AlreadyInProgress(LinkError):
    """A login session is already listening for its callback."""


class ListenerBindFailed(LinkError):
    """The loopback callback port could not be bound."""


class AuthorizationDenied(LinkError):
    """The provider redirected back with an ``error`` parameter."""


class StateMismatch(AuthorizationDenied):
    """The callback ``state`` was missing or did not match the login."""


class MissingCode(LinkError):
    """The callback carried neither an error nor an authorization code."""


class ExchangeFailed(LinkError):
    """The code-for-token (or refresh-token) exchange was rejected."""


class LoginTimeout(LinkError):
    """No callback arrived before the wait deadline."""


class LoginCancelled(LinkError):
    """The in-flight login was stopped before a callback arrived."""


# ── Credentials / remote ───────────────────────────────────────────────


class NotConnected(LinkError):
    """No stored credential with a refresh token."""


class RemoteCreateFailed(LinkError):
    """The remote document could not be created."""


class ShareFailed(LinkError):
    """A file could not be mailed, or the mailbox could not be read."""


# ── References ─────────────────────────────────────────────────────────


class DuplicatePath(LinkError):
    """The local path is already mapped to a remote resource."""

    def __init__(self, path: str):
        super().__init__(f"Path already linked: {path}")
        self.path = path


class UnresolvedReference(LinkError):
    """Neither the mapping table nor the pointer file yielded a remote id."""

    def __init__(self, path: str, reason: str = ""):
        message = f"Cannot resolve remote id for {path}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.path = path


class StorageFailure(LinkError):
    """Credential store or reference store I/O failed."""
