"""
OAuth flow controller — loopback listener for the installed-app flow.

``start_login()`` binds ``http://localhost:<port>/auth/google/callback``,
serves it with uvicorn on a daemon thread and returns the consent URL.
The single callback exchanges the code, stores the credential and resolves
the session's one-shot future; ``wait_for_login()`` blocks on that future
and tears the listener down.

Only one login may be in flight per controller.
"""

from __future__ import annotations

import hmac
import logging
import secrets
import socket
import threading
import webbrowser
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeout
from html import escape
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.responses import HTMLResponse

from config.settings import Settings
from connectors.base import BaseConnector
from connectors.credential_store import CredentialStore
from connectors.errors import (
    AlreadyInProgress,
    AuthorizationDenied,
    ExchangeFailed,
    LinkError,
    ListenerBindFailed,
    LoginCancelled,
    LoginTimeout,
    MissingCode,
    StateMismatch,
)

logger = logging.getLogger(__name__)

_SHUTDOWN_JOIN_SECONDS = 5.0


class LoginSession:
    """
    State for one in-flight login.

    The callback route and the waiting caller share this object; ``result``
    is resolved at most once.
    """

    def __init__(self, state: str):
        self.state = state
        self.result: Future = Future()
        self.last_error: Optional[LinkError] = None
        self.server: Optional[uvicorn.Server] = None
        self.sock: Optional[socket.socket] = None
        self.thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._claimed = False
        self._stopped = False

    @property
    def port(self) -> int:
        return self.sock.getsockname()[1] if self.sock else 0

    def claim(self) -> bool:
        """Reserve the session for one callback. False if already taken."""
        with self._lock:
            if self._claimed or self.result.done():
                return False
            self._claimed = True
            return True

    def complete(self, error: Optional[LinkError] = None) -> bool:
        """Resolve the session. Returns False if it was already resolved."""
        with self._lock:
            if self.result.done():
                return False
            self._claimed = True
            if error is None:
                self.result.set_result(None)
            else:
                self.last_error = error
                self.result.set_exception(error)
            return True

    def shutdown(self) -> None:
        """Stop the listener. Idempotent; failures are logged only."""
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
        try:
            if self.server is not None:
                self.server.should_exit = True
            if self.thread is not None and self.thread is not threading.current_thread():
                self.thread.join(timeout=_SHUTDOWN_JOIN_SECONDS)
                if self.thread.is_alive():
                    logger.warning("OAuth callback listener did not stop within %ss", _SHUTDOWN_JOIN_SECONDS)
        except Exception as exc:
            logger.warning("Error stopping OAuth callback listener: %s", exc)
        finally:
            if self.sock is not None:
                try:
                    self.sock.close()
                except OSError as exc:
                    logger.debug("Error closing callback socket: %s", exc)


# ── Callback app ───────────────────────────────────────────────────────


def build_callback_app(
    session: LoginSession,
    connector: BaseConnector,
    credential_store: CredentialStore,
) -> FastAPI:
    """FastAPI app with the single callback route bound to ``session``."""
    app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)

    @app.get(f"/auth/{connector.provider_name}/callback", response_class=HTMLResponse)
    async def oauth_callback(
        code: Optional[str] = None,
        error: Optional[str] = None,
        state: Optional[str] = None,
    ) -> HTMLResponse:
        if not session.claim():
            return HTMLResponse(
                _callback_html(False, "This sign-in link has already been used.", connector.display_name),
                status_code=409,
            )

        try:
            await _process_callback(session, connector, credential_store, code, error, state)
        except LinkError as exc:
            logger.error("OAuth callback failed for %s: %s", connector.provider_name, exc)
            session.complete(exc)
            return HTMLResponse(
                _callback_html(False, str(exc), connector.display_name),
                status_code=200,
            )
        except Exception as exc:
            logger.exception("Unexpected error in OAuth callback for %s", connector.provider_name)
            failure = ExchangeFailed(f"Login failed: {exc}")
            failure.__cause__ = exc
            session.complete(failure)
            return HTMLResponse(
                _callback_html(False, str(failure), connector.display_name),
                status_code=200,
            )

        session.complete(None)
        return HTMLResponse(
            _callback_html(
                True,
                f"You have successfully connected your {connector.display_name} account.",
                connector.display_name,
            ),
            status_code=200,
        )

    return app


async def _process_callback(
    session: LoginSession,
    connector: BaseConnector,
    credential_store: CredentialStore,
    code: Optional[str],
    error: Optional[str],
    state: Optional[str],
) -> None:
    if error:
        raise AuthorizationDenied(f"{connector.display_name} auth error: {error}")
    if not state or not hmac.compare_digest(state, session.state):
        raise StateMismatch("OAuth state parameter is missing or does not match this login")
    if not code:
        raise MissingCode("No authorization code received")

    record = await connector.handle_callback(code)
    if not record.refresh_token:
        raise ExchangeFailed("Provider did not issue a refresh token")

    credential_store.save(record)
    logger.info("Successfully authenticated with %s as %s", connector.display_name, record.account_email)


# ── Controller ─────────────────────────────────────────────────────────


class OAuthFlowController:
    """Single-flight login: start_login → (callback) → wait_for_login."""

    def __init__(
        self,
        settings: Settings,
        connector: BaseConnector,
        credential_store: CredentialStore,
    ):
        self._settings = settings
        self._connector = connector
        self._store = credential_store
        self._lock = threading.Lock()
        self._session: Optional[LoginSession] = None

    @property
    def session(self) -> Optional[LoginSession]:
        return self._session

    @property
    def is_listening(self) -> bool:
        return self._session is not None

    def start_login(self) -> str:
        """
        Start the loopback listener and return the authorization URL.

        Raises
        ------
        AlreadyInProgress
            If a login is already waiting for its callback.
        ListenerBindFailed
            If the callback port is unavailable.
        """
        with self._lock:
            if self._session is not None:
                raise AlreadyInProgress("A login is already in progress")

            host = self._settings.oauth_callback_host
            port = self._settings.oauth_callback_port
            try:
                sock = socket.create_server((host, port))
            except OSError as exc:
                raise ListenerBindFailed(f"Cannot listen on {host}:{port}: {exc}") from exc

            session = LoginSession(secrets.token_urlsafe(32))
            app = build_callback_app(session, self._connector, self._store)
            server = uvicorn.Server(
                uvicorn.Config(
                    app,
                    log_config=None,
                    log_level="warning",
                    access_log=False,
                    lifespan="off",
                )
            )
            session.server = server
            session.sock = sock
            session.thread = threading.Thread(
                target=server.run,
                kwargs={"sockets": [sock]},
                name="oauth-callback",
                daemon=True,
            )
            session.thread.start()
            self._session = session

        logger.info("Started OAuth callback listener on %s:%d", host, session.port)
        return self._connector.get_auth_url(session.state)

    def wait_for_login(self, timeout: Optional[float] = None) -> None:
        """
        Block until the callback has been processed.

        ``timeout`` defaults to ``Settings.oauth_login_timeout_seconds``.
        The listener is stopped whatever the outcome.

        Raises
        ------
        LoginTimeout
            If no callback arrived in time.
        LinkError
            Whatever the callback captured (denied, exchange failure, …).
        """
        session = self._session
        if session is None:
            raise LinkError("No login in progress")
        if timeout is None:
            timeout = self._settings.oauth_login_timeout_seconds

        try:
            session.result.result(timeout=timeout)
        except FutureTimeout as exc:
            timeout_error = LoginTimeout(f"No OAuth callback within {timeout:g}s")
            if session.complete(timeout_error):
                raise timeout_error from exc
            # the callback resolved the session just after the deadline
            session.result.result()
        finally:
            self._teardown(session)

    def login_and_wait(self, *, open_browser: bool = True, timeout: Optional[float] = None) -> None:
        """Convenience: start, open the consent page, wait."""
        auth_url = self.start_login()
        logger.info("Auth URL: %s", auth_url)
        if open_browser:
            logger.info("Opening browser for %s login…", self._connector.display_name)
            if not webbrowser.open(auth_url):
                logger.warning("Could not open a browser; visit the URL above manually")
        self.wait_for_login(timeout=timeout)

    def stop(self) -> None:
        """Cancel an in-flight login, if any. The waiter gets LoginCancelled."""
        session = self._session
        if session is None:
            return
        session.complete(LoginCancelled("Login was cancelled"))
        self._teardown(session)

    def _teardown(self, session: LoginSession) -> None:
        session.shutdown()
        with self._lock:
            if self._session is session:
                self._session = None
        logger.info("Stopped OAuth callback listener")


# ── Callback HTML template ─────────────────────────────────────────────


def _callback_html(success: bool, message: str, provider: str) -> str:
    """Small page shown in the browser tab after the redirect."""
    status_text = "✓ Authentication Successful!" if success else "Authentication Failed"
    color = "#4caf50" if success else "#d32f2f"
    note = (
        "You can close this window now and return to the app."
        if success
        else "You can close this window now."
    )

    return f"""<!DOCTYPE html>
<html>
<head>
    <title>Finder — {escape(provider)} {'connected' if success else 'sign-in failed'}</title>
</head>
<body style="font-family: Arial, sans-serif; text-align: center; padding-top: 50px;">
    <h1 style="color: {color};">{status_text}</h1>
    <p>{escape(message)}</p>
    <p>{note}</p>
</body>
</html>"""
