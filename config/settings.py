"""
Application settings loaded from environment variables.

A single ``Settings`` instance is built at startup and handed to every
component that needs it.
"""

from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── Google OAuth2 ────────────────────────────────────────────────────
    google_client_id: str = ""          # Google OAuth desktop client ID
    google_client_secret: str = ""      # Google OAuth desktop client secret

    # ── Loopback callback listener ───────────────────────────────────────
    oauth_callback_host: str = "localhost"
    oauth_callback_port: int = 8080
    oauth_login_timeout_seconds: float = 300.0   # how long wait_for_login blocks

    # ── Security Secrets ─────────────────────────────────────────────────
    keyring_service: str = "Finder-2"    # OS secret store namespace
    token_encryption_key: str = ""       # Fernet key for wrapping the stored credential

    # ── Workspace ────────────────────────────────────────────────────────
    app_data_dir: str = "~/.finder2"
    database_url: Optional[str] = None   # defaults to sqlite in app_data_dir
    pointer_extension: str = ".goox"

    debug: bool = False

    model_config = {
        "env_file": ".env",
        "case_sensitive": False,
        "extra": "ignore",
    }

    @property
    def oauth_redirect_uri(self) -> str:
        return (
            f"http://{self.oauth_callback_host}:{self.oauth_callback_port}"
            "/auth/google/callback"
        )

    @property
    def data_path(self) -> Path:
        return Path(self.app_data_dir).expanduser()

    @property
    def resolved_database_url(self) -> str:
        """Return the configured database URL, or the default sqlite file."""
        if self.database_url:
            return self.database_url
        return f"sqlite+aiosqlite:///{self.data_path / 'finder.db'}"
