"""Config management for myq-oauth-bridge."""
import os
from pathlib import Path
from typing import Optional


CONFIG_DIR = Path.home() / ".myq-oauth-bridge"
JWT_SECRET_FILE = CONFIG_DIR / "jwt_secret"

DEFAULT_MYQ_BASE_URL = "https://myqexternal.myqdevice.com"
# Public application id shipped with the MyQ mobile apps
DEFAULT_MYQ_APP_ID = "NWknvuBd7LoFHfXmKNMBcgajXtZEgKUh4V7WNzMidrpUUluDpVYVZx+xT4PCM5Kx"

EXTERNAL_LOGIN_SECRETS = ("password_hash", "security_token")


def _split(value: Optional[str]) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


class Config:
    """Configuration container."""

    def __init__(self, data: dict = None):
        self.data = data or {}

    def _int(self, key: str, default: int) -> int:
        value = self.data.get(key)
        return int(value) if value not in (None, "") else default

    @property
    def host(self) -> str:
        return self.data.get("SERVER_HOST") or "0.0.0.0"

    @property
    def port(self) -> int:
        return self._int("SERVER_PORT", 8080)

    @property
    def log_level(self) -> str:
        return (self.data.get("LOG_LEVEL") or "INFO").upper()

    @property
    def allowed_origins(self) -> list[str]:
        return _split(self.data.get("ALLOWED_ORIGINS")) or ["*"]

    # Sessions

    @property
    def session_cookie_name(self) -> str:
        return self.data.get("SESSION_COOKIE_NAME") or "myq_bridge_sid"

    @property
    def session_cookie_secure(self) -> bool:
        return str(self.data.get("SESSION_COOKIE_SECURE", "false")).lower() == "true"

    @property
    def session_ttl(self) -> int:
        return self._int("SESSION_TTL_SECONDS", 24 * 60 * 60)

    @property
    def hash_salt_rounds(self) -> int:
        return self._int("HASH_SALT_ROUNDS", 10)

    # OAuth

    @property
    def jwt_secret(self) -> Optional[str]:
        return self.data.get("JWT_SECRET")

    @property
    def access_token_ttl(self) -> int:
        return self._int("ACCESS_TOKEN_TTL_SECONDS", 60 * 60)

    @property
    def refresh_token_ttl(self) -> int:
        return self._int("REFRESH_TOKEN_TTL_SECONDS", 14 * 24 * 60 * 60)

    @property
    def auth_code_ttl(self) -> int:
        return self._int("AUTH_CODE_TTL_SECONDS", 5 * 60)

    @property
    def oauth_client(self) -> Optional[dict]:
        """Bootstrap client registered at startup, if one is configured."""
        client_id = self.data.get("OAUTH_CLIENT_ID")
        if not client_id:
            return None
        return {
            "client_id": client_id,
            "client_secret": self.data.get("OAUTH_CLIENT_SECRET") or "",
            "redirect_uris": _split(self.data.get("OAUTH_REDIRECT_URIS")),
            "grants": ["authorization_code", "refresh_token"],
            "scopes": _split(self.data.get("OAUTH_SCOPES")),
        }

    # MyQ

    @property
    def myq_base_url(self) -> str:
        return (self.data.get("MYQ_BASE_URL") or DEFAULT_MYQ_BASE_URL).rstrip("/")

    @property
    def myq_app_id(self) -> str:
        return self.data.get("MYQ_APP_ID") or DEFAULT_MYQ_APP_ID

    @property
    def myq_timeout(self) -> float:
        value = self.data.get("MYQ_TIMEOUT_SECONDS")
        return float(value) if value else 30.0

    @property
    def external_login_secret(self) -> str:
        """Which stored credential the per-request MyQ re-login uses."""
        value = (self.data.get("EXTERNAL_LOGIN_SECRET") or "password_hash").lower()
        if value not in EXTERNAL_LOGIN_SECRETS:
            raise ValueError(
                f"EXTERNAL_LOGIN_SECRET must be one of {', '.join(EXTERNAL_LOGIN_SECRETS)}, got {value!r}"
            )
        return value

    # Supabase

    @property
    def supabase_url(self) -> Optional[str]:
        return self.data.get("SUPABASE_URL")

    @property
    def supabase_key(self) -> Optional[str]:
        return self.data.get("SUPABASE_SERVICE_KEY")

    def use_supabase(self) -> bool:
        """Check if Supabase persistence is configured."""
        return bool(self.supabase_url and self.supabase_key)


def load_config(overrides: dict = None) -> Config:
    """Load config from the environment, with optional overrides."""
    data = dict(os.environ)
    if overrides:
        data.update(overrides)
    return Config(data)
