from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

logger = logging.getLogger(__name__)

_DEFAULT_SESSION_TTL_SECONDS = 7 * 24 * 3600


@dataclass(frozen=True)
class AuthConfig:
    # Identity provider (Supabase-style auth REST API)
    identity_url: Optional[str]
    identity_anon_key: Optional[str]

    # Session configuration
    public_base_url: Optional[str]  # Optional; request origin is used when unset
    session_secret: Optional[str]  # Required for session signing
    session_ttl_seconds: int
    cookie_secure: bool

    @property
    def identity_enabled(self) -> bool:
        """Sign-in is possible only when the provider URL and anon key are configured."""
        return bool(self.identity_url and self.identity_anon_key)

    @property
    def auth_base_url(self) -> str:
        return f"{(self.identity_url or '').rstrip('/')}/auth/v1"


def _env_str(name: str) -> Optional[str]:
    return (os.getenv(name, "") or "").strip() or None


@lru_cache(maxsize=1)
def load_auth_config() -> AuthConfig:
    """
    Load authentication configuration from environment variables.

    The identity provider is enabled if IDENTITY_URL and IDENTITY_ANON_KEY are set.
    Sessions are only persisted when AUTH_SESSION_SECRET is set.
    """
    public_base_url = _env_str("AUTH_PUBLIC_BASE_URL")
    cookie_secure_env = (os.getenv("AUTH_COOKIE_SECURE", "") or "").strip().lower()
    if cookie_secure_env in ("1", "true", "yes", "on"):
        cookie_secure = True
    elif cookie_secure_env in ("0", "false", "no", "off"):
        cookie_secure = False
    else:
        # Default: secure cookies when base URL is https; otherwise allow local dev.
        cookie_secure = True if (public_base_url or "").startswith("https://") else False

    ttl_raw = _env_str("AUTH_SESSION_TTL_SECONDS")
    try:
        ttl = int(float(ttl_raw)) if ttl_raw else _DEFAULT_SESSION_TTL_SECONDS
    except (ValueError, OverflowError):
        logger.warning("Invalid AUTH_SESSION_TTL_SECONDS=%r; using %d", ttl_raw, _DEFAULT_SESSION_TTL_SECONDS)
        ttl = _DEFAULT_SESSION_TTL_SECONDS
    if ttl <= 60:
        ttl = 60

    return AuthConfig(
        identity_url=_env_str("IDENTITY_URL"),
        identity_anon_key=_env_str("IDENTITY_ANON_KEY"),
        public_base_url=public_base_url,
        session_secret=_env_str("AUTH_SESSION_SECRET"),
        session_ttl_seconds=ttl,
        cookie_secure=cookie_secure,
    )
