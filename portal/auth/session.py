from __future__ import annotations

import json
import logging
import time
from dataclasses import asdict
from typing import TYPE_CHECKING, Optional

import jwt  # PyJWT
from itsdangerous import BadSignature, BadTimeSignature, URLSafeTimedSerializer

from portal.auth.config import AuthConfig
from portal.auth.models import AuthSession, AuthUser, SessionContext

if TYPE_CHECKING:
    from portal.auth.client import IdentityClient
    from portal.routes.context import CookieJar

logger = logging.getLogger(__name__)


def session_cookie_name(cfg: AuthConfig) -> str:
    # `__Host-` requires Secure + Path=/ + no Domain; browsers may reject it on HTTP.
    return "__Host-portal_session" if cfg.cookie_secure else "portal_session"


SESSION_SALT = "portal-session-v1"


def _serializer(cfg: AuthConfig) -> Optional[URLSafeTimedSerializer]:
    if not cfg.session_secret:
        return None
    return URLSafeTimedSerializer(secret_key=cfg.session_secret, salt=SESSION_SALT)


def encode_session(cfg: AuthConfig, session: AuthSession) -> Optional[str]:
    s = _serializer(cfg)
    if s is None:
        return None
    raw = json.dumps(asdict(session), separators=(",", ":"), sort_keys=True)
    return s.dumps(raw)


def decode_session(cfg: AuthConfig, value: str | None) -> Optional[AuthSession]:
    if not value:
        return None
    s = _serializer(cfg)
    if s is None:
        return None
    try:
        raw = s.loads(value, max_age=cfg.session_ttl_seconds)
        data = json.loads(raw)
        if not isinstance(data, dict):
            return None
        access_token = str(data.get("access_token") or "").strip()
        user = data.get("user")
        if not access_token or not isinstance(user, dict) or not user.get("id"):
            return None
        expires_at = data.get("expires_at")
        refresh_token = data.get("refresh_token")
        return AuthSession(
            access_token=access_token,
            refresh_token=str(refresh_token) if refresh_token else None,
            expires_at=int(expires_at) if expires_at is not None else None,
            user=AuthUser(
                id=str(user.get("id")),
                email=user.get("email") or None,
                name=user.get("name") or None,
                picture=user.get("picture") or None,
                provider=user.get("provider") or None,
            ),
            token_type=str(data.get("token_type") or "bearer"),
        )
    except (BadSignature, BadTimeSignature, ValueError, TypeError):
        return None


def access_token_expired(access_token: str, *, leeway: int = 0) -> bool:
    """
    Read `exp` from the access token without verifying it.

    Signature checks belong to the identity provider (see `safe_get_session`).
    A token we cannot parse is treated as expired.
    """
    try:
        claims = jwt.decode(access_token, options={"verify_signature": False, "verify_exp": False})
    except jwt.InvalidTokenError:
        return True
    exp = claims.get("exp")
    if exp is None:
        return False
    try:
        return float(exp) + leeway < time.time()
    except (TypeError, ValueError):
        return True


def clear_session_cookie_kwargs(cfg: AuthConfig) -> dict:
    return {
        "key": session_cookie_name(cfg),
        "value": "",
        "max_age": 0,
        "httponly": True,
        "secure": cfg.cookie_secure,
        "samesite": "lax",
        "path": "/",
    }


def session_cookie_kwargs(cfg: AuthConfig, value: str) -> dict:
    return {
        "key": session_cookie_name(cfg),
        "value": value,
        "max_age": cfg.session_ttl_seconds,
        "httponly": True,
        "secure": cfg.cookie_secure,
        "samesite": "lax",
        "path": "/",
    }


def safe_get_session(client: "IdentityClient", cookies: "CookieJar") -> SessionContext:
    """
    Return the current user/session, or an empty context.

    The cookie alone is not trusted: the access token is confirmed with the
    identity provider before the user is returned. An expired access token is
    renewed with the stored refresh token; the provider answering the refresh
    is itself the confirmation.
    """
    cfg = client.config
    session = decode_session(cfg, cookies.get(session_cookie_name(cfg)))
    if session is None:
        return SessionContext()

    if access_token_expired(session.access_token):
        if not session.refresh_token:
            logger.debug("Session access token expired (no refresh token)")
            return SessionContext()
        refreshed, error = client.refresh_session(session.refresh_token)
        if error is not None or refreshed is None:
            logger.info("Session refresh failed: %s", error.message if error else "no session")
            if error is not None and error.status is not None:
                # Provider rejected the refresh token; the cookie is dead.
                cookies.set(**clear_session_cookie_kwargs(cfg))
            return SessionContext()
        return SessionContext(user=refreshed.user, session=refreshed)

    user, error = client.get_user(session.access_token)
    if error is not None or user is None:
        logger.info("Session rejected by identity provider: %s", error.message if error else "no user")
        return SessionContext()
    return SessionContext(user=user, session=session)
