from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple
from urllib.parse import urlencode

import requests

from portal.auth.config import AuthConfig
from portal.auth.models import (
    AuthError,
    AuthSession,
    AuthUser,
    OAuthData,
    OAuthResponse,
    SignOutResponse,
)
from portal.auth.session import (
    clear_session_cookie_kwargs,
    decode_session,
    encode_session,
    session_cookie_kwargs,
    session_cookie_name,
)
from portal.auth.util import pkce_challenge, random_token

if TYPE_CHECKING:
    from portal.routes.context import CookieJar

logger = logging.getLogger(__name__)

CODE_VERIFIER_COOKIE = "portal_code_verifier"
_CODE_VERIFIER_TTL_SECONDS = 10 * 60
_HTTP_TIMEOUT_SECONDS = 10


def _error_from_response(r: requests.Response) -> AuthError:
    """Normalise the provider's error body (shape differs per endpoint)."""
    message = ""
    code = None
    try:
        body = r.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for k in ("msg", "error_description", "message", "error"):
            v = body.get(k)
            if isinstance(v, str) and v.strip():
                message = v.strip()
                break
        raw_code = body.get("error_code") or body.get("code") or body.get("error")
        code = str(raw_code) if raw_code else None
    if not message:
        message = f"Identity provider request failed (status={r.status_code})"
    return AuthError(message=message, status=r.status_code, code=code)


class IdentityClient:
    """
    Per-request client for the identity provider's auth REST API.

    Reads and writes auth cookies through the request's cookie jar, so one
    instance must not outlive the request it was built for.
    """

    def __init__(self, cfg: AuthConfig, cookies: "CookieJar") -> None:
        self.config = cfg
        self.cookies = cookies

    def _headers(self, access_token: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "apikey": self.config.identity_anon_key or "",
            "Content-Type": "application/json",
        }
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return headers

    def _not_configured(self) -> Optional[AuthError]:
        if self.config.identity_enabled:
            return None
        return AuthError(message="Identity provider is not configured", code="not_configured")

    def _verifier_cookie_kwargs(self, value: str, max_age: int) -> Dict[str, Any]:
        return {
            "key": CODE_VERIFIER_COOKIE,
            "value": value,
            "max_age": max_age,
            "httponly": True,
            "secure": self.config.cookie_secure,
            "samesite": "lax",
            "path": "/",
        }

    def sign_in_with_oauth(self, provider: str, options: Optional[Dict[str, Any]] = None) -> OAuthResponse:
        """
        Start an OAuth sign-in (PKCE flow).

        Returns the provider authorize URL to send the browser to; nothing is
        requested over the network here. The code verifier is kept in a
        short-lived cookie until `exchange_code_for_session`.
        """
        provider = (provider or "").strip()
        err = self._not_configured()
        if err is None and not provider:
            err = AuthError(message="OAuth provider is required", code="validation_failed")
        if err is not None:
            return OAuthResponse(data=OAuthData(provider=provider, url=None), error=err)

        opts = options or {}
        verifier = random_token(48)
        params: Dict[str, str] = {
            "provider": provider,
            "code_challenge": pkce_challenge(verifier),
            "code_challenge_method": "s256",
        }
        redirect_to = opts.get("redirect_to")
        if redirect_to:
            params["redirect_to"] = str(redirect_to)
        scopes = opts.get("scopes")
        if scopes:
            params["scopes"] = str(scopes)
        for k, v in (opts.get("query_params") or {}).items():
            params[str(k)] = str(v)

        self.cookies.set(**self._verifier_cookie_kwargs(verifier, _CODE_VERIFIER_TTL_SECONDS))
        url = f"{self.config.auth_base_url}/authorize?{urlencode(params)}"
        return OAuthResponse(data=OAuthData(provider=provider, url=url))

    def _token_grant(
        self, grant_type: str, payload: Dict[str, Any]
    ) -> Tuple[Optional[AuthSession], Optional[AuthError]]:
        """POST to the token endpoint and store the resulting session in the session cookie."""
        try:
            r = requests.post(
                f"{self.config.auth_base_url}/token",
                params={"grant_type": grant_type},
                json=payload,
                headers=self._headers(),
                timeout=_HTTP_TIMEOUT_SECONDS,
            )
        except requests.RequestException as e:
            return None, AuthError(message=f"Token request failed ({grant_type}): {e}")
        if r.status_code >= 400:
            return None, _error_from_response(r)

        try:
            data = r.json()
        except ValueError:
            data = None
        if not isinstance(data, dict) or not data.get("access_token") or not isinstance(data.get("user"), dict):
            return None, AuthError(message="Invalid token response", status=r.status_code)

        expires_at = data.get("expires_at")
        if expires_at is None and data.get("expires_in") is not None:
            expires_at = int(time.time()) + int(data["expires_in"])
        session = AuthSession(
            access_token=str(data["access_token"]),
            refresh_token=str(data.get("refresh_token") or "") or None,
            expires_at=int(expires_at) if expires_at is not None else None,
            user=AuthUser.from_payload(data["user"]),
            token_type=str(data.get("token_type") or "bearer"),
        )

        value = encode_session(self.config, session)
        if not value:
            return None, AuthError(message="Session signing is not configured (AUTH_SESSION_SECRET)")
        self.cookies.set(**session_cookie_kwargs(self.config, value))
        return session, None

    def exchange_code_for_session(self, code: str) -> Tuple[Optional[AuthSession], Optional[AuthError]]:
        """Trade the callback `code` for a session and store it in the session cookie."""
        err = self._not_configured()
        if err is not None:
            return None, err
        verifier = (self.cookies.get(CODE_VERIFIER_COOKIE) or "").strip()
        if not verifier:
            return None, AuthError(message="Missing PKCE code verifier", code="bad_code_verifier")

        session, error = self._token_grant("pkce", {"auth_code": code, "code_verifier": verifier})
        if session is not None:
            self.cookies.delete(CODE_VERIFIER_COOKIE, path="/")
        return session, error

    def refresh_session(self, refresh_token: str) -> Tuple[Optional[AuthSession], Optional[AuthError]]:
        """
        Trade a refresh token for a new session and store it in the session cookie.

        Refresh tokens are single-use: the provider rotates them on every call.
        """
        err = self._not_configured()
        if err is not None:
            return None, err
        if not (refresh_token or "").strip():
            return None, AuthError(message="Missing refresh token", code="refresh_token_not_found")
        return self._token_grant("refresh_token", {"refresh_token": refresh_token})

    def get_user(self, access_token: str) -> Tuple[Optional[AuthUser], Optional[AuthError]]:
        """Ask the provider who owns `access_token`. This is the session validity check."""
        err = self._not_configured()
        if err is not None:
            return None, err
        try:
            r = requests.get(
                f"{self.config.auth_base_url}/user",
                headers=self._headers(access_token),
                timeout=_HTTP_TIMEOUT_SECONDS,
            )
        except requests.RequestException as e:
            return None, AuthError(message=f"User lookup failed: {e}")
        if r.status_code >= 400:
            return None, _error_from_response(r)
        try:
            data = r.json()
        except ValueError:
            data = None
        if not isinstance(data, dict) or not data.get("id"):
            return None, AuthError(message="Invalid user response", status=r.status_code)
        return AuthUser.from_payload(data), None

    def sign_out(self) -> SignOutResponse:
        """
        Revoke the current session with the provider and clear the session cookie.

        A session the provider no longer knows (401/403/404) is still cleared locally.
        """
        cfg = self.config
        session = decode_session(cfg, self.cookies.get(session_cookie_name(cfg)))
        if session is not None:
            err = self._not_configured()
            if err is not None:
                return SignOutResponse(error=err)
            try:
                r = requests.post(
                    f"{cfg.auth_base_url}/logout",
                    params={"scope": "global"},
                    headers=self._headers(session.access_token),
                    timeout=_HTTP_TIMEOUT_SECONDS,
                )
            except requests.RequestException as e:
                return SignOutResponse(error=AuthError(message=f"Sign out failed: {e}"))
            if r.status_code >= 400 and r.status_code not in (401, 403, 404):
                return SignOutResponse(error=_error_from_response(r))
            if r.status_code >= 400:
                logger.debug("Sign out: provider had no session (status=%d)", r.status_code)

        self.cookies.set(**clear_session_cookie_kwargs(cfg))
        return SignOutResponse()
