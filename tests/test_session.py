from __future__ import annotations

from unittest.mock import patch

import requests

from helpers import FakeHTTPResponse, make_access_token, user_payload
from portal.auth.client import IdentityClient
from portal.auth.config import load_auth_config
from portal.auth.models import AuthError, AuthSession, AuthUser
from portal.auth.session import (
    access_token_expired,
    decode_session,
    encode_session,
    safe_get_session,
    session_cookie_kwargs,
    session_cookie_name,
)
from portal.auth.util import sanitize_next_path
from portal.routes.context import CookieJar

_USER = AuthUser(id="user-1", email="ada@example.com", name="Ada", provider="google")


def _session(token: str | None = None, refresh_token: str | None = "refresh-1") -> AuthSession:
    return AuthSession(
        access_token=token or make_access_token(),
        refresh_token=refresh_token,
        expires_at=1900000000,
        user=_USER,
    )


def test_session_roundtrip() -> None:
    cfg = load_auth_config()
    s = _session()
    assert decode_session(cfg, encode_session(cfg, s)) == s


def test_tampered_or_foreign_cookie_is_ignored(monkeypatch) -> None:
    cfg = load_auth_config()
    value = encode_session(cfg, _session())
    assert decode_session(cfg, value + "x") is None
    assert decode_session(cfg, "not-a-session") is None
    assert decode_session(cfg, None) is None

    monkeypatch.setenv("AUTH_SESSION_SECRET", "another-secret")
    load_auth_config.cache_clear()
    assert decode_session(load_auth_config(), value) is None


def test_no_secret_disables_sessions(monkeypatch) -> None:
    monkeypatch.delenv("AUTH_SESSION_SECRET")
    load_auth_config.cache_clear()
    cfg = load_auth_config()
    assert encode_session(cfg, _session()) is None


def test_cookie_name_and_flags_follow_secure_setting(monkeypatch) -> None:
    cfg = load_auth_config()
    assert session_cookie_name(cfg) == "portal_session"
    kw = session_cookie_kwargs(cfg, "v")
    assert kw["httponly"] is True and kw["samesite"] == "lax" and kw["path"] == "/"

    monkeypatch.setenv("AUTH_PUBLIC_BASE_URL", "https://portal.example.com")
    load_auth_config.cache_clear()
    cfg = load_auth_config()
    assert cfg.cookie_secure is True
    assert session_cookie_name(cfg) == "__Host-portal_session"


def test_session_ttl_falls_back_on_bad_value(monkeypatch, caplog) -> None:  # type: ignore[no-untyped-def]
    monkeypatch.setenv("AUTH_SESSION_TTL_SECONDS", "one week")
    load_auth_config.cache_clear()
    assert load_auth_config().session_ttl_seconds == 604800
    assert "Invalid AUTH_SESSION_TTL_SECONDS" in caplog.text

    monkeypatch.setenv("AUTH_SESSION_TTL_SECONDS", "5")
    load_auth_config.cache_clear()
    assert load_auth_config().session_ttl_seconds == 60

    monkeypatch.setenv("AUTH_SESSION_TTL_SECONDS", "3600.0")
    load_auth_config.cache_clear()
    assert load_auth_config().session_ttl_seconds == 3600


def test_access_token_expiry() -> None:
    assert access_token_expired(make_access_token(exp_in=3600)) is False
    assert access_token_expired(make_access_token(exp_in=-10)) is True
    assert access_token_expired("garbage") is True


def _client_with_session(session: AuthSession | None) -> IdentityClient:
    cfg = load_auth_config()
    cookies = {session_cookie_name(cfg): encode_session(cfg, session)} if session else {}
    return IdentityClient(cfg, CookieJar(cookies))


def test_safe_get_session_confirms_with_provider() -> None:
    client = _client_with_session(_session())
    with patch.object(IdentityClient, "get_user", return_value=(_USER, None)) as get_user:
        ctx = safe_get_session(client, client.cookies)
    assert ctx.user == _USER
    assert ctx.session is not None
    get_user.assert_called_once()


def test_safe_get_session_rejected_by_provider() -> None:
    client = _client_with_session(_session())
    with patch.object(IdentityClient, "get_user", return_value=(None, AuthError(message="bad jwt", status=401))):
        ctx = safe_get_session(client, client.cookies)
    assert ctx.user is None and ctx.session is None


def test_safe_get_session_expired_token_without_refresh_token() -> None:
    client = _client_with_session(_session(make_access_token(exp_in=-60), refresh_token=None))
    with patch("portal.auth.client.requests.post") as post, patch.object(IdentityClient, "get_user") as get_user:
        ctx = safe_get_session(client, client.cookies)
    assert ctx.user is None
    get_user.assert_not_called()
    post.assert_not_called()


def test_safe_get_session_refreshes_expired_token() -> None:
    client = _client_with_session(_session(make_access_token(exp_in=-5), refresh_token="valid-refresh"))
    new_token = make_access_token(exp_in=3600)
    body = {"access_token": new_token, "refresh_token": "rotated-refresh", "expires_in": 3600, "user": user_payload()}
    with patch("portal.auth.client.requests.post", return_value=FakeHTTPResponse(200, body)) as post, patch.object(
        IdentityClient, "get_user"
    ) as get_user:
        ctx = safe_get_session(client, client.cookies)

    assert ctx.user is not None and ctx.user.email == "ada@example.com"
    assert ctx.session is not None and ctx.session.access_token == new_token
    assert post.call_args.kwargs["params"] == {"grant_type": "refresh_token"}
    assert post.call_args.kwargs["json"] == {"refresh_token": "valid-refresh"}
    get_user.assert_not_called()

    cfg = load_auth_config()
    stored = decode_session(cfg, client.cookies.get(session_cookie_name(cfg)))
    assert stored is not None
    assert stored.access_token == new_token
    assert stored.refresh_token == "rotated-refresh"


def test_safe_get_session_rejected_refresh_clears_cookie() -> None:
    client = _client_with_session(_session(make_access_token(exp_in=-5), refresh_token="revoked"))
    resp = FakeHTTPResponse(400, {"error_code": "refresh_token_not_found", "msg": "Invalid Refresh Token"})
    with patch("portal.auth.client.requests.post", return_value=resp):
        ctx = safe_get_session(client, client.cookies)
    assert ctx.user is None and ctx.session is None
    assert client.cookies.get(session_cookie_name(load_auth_config())) is None


def test_safe_get_session_refresh_network_error_keeps_cookie() -> None:
    client = _client_with_session(_session(make_access_token(exp_in=-5), refresh_token="valid-refresh"))
    with patch("portal.auth.client.requests.post", side_effect=requests.ConnectionError("down")):
        ctx = safe_get_session(client, client.cookies)
    assert ctx.user is None
    assert client.cookies.pending == []


def test_safe_get_session_without_cookie() -> None:
    client = _client_with_session(None)
    with patch.object(IdentityClient, "get_user") as get_user:
        ctx = safe_get_session(client, client.cookies)
    assert ctx.user is None
    get_user.assert_not_called()


def test_sanitize_next_path() -> None:
    assert sanitize_next_path("/dashboard") == "/dashboard"
    assert sanitize_next_path("//evil.com", default="/dashboard") == "/dashboard"
    assert sanitize_next_path("https://evil.com") == "/"
    assert sanitize_next_path(None, default="/dashboard") == "/dashboard"
    assert sanitize_next_path("/a\r\nSet-Cookie: x") == "/aSet-Cookie: x"
