from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class AuthUser:
    """Identity record returned by the identity provider."""

    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    picture: Optional[str] = None
    provider: Optional[str] = None  # google|email|...

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "AuthUser":
        meta = data.get("user_metadata") or {}
        app_meta = data.get("app_metadata") or {}
        if not isinstance(meta, dict):
            meta = {}
        if not isinstance(app_meta, dict):
            app_meta = {}
        name = meta.get("full_name") or meta.get("name")
        picture = meta.get("avatar_url") or meta.get("picture")
        email = data.get("email")
        provider = app_meta.get("provider")
        return cls(
            id=str(data.get("id") or ""),
            email=str(email) if email else None,
            name=str(name) if name else None,
            picture=str(picture) if picture else None,
            provider=str(provider) if provider else None,
        )


@dataclass(frozen=True)
class AuthSession:
    """Tokens for a signed-in user. Kept in the signed session cookie."""

    access_token: str
    refresh_token: Optional[str]
    expires_at: Optional[int]  # unix seconds
    user: AuthUser
    token_type: str = "bearer"


@dataclass(frozen=True)
class SessionContext:
    """Authentication state of the current request; both fields may be None."""

    user: Optional[AuthUser] = None
    session: Optional[AuthSession] = None


@dataclass(frozen=True)
class AuthError:
    message: str
    status: Optional[int] = None
    code: Optional[str] = None


@dataclass(frozen=True)
class OAuthData:
    provider: str
    url: Optional[str] = None


@dataclass(frozen=True)
class OAuthResponse:
    data: OAuthData
    error: Optional[AuthError] = None


@dataclass(frozen=True)
class SignOutResponse:
    error: Optional[AuthError] = None


@dataclass(frozen=True)
class Cookie:
    name: str
    value: str


@dataclass
class PendingCookie:
    """A Set-Cookie operation queued for the outgoing response."""

    key: str
    value: str
    max_age: Optional[int] = None
    options: Dict[str, Any] = field(default_factory=dict)
