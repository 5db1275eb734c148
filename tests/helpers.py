"""Shared test doubles for the identity provider."""

from __future__ import annotations

import time
from typing import Any, Dict, Optional

import jwt

TEST_SESSION_SECRET = "test-secret-key-for-testing-purposes-only"
TEST_IDENTITY_URL = "https://project.identity.test"
_PROVIDER_SIGNING_KEY = "provider-signing-key-not-used-for-verification"


def make_access_token(*, exp_in: int = 3600, sub: str = "user-1") -> str:
    return jwt.encode({"sub": sub, "exp": int(time.time()) + exp_in}, _PROVIDER_SIGNING_KEY, algorithm="HS256")


class FakeHTTPResponse:
    def __init__(self, status_code: int, body: Optional[Any] = None) -> None:
        self.status_code = status_code
        self._body = body

    def json(self) -> Any:
        if self._body is None:
            raise ValueError("no body")
        return self._body


def user_payload(**overrides: Any) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "id": "user-1",
        "email": "ada@example.com",
        "user_metadata": {"full_name": "Ada Lovelace", "avatar_url": "https://img.test/ada.png"},
        "app_metadata": {"provider": "google"},
    }
    data.update(overrides)
    return data
