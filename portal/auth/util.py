from __future__ import annotations

import base64
import hashlib
import os


def b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def random_token(nbytes: int = 32) -> str:
    return b64url(os.urandom(nbytes))


def pkce_challenge(verifier: str) -> str:
    """
    Generate PKCE challenge from verifier using SHA256.
    """
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return b64url(digest)


def sanitize_next_path(next_path: str | None, default: str = "/") -> str:
    """
    Prevent open-redirects: allow only relative paths like `/dashboard`.
    """
    p = (next_path or "").strip()
    if not p:
        return default
    if not p.startswith("/"):
        return default
    # Disallow scheme-relative: `//evil.com`
    if p.startswith("//"):
        return default
    # Keep it simple: strip any CR/LF.
    p = p.replace("\r", "").replace("\n", "")
    return p or default
