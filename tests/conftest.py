"""
Pytest config.

Local imports like `import portal` rely on the repo root being on sys.path. In some
environments (e.g. when invoking a global `pytest` entrypoint), that doesn't happen
reliably during collection. We pin the behavior here so tests can always import the
local `portal/` package.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


_ensure_repo_root_on_syspath()

from helpers import TEST_IDENTITY_URL, TEST_SESSION_SECRET  # noqa: E402
from portal.auth.config import load_auth_config  # noqa: E402


@pytest.fixture(autouse=True)
def _auth_env(monkeypatch: pytest.MonkeyPatch):
    """
    Every test starts from the same auth config. The config loader is cached,
    so clear it before and after.
    """
    monkeypatch.setenv("IDENTITY_URL", TEST_IDENTITY_URL)
    monkeypatch.setenv("IDENTITY_ANON_KEY", "anon-key")
    monkeypatch.setenv("AUTH_SESSION_SECRET", TEST_SESSION_SECRET)
    monkeypatch.delenv("AUTH_PUBLIC_BASE_URL", raising=False)
    monkeypatch.delenv("AUTH_COOKIE_SECURE", raising=False)
    monkeypatch.delenv("AUTH_SESSION_TTL_SECONDS", raising=False)
    load_auth_config.cache_clear()
    yield
    load_auth_config.cache_clear()
