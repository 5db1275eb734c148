from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional

from portal.auth.models import Cookie, PendingCookie, SessionContext

if TYPE_CHECKING:
    from fastapi import Response

    from portal.auth.client import IdentityClient


class CookieJar:
    """
    Request cookies plus the Set-Cookie operations queued while handling the request.

    Handlers and the identity client write through `set`/`delete`; the server applies
    the queued operations to whatever response it ends up returning.
    """

    def __init__(self, incoming: Optional[Mapping[str, str]] = None) -> None:
        self._incoming: Dict[str, str] = dict(incoming or {})
        self._pending: Dict[str, PendingCookie] = {}

    def get(self, name: str) -> Optional[str]:
        pending = self._pending.get(name)
        if pending is not None:
            # A cookie deleted during this request reads as missing.
            return pending.value if pending.max_age != 0 else None
        return self._incoming.get(name)

    def get_all(self) -> List[Cookie]:
        """All cookies attached to the request, as received."""
        return [Cookie(name=k, value=v) for k, v in self._incoming.items()]

    def set(self, key: str, value: str, *, max_age: Optional[int] = None, **options: Any) -> None:
        self._pending[key] = PendingCookie(key=key, value=value, max_age=max_age, options=dict(options))

    def delete(self, key: str, **options: Any) -> None:
        self.set(key, "", max_age=0, **options)

    @property
    def pending(self) -> List[PendingCookie]:
        return list(self._pending.values())

    def apply(self, response: "Response") -> "Response":
        for c in self._pending.values():
            response.set_cookie(key=c.key, value=c.value, max_age=c.max_age, **c.options)
        return response


@dataclass
class RequestContext:
    """Everything a route handler may read for one request, passed explicitly."""

    get_session: Callable[[], SessionContext]
    identity: "IdentityClient"
    cookies: CookieJar
    path: str
    origin: str
