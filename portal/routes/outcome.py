from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from fastapi.responses import RedirectResponse

_REDIRECT_STATUSES = (301, 302, 303, 307, 308)


@dataclass(frozen=True)
class Proceed:
    """Keep handling the request; `data` is handed to the page."""

    data: Optional[Dict[str, Any]] = field(default=None)


@dataclass(frozen=True)
class Redirect:
    """Stop handling the request and send the browser to `location`."""

    status: int
    location: str

    def __post_init__(self) -> None:
        if self.status not in _REDIRECT_STATUSES:
            raise ValueError(f"Invalid redirect status: {self.status}")
        if not self.location:
            raise ValueError("Redirect location is required")


Outcome = Union[Proceed, Redirect]


def to_response(outcome: Redirect) -> RedirectResponse:
    resp = RedirectResponse(url=outcome.location, status_code=outcome.status)
    resp.headers["Cache-Control"] = "no-store"
    return resp
