from __future__ import annotations

import logging
from typing import Callable, Dict

from portal.routes.context import RequestContext
from portal.routes.outcome import Outcome, Proceed, Redirect

logger = logging.getLogger(__name__)


def google(ctx: RequestContext) -> Outcome:
    """Send the browser to Google through the identity provider."""
    resp = ctx.identity.sign_in_with_oauth(
        provider="google",
        options={"redirect_to": f"{ctx.origin}/auth/callback"},
    )

    if resp.data.url:
        return Redirect(302, resp.data.url)

    error = resp.error
    logger.warning("OAuth sign-in did not return a URL: %s", error.message if error else "no error reported")
    return Proceed({"error": error.message if error else "Sign-in is currently unavailable"})


def log_out(ctx: RequestContext) -> Outcome:
    resp = ctx.identity.sign_out()
    if resp.error is not None:
        logger.error("Error signing out: %s", resp.error.message)
        return Proceed()
    return Redirect(302, "/")


# Form action names as posted by the pages (`?/google`, `?/logOut`).
ACTIONS: Dict[str, Callable[[RequestContext], Outcome]] = {
    "google": google,
    "logOut": log_out,
}
