from __future__ import annotations

from portal.routes.context import RequestContext
from portal.routes.outcome import Outcome, Proceed, Redirect


def load(ctx: RequestContext) -> Outcome:
    """
    Runs before every page.

    Signed-in visitors never see the landing page; signed-out visitors never see
    anything else.
    """
    user = ctx.get_session().user

    if user is not None and ctx.path == "/":
        # nothing to sign in to
        return Redirect(303, "/dashboard")

    if user is None and ctx.path != "/":
        # every other page needs a session
        return Redirect(303, "/")

    return Proceed(
        {
            "user": user,
            "cookies": ctx.cookies.get_all(),
        }
    )
