"""
Portal web server.

Serves the landing page (Google sign-in) and the dashboard. Every page goes through
`portal.routes.layout.load`, which redirects signed-in visitors away from the landing
page and signed-out visitors to it. Form posts on `/` run the named action from
`portal.routes.page.ACTIONS` first, the way `?/google` and `?/logOut` are posted.
"""

from __future__ import annotations

import logging
import os
import time
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import HTMLResponse, Response
from fastapi.templating import Jinja2Templates

from portal.auth.client import IdentityClient
from portal.auth.config import load_auth_config
from portal.auth.session import safe_get_session
from portal.auth.util import sanitize_next_path
from portal.routes import layout, page
from portal.routes.context import CookieJar, RequestContext
from portal.routes.outcome import Redirect, to_response

logger = logging.getLogger(__name__)

templates = Jinja2Templates(directory=str(Path(__file__).resolve().parents[1] / "templates"))

# Generated API docs are off; only /healthz and /auth/callback skip the gate.
app = FastAPI(title="Portal", docs_url=None, redoc_url=None, openapi_url=None)

# Landing page messages for `?error=<code>` set by the OAuth callback.
_LANDING_ERRORS = {
    "auth-code-error": "We could not complete the sign-in. Please try again.",
}


def _request_origin(request: Request) -> str:
    cfg = load_auth_config()
    base = (cfg.public_base_url or "").strip().rstrip("/")
    if base:
        return base
    return f"{request.url.scheme}://{request.url.netloc}"


def build_context(request: Request) -> RequestContext:
    cfg = load_auth_config()
    jar = CookieJar(request.cookies)
    client = IdentityClient(cfg, jar)
    return RequestContext(
        get_session=lambda: safe_get_session(client, jar),
        identity=client,
        cookies=jar,
        path=request.url.path,
        origin=_request_origin(request),
    )


def _redirect(ctx: RequestContext, outcome: Redirect) -> Response:
    return ctx.cookies.apply(to_response(outcome))


def _render(
    request: Request,
    ctx: RequestContext,
    name: str,
    data: Dict[str, Any],
    *,
    form: Optional[Dict[str, Any]] = None,
    status_code: int = 200,
) -> Response:
    resp = templates.TemplateResponse(
        request=request,
        name=name,
        context={"data": data, "user": data.get("user"), "form": form},
        status_code=status_code,
    )
    resp.headers["Cache-Control"] = "no-store"
    return ctx.cookies.apply(resp)


def _render_page(
    request: Request,
    ctx: RequestContext,
    name: str,
    *,
    form: Optional[Dict[str, Any]] = None,
    status_code: int = 200,
) -> Response:
    outcome = layout.load(ctx)
    if isinstance(outcome, Redirect):
        return _redirect(ctx, outcome)
    return _render(request, ctx, name, outcome.data or {}, form=form, status_code=status_code)


def _action_name(request: Request) -> Optional[str]:
    # Named actions are posted as `?/<name>`.
    for key in request.query_params.keys():
        if key.startswith("/"):
            return key[1:]
    return None


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all incoming HTTP requests."""
    start_time = time.time()
    logger.debug("%s %s", request.method, request.url.path)
    try:
        response = await call_next(request)
        process_time = time.time() - start_time
        logger.debug("%s %s - %d (%.3fs)", request.method, request.url.path, response.status_code, process_time)
        return response
    except Exception as e:
        process_time = time.time() - start_time
        logger.exception("%s %s - ERROR after %.3fs: %s", request.method, request.url.path, process_time, str(e))
        raise


@app.get("/healthz")
def healthz() -> Dict[str, Any]:
    return {"ok": True}


@app.get("/", response_class=HTMLResponse)
def landing(request: Request, error: Optional[str] = Query(None)) -> Response:
    ctx = build_context(request)
    message = _LANDING_ERRORS.get(error or "")
    return _render_page(request, ctx, "index.html", form={"error": message} if message else None)


@app.post("/", response_class=HTMLResponse)
def landing_action(request: Request) -> Response:
    name = _action_name(request)
    if name is None:
        raise HTTPException(status_code=405, detail="When using named actions, the default action cannot be used")
    action = page.ACTIONS.get(name)
    if action is None:
        raise HTTPException(status_code=404, detail=f"No action with name '{name}' found")

    ctx = build_context(request)
    outcome = action(ctx)
    if isinstance(outcome, Redirect):
        return _redirect(ctx, outcome)
    return _render_page(request, ctx, "index.html", form=outcome.data)


@app.get("/dashboard", response_class=HTMLResponse)
def dashboard(request: Request) -> Response:
    ctx = build_context(request)
    return _render_page(request, ctx, "dashboard.html")


@app.get("/auth/callback")
def auth_callback(
    request: Request,
    code: Optional[str] = Query(None),
    next_path: Optional[str] = Query(None, alias="next"),
) -> Response:
    """Finish the OAuth sign-in: trade the provider's code for a session cookie."""
    ctx = build_context(request)
    if not code:
        logger.warning("OAuth callback without code")
        return _redirect(ctx, Redirect(302, "/?error=auth-code-error"))

    _session, error = ctx.identity.exchange_code_for_session(code)
    if error is not None:
        logger.warning("OAuth code exchange failed: %s", error.message)
        return _redirect(ctx, Redirect(302, "/?error=auth-code-error"))

    return _redirect(ctx, Redirect(302, sanitize_next_path(next_path, default="/dashboard")))


@app.get("/{path:path}", response_class=HTMLResponse)
def not_found(request: Request, path: str) -> Response:
    ctx = build_context(request)
    return _render_page(request, ctx, "not_found.html", status_code=404)


def run(host: str = "0.0.0.0", port: int = 8080) -> None:
    import uvicorn

    # Configure logging for the application
    log_level = os.getenv("LOG_LEVEL", "info").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.setLevel(getattr(logging, log_level, logging.INFO))

    # Map Python logging levels to uvicorn log levels
    uvicorn_log_level = (
        log_level.lower() if log_level.lower() in ["critical", "error", "warning", "info", "debug", "trace"] else "info"
    )

    cfg = load_auth_config()
    if not cfg.identity_enabled:
        logger.warning("IDENTITY_URL / IDENTITY_ANON_KEY not set; sign-in is disabled")
    if not cfg.session_secret:
        logger.warning("AUTH_SESSION_SECRET not set; sessions cannot be stored")

    logger.info("Starting portal server on %s:%d (log_level=%s)", host, port, log_level)
    uvicorn.run(app, host=host, port=port, log_level=uvicorn_log_level)
