"""
web/routes.py -- Jinja2 page shells and server-side Google sign-in for JobHub.

The shells render no account data. The client session (auth/session.py)
hydrates from storage and makes role decisions once it loads; these pages
exist so the edge route guard has something to front.

Route registration order matters: /login/google and /login/callback/google
are registered before GET and POST /login.

Routes:
  GET  /                          -- home shell
  GET  /login/google              -- redirect to Google (rate limited)
  GET  /login/callback/google     -- exchange code, relay id_token to backend
  GET  /login                     -- login shell
  POST /login                     -- email/password sign-in (rate limited)
  GET  /register                  -- registration shell
  GET  /verify-registration       -- registration OTP shell
  GET  /reset-password            -- password reset shell
  GET  /job-seeker/dashboard      -- job seeker area (guarded)
  GET  /recruiter/dashboard       -- recruiter area (guarded)
  GET  /admin/dashboard           -- admin area (guarded)
"""

import logging
from pathlib import Path
from typing import Optional
from urllib.parse import urlencode

from authlib.integrations.starlette_client import OAuthError
from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from api.limiter import limiter
from api.models import LoginHandoffResponse
from auth.errors import ErrorKind, classify
from auth.federated import BUTTON_OPTIONS
from auth.oauth import extract_id_token
from auth.roles import (
    ADMIN_DASHBOARD_PATH,
    HOME_PATH,
    JOB_SEEKER_DASHBOARD_PATH,
    RECRUITER_DASHBOARD_PATH,
    is_safe_next,
    resolve_redirect,
)
from core.backend import ApiError, BackendClient
from core.config import get_settings
from core.models import LoginResult, normalize_email

logger = logging.getLogger("jobhub.web")

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
router = APIRouter()

# Session key holding the captured ?next= across the Google round trip.
_NEXT_SESSION_KEY = "login_next"

# Whitelist mapping for ?error= query params on /login.
# The raw query param is never passed to templates, only the message from
# this dict is.
_ERROR_MESSAGES: dict[str, str] = {
    "oauth_failed": "Google sign-in failed. Please try again.",
    "oauth_unavailable": "Google sign-in is not available.",
    "backend_unavailable": "Unable to connect to the server. Please check your connection.",
    "bad_credentials": "Invalid email or password.",
    "login_failed": "Sign-in failed. Please try again.",
}


def _safe_next(next_url: Optional[str]) -> Optional[str]:
    """Return next_url when it is a same-origin relative path, else None."""
    return next_url if is_safe_next(next_url) else None


def _login_error(code: str, next_url: Optional[str] = None) -> RedirectResponse:
    params = {"error": code}
    if next_url:
        params["next"] = next_url
    return RedirectResponse(f"{get_settings().login_path}?{urlencode(params)}", status_code=302)


def _google_client(request: Request):
    oauth = getattr(request.app.state, "oauth", None)
    if oauth is None:
        return None
    return oauth.create_client("google")


def _handoff(result: LoginResult, next_url: Optional[str]) -> JSONResponse:
    """Return {account, accessToken, redirect} and relay the refresh cookie."""
    body = LoginHandoffResponse(
        account=result.account.to_dict(),
        accessToken=result.access_token,
        redirect=resolve_redirect(result.account, next_url),
    )
    resp = JSONResponse(body.model_dump())
    for header in result.set_cookie_headers:
        resp.headers.append("set-cookie", header)
    resp.headers["Cache-Control"] = "no-store"
    return resp


def _shell(request: Request, title: str, area: Optional[str] = None) -> HTMLResponse:
    return templates.TemplateResponse(request, "shell.html", {"title": title, "area": area})


# ---------------------------------------------------------------------------
# Google sign-in
# ---------------------------------------------------------------------------


@router.get("/login/google", response_class=HTMLResponse)
@limiter.limit(get_settings().login_rate_limit)
async def google_redirect(request: Request) -> RedirectResponse:
    """Redirect the browser to Google, remembering a safe ?next= in the session."""
    client = _google_client(request)
    if client is None:
        return _login_error("oauth_unavailable")

    next_url = _safe_next(request.query_params.get("next"))
    if next_url:
        request.session[_NEXT_SESSION_KEY] = next_url
    else:
        request.session.pop(_NEXT_SESSION_KEY, None)
    redirect_uri = str(request.url_for("google_callback"))
    return await client.authorize_redirect(request, redirect_uri)


@router.get("/login/callback/google", name="google_callback")
async def google_callback(request: Request):
    """Complete the Google code exchange and hand the id_token to the backend.

    Flow:
      1. Exchange authorization code for token (authlib checks state).
      2. Forward the raw id_token to POST /auth/google.
      3. Relay the backend's Set-Cookie headers (refresh cookie) to the browser.
      4. Return {account, accessToken, redirect}; redirect honors the captured next.
    """
    client = _google_client(request)
    if client is None:
        return _login_error("oauth_unavailable")

    try:
        token = await client.authorize_access_token(request)
        id_token = extract_id_token(token)
    except OAuthError:
        logger.exception("Google token exchange failed")
        return _login_error("oauth_failed")
    except ValueError:
        logger.warning("Google sign-in rejected: no id_token returned")
        return _login_error("oauth_failed")

    backend: BackendClient = request.app.state.backend
    try:
        result = await backend.google_login(id_token)
    except ApiError as e:
        logger.warning("Backend rejected Google sign-in: %s %s", e.status_code, e.code)
        if classify(e) is ErrorKind.NETWORK:
            return _login_error("backend_unavailable")
        return _login_error("oauth_failed")

    return _handoff(result, request.session.pop(_NEXT_SESSION_KEY, None))


# ---------------------------------------------------------------------------
# Page shells
# ---------------------------------------------------------------------------


@router.get("/login", response_class=HTMLResponse)
def login_form(request: Request) -> HTMLResponse:
    """Render the login shell with email/password form and the Google button."""
    settings = get_settings()
    error_msg = _ERROR_MESSAGES.get(request.query_params.get("error", ""))
    return templates.TemplateResponse(
        request,
        "login.html",
        {
            "error_msg": error_msg,
            "next": _safe_next(request.query_params.get("next")),
            "google_enabled": settings.google_enabled,
            "google_client_id": settings.google_client_id,
            "button_options": BUTTON_OPTIONS,
        },
    )


@router.post("/login")
@limiter.limit(get_settings().login_rate_limit)
async def login_post(
    request: Request,
    email: str = Form(...),
    password: str = Form(...),
):
    """Handle the email/password form: sign in against the backend.

    Success returns the same {account, accessToken, redirect} handoff as the
    Google callback, with the refresh cookie relayed. Failures redirect back
    to the login page with a whitelisted ?error= code and the safe ?next=.
    """
    next_url = _safe_next(request.query_params.get("next"))
    backend: BackendClient = request.app.state.backend
    try:
        result = await backend.login(normalize_email(email), password)
    except ApiError as e:
        logger.warning("Backend rejected sign-in: %s %s", e.status_code, e.code)
        kind = classify(e)
        if kind is ErrorKind.INVALID_CREDENTIALS:
            return _login_error("bad_credentials", next_url)
        if kind is ErrorKind.NETWORK:
            return _login_error("backend_unavailable", next_url)
        return _login_error("login_failed", next_url)

    return _handoff(result, next_url)


@router.get(HOME_PATH, response_class=HTMLResponse)
def home(request: Request) -> HTMLResponse:
    return _shell(request, "JobHub")


@router.get("/register", response_class=HTMLResponse)
def register_form(request: Request) -> HTMLResponse:
    return _shell(request, "Create account")


@router.get("/verify-registration", response_class=HTMLResponse)
def verify_registration_form(request: Request) -> HTMLResponse:
    return _shell(request, "Verify your email")


@router.get("/reset-password", response_class=HTMLResponse)
def reset_password_form(request: Request) -> HTMLResponse:
    return _shell(request, "Reset password")


@router.get(JOB_SEEKER_DASHBOARD_PATH, response_class=HTMLResponse)
def job_seeker_dashboard(request: Request) -> HTMLResponse:
    return _shell(request, "Job seeker dashboard", area="job-seeker")


@router.get(RECRUITER_DASHBOARD_PATH, response_class=HTMLResponse)
def recruiter_dashboard(request: Request) -> HTMLResponse:
    return _shell(request, "Recruiter dashboard", area="recruiter")


@router.get(ADMIN_DASHBOARD_PATH, response_class=HTMLResponse)
def admin_dashboard(request: Request) -> HTMLResponse:
    return _shell(request, "Admin dashboard", area="admin")
