"""
api/routes/oauth.py -- Browser-facing OAuth 2.0 handshake for Google and GitHub.

Routes:
  GET /auth/{provider}                    -- start login (alias of /auth)
  GET /auth/{provider}/auth?redirect_uri= -- start login; 307 to the provider
  GET /auth/{provider}/callback           -- verify state, link/create the
                                             account, set auth_token, 307 back

Security:
  [C3] CSRF: the state token is stored in an HttpOnly cookie for 10 minutes and
       compared in constant time against the `state` query parameter. A missing
       or different value aborts with 400 before the code is ever exchanged.
  [C2] Open redirect: redirect_uri is only honoured when it is a relative path
       or its origin is in Settings.redirect_origins; anything else falls back
       to FRONTEND_URL. It is re-checked on the callback because cookies are
       client-controlled.
  Once the state has been verified, both transient cookies are cleared on
  every response this route sends, success or failure.
  Both routes are rate-limited per IP (Settings.oauth_rate_limit).
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime
from typing import Optional
from urllib.parse import urlsplit

from fastapi import APIRouter, HTTPException, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from api.limiter import limiter
from api.models import ErrorDetail, error_body
from auth.oauth import PROVIDERS, OAuthClient, generate_state, resolve_local_user
from auth.service import AuthService
from auth.tokens import clear_auth_cookie, set_auth_cookie
from core.config import Settings, get_settings
from core.errors import CSRFMismatchError, ServiceError, ValidationError

logger = logging.getLogger("codestandoff.api.oauth")

_settings = get_settings()

STATE_COOKIE = "oauth_state"
REDIRECT_COOKIE = "oauth_redirect_uri"
_TRANSIENT_MAX_AGE = 600  # seconds

# Auth policy: every route here is public -- they are how a session starts.
router = APIRouter()


class ResponseCookieSink:
    """Adapts a Starlette response to the AuthService sink interface."""

    def __init__(self, response: Response) -> None:
        self.response = response

    def set_session_cookie(self, token: str, expires_at: datetime) -> None:
        set_auth_cookie(self.response, token, expires_at)

    def clear_session_cookie(self) -> None:
        clear_auth_cookie(self.response)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def safe_redirect_target(target: Optional[str], settings: Settings) -> str:
    """Validate a post-login redirect target [C2].

    Accepts a server-local path ("/x", never "//x") or an absolute http(s) URL
    whose origin is allow-listed. Everything else yields FRONTEND_URL.
    """
    default = settings.frontend_url
    if not target:
        return default
    if target.startswith("/") and not target.startswith(("//", "/\\")):
        return target
    parts = urlsplit(target)
    if parts.scheme in ("http", "https") and parts.netloc:
        if f"{parts.scheme}://{parts.netloc}" in settings.redirect_origins:
            return target
    logger.warning("Rejected OAuth redirect target outside allowed origins")
    return default


def _oauth_client(request: Request, provider: str) -> OAuthClient:
    """Return the shared client, or fail with 404 (unknown) / 503 (unconfigured)."""
    if provider not in PROVIDERS:
        raise HTTPException(
            status_code=404,
            detail=ErrorDetail(code="not_found", message=f"Unknown OAuth provider: {provider}.").model_dump(),
        )
    client: OAuthClient = request.app.state.oauth_client
    client.config.provider(provider)
    return client


def _set_transient_cookie(response: Response, name: str, value: str) -> None:
    response.set_cookie(
        name,
        value=value,
        path="/",
        max_age=_TRANSIENT_MAX_AGE,
        httponly=True,
        samesite="lax",
        secure=bool(_settings.secure_cookies),
    )


def _clear_transient_cookies(response: Response) -> None:
    for name in (STATE_COOKIE, REDIRECT_COOKIE):
        response.delete_cookie(name, path="/", httponly=True, samesite="lax", secure=bool(_settings.secure_cookies))


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@limiter.limit(_settings.oauth_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.get("/auth/{provider}", include_in_schema=False)
@router.get("/auth/{provider}/auth", tags=["OAuth"])
async def oauth_start(request: Request, provider: str, redirect_uri: Optional[str] = None) -> RedirectResponse:
    """Send the browser to the provider's consent page."""
    client = _oauth_client(request, provider)
    state = generate_state()
    target = safe_redirect_target(redirect_uri, _settings)

    response = RedirectResponse(client.authorization_url(provider, state), status_code=307)
    _set_transient_cookie(response, STATE_COOKIE, state)
    _set_transient_cookie(response, REDIRECT_COOKIE, target)
    return response


@limiter.limit(_settings.oauth_rate_limit)
@router.get("/auth/{provider}/callback", tags=["OAuth"])
async def oauth_callback(
    request: Request,
    provider: str,
    code: Optional[str] = None,
    state: Optional[str] = None,
) -> Response:
    """Finish the handshake and start a session.

    Flow:
      1. Verify state against the cookie [C3] -- 400 on mismatch, nothing else runs.
      2. Exchange the code (502 on failure).
      3. Fetch the profile (502 on failure).
      4. Join-or-create the local user, start a session, 307 to the stored target.
    """
    client = _oauth_client(request, provider)

    expected = request.cookies.get(STATE_COOKIE)
    if not expected or not state or not secrets.compare_digest(expected.encode(), state.encode()):
        logger.warning("OAuth state mismatch for %s from %s", provider, request.client.host if request.client else "unknown")
        raise CSRFMismatchError("invalid OAuth state")

    target = safe_redirect_target(request.cookies.get(REDIRECT_COOKIE), _settings)
    auth_service: AuthService = request.app.state.auth_service

    try:
        if not code:
            raise ValidationError("missing authorization code")
        token = await client.exchange_code(provider, code)
        identity = await client.fetch_identity(provider, token)
        user = resolve_local_user(auth_service.store, identity)
        response: Response = RedirectResponse(target, status_code=307)
        auth_service.start_session(user, sink=ResponseCookieSink(response))
        logger.info("OAuth login via %s for user %s", provider, user.id)
    except ServiceError as exc:
        logger.warning("OAuth callback for %s failed: %s", provider, exc.code)
        message = "An unexpected error occurred." if exc.internal else exc.message
        response = JSONResponse(status_code=exc.status_code, content=error_body(exc.code, message))

    _clear_transient_cookies(response)
    return response
