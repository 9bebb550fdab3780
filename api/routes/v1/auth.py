"""
api/routes/v1/auth.py -- Google sign-in and session endpoints.

Mounted under Settings.base_url (not /api/v1) because the callback path is
part of the redirect URI registered with Google and must read exactly
<public_url><base_url>/auth/google/callback.

Routes:
  GET  /auth/google            -- redirect the browser to Google
  GET  /auth/google/callback   -- complete the handshake, resolve the user, set cookie
  GET  /auth/providers         -- list enabled providers (public)
  GET  /auth/me                -- current user info (requires auth)
  POST /auth/logout            -- clear cookie

Outcome mapping on the callback:
  Authenticated -> 302 to <base_url>/ with the session cookie set
  Rejected      -> 302 to <base_url>/signin?error=<code>
  AuthError     -> 500 with the standard error envelope

Security:
  Rate limit on GET /auth/google (LOGIN_RATE_LIMIT, default 10/minute per IP).
  Cache-Control: no-store on the response that carries the session cookie.
  The ?error= code is always one of the fixed codes below, never provider text.
"""

import logging

import httpx
from authlib.integrations.starlette_client import OAuthError
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse

from api.limiter import limiter
from api.models import MeResponse, OAuthProviderInfo
from auth.dependencies import get_current_user
from auth.google import fetch_profile, get_enabled_providers
from auth.models import AuthError, Rejected, User
from auth.resolver import IdentityContext, resolve_identity
from auth.tokens import clear_auth_cookie, create_access_token, set_auth_cookie
from core.config import get_settings

logger = logging.getLogger("signon.api.auth")

# Codes the sign-in page knows how to render.
ERROR_OAUTH_FAILED = "oauth_failed"
ERROR_LOGIN_FAILED = "login_failed"

# Auth policy:
# - GET  /auth/google, /auth/google/callback, /auth/providers: public
# - POST /auth/logout: public -- clearing a cookie needs no prior auth
# - GET  /auth/me: requires auth (get_current_user)
router = APIRouter()


def _signin_redirect(request: Request, code: str) -> RedirectResponse:
    base_url = request.app.state.settings.base_url
    return RedirectResponse(f"{base_url}/signin?error={code}", status_code=302)


@router.get("/auth/google")
@limiter.limit(get_settings().login_rate_limit)
async def google_login(request: Request) -> RedirectResponse:
    """Send the browser to Google's consent page."""
    strategy = request.app.state.google_strategy
    if strategy is None:
        return _signin_redirect(request, ERROR_OAUTH_FAILED)
    client = request.app.state.oauth.create_client(strategy.name)
    return await client.authorize_redirect(request, strategy.callback_url)


@router.get("/auth/google/callback", name="google_callback")
async def google_callback(request: Request) -> RedirectResponse:
    """Handle Google's redirect back and sign the user in.

    Flow:
      1. Exchange the authorization code for a token (Authlib verifies state).
      2. Fetch the profile from the userinfo endpoint.
      3. Resolve the profile against the user directory.
      4. Map the outcome to a redirect or a 500.
    """
    settings = request.app.state.settings
    strategy = request.app.state.google_strategy
    if strategy is None:
        return _signin_redirect(request, ERROR_OAUTH_FAILED)

    client = request.app.state.oauth.create_client(strategy.name)

    try:
        token = await client.authorize_access_token(request)
    except OAuthError:
        logger.exception("Google token exchange failed")
        return _signin_redirect(request, ERROR_OAUTH_FAILED)

    try:
        profile = await fetch_profile(client, strategy, token)
    except httpx.HTTPError:
        logger.warning("Google userinfo request failed", exc_info=True)
        return _signin_redirect(request, ERROR_OAUTH_FAILED)

    context = IdentityContext(users=request.app.state.user_store, allowed_domains=settings.allowed_domains)
    outcome = await resolve_identity(context, token.get("access_token"), token.get("refresh_token"), profile)

    if isinstance(outcome, AuthError):
        raise HTTPException(
            status_code=500,
            detail={"code": "internal_error", "message": "Sign-in failed due to a server error."},
        ) from outcome.error

    if isinstance(outcome, Rejected):
        return _signin_redirect(request, outcome.reason or ERROR_LOGIN_FAILED)

    user = outcome.user
    session_token = create_access_token(user.id, user.email, user.role)
    resp = RedirectResponse(f"{settings.base_url}/", status_code=302)
    set_auth_cookie(resp, session_token)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.get("/auth/providers", response_model=list[OAuthProviderInfo])
async def list_providers(request: Request) -> list[OAuthProviderInfo]:
    """Return the configured sign-in providers. Empty when Google is not set up."""
    return [OAuthProviderInfo(**p) for p in get_enabled_providers(request.app.state.google_strategy)]


@router.get("/auth/me", response_model=MeResponse)
async def me(current_user: User = Depends(get_current_user)) -> MeResponse:
    """Return identity information for the currently authenticated user."""
    return MeResponse(user_id=current_user.id, email=current_user.email, role=current_user.role)


@router.post("/auth/logout")
async def logout() -> JSONResponse:
    """Clear the session cookie."""
    resp = JSONResponse(content={"message": "Logged out."})
    clear_auth_cookie(resp)
    return resp
