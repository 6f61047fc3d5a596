"""
api/routes/v1/login.py -- External identity provider login flow.

Routes:
  GET /api/login/providers          -- list enabled OAuth providers (public)
  GET /login/{provider}             -- redirect the browser to the provider
  GET /login/callback/{provider}    -- handle the provider callback, start session

Flow:
  1. /login/{provider} validates the provider against the enabled list and
     redirects (authlib stores the OAuth state in the Starlette session).
  2. The callback exchanges the code, extracts a verified profile, provisions
     the user (first login creates it), starts the cookie session and
     redirects to POST_LOGON_URL.
  Any failure redirects to POST_LOGON_URL?error=oauth_failed; the raw error
  is logged, never echoed to the browser.

Route registration order: /login/callback/{provider} is registered before
/login/{provider} so "callback" is never captured as a provider name.
"""

from __future__ import annotations

import logging

from authlib.integrations.starlette_client import OAuthError
from fastapi import APIRouter, Request
from fastapi.responses import RedirectResponse

from api.limiter import limiter
from api.models import OAuthProviderInfo
from auth.oauth import get_enabled_providers, get_oauth_profile
from auth.service import provision_oauth_user
from auth.store import UserStore
from core.config import get_settings

logger = logging.getLogger("bookshelf.api.login")

router = APIRouter()


def _failure_redirect(request: Request) -> RedirectResponse:
    target = request.app.state.settings.post_logon_url
    separator = "&" if "?" in target else "?"
    return RedirectResponse(f"{target}{separator}error=oauth_failed", status_code=302)


def _is_enabled(provider: str) -> bool:
    return provider in {p["name"] for p in get_enabled_providers()}


@router.get("/api/login/providers", response_model=list[OAuthProviderInfo])
async def list_providers() -> list[OAuthProviderInfo]:
    """Return the configured OAuth providers. Empty list if none are set up."""
    return [OAuthProviderInfo(**p) for p in get_enabled_providers()]


@router.get("/login/callback/{provider}", name="oauth_callback")
async def oauth_callback(request: Request, provider: str) -> RedirectResponse:
    """Exchange the authorization code, provision the user and issue the session cookie."""
    if not _is_enabled(provider):
        return _failure_redirect(request)

    client = request.app.state.oauth.create_client(provider)
    try:
        token = await client.authorize_access_token(request)
    except OAuthError:
        logger.exception("OAuth token exchange failed for provider %r", provider)
        return _failure_redirect(request)

    try:
        profile = await get_oauth_profile(client, provider, token)
    except ValueError:
        logger.warning("OAuth login rejected: unverified or missing email from %r", provider)
        return _failure_redirect(request)

    user_store: UserStore = request.app.state.user_store
    settings = request.app.state.settings
    user = provision_oauth_user(user_store, profile, settings.admin_emails)

    resp = RedirectResponse(settings.post_logon_url, status_code=302)
    request.app.state.sessions.start_session(resp, user)
    resp.headers["Cache-Control"] = "no-store"
    logger.info("User %s logged in via %s", user.id, provider)
    return resp


@limiter.limit(get_settings().login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.get("/login/{provider}", name="oauth_login")
async def oauth_login(request: Request, provider: str) -> RedirectResponse:
    """Redirect the browser to the provider's authorization page.

    The provider name is checked against the enabled list first, so a crafted
    name can never select an unregistered client.
    """
    if not _is_enabled(provider):
        return _failure_redirect(request)

    client = request.app.state.oauth.create_client(provider)
    redirect_uri = str(request.url_for("oauth_callback", provider=provider))
    return await client.authorize_redirect(request, redirect_uri)
