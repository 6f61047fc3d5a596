"""
auth/oauth.py -- Authlib OAuth/OIDC provider configuration.

Reads configuration from core.config.get_settings() at module load to decide
which providers are active. Only providers with both client ID and secret
configured get registered.

Security notes:
  Email verification is mandatory. get_oauth_profile() raises ValueError if
  the provider does not confirm the email is verified. Provisioning grants
  ROLE_ADMIN by email (ADMIN_EMAILS), so an unverified address must never
  get that far.

  OAuth state parameter (CSRF protection) is handled by authlib automatically
  via Starlette SessionMiddleware. The session stores the state between the
  authorization redirect and the callback.

Supported providers:
  github -- Authorization code flow; static endpoints.
  google -- Authorization code flow; OIDC discovery.

Layer rule: no imports from api/ or catalog/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging

from authlib.integrations.starlette_client import OAuth

from auth.models import OAuthProfile
from core.config import Settings, get_settings

logger = logging.getLogger("bookshelf.auth.oauth")

# ---------------------------------------------------------------------------
# Provider table
#
# name -> (button label, Authlib register() endpoint kwargs). Credentials come
# from Settings fields <name>_client_id / <name>_client_secret.
# ---------------------------------------------------------------------------

_PROVIDERS: dict[str, tuple[str, dict]] = {
    # Static endpoints; GitHub publishes no OIDC discovery document.
    "github": (
        "GitHub",
        {
            "access_token_url": "https://github.com/login/oauth/access_token",  # noqa: S106 -- URL, not a password
            "authorize_url": "https://github.com/login/oauth/authorize",
            "api_base_url": "https://api.github.com/",
            "client_kwargs": {"scope": "read:user user:email"},
        },
    ),
    "google": (
        "Google",
        {
            "server_metadata_url": "https://accounts.google.com/.well-known/openid-configuration",
            "client_kwargs": {"scope": "openid email profile"},
        },
    ),
}


def _credentials(cfg: Settings, name: str) -> tuple[str, str] | None:
    client_id = getattr(cfg, f"{name}_client_id")
    client_secret = getattr(cfg, f"{name}_client_secret")
    if client_id and client_secret:
        return client_id, client_secret
    return None


# ---------------------------------------------------------------------------
# Authlib OAuth registry
# ---------------------------------------------------------------------------

oauth = OAuth()

_cfg = get_settings()

for _name, (_label, _endpoints) in _PROVIDERS.items():
    _creds = _credentials(_cfg, _name)
    if _creds is None:
        continue
    oauth.register(name=_name, client_id=_creds[0], client_secret=_creds[1], **_endpoints)
    logger.info("%s OAuth provider registered", _label)


# ---------------------------------------------------------------------------
# Provider metadata
# ---------------------------------------------------------------------------


def get_enabled_providers() -> list[dict]:
    """Return {"name", "label"} for every provider with credentials configured."""
    cfg = get_settings()
    return [
        {"name": name, "label": label}
        for name, (label, _endpoints) in _PROVIDERS.items()
        if _credentials(cfg, name) is not None
    ]


# ---------------------------------------------------------------------------
# Profile extraction -- provider-specific normalization
# ---------------------------------------------------------------------------


async def get_oauth_profile(client, provider: str, token: dict) -> OAuthProfile:
    """Build an OAuthProfile from a provider token response.

    Args:
        client:   The authlib OAuth client for this provider.
        provider: "github" or "google".
        token:    The token dict returned by authlib after code exchange.

    Raises:
        ValueError: If a verified email cannot be confirmed, or the provider
                    is unknown.
    """
    if provider == "github":
        return await _get_github_profile(client, token)
    elif provider == "google":
        return _get_oidc_profile(token, provider)
    else:
        raise ValueError(f"Unknown OAuth provider: {provider!r}")


async def _get_github_profile(client, token: dict) -> OAuthProfile:
    """Build a profile from GitHub's REST API.

    GitHub does not include the email in the access token. Two API calls are
    required:
      1. GET /user -- numeric user ID (stable subject), display name, avatar.
      2. GET /user/emails -- to find the primary verified email.
    """
    resp = await client.get("user", token=token)
    resp.raise_for_status()
    profile = resp.json()

    emails_resp = await client.get("user/emails", token=token)
    emails_resp.raise_for_status()

    email: str | None = None
    for entry in emails_resp.json():
        if entry.get("primary") and entry.get("verified"):
            email = entry["email"]
            break

    if not email:
        raise ValueError(
            "GitHub OAuth: no primary verified email found. "
            "The user must verify their email address on GitHub before logging in."
        )

    return OAuthProfile(
        provider="github",
        subject=str(profile["id"]),
        email=email,
        full_name=profile.get("name") or profile.get("login") or email,
        picture=profile.get("avatar_url") or "",
    )


def _get_oidc_profile(token: dict, provider: str) -> OAuthProfile:
    """Build a profile from an OIDC id_token's userinfo claims.

    The email claim is only accepted when email_verified is True. Providers
    that omit email_verified are treated as unverified.
    """
    userinfo = token.get("userinfo")
    if not userinfo:
        raise ValueError(f"{provider} OAuth: no userinfo in token response")

    if not userinfo.get("email_verified", False):
        raise ValueError(
            f"{provider} OAuth: email is not verified. "
            "The provider must confirm email ownership before login is allowed."
        )

    email = userinfo.get("email")
    subject = userinfo.get("sub")
    if not email or not subject:
        raise ValueError(f"{provider} OAuth: missing email or sub claim in userinfo")

    return OAuthProfile(
        provider=provider,
        subject=str(subject),
        email=email,
        full_name=userinfo.get("name") or email,
        picture=userinfo.get("picture") or "",
    )
