"""
auth/google.py -- Google sign-in strategy: configuration and Authlib wiring.

enable_google(settings) builds a GoogleStrategy when Google credentials are
configured and returns None otherwise. Missing credentials are a soft
disable, not a startup failure -- the app simply offers no Google button.

The strategy is a plain object. The composing HTTP layer (api/main.py)
registers it with its Authlib OAuth registry via register_strategy(); nothing
in this module touches a global registry.

Callback URL:
  public_url + base_url + "/auth/google/callback", concatenated literally.
  It must match the redirect URI registered in the Google Cloud console
  byte for byte, so no slash normalisation is applied.

Profile:
  The profile is fetched from the v3 userinfo REST endpoint rather than parsed
  out of the ID token. fetch_profile() performs that call through the Authlib
  client so the access token is attached automatically.

Security notes:
  OAuth state (CSRF protection) is handled by Authlib via Starlette
  SessionMiddleware. The session stores the state between the authorization
  redirect and the callback.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from core.config import Settings

logger = logging.getLogger("signon.auth.google")

PROVIDER_NAME = "google"
CALLBACK_PATH = "/auth/google/callback"
USERINFO_URL = "https://www.googleapis.com/oauth2/v3/userinfo?alt=json"
SERVER_METADATA_URL = "https://accounts.google.com/.well-known/openid-configuration"


@dataclass(frozen=True)
class GoogleStrategy:
    """Everything Authlib and the callback route need to run Google sign-in."""

    client_id: str
    client_secret: str
    callback_url: str
    userinfo_url: str = USERINFO_URL
    server_metadata_url: str = SERVER_METADATA_URL
    scope: str = "openid email profile"
    name: str = PROVIDER_NAME
    label: str = "Google"


def callback_url(settings: Settings) -> str:
    return settings.public_url + settings.base_url + CALLBACK_PATH


def enable_google(settings: Settings) -> GoogleStrategy | None:
    """Return a GoogleStrategy if Google auth is configured, else None."""
    if not settings.google_auth_configured():
        return None
    logger.info("Enabling Google authentication strategy.")
    return GoogleStrategy(
        client_id=settings.google_client_id_value(),
        client_secret=settings.google_client_secret_value(),
        callback_url=callback_url(settings),
    )


def register_strategy(oauth, strategy: GoogleStrategy) -> None:
    """Register strategy with an authlib OAuth registry."""
    oauth.register(
        name=strategy.name,
        client_id=strategy.client_id,
        client_secret=strategy.client_secret,
        server_metadata_url=strategy.server_metadata_url,
        userinfo_endpoint=strategy.userinfo_url,
        client_kwargs={"scope": strategy.scope},
    )
    logger.info("Google OAuth provider registered (callback %s)", strategy.callback_url)


def get_enabled_providers(strategy: GoogleStrategy | None) -> list[dict]:
    """Return {"name", "label"} metadata for the sign-in page.

    Empty when Google is not configured.
    """
    if strategy is None:
        return []
    return [{"name": strategy.name, "label": strategy.label}]


async def fetch_profile(client, strategy: GoogleStrategy, token: dict) -> dict:
    """Fetch the signed-in user's profile from the userinfo endpoint.

    Raises httpx.HTTPStatusError on a non-2xx response; the callback route
    treats that as a failed handshake.
    """
    resp = await client.get(strategy.userinfo_url, token=token)
    resp.raise_for_status()
    return resp.json()
