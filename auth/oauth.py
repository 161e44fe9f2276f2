"""
auth/oauth.py -- Authlib registry for the edge server's Google sign-in.

The edge server runs the authorization code flow with Google (OIDC discovery)
and forwards the resulting id_token verbatim to the backend's POST /auth/google.
It never decides who the user is; the backend verifies the token.

OAuth state parameter (CSRF protection) is handled by authlib automatically via
Starlette SessionMiddleware. The session stores the state between the
authorization redirect and the callback.

The provider is registered only when both client ID and secret are configured.
"""

from __future__ import annotations

import logging
from typing import Optional

from authlib.integrations.starlette_client import OAuth

from core.config import Settings, get_settings

logger = logging.getLogger("jobhub.auth.oauth")

GOOGLE_METADATA_URL = "https://accounts.google.com/.well-known/openid-configuration"


def build_oauth(settings: Optional[Settings] = None) -> OAuth:
    """Return an OAuth registry with Google registered when configured."""
    cfg = settings or get_settings()
    oauth = OAuth()
    if cfg.google_enabled:
        oauth.register(
            name="google",
            client_id=cfg.google_client_id,
            client_secret=cfg.google_client_secret,
            server_metadata_url=GOOGLE_METADATA_URL,
            client_kwargs={"scope": "openid email profile"},
        )
        logger.info("Google OAuth provider registered")
    return oauth


def extract_id_token(token: dict) -> str:
    """Return the raw id_token from an authlib token response.

    Raises ValueError when the provider did not return one; the caller treats
    that as a failed sign-in.
    """
    id_token = token.get("id_token") if isinstance(token, dict) else None
    if not isinstance(id_token, str) or not id_token:
        raise ValueError("Google OAuth: no id_token in token response")
    return id_token
