"""FastAPI application factory."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI

from oauthgate.oauth import OAuthGateConfig, build_authentication_router
from oauthgate.oauth.callback_provider import AuthenticationCallbackProvider


def create_app(
    config: Optional[OAuthGateConfig] = None,
    callback_provider: Optional[AuthenticationCallbackProvider] = None,
) -> FastAPI:
    """Create an app serving the authentication routes.

    Args:
        config: Configuration, loaded from the environment when omitted
        callback_provider: Application logic run after each provider callback
    """
    config = config or OAuthGateConfig.from_env()

    app = FastAPI(title="oauthgate")
    app.include_router(
        build_authentication_router(
            config,
            callback_provider=callback_provider,
            log=logging.getLogger("oauthgate.authentication"),
        )
    )
    return app
