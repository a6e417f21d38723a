"""Redirect and callback routes for third-party sign-in.

This module wires the authentication flow into FastAPI:
- ``GET /authentication/redirect/{provider_key}`` sends the user to the provider
  and stores the kept anti-forgery token half in an HttpOnly cookie
- ``GET /authentication/callback/{provider_key}`` validates the returned state
  against that cookie and hands the result to the application callback provider
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, RedirectResponse
from redis import Redis

from .anti_forgery import AntiForgery, FernetAntiForgery
from .callback import CallbackReconciler
from .callback_provider import AuthenticationCallbackProvider, RedirectCallbackProvider
from .config import OAuthGateConfig
from .errors import (
    AuthenticationRequestError,
    CsrfValidationFailed,
    InvalidRedirectData,
    ProviderError,
)
from .redirect import RedirectInitiator
from .service import AuthenticationService
from .state_storage import UsedStateRegistry
from .token_store import CookieTokenStore

logger = logging.getLogger(__name__)


def get_redis_client(config: OAuthGateConfig) -> Redis:
    """Get Redis client for replay protection."""
    if not config.redis_url:
        raise ValueError("UPSTASH_REDIS_URL environment variable not set")

    return Redis.from_url(config.redis_url, decode_responses=False)


def build_authentication_service(config: OAuthGateConfig) -> AuthenticationService:
    """Register every provider whose credentials are configured."""
    from oauthgate.providers import GoogleProvider, OpenIdConnectProvider

    service = AuthenticationService()

    if config.google_client_id and config.google_client_secret:
        service.register(GoogleProvider(config.google_client_id, config.google_client_secret))

    if config.oidc_client_id and config.oidc_client_secret:
        service.register(
            OpenIdConnectProvider(
                config.oidc_client_id,
                config.oidc_client_secret,
                default_issuer=config.oidc_default_issuer,
                trusted_issuers=config.oidc_trusted_issuers,
            )
        )

    if not service.list_providers():
        logger.warning("No authentication providers are configured")
    return service


def build_authentication_router(
    config: OAuthGateConfig,
    callback_provider: Optional[AuthenticationCallbackProvider] = None,
    authentication_service: Optional[AuthenticationService] = None,
    anti_forgery: Optional[AntiForgery] = None,
    used_states: Optional[UsedStateRegistry] = None,
    log: Optional[logging.Logger] = None,
) -> APIRouter:
    """Compose the authentication flow and expose it as a router.

    Args:
        config: Loaded configuration
        callback_provider: Application logic run after each callback,
            defaults to redirecting back to where the login started
        authentication_service: Provider registry, defaults to the providers in ``config``
        anti_forgery: Token codec, defaults to Fernet with ``config.secret_key``
        used_states: Replay guard, defaults to Redis when ``config.redis_url`` is set
        log: Logger passed to the flow components

    Returns:
        APIRouter mounted under ``/authentication``
    """
    log = log or logger
    service = authentication_service or build_authentication_service(config)
    anti_forgery = anti_forgery or FernetAntiForgery(config.secret_key, config.token_ttl_seconds)
    if used_states is None and config.redis_url:
        used_states = UsedStateRegistry(get_redis_client(config), config.token_ttl_seconds)
    callback_provider = callback_provider or RedirectCallbackProvider(config.default_redirect_url)

    initiator = RedirectInitiator(service, anti_forgery, logger=log)
    reconciler = CallbackReconciler(service, anti_forgery, used_states=used_states, logger=log)
    token_store = CookieTokenStore(
        config.csrf_cookie_name,
        secure=config.cookie_secure,
        max_age_seconds=config.token_ttl_seconds,
    )

    router = APIRouter(prefix="/authentication", tags=["Authentication"])

    def callback_url_for(request: Request, provider_key: str) -> str:
        # Must be identical on both legs of the round trip.
        if config.callback_base_url:
            return f"{config.callback_base_url.rstrip('/')}/{provider_key}"
        return str(request.url_for("authenticate_callback", provider_key=provider_key))

    @router.get("/redirect/{provider_key}", name="redirect_to_provider")
    async def redirect_to_provider(
        request: Request,
        provider_key: str,
        identifier: Optional[str] = Query(default=None, description="Issuer for identifier-based providers"),
        redirect_url: Optional[str] = Query(default=None, description="Where to return after login"),
    ):
        """Redirect the user agent to the provider's authorization endpoint."""
        try:
            instruction = await run_in_threadpool(
                initiator.initiate,
                provider_key,
                str(request.url),
                callback_url_for(request, provider_key),
                identifier=identifier,
                referer_url=request.headers.get("referer"),
                redirect_url=redirect_url,
            )
        # IssuerRejected is also a ProviderError; it must stay a 400.
        except AuthenticationRequestError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except ProviderError as e:
            log.error(f"Failed to build authorization url for {provider_key}: {e}")
            raise HTTPException(status_code=502, detail="Failed to contact the authentication provider")

        response = RedirectResponse(url=instruction.redirect_uri, status_code=302)
        token_store.put(response, instruction.token_to_persist)
        return response

    @router.get("/callback/{provider_key}", name="authenticate_callback")
    async def authenticate_callback(request: Request, provider_key: str):
        """Validate the provider callback and hand over to the application."""
        kept_token = token_store.get(request)

        try:
            result = await run_in_threadpool(
                reconciler.reconcile,
                provider_key,
                str(request.url),
                callback_url_for(request, provider_key),
                kept_token,
                request.query_params.get("state"),
                dict(request.query_params),
            )
        except CsrfValidationFailed:
            response = JSONResponse({"detail": "Cross site request forgery check failed"}, status_code=403)
        except AuthenticationRequestError as e:
            response = JSONResponse({"detail": str(e)}, status_code=400)
        except InvalidRedirectData:
            log.exception("Redirect data carried in the state could not be parsed")
            response = JSONResponse({"detail": "Internal authentication error"}, status_code=500)
        else:
            log.debug("About to execute the callback provider")
            response = await callback_provider.process(request, result)

        # The kept token is single use, whatever the outcome.
        token_store.invalidate(response)
        return response

    return router
