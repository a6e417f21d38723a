"""Environment configuration for the authentication routes."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Optional

from .anti_forgery import DEFAULT_COOKIE_NAME, FernetAntiForgery

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass
class OAuthGateConfig:
    """Settings for the redirect/callback endpoints.

    Environment Variables:
        OAUTHGATE_SECRET_KEY: Fernet key for anti-forgery tokens (required)
        OAUTHGATE_CSRF_COOKIE_NAME: Cookie holding the kept token half
        OAUTHGATE_TOKEN_TTL_SECONDS: Lifetime of a token pair (default 600)
        OAUTHGATE_CALLBACK_URL: Public base url of the callback route, needed behind proxies
        OAUTHGATE_DEFAULT_REDIRECT_URL: Where to land after login when no redirect was remembered
        OAUTHGATE_COOKIE_SECURE: Send the cookie over https only (default true)
        UPSTASH_REDIS_URL: Enables replay protection when set
        GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET: Registers the Google provider when set
        OIDC_CLIENT_ID / OIDC_CLIENT_SECRET / OIDC_DEFAULT_ISSUER: Registers the OpenID provider when set
        OIDC_TRUSTED_ISSUERS: Comma separated issuers users may name besides the default
    """

    secret_key: str
    csrf_cookie_name: str = DEFAULT_COOKIE_NAME
    token_ttl_seconds: int = FernetAntiForgery.DEFAULT_MAX_AGE_SECONDS
    callback_base_url: Optional[str] = None
    default_redirect_url: str = "/"
    cookie_secure: bool = True
    redis_url: Optional[str] = None
    google_client_id: Optional[str] = None
    google_client_secret: Optional[str] = None
    oidc_client_id: Optional[str] = None
    oidc_client_secret: Optional[str] = None
    oidc_default_issuer: Optional[str] = None
    oidc_trusted_issuers: List[str] = field(default_factory=list)

    @classmethod
    def from_env(cls) -> "OAuthGateConfig":
        """Load configuration from environment variables.

        Raises:
            ValueError: A required variable is missing or malformed
        """
        secret_key = os.getenv("OAUTHGATE_SECRET_KEY")
        if not secret_key:
            raise ValueError(
                "OAUTHGATE_SECRET_KEY environment variable not set. "
                "Generate one with FernetAntiForgery.generate_key()."
            )

        ttl = os.getenv("OAUTHGATE_TOKEN_TTL_SECONDS")
        try:
            token_ttl_seconds = int(ttl) if ttl else FernetAntiForgery.DEFAULT_MAX_AGE_SECONDS
        except ValueError:
            raise ValueError(f"OAUTHGATE_TOKEN_TTL_SECONDS must be an integer, got {ttl!r}")

        return cls(
            secret_key=secret_key,
            csrf_cookie_name=os.getenv("OAUTHGATE_CSRF_COOKIE_NAME", DEFAULT_COOKIE_NAME),
            token_ttl_seconds=token_ttl_seconds,
            callback_base_url=os.getenv("OAUTHGATE_CALLBACK_URL"),
            default_redirect_url=os.getenv("OAUTHGATE_DEFAULT_REDIRECT_URL", "/"),
            cookie_secure=os.getenv("OAUTHGATE_COOKIE_SECURE", "true").lower() in _TRUE_VALUES,
            redis_url=os.getenv("UPSTASH_REDIS_URL"),
            google_client_id=os.getenv("GOOGLE_CLIENT_ID"),
            google_client_secret=os.getenv("GOOGLE_CLIENT_SECRET"),
            oidc_client_id=os.getenv("OIDC_CLIENT_ID"),
            oidc_client_secret=os.getenv("OIDC_CLIENT_SECRET"),
            oidc_default_issuer=os.getenv("OIDC_DEFAULT_ISSUER"),
            oidc_trusted_issuers=[
                issuer.strip() for issuer in os.getenv("OIDC_TRUSTED_ISSUERS", "").split(",") if issuer.strip()
            ],
        )
