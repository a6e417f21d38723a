"""Third-party sign-in with split-token CSRF protection.

This package provides:
- Split anti-forgery tokens carried through the provider's state parameter
- Provider registry and per-request settings resolution
- Redirect and callback orchestration
- Redis-based replay protection
- FastAPI routes wiring it all together
"""

from .anti_forgery import AntiForgery, FernetAntiForgery, TokenContents, TokenPair
from .callback import CallbackReconciler
from .callback_provider import AuthenticationCallbackProvider, RedirectCallbackProvider
from .config import OAuthGateConfig
from .errors import (
    AuthenticationError,
    AuthenticationRequestError,
    CsrfValidationFailed,
    InvalidIdentifier,
    InvalidRedirectUrl,
    IssuerRejected,
    InvalidRedirectData,
    MissingProviderKey,
    MissingState,
    MissingTokenError,
    ProviderError,
    TokenMismatch,
    UnknownProvider,
)
from .models import (
    AuthenticatedClient,
    CallbackResult,
    IdentifierSettings,
    ProviderSettings,
    RedirectInstruction,
)
from .redirect import RedirectInitiator
from .routes import build_authentication_router
from .service import AuthenticationProvider, AuthenticationService
from .state_storage import UsedStateRegistry
from .token_store import CookieTokenStore

__all__ = [
    "AntiForgery",
    "FernetAntiForgery",
    "TokenContents",
    "TokenPair",
    "CallbackReconciler",
    "AuthenticationCallbackProvider",
    "RedirectCallbackProvider",
    "OAuthGateConfig",
    "AuthenticationError",
    "AuthenticationRequestError",
    "CsrfValidationFailed",
    "InvalidIdentifier",
    "InvalidRedirectUrl",
    "IssuerRejected",
    "InvalidRedirectData",
    "MissingProviderKey",
    "MissingState",
    "MissingTokenError",
    "ProviderError",
    "TokenMismatch",
    "UnknownProvider",
    "AuthenticatedClient",
    "CallbackResult",
    "IdentifierSettings",
    "ProviderSettings",
    "RedirectInstruction",
    "RedirectInitiator",
    "build_authentication_router",
    "AuthenticationProvider",
    "AuthenticationService",
    "UsedStateRegistry",
    "CookieTokenStore",
]
