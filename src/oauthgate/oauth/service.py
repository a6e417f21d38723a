"""Provider registry and per-request settings resolution."""

from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Optional, Protocol
from urllib.parse import urljoin, urlsplit

from .errors import InvalidIdentifier, UnknownProvider
from .models import AuthenticatedClient, IdentifierSettings, ProviderSettings


def parse_uri(value: str, require_absolute: bool = False) -> str:
    """Check that ``value`` is a well formed absolute or relative uri.

    Raises:
        ValueError: The value is empty, contains whitespace or cannot be parsed
    """
    if not value or any(c.isspace() or ord(c) < 0x20 for c in value):
        raise ValueError(f"Not a valid uri: {value!r}")

    parts = urlsplit(value)
    # Raises ValueError for a non-numeric or out of range port.
    parts.port

    if require_absolute and not (parts.scheme and parts.netloc):
        raise ValueError(f"Not an absolute uri: {value!r}")
    return value


class AuthenticationProvider(Protocol):
    """Wire-level client for one identity provider."""

    provider_key: str
    provider_name: str

    def create_settings(self, callback_uri: str) -> ProviderSettings:
        ...

    def authorization_url(self, settings: ProviderSettings) -> str:
        ...

    def authenticate(self, settings: ProviderSettings, callback_params: Mapping[str, str]) -> AuthenticatedClient:
        ...


class AuthenticationService:
    """Looks up providers by key and delegates the wire exchange to them.

    The registry is filled once at startup and only read afterwards.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._providers: Dict[str, AuthenticationProvider] = {}
        self._logger = logger or logging.getLogger(__name__)

    def register(self, provider: AuthenticationProvider) -> None:
        key = provider.provider_key.lower()
        self._providers[key] = provider
        self._logger.info(f"Registered authentication provider: {key} ({provider.provider_name})")

    def list_providers(self) -> List[str]:
        return sorted(self._providers)

    def get_provider(self, provider_key: str) -> AuthenticationProvider:
        provider = self._providers.get(provider_key.lower())
        if provider is None:
            raise UnknownProvider(provider_key)
        return provider

    def get_authenticate_service_settings(
        self,
        provider_key: str,
        current_url: str,
        callback_url: str,
        identifier: Optional[str] = None,
    ) -> ProviderSettings:
        """Build the settings for one leg of the round trip.

        Both legs must pass the same ``callback_url`` so the provider sees an
        identical redirect uri when the code is exchanged.

        Args:
            provider_key: Registered provider key, e.g. "google"
            current_url: Url of the inbound request, used to resolve a relative callback url
            callback_url: Absolute or relative url of the callback endpoint for this provider
            identifier: Optional issuer identifier for identifier-based protocols

        Returns:
            Fresh ProviderSettings for this request

        Raises:
            UnknownProvider: No provider is registered under ``provider_key``
            InvalidIdentifier: ``identifier`` is not a well formed uri
        """
        provider = self.get_provider(provider_key)
        settings = provider.create_settings(urljoin(current_url, callback_url))

        if identifier:
            if isinstance(settings, IdentifierSettings):
                try:
                    settings.identifier = parse_uri(identifier)
                except ValueError as e:
                    raise InvalidIdentifier(identifier) from e
            else:
                self._logger.debug(
                    f"Ignoring identifier for provider {settings.provider_key}: "
                    "its settings do not accept one"
                )

        return settings

    def redirect_to_authentication_provider(self, settings: ProviderSettings) -> str:
        return self.get_provider(settings.provider_key).authorization_url(settings)

    def get_authenticated_client(
        self, settings: ProviderSettings, callback_params: Mapping[str, str]
    ) -> AuthenticatedClient:
        return self.get_provider(settings.provider_key).authenticate(settings, callback_params)
