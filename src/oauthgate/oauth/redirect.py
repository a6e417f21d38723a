"""First leg of the login round trip: send the user agent to the provider."""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urljoin

from .anti_forgery import AntiForgery
from .errors import InvalidRedirectUrl, MissingProviderKey
from .models import IdentifierSettings, RedirectInstruction
from .service import AuthenticationService, parse_uri


class RedirectInitiator:
    """Builds the provider redirect and the anti-forgery token half to keep.

    Persisting the token and issuing the redirect are left to the caller.
    """

    def __init__(
        self,
        authentication_service: AuthenticationService,
        anti_forgery: AntiForgery,
        logger: Optional[logging.Logger] = None,
    ):
        self.authentication_service = authentication_service
        self.anti_forgery = anti_forgery
        self._logger = logger or logging.getLogger(__name__)

    def initiate(
        self,
        provider_key: str,
        current_url: str,
        callback_url: str,
        identifier: Optional[str] = None,
        referer_url: Optional[str] = None,
        redirect_url: Optional[str] = None,
    ) -> RedirectInstruction:
        """Prepare the redirect to the provider's authorization endpoint.

        Our convention is to remember where to send the user once the callback
        completes: an explicit ``redirect_url`` wins, otherwise the referer.

        Args:
            provider_key: Registered provider key, e.g. "google"
            current_url: Url of the inbound request
            callback_url: Callback endpoint url for this provider
            identifier: Optional issuer identifier for identifier-based protocols
            referer_url: Referer of the inbound request, if any
            redirect_url: Explicit post-login redirect target, if any

        Returns:
            RedirectInstruction with the provider url and the token to persist

        Raises:
            MissingProviderKey: ``provider_key`` is empty
            UnknownProvider: No provider is registered under ``provider_key``
            InvalidIdentifier: ``identifier`` is not a well formed uri
            InvalidRedirectUrl: ``redirect_url`` does not resolve to an absolute uri.
                An unusable referer is dropped instead.
        """
        if not provider_key:
            raise MissingProviderKey(
                "ProviderKey value missing. You need to supply a valid provider key "
                "so we know where to redirect the user Eg. google."
            )

        log = logging.LoggerAdapter(self._logger, {"provider_key": provider_key})

        settings = self.authentication_service.get_authenticate_service_settings(
            provider_key, current_url, callback_url, identifier=identifier
        )

        extra_data = self._return_url(current_url, redirect_url, referer_url, log)

        identifier = settings.identifier if isinstance(settings, IdentifierSettings) else None
        token = self.anti_forgery.create_token(extra_data, identifier=identifier)
        settings.state = token.to_send

        uri = self.authentication_service.redirect_to_authentication_provider(settings)

        log.info(
            f"Redirecting to {settings.provider_name} "
            f"(callback: {settings.callback_uri}, return to: {extra_data or '-none-'})"
        )
        return RedirectInstruction(redirect_uri=uri, token_to_persist=token.to_keep)

    @staticmethod
    def _return_url(
        current_url: str,
        redirect_url: Optional[str],
        referer_url: Optional[str],
        log: logging.LoggerAdapter,
    ) -> Optional[str]:
        """Pick the post-login target, stored absolute so the callback can parse it back."""
        if redirect_url:
            try:
                return parse_uri(urljoin(current_url, redirect_url), require_absolute=True)
            except ValueError as e:
                raise InvalidRedirectUrl(redirect_url) from e

        if referer_url:
            try:
                return parse_uri(urljoin(current_url, referer_url), require_absolute=True)
            except ValueError:
                log.debug(f"Ignoring unusable referer {referer_url!r}")
        return None
