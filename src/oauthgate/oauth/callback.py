"""Second leg of the login round trip: validate the provider callback."""

from __future__ import annotations

import logging
from typing import Mapping, Optional

from .anti_forgery import AntiForgery
from .errors import (
    CsrfValidationFailed,
    InvalidRedirectData,
    MissingProviderKey,
    MissingState,
    TokenMismatch,
)
from .models import CallbackResult, IdentifierSettings
from .service import AuthenticationService, parse_uri
from .state_storage import UsedStateRegistry


class CallbackReconciler:
    """Reconciles the kept and received token halves and fetches the identity.

    Anti-forgery failures raise. Provider failures during the identity
    exchange are captured in the result so the application can render them.
    """

    def __init__(
        self,
        authentication_service: AuthenticationService,
        anti_forgery: AntiForgery,
        used_states: Optional[UsedStateRegistry] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.authentication_service = authentication_service
        self.anti_forgery = anti_forgery
        self.used_states = used_states
        self._logger = logger or logging.getLogger(__name__)

    def reconcile(
        self,
        provider_key: str,
        current_url: str,
        callback_url: str,
        kept_token: Optional[str],
        received_token: Optional[str],
        callback_params: Mapping[str, str],
    ) -> CallbackResult:
        """Validate a provider callback and build the result for the application.

        Args:
            provider_key: Provider key from the callback url
            current_url: Url of the callback request
            callback_url: Callback endpoint url, identical to the one used on redirect
            kept_token: Token half read from the trusted client-side store
            received_token: ``state`` query parameter echoed by the provider
            callback_params: All query parameters of the callback request

        Returns:
            CallbackResult with either an authenticated client or the exchange failure

        Raises:
            MissingProviderKey: ``provider_key`` is empty
            UnknownProvider: No provider is registered under ``provider_key``
            MissingState: The provider did not send the state back
            CsrfValidationFailed: The token halves do not match, or the state was replayed
            InvalidRedirectData: The redirect url carried in the token is not a valid uri
        """
        if not provider_key:
            self._logger.error("No provider key was supplied on the callback.")
            raise MissingProviderKey("No provider key was supplied on the callback.")

        log = logging.LoggerAdapter(self._logger, {"provider_key": provider_key})

        settings = self.authentication_service.get_authenticate_service_settings(
            provider_key, current_url, callback_url
        )
        log.debug(f"Callback from provider: {settings.provider_name}. CallBackUri: {settings.callback_uri}")

        if not received_token:
            log.error(f"No state was returned from {settings.provider_name}")
            raise MissingState()

        try:
            contents = self.anti_forgery.read_token(kept_token, received_token)
        except TokenMismatch as e:
            log.error(f"Anti-forgery validation failed for {settings.provider_name}: {e}")
            raise CsrfValidationFailed(str(e)) from e

        if self.used_states is not None and not self.used_states.consume(received_token):
            log.error(f"Replayed state rejected for {settings.provider_name}")
            raise CsrfValidationFailed("This login attempt has already been completed.")

        # Exchange with the issuer the redirect leg was bound to.
        if isinstance(settings, IdentifierSettings) and contents.identifier:
            settings.identifier = contents.identifier

        settings.state = received_token
        result = CallbackResult()

        if contents.extra_data:
            try:
                result.redirect_url = parse_uri(contents.extra_data, require_absolute=True)
            except ValueError as e:
                raise InvalidRedirectData(
                    f"Redirect data is not a valid absolute uri: {contents.extra_data!r}"
                ) from e

        try:
            result.authenticated_client = self.authentication_service.get_authenticated_client(
                settings, callback_params
            )
        except Exception as e:
            log.warning(f"Failed to authenticate with {settings.provider_name}: {e}")
            result.exception = e

        if result.authenticated_client is not None:
            log.info(
                f"Authenticated {result.authenticated_client.user_id} with {settings.provider_name}"
            )
        return result
