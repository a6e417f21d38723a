"""Exceptions raised by the authentication redirect/callback flow."""

from __future__ import annotations


class AuthenticationError(Exception):
    """Base class for every error raised by the authentication flow."""


class AuthenticationRequestError(AuthenticationError):
    """The inbound request was malformed or tampered with."""


class MissingProviderKey(AuthenticationRequestError):
    def __init__(self, message: str = "No provider key was supplied."):
        super().__init__(message)


class UnknownProvider(AuthenticationRequestError):
    def __init__(self, provider_key: str):
        self.provider_key = provider_key
        super().__init__(f"No authentication provider registered for key '{provider_key}'.")


class InvalidIdentifier(AuthenticationRequestError):
    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(
            f"Identifier '{identifier}' is not a valid uri. "
            "Eg. https://accounts.example.com or https://yourname.example.com"
        )


class MissingState(AuthenticationRequestError):
    """The provider did not send the state parameter back to us."""

    def __init__(self):
        super().__init__(
            "No state was returned from the provider. The state value is required "
            "to prevent cross site request forgery."
        )


class TokenMismatch(AuthenticationError):
    """The kept and received anti-forgery tokens do not form a minted pair."""


class MissingTokenError(TokenMismatch):
    """One half of the anti-forgery token pair is absent."""


class CsrfValidationFailed(AuthenticationError):
    """The callback failed anti-forgery validation and must not be processed."""


class InvalidRedirectData(AuthenticationError):
    """The redirect url carried in the anti-forgery token could not be parsed."""


class ProviderError(AuthenticationError):
    """The identity provider rejected the request or returned an unusable response."""

    def __init__(self, message: str, error_code: str = "provider_error"):
        self.error_code = error_code
        super().__init__(message)


class InvalidRedirectUrl(AuthenticationRequestError):
    def __init__(self, redirect_url: str):
        self.redirect_url = redirect_url
        super().__init__(f"Redirect url '{redirect_url}' is not a valid uri.")


class IssuerRejected(AuthenticationRequestError, ProviderError):
    """The caller named no issuer, or one that is not trusted."""
