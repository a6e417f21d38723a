"""Generic OpenID Connect client for identifier-based sign-in.

The user may name their issuer (the identifier), e.g. ``https://login.example.com``.
Endpoints are discovered from the issuer's ``.well-known/openid-configuration``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Sequence
from urllib.parse import urlencode, urlsplit

import requests

from oauthgate.oauth.errors import IssuerRejected, ProviderError
from oauthgate.oauth.models import AuthenticatedClient, IdentifierSettings, ProviderSettings

logger = logging.getLogger(__name__)


class OpenIdConnectProvider:
    """Authorization code flow against any OpenID Connect issuer."""

    DISCOVERY_PATH = "/.well-known/openid-configuration"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        provider_key: str = "openid",
        provider_name: str = "OpenID Connect",
        default_issuer: Optional[str] = None,
        trusted_issuers: Optional[Sequence[str]] = None,
        scopes: Sequence[str] = ("openid", "email", "profile"),
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        """Initialize the OpenID Connect client.

        Args:
            client_id: Client ID registered with the issuer(s)
            client_secret: Client secret registered with the issuer(s)
            provider_key: Registry key for this provider
            provider_name: Human readable provider name
            default_issuer: Issuer used when the user names none. Always trusted.
            trusted_issuers: Further issuers a user may name. Any other issuer is rejected.
            scopes: Scopes to request
            timeout: HTTP timeout in seconds for every call to the issuer
            session: Optional requests session (connection pooling, testing)
        """
        self.client_id = client_id
        self.client_secret = client_secret
        self.provider_key = provider_key
        self.provider_name = provider_name
        self.default_issuer = _normalize_issuer(default_issuer) if default_issuer else None
        self.trusted_issuers = {_normalize_issuer(issuer) for issuer in trusted_issuers or ()}
        if self.default_issuer:
            self.trusted_issuers.add(self.default_issuer)
        self.scopes = list(scopes)
        self.timeout = timeout
        self.session = session or requests.Session()

    def create_settings(self, callback_uri: str) -> ProviderSettings:
        return IdentifierSettings(
            provider_key=self.provider_key,
            provider_name=self.provider_name,
            callback_uri=callback_uri,
        )

    def _issuer_for(self, identifier: Optional[str]) -> str:
        issuer = _normalize_issuer(identifier) if identifier else self.default_issuer
        if not issuer:
            raise IssuerRejected("No OpenID issuer was given and no default is configured.", error_code="missing_issuer")

        if issuer not in self.trusted_issuers:
            raise IssuerRejected(f"OpenID issuer {issuer} is not trusted.", error_code="untrusted_issuer")
        return issuer

    def discover(self, issuer: str) -> Dict[str, Any]:
        """Fetch the issuer's provider metadata.

        Raises:
            ProviderError: The metadata could not be fetched or lacks required endpoints
        """
        try:
            response = self.session.get(f"{issuer}{self.DISCOVERY_PATH}", timeout=self.timeout)
            response.raise_for_status()
            metadata = response.json()
        except (requests.RequestException, ValueError) as e:
            raise ProviderError(f"Failed to discover OpenID configuration for {issuer}: {e}", error_code="discovery_failed") from e

        if not isinstance(metadata, dict):
            raise ProviderError(f"OpenID configuration for {issuer} is not an object.", error_code="discovery_failed")

        for field in ("authorization_endpoint", "token_endpoint"):
            if not metadata.get(field):
                raise ProviderError(f"OpenID configuration for {issuer} has no {field}.", error_code="discovery_failed")

        advertised = metadata.get("issuer")
        if advertised and _normalize_issuer(advertised) != issuer:
            raise ProviderError(
                f"OpenID configuration fetched from {issuer} names issuer {advertised}.", error_code="issuer_mismatch"
            )
        return metadata

    def authorization_url(self, settings: ProviderSettings) -> str:
        identifier = settings.identifier if isinstance(settings, IdentifierSettings) else None
        metadata = self.discover(self._issuer_for(identifier))

        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": settings.callback_uri,
            "scope": " ".join(self.scopes),
            "state": settings.state,
        }
        endpoint = metadata["authorization_endpoint"]
        separator = "&" if urlsplit(endpoint).query else "?"
        return f"{endpoint}{separator}{urlencode(params)}"

    def authenticate(self, settings: ProviderSettings, callback_params: Mapping[str, str]) -> AuthenticatedClient:
        """Exchange the authorization code and load the user's claims.

        The exchange goes to the issuer bound on the redirect leg (or the
        default). An ``iss`` callback parameter naming any other issuer is rejected
        before any request is made.

        Raises:
            IssuerRejected: No issuer is known or the bound issuer is not trusted
            ProviderError: The issuer returned an error or an unusable response
        """
        error = callback_params.get("error")
        if error:
            description = callback_params.get("error_description") or error
            raise ProviderError(f"{self.provider_name} returned an error: {description}", error_code=error)

        code = callback_params.get("code")
        if not code:
            raise ProviderError(f"No authorization code was returned by {self.provider_name}.", error_code="missing_code")

        identifier = settings.identifier if isinstance(settings, IdentifierSettings) else None
        issuer = self._issuer_for(identifier)

        # RFC 9207: a returned iss must name the issuer the request was sent to.
        returned_issuer = callback_params.get("iss")
        if returned_issuer and _normalize_issuer(returned_issuer) != issuer:
            raise ProviderError(
                f"Callback issuer {returned_issuer} does not match {issuer}.", error_code="issuer_mismatch"
            )

        metadata = self.discover(issuer)

        token_data = self._post_json(
            metadata["token_endpoint"],
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": settings.callback_uri,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            },
        )
        access_token = token_data.get("access_token")
        if not access_token:
            raise ProviderError("Token response contained no access_token.", error_code="invalid_token_response")

        userinfo_endpoint = metadata.get("userinfo_endpoint")
        if not userinfo_endpoint:
            raise ProviderError("OpenID configuration has no userinfo_endpoint.", error_code="discovery_failed")
        claims = self._get_json(userinfo_endpoint, access_token)

        if not claims.get("sub"):
            raise ProviderError("User info contained no subject.", error_code="invalid_userinfo")

        return AuthenticatedClient(
            provider_name=self.provider_name,
            user_id=str(claims["sub"]),
            email=claims.get("email"),
            name=claims.get("name"),
            picture=claims.get("picture"),
            access_token=access_token,
            issuer=issuer,
            raw=claims,
        )

    def _post_json(self, url: str, data: Dict[str, str]) -> Dict[str, Any]:
        try:
            response = self.session.post(
                url,
                data=data,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as e:
            raise ProviderError(f"Token exchange with {url} failed: {e}", error_code="token_exchange_failed") from e

    def _get_json(self, url: str, access_token: str) -> Dict[str, Any]:
        try:
            response = self.session.get(
                url,
                headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as e:
            raise ProviderError(f"User info request to {url} failed: {e}", error_code="userinfo_failed") from e


def _normalize_issuer(identifier: str) -> str:
    """Users often type a bare host; issuers are https urls without a trailing slash."""
    if "://" not in identifier:
        identifier = f"https://{identifier.lstrip('/')}"
    return identifier.rstrip("/")
