"""Google sign-in through the OAuth2 authorization code flow."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from google.auth.transport.requests import Request
from google.oauth2 import id_token
from google_auth_oauthlib.flow import Flow

from oauthgate.oauth.errors import ProviderError
from oauthgate.oauth.models import AuthenticatedClient, ProviderSettings

logger = logging.getLogger(__name__)


class GoogleProvider:
    """Google OAuth2 client producing an identity from the verified ID token."""

    provider_key = "google"
    provider_name = "Google"

    AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
    TOKEN_URI = "https://oauth2.googleapis.com/token"

    # Google answers with the long form of these, so request the long form
    SCOPES = [
        'openid',
        'https://www.googleapis.com/auth/userinfo.email',
        'https://www.googleapis.com/auth/userinfo.profile',
    ]

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        scopes: Optional[list[str]] = None,
        prompt: str = "select_account",
    ):
        """Initialize the Google client.

        Args:
            client_id: Google OAuth2 client ID
            client_secret: Google OAuth2 client secret
            scopes: Scopes to request, defaults to openid + email + profile
            prompt: Value of the ``prompt`` authorization parameter
        """
        self.client_id = client_id
        self.client_secret = client_secret
        self.scopes = scopes or list(self.SCOPES)
        self.prompt = prompt

    def create_settings(self, callback_uri: str) -> ProviderSettings:
        return ProviderSettings(
            provider_key=self.provider_key,
            provider_name=self.provider_name,
            callback_uri=callback_uri,
        )

    def _flow(self, settings: ProviderSettings) -> Flow:
        flow = Flow.from_client_config(
            client_config={
                "web": {
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "auth_uri": self.AUTH_URI,
                    "token_uri": self.TOKEN_URI,
                    "redirect_uris": [settings.callback_uri],
                }
            },
            scopes=self.scopes,
            state=settings.state,
            # Each leg builds its own Flow, a generated PKCE verifier would be lost.
            autogenerate_code_verifier=False,
        )
        flow.redirect_uri = settings.callback_uri
        return flow

    def authorization_url(self, settings: ProviderSettings) -> str:
        """Build the Google consent url carrying ``settings.state``."""
        authorization_url, _ = self._flow(settings).authorization_url(
            access_type='online',
            include_granted_scopes='true',
            prompt=self.prompt,
            state=settings.state,
        )
        return authorization_url

    def authenticate(self, settings: ProviderSettings, callback_params: Mapping[str, str]) -> AuthenticatedClient:
        """Exchange the authorization code and verify the returned ID token.

        Raises:
            ProviderError: Google returned an error, no code, or no ID token
        """
        error = callback_params.get("error")
        if error:
            raise ProviderError(f"Google returned an error: {error}", error_code=error)

        code = callback_params.get("code")
        if not code:
            raise ProviderError("No authorization code was returned by Google.", error_code="missing_code")

        flow = self._flow(settings)
        flow.fetch_token(code=code)
        credentials = flow.credentials

        if not credentials.id_token:
            raise ProviderError("Google did not return an ID token.", error_code="missing_id_token")

        claims: dict[str, Any] = id_token.verify_oauth2_token(
            credentials.id_token,
            Request(),
            audience=self.client_id,
        )
        logger.debug(f"Verified Google ID token for subject {claims.get('sub')}")

        return AuthenticatedClient(
            provider_name=self.provider_name,
            user_id=str(claims["sub"]),
            email=claims.get("email"),
            name=claims.get("name"),
            picture=claims.get("picture"),
            access_token=credentials.token,
            issuer=claims.get("iss"),
            raw=claims,
        )
