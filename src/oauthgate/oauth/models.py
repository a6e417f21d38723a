"""Data passed between the authentication flow, provider clients and the application."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


@dataclass
class ProviderSettings:
    """Per-request connection settings for one provider.

    Built by the authentication service on both legs of the round trip.
    ``state`` is assigned once, when the redirect is initiated.
    """

    provider_key: str
    provider_name: str
    callback_uri: str
    state: Optional[str] = None


@dataclass
class IdentifierSettings(ProviderSettings):
    """Settings for identifier-based protocols (the user names their issuer)."""

    identifier: Optional[str] = None


@dataclass(frozen=True)
class RedirectInstruction:
    """Where to send the user agent, and the token half to persist before doing so."""

    redirect_uri: str
    token_to_persist: str


class AuthenticatedClient(BaseModel):
    """Identity returned by a provider after a successful code exchange."""

    provider_name: str
    user_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    picture: Optional[str] = None
    issuer: Optional[str] = None
    access_token: Optional[str] = Field(default=None, repr=False)
    raw: Dict[str, Any] = Field(default_factory=dict)


class CallbackResult(BaseModel):
    """Outcome of a provider callback, handed to the application callback provider."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    authenticated_client: Optional[AuthenticatedClient] = None
    exception: Optional[Exception] = None
    redirect_url: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.authenticated_client is not None and self.exception is None
