"""Identity provider clients usable with the authentication service."""

from .google import GoogleProvider
from .openid import OpenIdConnectProvider

__all__ = [
    "GoogleProvider",
    "OpenIdConnectProvider",
]
