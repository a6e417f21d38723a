"""Split anti-forgery tokens for the OAuth state round trip.

A token pair is minted once per login attempt. The ``to_send`` half travels
through the identity provider inside the ``state`` parameter, the ``to_keep``
half stays in a cookie we control. Both halves are Fernet tokens that share a
random nonce, so neither half can be forged or paired with another pair.
"""

from __future__ import annotations

import json
import logging
import secrets
from dataclasses import dataclass
from typing import Optional, Protocol

from cryptography.fernet import Fernet, InvalidToken

from .errors import MissingTokenError, TokenMismatch

logger = logging.getLogger(__name__)

DEFAULT_COOKIE_NAME = "__oauthgate_csrf"

_KEEP = "keep"
_SEND = "send"


@dataclass(frozen=True)
class TokenPair:
    """Two halves of one anti-forgery token."""

    to_send: str
    to_keep: str


@dataclass(frozen=True)
class TokenContents:
    """Data bound into a validated token pair."""

    extra_data: Optional[str] = None
    identifier: Optional[str] = None


class AntiForgery(Protocol):
    """Creates and validates split anti-forgery tokens."""

    default_cookie_name: str

    def create_token(self, extra_data: Optional[str] = None, identifier: Optional[str] = None) -> TokenPair:
        ...

    def read_token(self, kept_token: Optional[str], received_token: Optional[str]) -> TokenContents:
        ...

    def validate_token(self, kept_token: Optional[str], received_token: Optional[str]) -> Optional[str]:
        ...


class FernetAntiForgery:
    """Anti-forgery tokens built on Fernet authenticated encryption."""

    default_cookie_name = DEFAULT_COOKIE_NAME

    # Matches the lifetime of a pending OAuth state.
    DEFAULT_MAX_AGE_SECONDS = 600

    NONCE_BYTES = 32

    def __init__(self, secret_key: str | bytes, max_age_seconds: Optional[int] = DEFAULT_MAX_AGE_SECONDS):
        """Initialize the token codec.

        Args:
            secret_key: URL-safe base64 encoded 32-byte key (see ``generate_key``)
            max_age_seconds: Tokens older than this are rejected. None disables expiry.
        """
        if isinstance(secret_key, str):
            secret_key = secret_key.encode()
        self._fernet = Fernet(secret_key)
        self.max_age_seconds = max_age_seconds

    @staticmethod
    def generate_key() -> str:
        return Fernet.generate_key().decode()

    def create_token(self, extra_data: Optional[str] = None, identifier: Optional[str] = None) -> TokenPair:
        """Mint a new token pair.

        Args:
            extra_data: Optional payload (usually the post-login redirect url)
                recovered on successful validation
            identifier: Optional issuer identifier chosen on the redirect leg,
                recovered by ``read_token``

        Returns:
            TokenPair whose halves only validate against each other
        """
        nonce = secrets.token_urlsafe(self.NONCE_BYTES)

        keep = {"n": nonce, "p": _KEEP, "d": extra_data or None}
        if identifier:
            keep["i"] = identifier

        return TokenPair(to_send=self._seal({"n": nonce, "p": _SEND}), to_keep=self._seal(keep))

    def validate_token(self, kept_token: Optional[str], received_token: Optional[str]) -> Optional[str]:
        """Check that both halves belong to the same minted pair.

        Returns:
            The extra data the pair was minted with, or None

        Raises:
            MissingTokenError: Either half is empty or absent
            TokenMismatch: The halves are invalid, expired or from different pairs
        """
        return self.read_token(kept_token, received_token).extra_data

    def read_token(self, kept_token: Optional[str], received_token: Optional[str]) -> TokenContents:
        """Validate the pair and return everything bound into it.

        Args:
            kept_token: Half read back from the trusted client-side store
            received_token: Half echoed back by the provider in ``state``

        Raises:
            MissingTokenError: Either half is empty or absent
            TokenMismatch: The halves are invalid, expired or from different pairs
        """
        if not kept_token:
            raise MissingTokenError("No kept anti-forgery token was found.")
        if not received_token:
            raise MissingTokenError("No anti-forgery token was received from the provider.")

        kept = self._open(kept_token)
        received = self._open(received_token)

        if kept.get("p") != _KEEP or received.get("p") != _SEND:
            raise TokenMismatch("Anti-forgery token halves were swapped or reused.")

        kept_nonce = kept.get("n")
        received_nonce = received.get("n")
        if not isinstance(kept_nonce, str) or not isinstance(received_nonce, str):
            raise TokenMismatch("Anti-forgery token payload is malformed.")

        if not secrets.compare_digest(kept_nonce, received_nonce):
            raise TokenMismatch("Anti-forgery tokens do not belong to the same pair.")

        return TokenContents(extra_data=kept.get("d") or None, identifier=kept.get("i") or None)

    def _seal(self, payload: dict) -> str:
        return self._fernet.encrypt(json.dumps(payload, separators=(",", ":")).encode()).decode()

    def _open(self, token: str) -> dict:
        try:
            raw = self._fernet.decrypt(token, ttl=self.max_age_seconds)
        except (InvalidToken, ValueError, TypeError) as e:
            logger.debug(f"Rejected anti-forgery token: {type(e).__name__}")
            raise TokenMismatch("Anti-forgery token is invalid or has expired.") from e

        try:
            payload = json.loads(raw)
        except ValueError as e:
            raise TokenMismatch("Anti-forgery token payload is malformed.") from e

        if not isinstance(payload, dict):
            raise TokenMismatch("Anti-forgery token payload is malformed.")
        return payload
