"""Redis-backed replay protection for OAuth state values."""

from __future__ import annotations

import hashlib
import logging

from redis import Redis

logger = logging.getLogger(__name__)


class UsedStateRegistry:
    """Remembers which state values have already completed a callback.

    The anti-forgery cookie is cleared after one read, but a captured callback
    url could still be replayed together with a captured cookie. Each state is
    recorded here on first use and rejected afterwards, until it would have
    expired anyway.
    """

    # Matches the anti-forgery token lifetime
    STATE_TTL_SECONDS = 600

    # Redis key prefix to avoid collisions
    KEY_PREFIX = "oauthgate:used_state:"

    def __init__(self, redis_client: Redis, ttl_seconds: int = STATE_TTL_SECONDS):
        """Initialize the registry.

        Args:
            redis_client: Redis client instance (Upstash or standard Redis)
            ttl_seconds: How long a consumed state is remembered
        """
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds

    def _key(self, state: str) -> str:
        # Store a digest, the state itself is a bearer secret.
        digest = hashlib.sha256(state.encode("utf-8")).hexdigest()
        return f"{self.KEY_PREFIX}{digest}"

    def consume(self, state: str) -> bool:
        """Mark a state as used.

        Args:
            state: State value received on the callback

        Returns:
            True on first use, False if the state was already consumed
        """
        first_use = self.redis.set(self._key(state), "1", nx=True, ex=self.ttl_seconds)

        if not first_use:
            logger.warning("OAuth state was already consumed, rejecting replay")
            return False

        logger.debug(f"Consumed OAuth state, remembered for {self.ttl_seconds}s")
        return True
