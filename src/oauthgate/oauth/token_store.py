"""HttpOnly cookie holding the kept anti-forgery token half."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import Request, Response

logger = logging.getLogger(__name__)


class CookieTokenStore:
    """Trusted client-side store backed by an HttpOnly cookie.

    ``SameSite=Lax`` keeps the cookie on the top-level redirect back from the
    provider while still withholding it from cross-site subrequests.
    """

    def __init__(self, cookie_name: str, secure: bool = True, max_age_seconds: Optional[int] = None):
        self.cookie_name = cookie_name
        self.secure = secure
        self.max_age_seconds = max_age_seconds

    def put(self, response: Response, token: str) -> None:
        if not token:
            raise ValueError("Refusing to store an empty anti-forgery token")

        response.set_cookie(
            key=self.cookie_name,
            value=token,
            max_age=self.max_age_seconds,
            httponly=True,
            secure=self.secure,
            samesite="lax",
        )

    def get(self, request: Request) -> Optional[str]:
        token = request.cookies.get(self.cookie_name) or None
        if token is None:
            logger.debug(f"No {self.cookie_name} cookie on the request")
        return token

    def invalidate(self, response: Response) -> None:
        # Expire in the past so the client drops it.
        response.delete_cookie(
            key=self.cookie_name,
            httponly=True,
            secure=self.secure,
            samesite="lax",
        )
