"""Application hook that turns a callback result into a response."""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Protocol
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from fastapi import Request, Response
from fastapi.responses import RedirectResponse

from .errors import ProviderError
from .models import CallbackResult

logger = logging.getLogger(__name__)


class AuthenticationCallbackProvider(Protocol):
    """Application logic run after every provider callback."""

    async def process(self, request: Request, result: CallbackResult) -> Response:
        ...


class RedirectCallbackProvider:
    """Sends the user back to where the login started.

    Failed logins land on the same page with an ``oauth_error`` query parameter.
    Remembered redirect urls are only followed to the request's own host or to
    ``allowed_hosts``.
    """

    def __init__(self, default_redirect_url: str = "/", allowed_hosts: Optional[Iterable[str]] = None):
        self.default_redirect_url = default_redirect_url
        self.allowed_hosts = {host.lower() for host in allowed_hosts or ()}

    async def process(self, request: Request, result: CallbackResult) -> Response:
        target = self._target(request, result.redirect_url)

        if not result.succeeded:
            error = result.exception
            code = error.error_code if isinstance(error, ProviderError) else "authentication_failed"
            logger.info(f"Login failed ({code}), redirecting to {target}")
            target = _with_query(target, oauth_error=code)

        return RedirectResponse(url=target, status_code=302)

    def _target(self, request: Request, redirect_url: Optional[str]) -> str:
        if not redirect_url:
            return self.default_redirect_url

        host = (urlsplit(redirect_url).hostname or "").lower()
        if host == (request.url.hostname or "").lower() or host in self.allowed_hosts:
            return redirect_url

        logger.warning(f"Ignoring redirect to foreign host {host}")
        return self.default_redirect_url


def _with_query(url: str, **params: str) -> str:
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True) + list(params.items())
    return urlunsplit(parts._replace(query=urlencode(query)))
