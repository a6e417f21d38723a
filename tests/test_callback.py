"""Unit tests for CallbackReconciler.

Covers:
- full round trip with RedirectInitiator (referer scenario)
- fatal paths: missing key, missing state, tampered state, missing cookie, replay
- captured provider failures
- redirect data parsing
- identifier carried from the redirect leg
"""

from unittest.mock import MagicMock
from urllib.parse import parse_qs, urlsplit

import pytest

from oauthgate.oauth.anti_forgery import TokenContents
from oauthgate.oauth.callback import CallbackReconciler
from oauthgate.oauth.errors import (
    CsrfValidationFailed,
    InvalidRedirectData,
    MissingProviderKey,
    MissingState,
    MissingTokenError,
    ProviderError,
    UnknownProvider,
)
from oauthgate.oauth.redirect import RedirectInitiator
from oauthgate.oauth.service import AuthenticationService
from tests.fakes import FakeProvider

CURRENT = "https://app.example/authentication/redirect/google"
CALLBACK = "https://app.example/authentication/callback/google"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _initiate(service, anti_forgery, **kwargs):
    instruction = RedirectInitiator(service, anti_forgery).initiate("google", CURRENT, CALLBACK, **kwargs)
    state = parse_qs(urlsplit(instruction.redirect_uri).query)["state"][0]
    return instruction.token_to_persist, state


def _tamper(token: str) -> str:
    i = len(token) // 2
    replacement = "A" if token[i] != "A" else "B"
    return token[:i] + replacement + token[i + 1:]


@pytest.fixture
def reconciler(service, anti_forgery):
    return CallbackReconciler(service, anti_forgery)


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------


class TestRoundTrip:
    def test_referer_becomes_redirect_url(self, service, anti_forgery, reconciler, google):
        kept, state = _initiate(service, anti_forgery, referer_url="https://app.example/dashboard")

        result = reconciler.reconcile(
            "google", f"{CALLBACK}?state=x&code=abc", CALLBACK, kept, state, {"state": state, "code": "abc"}
        )

        assert result.redirect_url == "https://app.example/dashboard"
        assert result.authenticated_client.user_id == "user-123"
        assert result.exception is None
        assert result.succeeded
        assert len(google.authenticate_calls) == 1

    def test_provider_gets_same_settings_as_redirect(self, service, anti_forgery, reconciler, google):
        kept, state = _initiate(service, anti_forgery)

        reconciler.reconcile("google", CALLBACK, CALLBACK, kept, state, {"code": "abc"})

        settings, params = google.authenticate_calls[0]
        assert settings.callback_uri == google.authorization_calls[0].callback_uri
        assert settings.state == state
        assert params == {"code": "abc"}

    def test_no_extra_data_leaves_redirect_url_empty(self, service, anti_forgery, reconciler):
        kept, state = _initiate(service, anti_forgery)

        result = reconciler.reconcile("google", CALLBACK, CALLBACK, kept, state, {"code": "abc"})

        assert result.redirect_url is None
        assert result.succeeded


# ---------------------------------------------------------------------------
# Fatal paths
# ---------------------------------------------------------------------------


class TestRejections:
    @pytest.mark.parametrize("provider_key", ["", None])
    def test_missing_provider_key(self, reconciler, provider_key):
        with pytest.raises(MissingProviderKey):
            reconciler.reconcile(provider_key, CALLBACK, CALLBACK, "kept", "state", {})

    def test_unknown_provider(self, reconciler):
        with pytest.raises(UnknownProvider):
            reconciler.reconcile("myspace", CALLBACK, CALLBACK, "kept", "state", {})

    @pytest.mark.parametrize("received", ["", None])
    def test_missing_state_fails_before_provider_call(self, service, google, received):
        anti_forgery = MagicMock()
        reconciler = CallbackReconciler(service, anti_forgery)

        with pytest.raises(MissingState):
            reconciler.reconcile("google", CALLBACK, CALLBACK, "kept", received, {"code": "abc"})

        anti_forgery.read_token.assert_not_called()
        assert google.authenticate_calls == []

    def test_tampered_state_is_csrf_failure(self, service, anti_forgery, reconciler, google):
        kept, state = _initiate(service, anti_forgery, referer_url="https://app.example/dashboard")

        with pytest.raises(CsrfValidationFailed):
            reconciler.reconcile("google", CALLBACK, CALLBACK, kept, _tamper(state), {"code": "abc"})

        assert len(google.authenticate_calls) == 0

    def test_state_from_other_attempt_is_csrf_failure(self, service, anti_forgery, reconciler, google):
        kept, _ = _initiate(service, anti_forgery)
        _, other_state = _initiate(service, anti_forgery)

        with pytest.raises(CsrfValidationFailed):
            reconciler.reconcile("google", CALLBACK, CALLBACK, kept, other_state, {"code": "abc"})

        assert google.authenticate_calls == []

    def test_missing_cookie_is_csrf_failure(self, service, anti_forgery, reconciler, google):
        _, state = _initiate(service, anti_forgery)

        with pytest.raises(CsrfValidationFailed) as exc_info:
            reconciler.reconcile("google", CALLBACK, CALLBACK, None, state, {"code": "abc"})

        assert isinstance(exc_info.value.__cause__, MissingTokenError)
        assert google.authenticate_calls == []


# ---------------------------------------------------------------------------
# Replay guard
# ---------------------------------------------------------------------------


class TestReplayGuard:
    def test_first_use_proceeds(self, service, anti_forgery, google):
        used_states = MagicMock()
        used_states.consume.return_value = True
        reconciler = CallbackReconciler(service, anti_forgery, used_states=used_states)
        kept, state = _initiate(service, anti_forgery)

        result = reconciler.reconcile("google", CALLBACK, CALLBACK, kept, state, {"code": "abc"})

        used_states.consume.assert_called_once_with(state)
        assert result.succeeded

    def test_replay_is_csrf_failure(self, service, anti_forgery, google):
        used_states = MagicMock()
        used_states.consume.return_value = False
        reconciler = CallbackReconciler(service, anti_forgery, used_states=used_states)
        kept, state = _initiate(service, anti_forgery)

        with pytest.raises(CsrfValidationFailed):
            reconciler.reconcile("google", CALLBACK, CALLBACK, kept, state, {"code": "abc"})

        assert google.authenticate_calls == []

    def test_invalid_state_is_not_recorded(self, service, anti_forgery):
        used_states = MagicMock()
        reconciler = CallbackReconciler(service, anti_forgery, used_states=used_states)
        kept, state = _initiate(service, anti_forgery)

        with pytest.raises(CsrfValidationFailed):
            reconciler.reconcile("google", CALLBACK, CALLBACK, kept, _tamper(state), {})

        used_states.consume.assert_not_called()


# ---------------------------------------------------------------------------
# Captured provider failures and redirect data
# ---------------------------------------------------------------------------


class TestProviderFailure:
    def _service(self, error):
        service = AuthenticationService()
        service.register(FakeProvider(error=error))
        return service

    def test_provider_error_is_captured(self, anti_forgery):
        error = ProviderError("Google returned an error: access_denied", error_code="access_denied")
        service = self._service(error)
        kept, state = _initiate(service, anti_forgery, referer_url="https://app.example/dashboard")

        result = CallbackReconciler(service, anti_forgery).reconcile(
            "google", CALLBACK, CALLBACK, kept, state, {"error": "access_denied"}
        )

        assert result.exception is error
        assert result.authenticated_client is None
        assert result.redirect_url == "https://app.example/dashboard"
        assert not result.succeeded

    def test_unexpected_exception_is_captured(self, anti_forgery):
        service = self._service(ConnectionError("connection reset"))
        kept, state = _initiate(service, anti_forgery)

        result = CallbackReconciler(service, anti_forgery).reconcile(
            "google", CALLBACK, CALLBACK, kept, state, {"code": "abc"}
        )

        assert isinstance(result.exception, ConnectionError)


class TestRedirectData:
    @pytest.mark.parametrize("extra_data", ["not a uri", "/relative/path", "http://[broken"])
    def test_unparseable_redirect_data_fails_before_exchange(self, service, google, extra_data):
        anti_forgery = MagicMock()
        anti_forgery.read_token.return_value = TokenContents(extra_data=extra_data)
        reconciler = CallbackReconciler(service, anti_forgery)

        with pytest.raises(InvalidRedirectData):
            reconciler.reconcile("google", CALLBACK, CALLBACK, "kept", "state", {"code": "abc"})

        assert google.authenticate_calls == []


# ---------------------------------------------------------------------------
# Identifier bound on the redirect leg
# ---------------------------------------------------------------------------


class TestIdentifierRoundTrip:
    OPENID_CURRENT = "https://app.example/authentication/redirect/openid"
    OPENID_CALLBACK = "https://app.example/authentication/callback/openid"

    def test_identifier_is_restored_on_callback(self, service, anti_forgery, openid):
        instruction = RedirectInitiator(service, anti_forgery).initiate(
            "openid", self.OPENID_CURRENT, self.OPENID_CALLBACK, identifier="https://tenant.example"
        )
        state = parse_qs(urlsplit(instruction.redirect_uri).query)["state"][0]

        result = CallbackReconciler(service, anti_forgery).reconcile(
            "openid",
            self.OPENID_CALLBACK,
            self.OPENID_CALLBACK,
            instruction.token_to_persist,
            state,
            {"code": "abc"},
        )

        assert result.succeeded
        settings, _ = openid.authenticate_calls[0]
        assert settings.identifier == "https://tenant.example"

    def test_no_identifier_leaves_settings_default(self, service, anti_forgery, openid):
        instruction = RedirectInitiator(service, anti_forgery).initiate(
            "openid", self.OPENID_CURRENT, self.OPENID_CALLBACK
        )
        state = parse_qs(urlsplit(instruction.redirect_uri).query)["state"][0]

        CallbackReconciler(service, anti_forgery).reconcile(
            "openid", self.OPENID_CALLBACK, self.OPENID_CALLBACK, instruction.token_to_persist, state, {}
        )

        settings, _ = openid.authenticate_calls[0]
        assert settings.identifier is None
