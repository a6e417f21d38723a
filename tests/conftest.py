"""Shared fixtures for the authentication flow tests."""

import pytest

from oauthgate.oauth.anti_forgery import FernetAntiForgery
from oauthgate.oauth.service import AuthenticationService
from tests.fakes import FakeProvider


@pytest.fixture
def secret_key():
    return FernetAntiForgery.generate_key()


@pytest.fixture
def anti_forgery(secret_key):
    return FernetAntiForgery(secret_key)


@pytest.fixture
def google():
    return FakeProvider()


@pytest.fixture
def openid():
    return FakeProvider(provider_key="openid", provider_name="OpenID", accepts_identifier=True)


@pytest.fixture
def service(google, openid):
    svc = AuthenticationService()
    svc.register(google)
    svc.register(openid)
    return svc
