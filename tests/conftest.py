"""
Shared test configuration and fixtures.
"""

from typing import Any

import pytest

from oauth2_flow.core.domain import (
    AuthorizationCode,
    OAuthConfig,
    ProviderConfig,
    TokenRequest,
    TokenResponse,
)
from oauth2_flow.core.exceptions import ExchangeError
from oauth2_flow.infrastructure.httpx_adapter import HttpxAdapter


AUTH_URI = "https://provider.example.com/oauth/authorize"
TOKEN_URI = "https://provider.example.com/oauth/token"
REDIRECT_URI = "http://testserver/auth/example"


class FakeAdapter:
    """
    In-process stand-in for a provider's token endpoint.

    Authorization codes are single-use, like at a real provider: redeeming a
    code twice (or an unknown code) fails with ExchangeError(400).
    """

    def __init__(self, codes: set[str] | None = None, payload: dict | None = None):
        self.codes = set(codes if codes is not None else {"good-code"})
        self.payload = payload or {
            "access_token": "abc",
            "token_type": "bearer",
            "refresh_token": "refresh-1",
            "expires_in": 3600,
        }
        self.requests: list[TokenRequest] = []
        self.error: Exception | None = None
        self._uri_builder = HttpxAdapter()

    def authorization_uri(self, config, state, scopes, extra_params=()):
        return self._uri_builder.authorization_uri(config, state, scopes, extra_params)

    async def exchange_code(self, config, request) -> TokenResponse[Any]:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        if isinstance(request, AuthorizationCode):
            if request.code not in self.codes:
                raise ExchangeError(400, '{"error": "invalid_grant"}')
            self.codes.discard(request.code)
        return TokenResponse.from_payload(dict(self.payload))


@pytest.fixture
def provider_config():
    """Custom provider with HTTPS endpoints."""
    return ProviderConfig(auth_uri=AUTH_URI, token_uri=TOKEN_URI, name="example")


@pytest.fixture
def oauth_config(provider_config):
    """Client configuration with a redirect URI."""
    return OAuthConfig(
        client_id="client-123",
        client_secret="secret-456",
        redirect_uri=REDIRECT_URI,
        provider=provider_config,
    )


@pytest.fixture
def oauth_config_no_redirect(provider_config):
    """Client configuration without a redirect URI."""
    return OAuthConfig(
        client_id="client-123",
        client_secret="secret-456",
        provider=provider_config,
    )


@pytest.fixture
def fake_adapter():
    return FakeAdapter()
