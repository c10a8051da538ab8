"""
Tests for the OAuth login endpoints.
"""

from urllib.parse import parse_qs, urlsplit

import pytest
from fastapi.responses import JSONResponse
from fastapi.testclient import TestClient

from oauth2_flow.core.exceptions import ExchangeError, ExchangeFailure
from oauth2_flow.main import create_app
from oauth2_flow.oauth.config import OAuthSettings, ProviderSettings
from oauth2_flow.oauth.dependencies import get_login_handler
from tests.conftest import FakeAdapter


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def settings():
    """Settings with GitHub configured and Google listed but without credentials."""
    return OAuthSettings(
        base_url="http://testserver",
        session_secret_key="test-secret",
        providers=[
            ProviderSettings(
                name="github",
                client_id="gh-id",
                client_secret="gh-secret",
                redirect_uri="http://testserver/auth/github",
                scopes=["user:read"],
            ),
            ProviderSettings(name="google", client_id=None, client_secret=None),
        ],
    )


@pytest.fixture
def adapter():
    return FakeAdapter()


@pytest.fixture
def app(settings, adapter):
    return create_app(settings, adapter=adapter)


@pytest.fixture
def client(app):
    return TestClient(app)


def start_login(client: TestClient) -> str:
    """Hit the login endpoint and return the state sent to the provider."""
    response = client.get("/login/github", follow_redirects=False)
    assert response.status_code == 302
    return parse_qs(urlsplit(response.headers["location"]).query)["state"][0]


# ============================================================================
# GET /login/{provider} Tests
# ============================================================================


class TestLoginEndpoint:
    """Tests for the GET /login/{provider} endpoint."""

    def test_redirects_to_provider(self, client):
        response = client.get("/login/github", follow_redirects=False)

        assert response.status_code == 302
        location = urlsplit(response.headers["location"])
        assert location.netloc == "github.com"
        assert location.path == "/login/oauth/authorize"
        params = parse_qs(location.query)
        assert params["response_type"] == ["code"]
        assert params["client_id"] == ["gh-id"]
        assert params["scope"] == ["user:read"]
        assert params["redirect_uri"] == ["http://testserver/auth/github"]
        assert params["state"][0]

    def test_sets_session_cookie(self, client):
        response = client.get("/login/github", follow_redirects=False)

        cookie = response.headers["set-cookie"].lower()
        assert "oauth2_session=" in cookie
        assert "samesite=lax" in cookie
        assert "httponly" in cookie

    def test_unknown_provider_returns_404(self, client):
        response = client.get("/login/unknown", follow_redirects=False)

        assert response.status_code == 404
        assert "Unknown provider" in response.json()["detail"]

    def test_unconfigured_provider_returns_503(self, client):
        response = client.get("/login/google", follow_redirects=False)

        assert response.status_code == 503
        assert "not configured" in response.json()["detail"]


# ============================================================================
# GET /auth/{provider} Tests
# ============================================================================


class TestCallbackEndpoint:
    """Tests for the GET /auth/{provider} endpoint."""

    def test_successful_login(self, client, adapter):
        state = start_login(client)

        response = client.get(
            "/auth/github",
            params={"code": "good-code", "state": state},
            follow_redirects=False,
        )

        assert response.status_code == 302
        assert response.headers["location"] == "/"
        assert len(adapter.requests) == 1

        index = client.get("/").json()
        assert index["status"] == "authenticated"
        assert index["provider"] == "github"

    def test_state_mismatch_returns_400(self, client, adapter):
        start_login(client)

        response = client.get(
            "/auth/github", params={"code": "good-code", "state": "forged"}
        )

        assert response.status_code == 400
        assert response.json()["kind"] == "state_mismatch"
        assert adapter.requests == []

    def test_callback_without_login_returns_400(self, client):
        response = client.get("/auth/github", params={"code": "good-code", "state": "x"})

        assert response.status_code == 400
        assert response.json()["kind"] == "state_mismatch"

    def test_replayed_callback_rejected(self, client, adapter):
        state = start_login(client)
        params = {"code": "good-code", "state": state}

        first = client.get("/auth/github", params=params, follow_redirects=False)
        second = client.get("/auth/github", params=params, follow_redirects=False)

        assert first.status_code == 302
        assert second.status_code == 400
        assert len(adapter.requests) == 1

    def test_provider_denied_returns_403(self, client, adapter):
        state = start_login(client)

        response = client.get(
            "/auth/github",
            params={
                "error": "access_denied",
                "error_description": "User said no",
                "state": state,
            },
        )

        assert response.status_code == 403
        body = response.json()
        assert body["status"] == "error"
        assert body["kind"] == "provider_denied"
        assert "access_denied" in body["message"]
        assert adapter.requests == []

    def test_missing_code_returns_400(self, client):
        state = start_login(client)

        response = client.get("/auth/github", params={"state": state})

        assert response.status_code == 400
        assert response.json()["kind"] == "missing_code"

    def test_rejected_code_returns_502(self, client):
        state = start_login(client)

        response = client.get(
            "/auth/github", params={"code": "expired-code", "state": state}
        )

        assert response.status_code == 502
        assert response.json()["kind"] == "exchange_error"

    def test_exchange_failure_returns_502(self, client, adapter):
        adapter.error = ExchangeFailure("connection reset")
        state = start_login(client)

        response = client.get(
            "/auth/github", params={"code": "good-code", "state": state}
        )

        assert response.status_code == 502
        assert response.json()["kind"] == "exchange_failure"

    def test_failed_exchange_discards_state(self, client, adapter):
        adapter.error = ExchangeError(500)
        state = start_login(client)
        params = {"code": "good-code", "state": state}

        client.get("/auth/github", params=params)
        adapter.error = None
        retry = client.get("/auth/github", params=params)

        assert retry.status_code == 400
        assert retry.json()["kind"] == "state_mismatch"

    def test_custom_login_handler(self, app, client):
        async def handler(request, provider, token):
            return JSONResponse({"provider": provider, "token_type": token.token_type})

        app.dependency_overrides[get_login_handler] = lambda: handler
        try:
            state = start_login(client)
            response = client.get(
                "/auth/github", params={"code": "good-code", "state": state}
            )

            assert response.status_code == 200
            assert response.json() == {"provider": "github", "token_type": "bearer"}
        finally:
            app.dependency_overrides.pop(get_login_handler, None)


# ============================================================================
# Other endpoints
# ============================================================================


class TestAppEndpoints:
    """Tests for index, logout and health endpoints."""

    def test_index_anonymous(self, client):
        response = client.get("/")

        assert response.json() == {"status": "anonymous", "login": ["/login/github"]}

    def test_logout(self, client):
        state = start_login(client)
        client.get("/auth/github", params={"code": "good-code", "state": state})

        response = client.get("/logout", follow_redirects=False)

        assert response.status_code == 302
        assert client.get("/").json()["status"] == "anonymous"

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


def test_missing_session_secret():
    with pytest.raises(ValueError, match="SESSION_SECRET_KEY"):
        create_app(
            OAuthSettings(base_url="http://testserver", session_secret_key=None),
            adapter=FakeAdapter(),
        )
