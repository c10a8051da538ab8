"""
Port definitions (interfaces) for the flow engine.

Ports define the contracts between the engine and the outside world.
Infrastructure adapters implement these ports; the engine depends only on
them, never on a concrete transport or session backend.
"""

from typing import Any, Protocol, Sequence

from oauth2_flow.core.domain import OAuthConfig, TokenRequest, TokenResponse


class Adapter(Protocol):
    """
    Port for building authorization URIs and exchanging grants for tokens.

    Implemented by oauth2_flow.infrastructure.httpx_adapter.HttpxAdapter.
    Implementations must be stateless between calls so a single instance can
    serve concurrent, unrelated exchanges.
    """

    def authorization_uri(
        self,
        config: OAuthConfig,
        state: str,
        scopes: Sequence[str],
        extra_params: Sequence[tuple[str, str]] = (),
    ) -> str:
        """
        Build the absolute URI the user agent is redirected to.

        Raises:
            InvalidUri: If the resulting URI is not absolute.
        """
        ...

    async def exchange_code(
        self, config: OAuthConfig, request: TokenRequest
    ) -> TokenResponse[Any]:
        """
        Exchange an authorization code or refresh token at the token endpoint.

        Raises:
            ExchangeError: Token endpoint answered with a non-2xx status.
            ExchangeFailure: Transport failure or unusable response body.
        """
        ...


class StateStore(Protocol):
    """
    Port for persisting the pending CSRF state between redirect and callback.

    Backed by a signed session cookie in the web layer. Implementations
    decide the validity window: an expired state is reported as absent.
    """

    def store(self, state: str) -> None:
        """Persist the state of a new login attempt, replacing any previous one."""
        ...

    def load_and_clear(self) -> str | None:
        """Return the pending state (if any) and remove it in the same step."""
        ...
