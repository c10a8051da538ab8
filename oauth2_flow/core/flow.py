"""
Core service driving the OAuth2 authorization-code flow.

One OAuth2 instance exists per configured provider. It holds only immutable
configuration; everything that belongs to a single login attempt (the CSRF
state) is passed in explicitly through a StateStore, so one engine can serve
any number of concurrent attempts without locking.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Mapping, Sequence, TypeVar, cast

from oauth2_flow.core.domain import (
    AuthorizationCode,
    OAuthConfig,
    RefreshToken,
    TokenResponse,
)
from oauth2_flow.core.exceptions import (
    MissingCode,
    OAuth2Error,
    ProviderDenied,
    StateMismatch,
)
from oauth2_flow.core.ports import Adapter, StateStore
from oauth2_flow.core.state import StateGenerator


logger = logging.getLogger(__name__)

M = TypeVar("M")


class FlowState(str, Enum):
    """Lifecycle of a single login attempt."""

    INITIATED = "initiated"
    AWAITING_CALLBACK = "awaiting_callback"
    VALIDATED = "validated"
    EXCHANGED = "exchanged"
    FAILED = "failed"


_TRANSITIONS: dict[FlowState, frozenset[FlowState]] = {
    FlowState.INITIATED: frozenset({FlowState.AWAITING_CALLBACK, FlowState.FAILED}),
    FlowState.AWAITING_CALLBACK: frozenset({FlowState.VALIDATED, FlowState.FAILED}),
    FlowState.VALIDATED: frozenset({FlowState.EXCHANGED, FlowState.FAILED}),
    FlowState.EXCHANGED: frozenset(),
    FlowState.FAILED: frozenset(),
}


@dataclass
class LoginAttempt:
    """
    Tracks where a login attempt is in the flow.

    Exchanged and Failed are terminal. Moving along an edge that is not in
    the transition table is a programming error and raises RuntimeError.
    """

    provider: str
    state: FlowState = FlowState.INITIATED

    def advance(self, target: FlowState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise RuntimeError(
                f"Illegal login transition {self.state.value} -> {target.value}"
            )
        self.state = target
        logger.debug(
            f"Login attempt for {self.provider}: {target.value}",
            extra={"provider": self.provider, "flow_state": target.value},
        )
        if target is FlowState.EXCHANGED:
            logger.info(
                f"Login for {self.provider} completed",
                extra={"provider": self.provider, "flow_state": target.value},
            )

    def fail(self, error: OAuth2Error) -> OAuth2Error:
        """Move to Failed, log why, and hand the error back for raising."""
        self.advance(FlowState.FAILED)
        logger.info(
            f"Login for {self.provider} failed: {error.kind}",
            extra={
                "provider": self.provider,
                "flow_state": self.state.value,
                "error_kind": error.kind,
            },
        )
        return error


class OAuth2(Generic[M]):
    """
    Authorization-code flow engine for one provider.

    ``M`` is the phantom marker carried over to the TokenResponse values this
    engine returns, e.g. ``OAuth2[GitHubUser]`` yields
    ``TokenResponse[GitHubUser]``.

    The engine never retries an exchange and never caches a result:
    authorization codes can be redeemed once, and what to do after a failed
    redemption is the caller's decision.
    """

    def __init__(
        self,
        config: OAuthConfig,
        adapter: Adapter,
        state_generator: StateGenerator | None = None,
    ):
        self.config = config
        self.adapter = adapter
        self.state_generator = state_generator or StateGenerator()

    @property
    def provider_name(self) -> str:
        return self.config.provider.name

    def get_redirect(
        self,
        store: StateStore,
        scopes: Sequence[str] = (),
        extra_params: Mapping[str, str] | None = None,
    ) -> str:
        """
        Start a login attempt.

        Generates a fresh state, persists it through ``store`` and returns the
        provider authorization URI the user agent should be redirected to.

        Args:
            store: Per-attempt state persistence (usually the user's session)
            scopes: Scopes to request; an empty sequence omits ``scope``
            extra_params: Additional provider-specific query parameters

        Returns:
            Absolute authorization URI

        Raises:
            InvalidUri: If the authorization URI cannot be built
        """
        attempt = LoginAttempt(provider=self.provider_name)
        state = self.state_generator.generate()

        try:
            uri = self.adapter.authorization_uri(
                self.config,
                state,
                list(scopes),
                list((extra_params or {}).items()),
            )
        except OAuth2Error as e:
            raise attempt.fail(e)

        store.store(state)
        attempt.advance(FlowState.AWAITING_CALLBACK)

        logger.info(
            f"Issuing OAuth2 redirect for provider: {self.provider_name}",
            extra={"provider": self.provider_name, "scopes": list(scopes)},
        )
        return uri

    async def handle_callback(
        self, store: StateStore, params: Mapping[str, str]
    ) -> TokenResponse[M]:
        """
        Validate a provider callback and exchange its code for a token.

        The pending state is cleared before anything else, so every callback
        consumes it whatever the outcome.

        Args:
            store: The same state store used by get_redirect
            params: Callback query parameters

        Returns:
            The token response for this provider

        Raises:
            ProviderDenied: The callback carries an ``error`` parameter
            StateMismatch: No pending state, or the received state differs
            MissingCode: The callback has no ``code``
            ExchangeError: The token endpoint rejected the code
            ExchangeFailure: The exchange could not complete
        """
        attempt = LoginAttempt(
            provider=self.provider_name, state=FlowState.AWAITING_CALLBACK
        )
        expected = store.load_and_clear()

        error = params.get("error")
        if error:
            logger.info(
                f"Provider {self.provider_name} denied authorization: {error}",
                extra={"provider": self.provider_name, "error": error},
            )
            raise attempt.fail(
                ProviderDenied(
                    error,
                    description=params.get("error_description"),
                    uri=params.get("error_uri"),
                )
            )

        if not self.state_generator.verify(expected, params.get("state")):
            logger.warning(
                "OAuth2 state returned by the provider did not match the "
                "stored state (possible CSRF attempt)",
                extra={
                    "provider": self.provider_name,
                    "pending_state": expected is not None,
                },
            )
            raise attempt.fail(
                StateMismatch("OAuth2 state did not match the pending login")
            )

        code = params.get("code")
        if not code:
            raise attempt.fail(MissingCode("Callback did not include a code"))

        attempt.advance(FlowState.VALIDATED)

        try:
            token = await self.adapter.exchange_code(
                self.config, AuthorizationCode(code)
            )
        except OAuth2Error as e:
            logger.error(
                f"OAuth2 token exchange failed for {self.provider_name}: {e}",
                extra={"provider": self.provider_name, "kind": e.kind},
            )
            raise attempt.fail(e)

        # Some providers only report granted scopes on the callback
        scope = params.get("scope")
        if scope and token.scope is None:
            token = token.with_scope(scope)

        attempt.advance(FlowState.EXCHANGED)
        logger.info(
            f"OAuth2 login completed for provider: {self.provider_name}",
            extra={"provider": self.provider_name},
        )
        return cast("TokenResponse[M]", token)

    async def refresh(self, refresh_token: str) -> TokenResponse[M]:
        """
        Exchange a refresh token for a new token response.

        Raises:
            ExchangeError: The token endpoint rejected the refresh token
            ExchangeFailure: The exchange could not complete
        """
        logger.info(
            f"Refreshing OAuth2 token for provider: {self.provider_name}",
            extra={"provider": self.provider_name},
        )
        token: TokenResponse[Any] = await self.adapter.exchange_code(
            self.config, RefreshToken(refresh_token)
        )
        return cast("TokenResponse[M]", token)
