"""
Default Adapter implementation backed by httpx.

Builds authorization URIs with authlib's RFC 6749 helpers and performs the
token exchange as a form-encoded POST.
"""

import logging
from typing import Any, Sequence
from urllib.parse import urlsplit

import httpx
from authlib.oauth2.rfc6749.parameters import prepare_grant_uri
from pydantic import ValidationError

from oauth2_flow.core.domain import (
    AuthorizationCode,
    OAuthConfig,
    TokenRequest,
    TokenResponse,
)
from oauth2_flow.core.exceptions import (
    ConfigError,
    ExchangeError,
    ExchangeFailure,
    InvalidUri,
)


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0

# Set by the engine itself; extra parameters may not override them
RESERVED_AUTH_PARAMS = frozenset(
    {"uri", "response_type", "client_id", "redirect_uri", "scope", "state"}
)


def build_token_form(config: OAuthConfig, request: TokenRequest) -> dict[str, str]:
    """Serialize a grant into token endpoint form fields, in wire order."""
    if isinstance(request, AuthorizationCode):
        form = {"grant_type": "authorization_code", "code": request.code}
        if config.redirect_uri:
            form["redirect_uri"] = config.redirect_uri
    else:
        form = {"grant_type": "refresh_token", "refresh_token": request.token}

    form["client_id"] = config.client_id
    form["client_secret"] = config.client_secret
    return form


class HttpxAdapter:
    """
    Adapter performing the token exchange over HTTPS with httpx.

    Holds no per-exchange state. Pass a shared ``httpx.AsyncClient`` to pool
    connections (the caller owns its lifecycle); otherwise a short-lived
    client is opened for each exchange. TLS verification stays on either way.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self._client = client
        self.timeout = timeout

    def authorization_uri(
        self,
        config: OAuthConfig,
        state: str,
        scopes: Sequence[str],
        extra_params: Sequence[tuple[str, str]] = (),
    ) -> str:
        auth_uri = config.provider.auth_uri
        extra = dict(extra_params)
        reserved = sorted(RESERVED_AUTH_PARAMS.intersection(extra))
        if reserved:
            raise ConfigError(
                f"Extra authorization parameters cannot override: {', '.join(reserved)}"
            )

        try:
            uri = prepare_grant_uri(
                auth_uri,
                client_id=config.client_id,
                response_type="code",
                redirect_uri=config.redirect_uri,
                scope=list(scopes) or None,
                state=state,
                **extra,
            )
        except ValueError as e:
            raise InvalidUri(auth_uri, f"Cannot add parameters to {auth_uri}: {e}") from e

        parts = urlsplit(uri)
        if not parts.scheme or not parts.netloc:
            raise InvalidUri(uri)
        return uri

    async def exchange_code(
        self, config: OAuthConfig, request: TokenRequest
    ) -> TokenResponse[Any]:
        url = config.provider.token_uri
        form = build_token_form(config, request)
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/x-www-form-urlencoded",
        }

        try:
            if self._client is not None:
                response = await self._client.post(
                    url, data=form, headers=headers, timeout=self.timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(url, data=form, headers=headers)
        except httpx.HTTPError as e:
            logger.error(
                f"Network error during token exchange: {e}",
                extra={"provider": config.provider.name},
            )
            raise ExchangeFailure(f"Token request to {url} failed: {e}") from e

        if not response.is_success:
            logger.error(
                f"Token endpoint returned HTTP {response.status_code}",
                extra={
                    "provider": config.provider.name,
                    "status_code": response.status_code,
                },
            )
            raise ExchangeError(response.status_code, response.text)

        try:
            return TokenResponse.from_payload(response.json())
        except ValidationError as e:
            raise ExchangeFailure(f"Invalid token response: {e}") from e
        except ValueError as e:
            raise ExchangeFailure(f"Unparsable token response: {e}") from e
