"""
FastAPI dependencies for OAuth endpoints.

The provider registry, settings and login handler live on ``app.state``
(set by the app factory) and are handed to routes through these
dependencies, so tests can swap any of them with dependency_overrides.
"""

import logging
from typing import Annotated, Any, Awaitable, Callable

from fastapi import Depends, HTTPException, Request, Response, status

from oauth2_flow.core.domain import TokenResponse
from oauth2_flow.core.flow import OAuth2
from oauth2_flow.infrastructure.state_store import SessionStateStore
from oauth2_flow.oauth.config import OAuthSettings, ProviderRegistry


logger = logging.getLogger(__name__)

LoginHandler = Callable[[Request, str, TokenResponse[Any]], Awaitable[Response]]


def get_settings(request: Request) -> OAuthSettings:
    """Provide the application settings."""
    return request.app.state.oauth_settings


def get_registry(request: Request) -> ProviderRegistry:
    """Provide the provider registry."""
    return request.app.state.oauth_registry


def get_login_handler(request: Request) -> LoginHandler:
    """Provide the callable that receives tokens after a successful login."""
    return request.app.state.oauth_login_handler


async def get_flow(
    provider: str,
    settings: Annotated[OAuthSettings, Depends(get_settings)],
    registry: Annotated[ProviderRegistry, Depends(get_registry)],
) -> OAuth2[Any]:
    """
    Resolve the OAuth2 engine for the provider in the path.

    Raises:
        HTTPException: 404 if the provider is unknown, 503 if it is known
            but has no credentials
    """
    flow = registry.get(provider)
    if flow is not None:
        return flow

    if provider in {p.name for p in settings.providers}:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Provider '{provider}' is not configured",
        )

    raise HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Unknown provider: {provider}. Supported: {registry.names()}",
    )


def get_state_store(
    provider: str,
    request: Request,
    settings: Annotated[OAuthSettings, Depends(get_settings)],
) -> SessionStateStore:
    """Provide the session-backed CSRF state slot for this provider."""
    return SessionStateStore(request.session, provider, ttl=settings.state_ttl)


# Type aliases for cleaner dependency injection
Settings = Annotated[OAuthSettings, Depends(get_settings)]
Registry = Annotated[ProviderRegistry, Depends(get_registry)]
Flow = Annotated[OAuth2[Any], Depends(get_flow)]
PendingState = Annotated[SessionStateStore, Depends(get_state_store)]
OnLogin = Annotated[LoginHandler, Depends(get_login_handler)]
