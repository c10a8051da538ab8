"""
OAuth2 login endpoints.

- GET /login/{provider} - Start the flow (redirect to the provider)
- GET /auth/{provider} - Handle the provider callback, exchange the code
- GET /logout - Forget the login recorded in the session

Engine errors raised here are turned into responses by the exception
handlers registered in oauth2_flow.main.
"""

import logging
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Request, status
from fastapi.responses import RedirectResponse

from oauth2_flow.core.domain import TokenResponse
from oauth2_flow.oauth.dependencies import (
    Flow,
    OnLogin,
    PendingState,
    Registry,
    Settings,
)


logger = logging.getLogger(__name__)

LOGIN_SESSION_KEY = "login"

router = APIRouter(tags=["oauth"])


async def remember_login(
    request: Request, provider: str, token: TokenResponse[Any]
) -> RedirectResponse:
    """
    Default login handler.

    Records which provider the user logged in with and the granted scope.
    The token itself is never written to the session cookie.
    """
    request.session[LOGIN_SESSION_KEY] = {
        "provider": provider,
        "scope": token.scope,
        "authenticated_at": datetime.now(UTC).isoformat(),
    }
    settings = request.app.state.oauth_settings
    return RedirectResponse(
        url=settings.post_login_redirect,
        status_code=status.HTTP_302_FOUND,
    )


@router.get("/login/{provider}")
async def login(
    provider: str,
    flow: Flow,
    store: PendingState,
    registry: Registry,
):
    """
    Start the OAuth2 authorization flow.

    Stores a fresh CSRF state in the session and redirects the user to the
    provider's authorization page with the provider's configured scopes.

    Args:
        provider: OAuth provider name
        flow: Engine for the provider
        store: Session slot for the pending state
        registry: Provider registry (for scopes)

    Returns:
        Redirect to the provider's authorization page
    """
    uri = flow.get_redirect(store, registry.scopes_for(provider))
    return RedirectResponse(url=uri, status_code=status.HTTP_302_FOUND)


@router.get("/auth/{provider}")
async def callback(
    provider: str,
    request: Request,
    flow: Flow,
    store: PendingState,
    on_login: OnLogin,
):
    """
    Handle the OAuth2 callback from the provider.

    Validates the state, exchanges the code and hands the token to the
    configured login handler, whose response is returned.

    Raises:
        OAuth2Error: On any validation or exchange failure
    """
    logger.info(
        f"OAuth callback received for provider: {provider}",
        extra={"provider": provider},
    )
    token = await flow.handle_callback(store, request.query_params)
    return await on_login(request, provider, token)


@router.get("/logout")
async def logout(request: Request, settings: Settings):
    """Forget the recorded login and go back to the post-login page."""
    request.session.pop(LOGIN_SESSION_KEY, None)
    return RedirectResponse(
        url=settings.post_login_redirect,
        status_code=status.HTTP_302_FOUND,
    )
