"""
FastAPI application exposing the OAuth2 login flow.

This module wires dependencies and configures the application.
Protocol logic is in oauth2_flow/core, infrastructure in
oauth2_flow/infrastructure.
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Any

import httpx
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

from oauth2_flow.core.exceptions import OAuth2Error
from oauth2_flow.core.ports import Adapter
from oauth2_flow.infrastructure.httpx_adapter import HttpxAdapter
from oauth2_flow.logging_config import setup_global_logging
from oauth2_flow.oauth import router as oauth_router
from oauth2_flow.oauth.config import (
    OAuthSettings,
    create_provider_registry,
    get_oauth_settings,
)
from oauth2_flow.oauth.dependencies import LoginHandler
from oauth2_flow.oauth.router import LOGIN_SESSION_KEY, remember_login


logger = logging.getLogger(__name__)

# Session cookie carrying the pending CSRF state and the recorded login
SESSION_COOKIE_NAME = "oauth2_session"

ERROR_STATUS: dict[str, int] = {
    "state_mismatch": status.HTTP_400_BAD_REQUEST,
    "missing_code": status.HTTP_400_BAD_REQUEST,
    "provider_denied": status.HTTP_403_FORBIDDEN,
    "exchange_error": status.HTTP_502_BAD_GATEWAY,
    "exchange_failure": status.HTTP_502_BAD_GATEWAY,
}


async def oauth2_error_handler(request: Request, exc: OAuth2Error) -> JSONResponse:
    """
    Handle flow engine errors.

    Failed logins (denied, mismatched state, rejected code) are client-side
    or upstream problems and get 4xx/502. Configuration problems get 500.
    """
    status_code = ERROR_STATUS.get(
        exc.kind, status.HTTP_500_INTERNAL_SERVER_ERROR
    )
    if exc.kind not in ERROR_STATUS:
        logger.error(f"OAuth2 configuration error: {exc}", exc_info=True)
    else:
        logger.warning(
            f"OAuth2 login failed: {exc}",
            extra={"kind": exc.kind, "path": request.url.path},
        )

    return JSONResponse(
        status_code=status_code,
        content={
            "status": "error",
            "kind": exc.kind,
            "message": str(exc),
        },
    )


def create_app(
    settings: OAuthSettings | None = None,
    adapter: Adapter | None = None,
    on_login: LoginHandler | None = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Application settings (loaded from the environment if omitted)
        adapter: Token exchange adapter (an httpx-backed one if omitted)
        on_login: Receives the token after a successful callback
            (defaults to recording the login in the session)

    Returns:
        Configured FastAPI app

    Raises:
        ValueError: If SESSION_SECRET_KEY is not set
        ConfigError: If a configured provider is invalid
    """
    if settings is None:
        settings = get_oauth_settings()

    if not settings.session_secret_key:
        raise ValueError("SESSION_SECRET_KEY is not set in the environment.")

    http_client: httpx.AsyncClient | None = None
    if adapter is None:
        http_client = httpx.AsyncClient(timeout=settings.http_timeout)
        adapter = HttpxAdapter(client=http_client, timeout=settings.http_timeout)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Application starting up...",
            extra={"providers": app.state.oauth_registry.names()},
        )
        yield
        logger.info("Shutting down application...")
        if http_client is not None:
            await http_client.aclose()

    app = FastAPI(
        title="OAuth2 Flow",
        description="OAuth2 authorization-code login for configured providers",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.oauth_settings = settings
    app.state.oauth_registry = create_provider_registry(settings, adapter)
    app.state.oauth_login_handler = on_login or remember_login

    # Signed cookie; SameSite=Lax still sends it on the provider's top-level redirect back
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret_key,
        session_cookie=SESSION_COOKIE_NAME,
        same_site="lax",
        https_only=settings.session_https_only,
    )

    app.add_exception_handler(OAuth2Error, oauth2_error_handler)  # type: ignore[arg-type]

    @app.get("/")
    async def index(request: Request) -> dict[str, Any]:
        """Show the recorded login, or where to start one."""
        login = request.session.get(LOGIN_SESSION_KEY)
        if login:
            return {
                "status": "authenticated",
                "provider": login.get("provider"),
                "scope": login.get("scope"),
            }

        providers = app.state.oauth_registry.names()
        return {
            "status": "anonymous",
            "login": [f"/login/{name}" for name in providers],
        }

    @app.get("/health")
    async def health():
        """Health check endpoint for Cloud Run."""
        return {"status": "healthy"}

    app.include_router(oauth_router.router)

    return app


def run() -> None:
    """Console entry point: configure logging and serve with uvicorn."""
    import uvicorn

    setup_global_logging()
    port = int(os.getenv("PORT", 8080))
    uvicorn.run(create_app(), host="0.0.0.0", port=port)


if __name__ == "__main__":
    run()
