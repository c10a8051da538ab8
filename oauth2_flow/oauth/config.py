"""
OAuth2 configuration and provider registry.

Settings are loaded from environment variables. Each provider listed in
OAUTH_PROVIDERS gets its own OAuth2 engine; providers without credentials
are skipped so a deployment can be partially configured.
"""

import os
import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any

from oauth2_flow.core.domain import OAuthConfig, ProviderConfig
from oauth2_flow.core.exceptions import ConfigError
from oauth2_flow.core.flow import OAuth2
from oauth2_flow.core.ports import Adapter
from oauth2_flow.infrastructure.state_store import DEFAULT_STATE_TTL


logger = logging.getLogger(__name__)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_number(name: str, default: float, cast: type = float) -> Any:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return cast(value)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {value!r}") from e


def _split_list(value: str | None) -> list[str]:
    if not value:
        return []
    return [item for item in re.split(r"[\s,]+", value.strip()) if item]


@dataclass
class ProviderSettings:
    """
    Settings of one provider, as read from the environment.

    Uses a preset (PRESET, defaulting to the provider name) unless both
    AUTH_URI and TOKEN_URI are given, in which case the provider is custom.
    """

    name: str
    client_id: str | None
    client_secret: str | None
    redirect_uri: str | None = None
    scopes: list[str] = field(default_factory=list)
    preset: str | None = None
    auth_uri: str | None = None
    token_uri: str | None = None

    @classmethod
    def from_env(
        cls, name: str, callback_url: str | None = None
    ) -> "ProviderSettings":
        """
        Load ``{NAME}_*`` variables for one provider.

        ``callback_url`` is the redirect URI used when {NAME}_REDIRECT_URI is unset.
        """
        prefix = name.upper().replace("-", "_")
        redirect_uri = os.getenv(f"{prefix}_REDIRECT_URI") or callback_url

        return cls(
            name=name,
            client_id=os.getenv(f"{prefix}_CLIENT_ID"),
            client_secret=os.getenv(f"{prefix}_CLIENT_SECRET"),
            redirect_uri=redirect_uri,
            scopes=_split_list(os.getenv(f"{prefix}_SCOPES")),
            preset=os.getenv(f"{prefix}_PRESET"),
            auth_uri=os.getenv(f"{prefix}_AUTH_URI"),
            token_uri=os.getenv(f"{prefix}_TOKEN_URI"),
        )

    def is_configured(self) -> bool:
        """Check if the provider has credentials."""
        return bool(self.client_id and self.client_secret)

    def provider_config(self, allow_http: bool = False) -> ProviderConfig:
        if self.auth_uri or self.token_uri:
            if not (self.auth_uri and self.token_uri):
                raise ConfigError(
                    f"Provider '{self.name}' needs both auth_uri and token_uri"
                )
            return ProviderConfig(
                auth_uri=self.auth_uri,
                token_uri=self.token_uri,
                name=self.name,
                allow_http=allow_http,
            )
        preset = ProviderConfig.from_preset(self.preset or self.name)
        return ProviderConfig(
            auth_uri=preset.auth_uri, token_uri=preset.token_uri, name=self.name
        )

    def to_oauth_config(self, allow_http: bool = False) -> OAuthConfig:
        """
        Build the validated client configuration.

        Raises:
            ConfigError: If credentials are missing or the provider is invalid
        """
        return OAuthConfig(
            client_id=self.client_id or "",
            client_secret=self.client_secret or "",
            redirect_uri=self.redirect_uri,
            provider=self.provider_config(allow_http),
        )


@dataclass
class OAuthSettings:
    """
    Application-wide settings.

    Loaded from environment variables. The session secret is validated by
    the app factory at startup.
    """

    base_url: str
    session_secret_key: str | None
    providers: list[ProviderSettings] = field(default_factory=list)
    session_https_only: bool = False
    state_ttl: int = DEFAULT_STATE_TTL
    http_timeout: float = 10.0
    allow_http: bool = False
    post_login_redirect: str = "/"

    @classmethod
    def from_env(cls) -> "OAuthSettings":
        """Load configuration from environment variables."""
        base_url = os.getenv("BASE_URL", "")
        names = [name.lower() for name in _split_list(os.getenv("OAUTH_PROVIDERS"))]
        settings = cls(
            base_url=base_url,
            session_secret_key=os.getenv("SESSION_SECRET_KEY"),
            session_https_only=_env_bool("SESSION_HTTPS_ONLY", False),
            state_ttl=_env_number("OAUTH_STATE_TTL_SECONDS", DEFAULT_STATE_TTL, int),
            http_timeout=_env_number("OAUTH_HTTP_TIMEOUT", 10.0),
            allow_http=_env_bool("OAUTH_ALLOW_HTTP", False),
            post_login_redirect=os.getenv("POST_LOGIN_REDIRECT", "/"),
        )
        settings.providers = [
            ProviderSettings.from_env(
                name, settings.get_callback_url(name) if base_url else None
            )
            for name in names
        ]
        return settings

    def get_callback_url(self, provider: str) -> str:
        """Generate callback URL for a provider."""
        return f"{self.base_url.rstrip('/')}/auth/{provider}"

    def get_configured_providers(self) -> list[str]:
        """List all providers with credentials."""
        return [p.name for p in self.providers if p.is_configured()]


@lru_cache()
def get_oauth_settings() -> OAuthSettings:
    """Get OAuth settings singleton."""
    return OAuthSettings.from_env()


class ProviderRegistry:
    """Configured OAuth2 engines keyed by provider name, with their scopes."""

    def __init__(self) -> None:
        self._flows: dict[str, OAuth2[Any]] = {}
        self._scopes: dict[str, list[str]] = {}

    def register(
        self, name: str, flow: OAuth2[Any], scopes: list[str] | None = None
    ) -> None:
        self._flows[name] = flow
        self._scopes[name] = list(scopes or [])

    def get(self, name: str) -> OAuth2[Any] | None:
        return self._flows.get(name)

    def scopes_for(self, name: str) -> list[str]:
        return list(self._scopes.get(name, []))

    def names(self) -> list[str]:
        return list(self._flows)


def create_provider_registry(
    settings: OAuthSettings, adapter: Adapter
) -> ProviderRegistry:
    """
    Create an OAuth2 engine for every configured provider.

    Providers without credentials are skipped with a warning. A provider
    with credentials but invalid endpoints fails fast.

    Args:
        settings: Application settings
        adapter: Adapter shared by all engines

    Returns:
        Registry of configured providers

    Raises:
        ConfigError: If a configured provider is invalid
    """
    registry = ProviderRegistry()
    configured = set(settings.get_configured_providers())

    for provider in settings.providers:
        if provider.name not in configured:
            logger.warning(
                f"OAuth provider '{provider.name}' not configured (missing credentials)"
            )
            continue

        config = provider.to_oauth_config(allow_http=settings.allow_http)
        registry.register(provider.name, OAuth2(config, adapter), provider.scopes)
        logger.info(
            f"Registered OAuth provider: {provider.name}",
            extra={"provider": provider.name, "token_uri": config.provider.token_uri},
        )

    return registry
