"""
Domain models for the OAuth2 authorization-code flow.

Provider endpoints, per-provider client configuration, token requests and
normalized token responses. Configuration objects are frozen so they can be
shared read-only across concurrent requests.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Generic, TypeVar
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, field_validator

from oauth2_flow.core.exceptions import ConfigError


M = TypeVar("M")


# Well-known providers: name -> (authorization endpoint, token endpoint)
PROVIDER_PRESETS: dict[str, tuple[str, str]] = {
    "adobe": (
        "https://ims-na1.adobelogin.com/ims/authorize/v2",
        "https://ims-na1.adobelogin.com/ims/token/v3",
    ),
    "bitbucket": (
        "https://bitbucket.org/site/oauth2/authorize",
        "https://bitbucket.org/site/oauth2/access_token",
    ),
    "discord": (
        "https://discord.com/api/oauth2/authorize",
        "https://discord.com/api/oauth2/token",
    ),
    "facebook": (
        "https://www.facebook.com/v3.1/dialog/oauth",
        "https://graph.facebook.com/v3.1/oauth/access_token",
    ),
    "github": (
        "https://github.com/login/oauth/authorize",
        "https://github.com/login/oauth/access_token",
    ),
    "google": (
        "https://accounts.google.com/o/oauth2/v2/auth",
        "https://www.googleapis.com/oauth2/v4/token",
    ),
    "microsoft": (
        "https://login.microsoftonline.com/common/oauth2/v2.0/authorize",
        "https://login.microsoftonline.com/common/oauth2/v2.0/token",
    ),
    "reddit": (
        "https://www.reddit.com/api/v1/authorize",
        "https://www.reddit.com/api/v1/access_token",
    ),
    "yahoo": (
        "https://api.login.yahoo.com/oauth2/request_auth",
        "https://api.login.yahoo.com/oauth2/get_token",
    ),
}


def _validate_endpoint(label: str, uri: str, allow_http: bool) -> None:
    if not uri:
        raise ConfigError(f"{label} is required")

    parts = urlsplit(uri)
    allowed = ("https", "http") if allow_http else ("https",)
    if parts.scheme not in allowed or not parts.netloc:
        raise ConfigError(
            f"{label} must be an absolute {' or '.join(allowed)} URI: {uri!r}"
        )


@dataclass(frozen=True)
class ProviderConfig:
    """
    Endpoints of one OAuth2 provider.

    Either taken from a preset (``ProviderConfig.from_preset("github")``) or
    given explicitly for a custom provider. Plain HTTP endpoints are only
    accepted with ``allow_http=True`` (local development and tests).
    """

    auth_uri: str
    token_uri: str
    name: str = "custom"
    allow_http: bool = field(default=False, compare=False)

    def __post_init__(self) -> None:
        _validate_endpoint("auth_uri", self.auth_uri, self.allow_http)
        _validate_endpoint("token_uri", self.token_uri, self.allow_http)

    @classmethod
    def from_preset(cls, name: str) -> "ProviderConfig":
        """Build the config of a well-known provider (case-insensitive)."""
        key = name.strip().lower()
        if key not in PROVIDER_PRESETS:
            raise ConfigError(
                f"Unknown provider preset: {name!r}. "
                f"Known: {sorted(PROVIDER_PRESETS)}"
            )
        auth_uri, token_uri = PROVIDER_PRESETS[key]
        return cls(auth_uri=auth_uri, token_uri=token_uri, name=key)


@dataclass(frozen=True)
class OAuthConfig:
    """
    Client configuration for one provider.

    One instance per provider the application supports, created at startup
    and shared read-only for the lifetime of the process.
    """

    client_id: str
    client_secret: str
    provider: ProviderConfig
    redirect_uri: str | None = None

    def __post_init__(self) -> None:
        if not self.client_id:
            raise ConfigError("client_id must not be empty")
        if not self.client_secret:
            raise ConfigError("client_secret must not be empty")
        if self.redirect_uri is not None:
            parts = urlsplit(self.redirect_uri)
            if not parts.scheme or not parts.netloc:
                raise ConfigError(
                    f"redirect_uri must be an absolute URI: {self.redirect_uri!r}"
                )

    def __repr__(self) -> str:
        return (
            f"OAuthConfig(client_id={self.client_id!r}, client_secret='***', "
            f"provider={self.provider.name!r}, redirect_uri={self.redirect_uri!r})"
        )


@dataclass(frozen=True)
class AuthorizationCode:
    """Grant: exchange an authorization code received on the callback."""

    code: str


@dataclass(frozen=True)
class RefreshToken:
    """Grant: exchange a refresh token for a fresh access token."""

    token: str


TokenRequest = AuthorizationCode | RefreshToken


class TokenResponse(BaseModel, Generic[M]):
    """
    Normalized result of a successful token exchange.

    ``M`` is a marker type that only exists for type checkers: a
    ``TokenResponse[GitHubUser]`` cannot be passed where a
    ``TokenResponse[GoogleUser]`` is expected. It carries no runtime data.
    """

    access_token: str = Field(description="OAuth2 access token")
    token_type: str = Field(description="Token type, usually 'bearer'")
    refresh_token: str | None = Field(
        default=None, description="Refresh token, if the provider issued one"
    )
    expires_in: timedelta | None = Field(
        default=None, description="Lifetime of the access token"
    )
    scope: str | None = Field(default=None, description="Space-separated scopes")
    raw: dict[str, Any] = Field(
        default_factory=dict, description="Token endpoint payload as received"
    )

    model_config = ConfigDict(frozen=True)

    @field_validator("expires_in", mode="before")
    @classmethod
    def parse_expires_in(cls, value: Any) -> timedelta | None:
        """Accept seconds as a number or numeric string; drop anything else."""
        if value is None or isinstance(value, timedelta):
            return value
        if isinstance(value, bool) or not isinstance(value, (int, float, str)):
            return None
        try:
            return timedelta(seconds=float(value))
        except (ValueError, OverflowError):
            return None

    @classmethod
    def from_payload(cls, payload: Any) -> "TokenResponse[Any]":
        """
        Build a token response from a decoded token endpoint body.

        Raises:
            ValueError: If the payload is not a JSON object.
            pydantic.ValidationError: If required fields are missing or mistyped.
        """
        if not isinstance(payload, dict):
            raise ValueError("token response is not a JSON object")
        return cls.model_validate({**payload, "raw": payload})

    def with_scope(self, scope: str) -> "TokenResponse[M]":
        """Return a copy with ``scope`` set. ``raw`` keeps the payload as received."""
        return self.model_copy(update={"scope": scope})
