"""
Domain exceptions for the OAuth2 flow engine.

Every failure the engine can report is an OAuth2Error subclass with a stable
``kind`` string. The web layer maps them to responses in centralized
exception handlers (see oauth2_flow.main), so none of them should ever
surface as an unhandled fault.
"""


class OAuth2Error(Exception):
    """Base exception for all flow engine errors."""

    kind = "oauth2_error"


class ConfigError(OAuth2Error):
    """
    Raised when a provider or client configuration is invalid.

    Missing or empty required fields, unknown presets, and endpoint URIs
    that are not absolute all end up here. Fatal at startup.
    """

    kind = "config_error"


class InvalidUri(OAuth2Error):
    """Raised when an authorization or token URI cannot be built or parsed."""

    kind = "invalid_uri"

    def __init__(self, uri: str, message: str | None = None):
        self.uri = uri
        super().__init__(message or f"Invalid URI: {uri}")


class StateMismatch(OAuth2Error):
    """
    Raised when the callback state is absent or does not match the pending one.

    Treated as a security event (possible CSRF). No token is issued.
    """

    kind = "state_mismatch"


class ProviderDenied(OAuth2Error):
    """Raised when the provider redirects back with an ``error`` parameter."""

    kind = "provider_denied"

    def __init__(
        self,
        error: str,
        description: str | None = None,
        uri: str | None = None,
    ):
        self.error = error
        self.description = description
        self.uri = uri
        message = f"Provider denied authorization: {error}"
        if description:
            message = f"{message} ({description})"
        super().__init__(message)


class MissingCode(OAuth2Error):
    """Raised when a callback carries neither an error nor a ``code``."""

    kind = "missing_code"


class ExchangeError(OAuth2Error):
    """
    Raised when the token endpoint answers with a non-2xx status.

    The status (and response body, for diagnostics) is preserved. A second
    redemption of the same authorization code ends up here too.
    """

    kind = "exchange_error"

    def __init__(self, status: int, body: str | None = None):
        self.status = status
        self.body = body
        super().__init__(f"Token endpoint returned HTTP {status}")


class ExchangeFailure(OAuth2Error):
    """
    Raised when the exchange could not complete.

    Covers transport failures (connection, TLS, timeout) and unusable
    response bodies. The underlying exception is chained as ``__cause__``.
    """

    kind = "exchange_failure"
