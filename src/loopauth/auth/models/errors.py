"""Exception hierarchy for the loopback PKCE authorization flow.

Provides specific exception types for each failure mode so callers can tell
a denied consent apart from a broken token endpoint or a missing field.
"""

from __future__ import annotations


class OAuth2Error(Exception):
    """Base exception for all authorization flow errors."""

    pass


class EntropyUnavailable(OAuth2Error):
    """Raised when the secure random source cannot be read."""

    pass


class PKCEError(OAuth2Error):
    """Raised when PKCE parameter generation or validation fails."""

    pass


class CredentialPersistenceError(OAuth2Error):
    """Raised when the key/certificate pair cannot be generated or saved.

    Saving failures are reported as warnings; the flow keeps the in-memory
    material and the next run regenerates it.
    """

    pass


class ListenerError(OAuth2Error):
    """Raised when the loopback listener cannot be started or used."""

    pass


class ListenerTimeoutError(ListenerError):
    """Raised when no redirect arrives within the configured timeout."""

    pass


class BrowserLaunchFailure(OAuth2Error):
    """Raised when the system browser could not open the authorization URL."""

    pass


class AuthorizationError(OAuth2Error):
    """Raised when user authorization fails."""

    pass


class ProviderDeniedAuthorization(AuthorizationError):
    """Raised when the redirect carries an ``error`` query parameter."""

    def __init__(self, error: str, error_description: str | None = None):
        self.error = error
        self.error_description = error_description
        message = f"Authorization denied by provider: {error}"
        if error_description:
            message += f" ({error_description})"
        super().__init__(message)


class TokenError(OAuth2Error):
    """Raised when token operations fail."""

    pass


class TokenExchangeError(TokenError):
    """Raised when authorization code to token exchange fails."""

    pass


class TokenExchangeTransportError(TokenExchangeError):
    """Raised when the token endpoint request fails at the HTTP level."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class TokenFieldMissing(TokenExchangeError):
    """Raised when a successful token response has no ``access_token``.

    Kept distinct from transport failures: the request went through, but the
    body cannot authorize anything.
    """

    pass


class ResourceError(OAuth2Error):
    """Raised when the downstream resource call fails."""

    pass


class ResourceFetchTransportError(ResourceError):
    """Raised when fetching the resource collection fails."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class FlowStateError(OAuth2Error):
    """Raised when a flow instance is used outside its lifecycle."""

    pass
