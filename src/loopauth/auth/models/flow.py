"""Authorization flow models.

Contains the authorization request, the redirect result and the flow states.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from urllib.parse import quote


def _escape(value: str) -> str:
    """Percent-encode everything outside the RFC 3986 unreserved set."""
    return quote(value, safe="")


class FlowState(str, Enum):
    """Lifecycle of one authorization flow instance."""

    INITIALIZING = "initializing"
    AWAITING_REDIRECT = "awaiting_redirect"
    EXCHANGING_TOKEN = "exchanging_token"
    FETCHING_RESOURCE = "fetching_resource"
    COMPLETED = "completed"
    ERRORED = "errored"

    @property
    def is_terminal(self) -> bool:
        return self in (FlowState.COMPLETED, FlowState.ERRORED)


@dataclass(frozen=True)
class AuthorizationRequest:
    """Authorization request parameters for the PKCE code flow."""

    authorization_endpoint: str
    client_id: str
    redirect_uri: str
    code_challenge: str
    scope: str
    code_challenge_method: str = "S256"

    def build_authorization_url(self) -> str:
        """Build the complete authorization URL.

        Parameter order is fixed so the same inputs always produce the same
        URL.
        """
        params = [
            ("response_type", "code"),
            ("client_id", _escape(self.client_id)),
            ("scope", _escape(self.scope)),
            ("code_challenge_method", self.code_challenge_method),
            ("code_challenge", self.code_challenge),
            ("redirect_uri", _escape(self.redirect_uri)),
        ]
        query = "&".join(f"{key}={value}" for key, value in params)
        return f"{self.authorization_endpoint}?{query}"


@dataclass(frozen=True)
class AuthorizationResult:
    """Outcome of the provider redirect: either a code or an error."""

    code: str | None = None
    error: str | None = None
    error_description: str | None = None

    def __post_init__(self) -> None:
        if (self.code is None) == (self.error is None):
            raise ValueError("AuthorizationResult needs exactly one of code or error")

    def is_success(self) -> bool:
        return self.error is None and self.code is not None

    def is_error(self) -> bool:
        return self.error is not None
