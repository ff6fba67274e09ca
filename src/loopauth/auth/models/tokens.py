"""Token exchange request and response models.

Contains the form-encoded authorization code exchange request and the parsed
token endpoint response.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, Field


@dataclass(frozen=True)
class TokenRequest:
    """Authorization code exchange request parameters (RFC 6749 Section 4.1.3).

    Includes the PKCE code_verifier (RFC 7636) that must match the challenge
    sent in the authorization request.
    """

    token_endpoint: str
    code: str = field(repr=False)
    redirect_uri: str
    client_id: str
    code_verifier: str = field(repr=False)

    grant_type: str = "authorization_code"

    def to_form_data(self) -> dict[str, str]:
        """Convert to form data for application/x-www-form-urlencoded request.

        Returns:
            Dictionary suitable for httpx data parameter
        """
        return {
            "grant_type": self.grant_type,
            "code": self.code,
            "redirect_uri": self.redirect_uri,
            "client_id": self.client_id,
            "code_verifier": self.code_verifier,
        }


class TokenResponse(BaseModel):
    """Successful token endpoint response (RFC 6749 Section 5.1).

    ``raw`` keeps the full decoded JSON object for callers that need fields
    beyond the standard ones.
    """

    access_token: str = Field(repr=False)
    token_type: str = "Bearer"
    expires_in: int | None = None
    scope: str | None = None
    raw: dict[str, Any] = Field(default_factory=dict, repr=False)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> TokenResponse:
        """Build a response from the decoded token endpoint body."""
        return cls(
            access_token=payload["access_token"],
            token_type=payload.get("token_type") or "Bearer",
            expires_in=payload.get("expires_in"),
            scope=payload.get("scope"),
            raw=dict(payload),
        )

    @property
    def authorization_header(self) -> str:
        return f"Bearer {self.access_token}"
