"""Authorization code to access token exchange service.

Implements the RFC 6749 token endpoint interaction with the PKCE
code_verifier (RFC 7636).
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from loopauth.auth.models.errors import TokenExchangeTransportError, TokenFieldMissing
from loopauth.auth.models.tokens import TokenRequest, TokenResponse

logger = logging.getLogger(__name__)


class TokenExchangeClient:
    """Exchanges authorization codes for access tokens.

    Uses application/x-www-form-urlencoded encoding as required by
    RFC 6749 Section 4.1.3. The client secret is never sent; the PKCE
    verifier proves possession instead.
    """

    def __init__(self, timeout: float = 30.0):
        """Initialize the token exchange client.

        Args:
            timeout: HTTP request timeout in seconds
        """
        self.timeout = timeout
        self._http_client = httpx.AsyncClient(timeout=timeout)

    async def exchange_code_for_token(
        self, token_request: TokenRequest
    ) -> TokenResponse:
        """Exchange an authorization code for an access token.

        Args:
            token_request: Token exchange request parameters

        Returns:
            TokenResponse: Parsed successful response

        Raises:
            TokenExchangeTransportError: If the request fails or the endpoint
                answers with a non-success status
            TokenFieldMissing: If the endpoint answers successfully without
                an access_token
        """
        logger.debug(f"Exchanging authorization code at {token_request.token_endpoint}")

        headers = {
            "Content-Type": "application/x-www-form-urlencoded",
            "Accept": "application/json",
        }
        form_data = token_request.to_form_data()

        logger.debug(
            f"Token request: grant_type={form_data['grant_type']}, "
            f"client_id={form_data['client_id']}"
        )

        try:
            response = await self._http_client.post(
                token_request.token_endpoint,
                data=form_data,
                headers=headers,
            )
        except httpx.HTTPError as e:
            raise TokenExchangeTransportError(
                f"HTTP error during token exchange: {e}"
            ) from e

        return self._parse_token_response(response)

    def _parse_token_response(self, response: httpx.Response) -> TokenResponse:
        """Parse the token endpoint response.

        Error responses (RFC 6749 Section 5.2) become transport errors
        carrying the provider's error code; success responses must contain a
        non-empty access_token.
        """
        if not response.is_success:
            detail = self._describe_error(response)
            logger.warning(
                f"Token exchange failed with {response.status_code}: {detail}"
            )
            raise TokenExchangeTransportError(
                f"Token endpoint returned {response.status_code}: {detail}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise TokenFieldMissing(
                f"Token response is not valid JSON, no access_token: {e}"
            ) from e

        if not isinstance(payload, dict):
            raise TokenFieldMissing("Token response is not a JSON object")

        access_token = payload.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise TokenFieldMissing("Token response missing required access_token")

        logger.info("Token exchange successful")
        return TokenResponse.from_payload(payload)

    @staticmethod
    def _describe_error(response: httpx.Response) -> str:
        try:
            payload: Any = response.json()
        except ValueError:
            return response.text or "no response body"

        if isinstance(payload, dict) and "error" in payload:
            description = payload.get("error_description", "No description provided")
            return f"{payload['error']} - {description}"
        return response.text or "no response body"

    async def close(self) -> None:
        """Close the HTTP client and clean up resources."""
        await self._http_client.aclose()
