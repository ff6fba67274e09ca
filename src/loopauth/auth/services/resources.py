"""Bearer-authenticated access to the downstream resource endpoint."""

from __future__ import annotations

import logging

import httpx
from pydantic import ValidationError

from loopauth.auth.models.errors import ResourceFetchTransportError
from loopauth.auth.models.resources import ResourceCollection, ResourceRequest

logger = logging.getLogger(__name__)


class ResourceClient:
    """Fetches one page of the user's saved items with an access token."""

    def __init__(self, timeout: float = 30.0):
        self.timeout = timeout
        self._http_client = httpx.AsyncClient(timeout=timeout)

    async def fetch_resource(
        self, resource_request: ResourceRequest
    ) -> ResourceCollection:
        """Fetch one page from the resource endpoint.

        Args:
            resource_request: Endpoint, token and paging parameters

        Returns:
            ResourceCollection: The decoded paging object

        Raises:
            ResourceFetchTransportError: If the request fails, the endpoint
                answers with a non-success status, or the body has no items
        """
        logger.debug(
            f"Fetching {resource_request.resource_endpoint} "
            f"(limit={resource_request.limit}, offset={resource_request.offset})"
        )

        try:
            response = await self._http_client.get(
                resource_request.resource_endpoint,
                params=resource_request.to_query_params(),
                headers=resource_request.to_headers(),
            )
        except httpx.HTTPError as e:
            raise ResourceFetchTransportError(
                f"HTTP error fetching resource: {e}"
            ) from e

        if not response.is_success:
            raise ResourceFetchTransportError(
                f"Could not fetch resource, response code: {response.status_code}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise ResourceFetchTransportError(
                f"Resource response is not valid JSON: {e}",
                status_code=response.status_code,
            ) from e

        if not isinstance(payload, dict) or not isinstance(payload.get("items"), list):
            raise ResourceFetchTransportError(
                "Resource response has no items array",
                status_code=response.status_code,
            )

        try:
            collection = ResourceCollection.model_validate(payload)
        except ValidationError as e:
            raise ResourceFetchTransportError(
                f"Invalid resource response format: {e}",
                status_code=response.status_code,
            ) from e

        logger.info(f"Fetched {len(collection)} items")
        return collection

    async def close(self) -> None:
        """Close the HTTP client and clean up resources."""
        await self._http_client.aclose()
