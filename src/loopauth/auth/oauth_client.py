"""Loopback PKCE authorization flow orchestration.

Coordinates credentials, PKCE, the loopback listener, the browser, the token
exchange and the downstream resource call as one single-use state machine.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from loopauth.auth.models.errors import (
    BrowserLaunchFailure,
    CredentialPersistenceError,
    FlowStateError,
    OAuth2Error,
    ProviderDeniedAuthorization,
)
from loopauth.auth.models.flow import AuthorizationRequest, AuthorizationResult, FlowState
from loopauth.auth.models.resources import ResourceCollection, ResourceItem, ResourceRequest
from loopauth.auth.models.security import CredentialMaterial, PKCEParameters
from loopauth.auth.models.tokens import TokenRequest, TokenResponse
from loopauth.auth.primitives.pkce import PKCEManager
from loopauth.auth.services.browser import UrlLauncher, WebBrowserLauncher
from loopauth.auth.services.credentials import CredentialStore
from loopauth.auth.services.resources import ResourceClient
from loopauth.auth.services.tokens import TokenExchangeClient
from loopauth.config import FlowConfig
from loopauth.transport.loopback.listener import LoopbackAuthListener

logger = logging.getLogger(__name__)

ItemsConsumer = Callable[[list[ResourceItem]], Awaitable[None] | None]
ListenerFactory = Callable[[str, CredentialMaterial | None], LoopbackAuthListener]


class AuthorizationFlow:
    """Runs one authorization code + PKCE flow from browser to resource.

    The flow is a single coroutine, so every external completion (redirect,
    token response, resource response) is handled one at a time by the same
    owner. States advance
    ``INITIALIZING -> AWAITING_REDIRECT -> EXCHANGING_TOKEN ->
    FETCHING_RESOURCE -> COMPLETED``; any failure moves to ``ERRORED``.
    Nothing is retried; create a new instance to try again.

    Collaborators are injectable so tests can replace the network and the
    browser.
    """

    def __init__(
        self,
        config: FlowConfig,
        credential_store: CredentialStore | None = None,
        pkce_manager: PKCEManager | None = None,
        listener_factory: ListenerFactory | None = None,
        url_launcher: UrlLauncher | None = None,
        token_client: TokenExchangeClient | None = None,
        resource_client: ResourceClient | None = None,
        on_items: ItemsConsumer | None = None,
    ):
        self.config = config
        self.credential_store = credential_store or CredentialStore(
            config.key_path, config.cert_path, config.issuer
        )
        self.pkce_manager = pkce_manager or PKCEManager(
            verifier_length=config.verifier_length
        )
        self.listener_factory = listener_factory or LoopbackAuthListener
        self.url_launcher = url_launcher or WebBrowserLauncher()
        self.token_client = token_client or TokenExchangeClient(timeout=config.http_timeout)
        self.resource_client = resource_client or ResourceClient(
            timeout=config.http_timeout
        )
        self.on_items = on_items

        self._state = FlowState.INITIALIZING
        self._started = False
        self._error: OAuth2Error | None = None
        self._listener: LoopbackAuthListener | None = None
        self._pkce: PKCEParameters | None = None
        self._token: TokenResponse | None = None
        self.credentials: CredentialMaterial | None = None
        self.authorization_url: str | None = None

    @property
    def state(self) -> FlowState:
        return self._state

    @property
    def error(self) -> OAuth2Error | None:
        """The fatal error that ended the flow, if any."""
        return self._error

    def _transition(self, state: FlowState) -> None:
        logger.debug(f"Flow state {self._state.value} -> {state.value}")
        self._state = state

    # ================================
    # Run
    # ================================

    async def run(self) -> ResourceCollection:
        """Run the whole flow once.

        Returns:
            ResourceCollection: The page fetched with the new access token

        Raises:
            FlowStateError: If this instance already ran
            ProviderDeniedAuthorization: If the provider redirected with an error
            ListenerError: If the listener fails or the redirect wait times out
            TokenExchangeTransportError: If the token endpoint request fails
            TokenFieldMissing: If the token response has no access_token
            ResourceFetchTransportError: If the resource request fails
        """
        if self._started:
            raise FlowStateError("Authorization flow instances run only once")
        self._started = True

        try:
            collection = await self._run_steps()
        except OAuth2Error as e:
            self._fail(e)
            raise
        except asyncio.CancelledError:
            logger.warning("Authorization flow cancelled")
            self._transition(FlowState.ERRORED)
            raise
        except Exception as e:
            logger.error(f"Unexpected error in {self._state.value}: {e}")
            self._transition(FlowState.ERRORED)
            raise
        finally:
            self._pkce = None
            self._token = None
            await self._stop_listener()

        self._transition(FlowState.COMPLETED)
        logger.info("Authorization flow completed")
        return collection

    async def _run_steps(self) -> ResourceCollection:
        self.credentials = await self._ensure_credentials()
        self._pkce = self.pkce_manager.generate_parameters()
        self.authorization_url = self.build_authorization_url(self._pkce)

        self._listener = self.listener_factory(self.config.redirect_uri, self.credentials)
        await self._listener.start()
        self._transition(FlowState.AWAITING_REDIRECT)
        await self._launch_browser(self.authorization_url)

        result = await self._listener.wait_for_result(self.config.redirect_timeout)
        code = self._require_code(result)

        self._transition(FlowState.EXCHANGING_TOKEN)
        self._token = await self.exchange_code(code)

        self._transition(FlowState.FETCHING_RESOURCE)
        collection = await self.fetch_resource(self._token.access_token)
        await self._deliver_items(collection)
        return collection

    async def _ensure_credentials(self) -> CredentialMaterial | None:
        try:
            material = await asyncio.to_thread(self.credential_store.ensure_credentials)
        except CredentialPersistenceError as e:
            logger.warning(f"Continuing without credentials: {e}")
            return None
        if self.config.uses_tls and not material.can_serve_tls:
            logger.warning("TLS credentials are not on disk; the listener cannot use them")
        return material

    def _fail(self, error: OAuth2Error) -> None:
        self._error = error
        logger.error(f"Authorization flow failed in {self._state.value}: {error}")
        self._transition(FlowState.ERRORED)

    async def _stop_listener(self) -> None:
        if self._listener is None:
            return
        listener, self._listener = self._listener, None
        await listener.stop()

    # ================================
    # Steps
    # ================================

    def build_authorization_url(self, pkce: PKCEParameters) -> str:
        """Build the provider authorization URL for ``pkce``."""
        request = AuthorizationRequest(
            authorization_endpoint=self.config.authorization_endpoint,
            client_id=self.config.client_id,
            redirect_uri=self.config.redirect_uri,
            code_challenge=pkce.code_challenge,
            scope=self.config.scope,
            code_challenge_method=pkce.code_challenge_method,
        )
        return request.build_authorization_url()

    async def _launch_browser(self, url: str) -> None:
        try:
            await self.url_launcher.launch(url)
        except BrowserLaunchFailure as e:
            logger.warning(f"{e}. Open this URL to continue: {url}")

    @staticmethod
    def _require_code(result: AuthorizationResult) -> str:
        if result.is_error():
            raise ProviderDeniedAuthorization(result.error, result.error_description)
        return result.code

    async def exchange_code(self, code: str) -> TokenResponse:
        """Exchange ``code`` using the verifier generated for this flow."""
        if self._pkce is None:
            raise FlowStateError("No PKCE parameters; the flow has not started")

        token_request = TokenRequest(
            token_endpoint=self.config.token_endpoint,
            code=code,
            redirect_uri=self.config.redirect_uri,
            client_id=self.config.client_id,
            code_verifier=self._pkce.code_verifier,
        )
        try:
            return await self.token_client.exchange_code_for_token(token_request)
        finally:
            self._pkce = None

    async def fetch_resource(self, access_token: str) -> ResourceCollection:
        """Fetch one page of the resource collection with ``access_token``."""
        resource_request = ResourceRequest(
            resource_endpoint=self.config.resource_endpoint,
            access_token=access_token,
            limit=self.config.page_limit,
            offset=self.config.page_offset,
        )
        return await self.resource_client.fetch_resource(resource_request)

    async def _deliver_items(self, collection: ResourceCollection) -> None:
        if self.on_items is None:
            return
        outcome = self.on_items(collection.items)
        if asyncio.iscoroutine(outcome):
            await outcome

    async def close(self) -> None:
        """Close the HTTP clients owned by this flow."""
        await self.token_client.close()
        await self.resource_client.close()
