"""One-shot loopback HTTP server that captures the provider redirect."""

from __future__ import annotations

import asyncio
import logging
import socket
from enum import Enum
from types import TracebackType
from typing import Self
from urllib.parse import urlsplit

import uvicorn
from starlette.applications import Starlette
from starlette.background import BackgroundTask
from starlette.requests import Request
from starlette.responses import HTMLResponse, Response
from starlette.routing import Route

from loopauth.auth.models.errors import ListenerError, ListenerTimeoutError
from loopauth.auth.models.flow import AuthorizationResult
from loopauth.auth.models.security import CredentialMaterial

logger = logging.getLogger(__name__)

CONFIRMATION_PAGE = "<html><body> You can close this window now </body></html>"


class ListenerState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    REQUEST_RECEIVED = "request_received"
    STOPPED = "stopped"


class LoopbackAuthListener:
    """Local server bound to the redirect URI that accepts one callback.

    The first request to the callback path resolves the authorization
    result; every request, including later ones, gets the same confirmation
    page so the browser tab never hangs. The server keeps running until
    :meth:`stop` is called, which the flow does once all work is finished.

    When the redirect URI uses ``https`` the listener terminates TLS with the
    persisted self-signed credentials.
    """

    def __init__(
        self,
        redirect_uri: str,
        credentials: CredentialMaterial | None = None,
        startup_timeout: float = 5.0,
    ) -> None:
        parsed = urlsplit(redirect_uri)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            raise ListenerError(f"Unsupported redirect URI: {redirect_uri}")

        self.redirect_uri = redirect_uri
        self.scheme = parsed.scheme
        self.host = "127.0.0.1" if parsed.hostname == "localhost" else parsed.hostname
        self.callback_path = parsed.path or "/"
        if parsed.port is not None:
            self._requested_port = parsed.port
        else:
            self._requested_port = 443 if parsed.scheme == "https" else 80
        self.credentials = credentials
        self.startup_timeout = startup_timeout

        self._state = ListenerState.IDLE
        self._app = Starlette(
            routes=[Route(self.callback_path, self._handle_callback, methods=["GET"])]
        )
        self._socket: socket.socket | None = None
        self._server: uvicorn.Server | None = None
        self._serve_task: asyncio.Task[None] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._result: asyncio.Future[AuthorizationResult] | None = None
        self._request_handled = False

    @property
    def state(self) -> ListenerState:
        return self._state

    @property
    def port(self) -> int:
        """Port the listener is bound to, or the requested one before start."""
        if self._socket is not None:
            return self._socket.getsockname()[1]
        return self._requested_port

    # ================================
    # Lifecycle
    # ================================

    async def start(self) -> None:
        """Bind the redirect address and start serving.

        Raises:
            ListenerError: If the listener was already started, TLS material
                is unusable, or the address cannot be bound
        """
        if self._state is not ListenerState.IDLE:
            raise ListenerError(f"Listener cannot start from state {self._state.value}")

        ssl_options: dict[str, str] = {}
        if self.scheme == "https":
            if self.credentials is None or not self.credentials.can_serve_tls:
                raise ListenerError(
                    "HTTPS redirect URI requires persisted key and certificate"
                )
            ssl_options = {
                "ssl_keyfile": str(self.credentials.key_path),
                "ssl_certfile": str(self.credentials.cert_path),
            }

        try:
            self._socket = socket.create_server((self.host, self._requested_port))
        except OSError as e:
            raise ListenerError(
                f"Could not bind {self.host}:{self._requested_port}: {e}"
            ) from e

        self._loop = asyncio.get_running_loop()
        self._result = self._loop.create_future()

        config = uvicorn.Config(
            app=self._app,
            log_config=None,
            log_level="warning",
            access_log=False,
            lifespan="off",
            **ssl_options,
        )
        self._server = uvicorn.Server(config)
        self._serve_task = asyncio.create_task(
            self._server.serve(sockets=[self._socket]), name="loopback-listener"
        )

        try:
            await self._wait_until_started()
        except ListenerError:
            await self._release()
            self._state = ListenerState.STOPPED
            raise

        self._state = ListenerState.LISTENING
        logger.info(
            f"Listening for authorization redirect on "
            f"{self.scheme}://{self.host}:{self.port}{self.callback_path}"
        )

    async def _wait_until_started(self) -> None:
        elapsed = 0.0
        while not self._server.started:
            if self._serve_task.done():
                error = self._serve_task.exception()
                raise ListenerError(f"Listener failed to start: {error}") from error
            if elapsed >= self.startup_timeout:
                raise ListenerError("Listener did not start in time")
            await asyncio.sleep(0.01)
            elapsed += 0.01

    async def stop(self) -> None:
        """Stop serving and release the socket.

        Safe to call multiple times and before :meth:`start`.
        """
        if self._state in (ListenerState.IDLE, ListenerState.STOPPED):
            return

        await self._release()
        self._state = ListenerState.STOPPED

        if self._result is not None and not self._result.done():
            self._result.cancel()

        logger.debug("Loopback listener stopped")

    async def _release(self) -> None:
        if self._server is not None:
            self._server.should_exit = True
        if self._serve_task is not None:
            try:
                await self._serve_task
            except Exception as e:
                logger.warning(f"Loopback server exited with error: {e}")
            self._serve_task = None
        if self._socket is not None:
            self._socket.close()
            self._socket = None

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.stop()
        return None

    # ================================
    # Result hand-off
    # ================================

    async def wait_for_result(self, timeout: float | None = None) -> AuthorizationResult:
        """Wait for the redirect and return its result.

        Args:
            timeout: Seconds to wait, or None to wait indefinitely

        Raises:
            ListenerError: If the listener is not running
            ListenerTimeoutError: If no redirect arrives within ``timeout``
        """
        if self._result is None:
            raise ListenerError("Listener has not been started")
        if self._result.cancelled():
            raise ListenerError("Listener stopped before a redirect arrived")

        try:
            return await asyncio.wait_for(asyncio.shield(self._result), timeout)
        except asyncio.TimeoutError as e:
            raise ListenerTimeoutError(
                f"No authorization redirect received within {timeout} seconds"
            ) from e
        except asyncio.CancelledError:
            # stop() cancelled the pending result, not this waiter
            task = asyncio.current_task()
            if self._result.cancelled() and task is not None and not task.cancelling():
                raise ListenerError("Listener stopped before a redirect arrived") from None
            raise

    def _deliver(self, result: AuthorizationResult) -> None:
        """Hand the result to the waiting flow; callable from any thread."""
        self._loop.call_soon_threadsafe(self._set_result, result)

    def _set_result(self, result: AuthorizationResult) -> None:
        if self._result is not None and not self._result.done():
            self._result.set_result(result)

    # ================================
    # Request handling
    # ================================

    async def _handle_callback(self, request: Request) -> Response:
        if self._request_handled:
            logger.warning("Ignoring additional request to the callback endpoint")
            return HTMLResponse(CONFIRMATION_PAGE)

        self._request_handled = True
        self._state = ListenerState.REQUEST_RECEIVED
        result = self._parse_query(request)

        if result.is_error():
            logger.error(f"Error on requesting user auth code: {result.error}")
        else:
            logger.info("Received authorization code")

        return HTMLResponse(
            CONFIRMATION_PAGE, background=BackgroundTask(self._deliver, result)
        )

    @staticmethod
    def _parse_query(request: Request) -> AuthorizationResult:
        params = request.query_params
        error = params.get("error")
        if error:
            return AuthorizationResult(
                error=error, error_description=params.get("error_description")
            )

        code = params.get("code")
        if code:
            return AuthorizationResult(code=code)

        return AuthorizationResult(
            error="missing_code",
            error_description="Redirect carried neither code nor error",
        )
