from collections.abc import Iterator

import pytest

from loopauth.auth.models.errors import BrowserLaunchFailure, ListenerError
from loopauth.auth.models.flow import AuthorizationResult
from loopauth.auth.models.security import CredentialMaterial
from loopauth.auth.primitives.randomness import RandomnessSource
from loopauth.config import FlowConfig


class FixedRandomness(RandomnessSource):
    """Randomness source that replays prepared byte sequences."""

    def __init__(self, *sequences: bytes):
        self._sequences: Iterator[bytes] = iter(sequences)
        self.requests: list[int] = []

    def generate_random_bytes(self, n: int) -> bytes:
        self.requests.append(n)
        return next(self._sequences)[:n]


class RecordingLauncher:
    """URL launcher that records URLs instead of opening a browser."""

    def __init__(self, fail: bool = False):
        self.launched: list[str] = []
        self.fail = fail

    async def launch(self, url: str) -> None:
        self.launched.append(url)
        if self.fail:
            raise BrowserLaunchFailure("No browser available to open the URL")


class FakeListener:
    """In-memory listener returning a prepared authorization result."""

    def __init__(
        self,
        redirect_uri: str,
        credentials: CredentialMaterial | None = None,
        result: AuthorizationResult | None = None,
        wait_error: Exception | None = None,
    ):
        self.redirect_uri = redirect_uri
        self.credentials = credentials
        self.result = result
        self.wait_error = wait_error
        self.start_calls = 0
        self.stop_calls = 0
        self.wait_timeouts: list[float | None] = []

    async def start(self) -> None:
        self.start_calls += 1

    async def stop(self) -> None:
        self.stop_calls += 1

    async def wait_for_result(self, timeout: float | None = None) -> AuthorizationResult:
        self.wait_timeouts.append(timeout)
        if self.wait_error is not None:
            raise self.wait_error
        if self.result is None:
            raise ListenerError("No result prepared")
        return self.result


@pytest.fixture
def flow_config(tmp_path) -> FlowConfig:
    return FlowConfig(
        client_id="client-123",
        client_secret="unused-secret",
        redirect_uri="http://localhost:3000/callback",
        scopes=["user-library-read"],
        key_path=tmp_path / "generated_key.pem",
        cert_path=tmp_path / "generated_certificate.crt",
    )
