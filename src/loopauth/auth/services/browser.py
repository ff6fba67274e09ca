"""Opening the authorization URL in the user's browser."""

from __future__ import annotations

import asyncio
import logging
import webbrowser
from typing import Protocol

from loopauth.auth.models.errors import BrowserLaunchFailure

logger = logging.getLogger(__name__)


class UrlLauncher(Protocol):
    """Protocol for sending the user to the authorization URL.

    Allows different strategies:
    - System default browser
    - Recording launcher for tests
    - Custom UI integration
    """

    async def launch(self, url: str) -> None:
        """Open ``url`` for the user.

        Raises:
            BrowserLaunchFailure: If the URL could not be opened
        """
        ...


class WebBrowserLauncher:
    """Opens URLs with the :mod:`webbrowser` module off the event loop."""

    def __init__(self, new: int = 2):
        # 2 asks for a new tab where the browser supports it
        self.new = new

    async def launch(self, url: str) -> None:
        try:
            opened = await asyncio.to_thread(webbrowser.open, url, self.new)
        except webbrowser.Error as e:
            raise BrowserLaunchFailure(f"Could not open browser: {e}") from e

        if not opened:
            raise BrowserLaunchFailure("No browser available to open the URL")

        logger.debug("Opened authorization URL in the system browser")
