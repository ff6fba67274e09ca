"""
Log in with the system browser and print your saved tracks.

You'll need to set the LOOPAUTH_CLIENT_ID environment variable (a .env file
works too) and register LOOPAUTH_REDIRECT_URI, by default
http://localhost:3000/callback, with your app.

Web API: https://developer.spotify.com/documentation/web-api
"""

import asyncio
import logging

from loopauth.auth.models.errors import OAuth2Error
from loopauth.auth.models.resources import ResourceItem
from loopauth.auth.oauth_client import AuthorizationFlow
from loopauth.config import FlowConfig


def print_tracks(items: list[ResourceItem]) -> None:
    for item in items:
        track = item.track or {}
        artists = ", ".join(artist.get("name", "?") for artist in track.get("artists", []))
        print(f"{item.added_at}  {track.get('name', '<unknown>')} - {artists}")


async def main() -> int:
    config = FlowConfig.from_env()
    flow = AuthorizationFlow(config, on_items=print_tracks)
    try:
        collection = await flow.run()
    except OAuth2Error as e:
        logging.error(f"Login failed: {e}")
        return 1
    finally:
        await flow.close()

    if collection.total is not None:
        print(f"\nShowing {len(collection)} of {collection.total} saved tracks")
    return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    raise SystemExit(asyncio.run(main()))
