from __future__ import annotations

"""
Game-server notification over Redis.

    HSET territory_urls world "http://<endpoint>/gameTiles/world.map?t=<tag>"
    PUBLISH GeneralNotifications:GlobalCommands RefreshTerrityoryUrls

The command string is matched verbatim by the game servers.
"""

import secrets

import redis

from common.logging_setup import get_logger


log = get_logger("publish.notify")

URLS_KEY = "territory_urls"
NOTIFY_CHANNEL = "GeneralNotifications:GlobalCommands"
REFRESH_COMMAND = "RefreshTerrityoryUrls"


def world_map_url(endpoint: str, tag: int) -> str:
    # cache-busting tag so clients refetch after every publish
    return f"http://{endpoint}/gameTiles/world.map?t={tag}"


class UrlRegistry:
    """
    Params:
        client: Redis holding the territory_urls hash
        notify_client: Redis carrying the global command channel
        endpoint: host[:port] clients fetch artifacts from
    """

    def __init__(self, client: redis.Redis, notify_client: redis.Redis, endpoint: str):
        self.client = client
        self.notify_client = notify_client
        self.endpoint = endpoint

    def update_urls(self) -> bool:
        url = world_map_url(self.endpoint, secrets.randbits(31))
        try:
            self.client.hset(URLS_KEY, mapping={"world": url})
        except redis.RedisError as e:
            log.warning("Failed to update territory URLs", extra={"extra": {"error": str(e)}})
            return False
        return True

    def notify_changed(self) -> bool:
        try:
            self.notify_client.publish(NOTIFY_CHANNEL, REFRESH_COMMAND)
        except redis.RedisError as e:
            log.warning("Failed to publish refresh notification", extra={"extra": {"error": str(e)}})
            return False
        return True

    def announce(self) -> bool:
        """Register the URL, then signal consumers. Only signals if registration worked."""
        return self.update_urls() and self.notify_changed()
