"""Redis-backed local cache for the connection snapshot and schema marker."""

import json
import logging
from typing import Optional, Any, List

import redis

from appconnect.core.config import settings

logger = logging.getLogger("appconnect.cache")


class CacheService:
    """Durable, synchronous local image of the registry.

    Three independent entries: the connection list, the connected-id set and
    the schema version marker. Keys are namespaced with ``prefix``.
    """

    CONNECTIONS_KEY = "connections"
    CONNECTED_IDS_KEY = "connected_ids"
    VERSION_KEY = "schema_version"

    def __init__(self, client: Optional[redis.Redis] = None, prefix: Optional[str] = None):
        self._client = client
        self.prefix = prefix or settings.CACHE_KEY_PREFIX

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(
                settings.REDIS_URL,
                decode_responses=True,
            )
        return self._client

    def key(self, name: str) -> str:
        return f"{self.prefix}:{name}"

    def get(self, name: str) -> Optional[str]:
        """Get a cached value by key."""
        try:
            return self.client.get(self.key(name))
        except redis.RedisError as e:
            logger.warning("Local cache read failed for %s: %s", name, e)
            return None

    def set(self, name: str, value: str) -> None:
        """Set a value with no expiry."""
        try:
            self.client.set(self.key(name), value)
        except redis.RedisError as e:
            logger.warning("Local cache write failed for %s: %s", name, e)

    def delete(self, *names: str) -> None:
        try:
            self.client.delete(*(self.key(n) for n in names))
        except redis.RedisError as e:
            logger.warning("Local cache delete failed for %s: %s", ", ".join(names), e)

    def get_json(self, name: str) -> Optional[Any]:
        """Get and parse a JSON cached value. Corrupt values read as missing."""
        raw = self.get(name)
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Discarding corrupt local cache entry %s", name)
            return None

    def set_json(self, name: str, value: Any) -> None:
        self.set(name, json.dumps(value, default=str))

    # ---- snapshot entries ----
    def load_connections(self) -> List[Any]:
        data = self.get_json(self.CONNECTIONS_KEY)
        return data if isinstance(data, list) else []

    def save_connections(self, connections: List[Any]) -> None:
        self.set_json(self.CONNECTIONS_KEY, connections)

    def load_connected_ids(self) -> List[str]:
        data = self.get_json(self.CONNECTED_IDS_KEY)
        return [str(i) for i in data] if isinstance(data, list) else []

    def save_connected_ids(self, ids: List[str]) -> None:
        self.set_json(self.CONNECTED_IDS_KEY, sorted(ids))

    def clear_snapshot(self) -> None:
        """Drop both snapshot entries; the version marker is left alone."""
        self.delete(self.CONNECTIONS_KEY, self.CONNECTED_IDS_KEY)

    def get_version(self) -> Optional[str]:
        return self.get(self.VERSION_KEY)

    def set_version(self, version: str) -> None:
        self.set(self.VERSION_KEY, version)

    def health_check(self) -> bool:
        """Check if Redis is reachable."""
        try:
            return self.client.ping()
        except redis.RedisError:
            return False


cache_service = CacheService()
