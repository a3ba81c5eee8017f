"""
Sign-in nonce store.

Short-lived, single-consumer values: put() writes with a TTL, take() reads and
deletes in one step (GETDEL on Redis, a locked pop in memory), so a nonce is
handed out at most once even when two verifications race on it.

Redis is used when REDIS_HOST is set and reachable; otherwise entries live in
process memory, which is only correct for a single worker.
"""

import time
from threading import Lock
from typing import Dict, Optional, Tuple

from redis import Connection, ConnectionPool, Redis, SSLConnection
from redis.exceptions import RedisError

from app.core.config import settings

KEY_PREFIX = "siwe:nonce:"


def _build_pool(host: Optional[str], port: Optional[int]) -> Optional[ConnectionPool]:
    if not host or not host.strip():
        return None
    return ConnectionPool(
        host=host,
        port=port,
        socket_connect_timeout=0.05,
        socket_timeout=5,
        retry_on_timeout=False,
        max_connections=settings.REDIS_MAX_CONNECTIONS,
        connection_class=SSLConnection if settings.REDIS_SSL else Connection,
    )


class HybridNonceStore:
    def __init__(self, host: Optional[str] = None, port: Optional[int] = None):
        self.memory_store: Dict[str, Tuple[str, float]] = {}
        self._memory_lock = Lock()
        self._next_probe_at = 0.0
        self.redis_available = False
        self.pool = _build_pool(host, port)

    def redis_connect(self) -> Optional[Redis]:
        """Live client, or None while Redis is down (re-probed every REDIS_RECHECK_INTERVAL)"""
        if self.pool is None:
            return None
        if not self.redis_available and time.time() < self._next_probe_at:
            return None

        client = Redis(connection_pool=self.pool)
        try:
            alive = bool(client.ping())
        except RedisError:
            alive = False

        self.redis_available = alive
        if not alive:
            self._next_probe_at = time.time() + settings.REDIS_RECHECK_INTERVAL
            return None
        return client

    def put(self, key: str, value: str, ttl_seconds: int) -> None:
        ttl_seconds = max(int(ttl_seconds), 1)
        if not self._redis_set(KEY_PREFIX + key, value, ttl_seconds):
            self._memory_set(key, value, ttl_seconds)

    def take(self, key: str) -> Optional[str]:
        """Return and delete a value; None if absent or expired"""
        if not key:
            return None
        value = self._redis_getdel(KEY_PREFIX + key)
        if value is None:
            value = self._memory_pop(key)
        return value

    def clear(self) -> None:
        with self._memory_lock:
            self.memory_store.clear()

    def _redis_set(self, key: str, value: str, ttl_seconds: int) -> bool:
        client = self.redis_connect()
        if client is None:
            return False
        try:
            client.set(key, value.encode("utf-8"), ex=ttl_seconds)
        except RedisError:
            return False
        finally:
            client.close()
        return True

    def _redis_getdel(self, key: str) -> Optional[str]:
        client = self.redis_connect()
        if client is None:
            return None
        try:
            raw = client.getdel(key)
        except RedisError:
            return None
        finally:
            client.close()
        return raw.decode("utf-8") if raw else None

    def _memory_set(self, key: str, value: str, ttl_seconds: int) -> None:
        now = time.time()
        with self._memory_lock:
            # abandoned sign-ins would otherwise pile up
            for stale in [k for k, (_, expires_at) in self.memory_store.items() if expires_at <= now]:
                del self.memory_store[stale]
            self.memory_store[key] = (value, now + ttl_seconds)

    def _memory_pop(self, key: str) -> Optional[str]:
        with self._memory_lock:
            entry = self.memory_store.pop(key, None)
        if entry is None or entry[1] <= time.time():
            return None
        return entry[0]


# Global instance
nonce_store = HybridNonceStore(settings.REDIS_HOST, settings.REDIS_PORT)
