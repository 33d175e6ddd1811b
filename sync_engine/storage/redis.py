"""Redis-backed key-value store for cache entries and warm-start snapshots.

Several processes (or browser-less workers) sharing one Redis see the same
result-set cache and snapshots. Values are stored as JSON strings.
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar
from dataclasses import dataclass
import json
import math
import structlog

import redis.asyncio as redis

from .kv_store import KeyValueStore

T = TypeVar("T")


@dataclass
class RedisConfig:
    """Redis connection settings."""
    url: str
    max_connections: int = 20
    socket_timeout: float = 5.0
    retry_on_timeout: bool = True


class RedisKeyValueStore(KeyValueStore):
    """
    ``KeyValueStore`` over ``redis.asyncio``.

    Connects lazily on first use. TTLs are rounded up to whole seconds
    because ``SET ... EX`` only accepts integers. A stored value that is not
    valid JSON reads as missing.
    """

    def __init__(self, config: RedisConfig | str, client: Optional[redis.Redis] = None):
        self.config = RedisConfig(url=config) if isinstance(config, str) else config
        self.logger = structlog.get_logger("redis-kv-store")
        self.client: Optional[redis.Redis] = client

    @property
    def is_connected(self) -> bool:
        return self.client is not None

    async def connect(self) -> redis.Redis:
        if self.client is None:
            client = redis.from_url(
                self.config.url,
                decode_responses=True,
                max_connections=self.config.max_connections,
                socket_timeout=self.config.socket_timeout,
                retry_on_timeout=self.config.retry_on_timeout,
            )
            await client.ping()
            self.client = client
            self.logger.info("Connected to Redis", url=self.config.url)
        return self.client

    async def close(self) -> None:
        if self.client is not None:
            await self.client.aclose()
            self.client = None
            self.logger.info("Disconnected from Redis")

    async def _run(self, operation: str, call: Callable[[redis.Redis], Awaitable[T]], **log_context) -> T:
        client = await self.connect()
        try:
            return await call(client)
        except redis.RedisError as e:
            self.logger.error("Redis operation failed", operation=operation, error=str(e), **log_context)
            raise

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        raw = await self._run("get", lambda c: c.get(key), key=key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            self.logger.warning("Ignoring undecodable value", key=key, error=str(e))
            return None

    async def put(self, key: str, value: Dict[str, Any], ttl: Optional[float] = None) -> None:
        expiry = int(math.ceil(ttl)) if ttl else None
        payload = json.dumps(value, default=str)
        await self._run("set", lambda c: c.set(key, payload, ex=expiry), key=key)
        self.logger.debug("Value stored", key=key, ttl=expiry)

    async def delete(self, key: str) -> int:
        return int(await self._run("delete", lambda c: c.delete(key), key=key))

    async def keys(self, pattern: str = "*") -> List[str]:
        async def scan(client: redis.Redis) -> List[str]:
            return [key async for key in client.scan_iter(match=pattern)]

        return await self._run("scan", scan, pattern=pattern)
