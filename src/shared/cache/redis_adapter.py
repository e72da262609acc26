"""Redis-backed key-value store.

Uses redis-py with socket timeouts so a slow or unreachable server turns
into a ``CacheError`` (a cache miss upstream) instead of a hung request.
Pattern deletion walks the keyspace with ``SCAN`` and removes matches in
pipelined batches; ``KEYS`` is never used.
"""

import redis
import structlog

from shared.cache.port import CacheError, KeyValueStore

logger = structlog.get_logger(__name__)

SCAN_COUNT = 100


class RedisKeyValueStore(KeyValueStore):
    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        timeout_seconds: float = 2.0,
        client: redis.Redis | None = None,
    ) -> None:
        self.redis_url = redis_url
        self._client = client or redis.Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=timeout_seconds,
            socket_timeout=timeout_seconds,
        )

    @property
    def client(self) -> redis.Redis:
        return self._client

    def get(self, key: str) -> str | None:
        try:
            return self._client.get(key)
        except redis.RedisError as exc:
            raise CacheError(f"Redis GET failed for {key}: {exc}") from exc

    def set(self, key: str, value: str, ttl_seconds: int) -> bool:
        try:
            return bool(self._client.setex(key, ttl_seconds, value))
        except redis.RedisError as exc:
            raise CacheError(f"Redis SETEX failed for {key}: {exc}") from exc

    def delete(self, key: str) -> bool:
        try:
            return self._client.delete(key) > 0
        except redis.RedisError as exc:
            raise CacheError(f"Redis DEL failed for {key}: {exc}") from exc

    def _delete_batch(self, keys: list[str]) -> int:
        pipe = self._client.pipeline(transaction=False)
        for key in keys:
            pipe.delete(key)
        return sum(int(result or 0) for result in pipe.execute())

    def scan_delete(self, pattern: str, batch_size: int = 500) -> int:
        deleted = 0
        batch: list[str] = []
        try:
            for key in self._client.scan_iter(match=pattern, count=SCAN_COUNT):
                batch.append(key)
                if len(batch) >= batch_size:
                    deleted += self._delete_batch(batch)
                    batch = []
            if batch:
                deleted += self._delete_batch(batch)
        except redis.RedisError as exc:
            raise CacheError(f"Redis SCAN/DEL failed for pattern {pattern}: {exc}") from exc

        logger.debug("Pattern keys deleted", pattern=pattern, deleted=deleted)
        return deleted

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except redis.RedisError as exc:
            raise CacheError(f"Redis PING failed: {exc}") from exc
