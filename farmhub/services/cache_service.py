"""
Response cache with a redis primary and an in-process fallback

Redis is used while it answers; the first connection or command failure
switches the service to the memory backend for the rest of the process,
logged once as a warning. Callers see the same behaviour from either
backend and cache failures never propagate to them.
"""
import asyncio
import json
import logging
import re
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from redis import asyncio as aioredis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

KEY_PREFIX = "cache:"


def normalize_pattern(pattern: str) -> str:
    """'/api/reports' -> 'cache:/api/reports*'"""
    pattern = pattern.strip()
    if not pattern.startswith(KEY_PREFIX):
        pattern = f"{KEY_PREFIX}{pattern}"
    if not pattern.endswith("*"):
        pattern = f"{pattern}*"
    return pattern


def pattern_to_regex(pattern: str) -> str:
    """Wildcard to regex: '*' becomes '.*', everything else is literal"""
    return "^" + ".*".join(re.escape(part) for part in pattern.split("*")) + "$"


def pattern_to_glob(pattern: str) -> str:
    """Redis MATCH pattern with only '*' left special"""
    return re.sub(r"([?\[\]\\])", r"\\\1", pattern)


def farm_pattern(pattern: str, farm_id) -> str:
    """
    Restrict a pattern to one farm's entries

    '/api/reports' -> 'cache:/api/reports*:farm=<farm_id>'
    """
    return f"{normalize_pattern(pattern)}:farm={farm_id}"


class BaseBackend(ABC):
    """Abstract base class for cache backends."""

    name = "base"

    @abstractmethod
    async def get(self, key: str) -> Any:
        """Cached value or None"""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        """Store value, expiring after ttl_seconds when given"""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """True when the key existed"""

    @abstractmethod
    async def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching a '*' wildcard pattern; returns the count"""

    @abstractmethod
    async def exists(self, key: str) -> bool:
        pass

    @abstractmethod
    async def expire(self, key: str, ttl_seconds: int) -> bool:
        pass

    @abstractmethod
    async def ttl(self, key: str) -> int:
        """Seconds left; -1 without expiry, -2 when missing"""

    @abstractmethod
    async def increment(self, key: str, amount: int = 1) -> int:
        pass

    @abstractmethod
    async def keys(self, pattern: str = "*") -> List[str]:
        pass


class MemoryBackend(BaseBackend):
    """
    In-process map of key -> (value, expires_at). Expired entries are
    dropped when read and by cleanup(), which the app runs periodically.
    """

    name = "memory"

    def __init__(self):
        self._store: Dict[str, Tuple[Any, Optional[float]]] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _alive(entry: Tuple[Any, Optional[float]], now: float) -> bool:
        return entry[1] is None or entry[1] > now

    def _entry(self, key: str) -> Optional[Tuple[Any, Optional[float]]]:
        # Caller holds the lock
        entry = self._store.get(key)
        if entry is None:
            return None
        if not self._alive(entry, time.monotonic()):
            del self._store[key]
            return None
        return entry

    async def get(self, key: str) -> Any:
        with self._lock:
            entry = self._entry(key)
            return entry[0] if entry else None

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        expires_at = time.monotonic() + ttl_seconds if ttl_seconds else None
        with self._lock:
            self._store[key] = (value, expires_at)

    async def delete(self, key: str) -> bool:
        with self._lock:
            return self._store.pop(key, None) is not None

    async def delete_pattern(self, pattern: str) -> int:
        matcher = re.compile(pattern_to_regex(pattern))
        with self._lock:
            doomed = [key for key in self._store if matcher.match(key)]
            for key in doomed:
                del self._store[key]
        return len(doomed)

    async def exists(self, key: str) -> bool:
        with self._lock:
            return self._entry(key) is not None

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        with self._lock:
            entry = self._entry(key)
            if entry is None:
                return False
            self._store[key] = (entry[0], time.monotonic() + ttl_seconds)
            return True

    async def ttl(self, key: str) -> int:
        with self._lock:
            entry = self._entry(key)
            if entry is None:
                return -2
            if entry[1] is None:
                return -1
            return max(0, int(entry[1] - time.monotonic()))

    async def increment(self, key: str, amount: int = 1) -> int:
        with self._lock:
            entry = self._entry(key)
            current = int(entry[0]) if entry else 0
            value = current + amount
            self._store[key] = (value, entry[1] if entry else None)
            return value

    async def keys(self, pattern: str = "*") -> List[str]:
        matcher = re.compile(pattern_to_regex(pattern))
        with self._lock:
            now = time.monotonic()
            return sorted(
                key
                for key, entry in self._store.items()
                if self._alive(entry, now) and matcher.match(key)
            )

    def cleanup(self) -> int:
        now = time.monotonic()
        with self._lock:
            expired = [key for key, entry in self._store.items() if not self._alive(entry, now)]
            for key in expired:
                del self._store[key]
        if expired:
            logger.debug(f"Cache cleanup removed {len(expired)} expired entries")
        return len(expired)


class RedisBackend(BaseBackend):
    """Values are stored as JSON strings"""

    name = "redis"

    def __init__(self, url: str):
        self.client = aioredis.from_url(url, decode_responses=True)

    async def ping(self) -> bool:
        return bool(await self.client.ping())

    async def get(self, key: str) -> Any:
        raw = await self.client.get(key)
        return json.loads(raw) if raw is not None else None

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        await self.client.set(key, json.dumps(value), ex=ttl_seconds or None)

    async def delete(self, key: str) -> bool:
        return bool(await self.client.delete(key))

    async def delete_pattern(self, pattern: str) -> int:
        keys = [key async for key in self.client.scan_iter(match=pattern_to_glob(pattern))]
        if not keys:
            return 0
        return int(await self.client.delete(*keys))

    async def exists(self, key: str) -> bool:
        return bool(await self.client.exists(key))

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        return bool(await self.client.expire(key, ttl_seconds))

    async def ttl(self, key: str) -> int:
        return int(await self.client.ttl(key))

    async def increment(self, key: str, amount: int = 1) -> int:
        return int(await self.client.incrby(key, amount))

    async def keys(self, pattern: str = "*") -> List[str]:
        return sorted([key async for key in self.client.scan_iter(match=pattern_to_glob(pattern))])

    async def close(self) -> None:
        await self.client.aclose()


class CacheService:
    """Facade over the active backend"""

    def __init__(self, redis_url: Optional[str] = None, default_ttl_seconds: int = 600):
        self.default_ttl_seconds = default_ttl_seconds
        self.memory = MemoryBackend()
        self.redis: Optional[RedisBackend] = RedisBackend(redis_url) if redis_url else None
        self._redis_available = self.redis is not None
        self._cleanup_task: Optional[asyncio.Task] = None

    @property
    def redis_available(self) -> bool:
        return self._redis_available

    @property
    def backend(self) -> BaseBackend:
        return self.redis if self._redis_available else self.memory

    def _downgrade(self, exc: Exception) -> None:
        if self._redis_available:
            self._redis_available = False
            logger.warning(f"Redis unavailable, falling back to in-memory cache: {exc}")

    async def _call(self, op: str, *args, default: Any = None) -> Any:
        if self._redis_available:
            try:
                return await getattr(self.redis, op)(*args)
            except (RedisError, OSError) as exc:
                self._downgrade(exc)
        try:
            return await getattr(self.memory, op)(*args)
        except Exception as exc:
            logger.error(f"Cache {op} failed: {exc}")
            return default

    # -------------------------
    # LIFECYCLE
    # -------------------------
    async def connect(self) -> None:
        if self.redis is None:
            logger.info("Cache backend: memory (REDIS_URL not set)")
            return
        try:
            await self.redis.ping()
            logger.info("Cache backend: redis")
        except (RedisError, OSError) as exc:
            self._downgrade(exc)

    async def close(self) -> None:
        self.stop_cleanup()
        if self.redis is not None:
            try:
                await self.redis.close()
            except (RedisError, OSError) as exc:
                logger.debug(f"Redis close failed: {exc}")

    def start_cleanup(self, interval_seconds: int) -> None:
        if self._cleanup_task is None and interval_seconds > 0:
            self._cleanup_task = asyncio.create_task(self._cleanup_loop(interval_seconds))

    def stop_cleanup(self) -> None:
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            self._cleanup_task = None

    async def _cleanup_loop(self, interval_seconds: int) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            self.memory.cleanup()

    # -------------------------
    # OPERATIONS
    # -------------------------
    async def get(self, key: str) -> Any:
        return await self._call("get", key)

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        ttl = ttl_seconds if ttl_seconds is not None else self.default_ttl_seconds
        await self._call("set", key, value, ttl)

    async def delete(self, key: str) -> bool:
        return bool(await self._call("delete", key, default=False))

    async def delete_pattern(self, pattern: str) -> int:
        deleted = int(await self._call("delete_pattern", pattern, default=0) or 0)
        logger.info(f"Cache invalidated {deleted} keys matching {pattern}")
        return deleted

    async def invalidate(self, pattern: str, farm_id=None) -> int:
        """Delete entries under pattern; with farm_id, only that farm's entries"""
        if farm_id is not None:
            return await self.delete_pattern(farm_pattern(pattern, farm_id))
        return await self.delete_pattern(normalize_pattern(pattern))

    async def exists(self, key: str) -> bool:
        return bool(await self._call("exists", key, default=False))

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        return bool(await self._call("expire", key, ttl_seconds, default=False))

    async def ttl(self, key: str) -> int:
        return int(await self._call("ttl", key, default=-2))

    async def increment(self, key: str, amount: int = 1) -> Optional[int]:
        return await self._call("increment", key, amount)

    async def stats(self, farm_id=None) -> Dict[str, Any]:
        pattern = f"{KEY_PREFIX}*" if farm_id is None else farm_pattern("", farm_id)
        keys = await self._call("keys", pattern, default=[]) or []
        return {
            "backend": self.backend.name,
            "redisConfigured": self.redis is not None,
            "redisAvailable": self._redis_available,
            "keyCount": len(keys),
            "keys": keys,
        }
