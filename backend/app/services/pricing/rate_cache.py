"""Expiring cache for provider search results and hotel metadata.

Entries expire lazily: ``get`` never returns an entry past its ``expires_at``
even if it is still physically stored. ``evict_expired`` is the physical
sweep, run on a schedule.
"""

import hashlib
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta, timezone
from typing import Any

import redis.asyncio as redis

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

KEY_PREFIX_SEARCH = "tbo:search"
KEY_PREFIX_HOTEL = "tbo:hotel"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CacheEntry:
    key: str
    payload: Any
    created_at: datetime
    expires_at: datetime
    hit_count: int = 0

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


def _canonical(value: Any) -> Any:
    """Reduce search params to an ordering-independent, JSON-safe form.

    Mappings are key-sorted by the JSON encoder; every sequence is treated as
    a set of values (hotel codes, rooms) and sorted by its encoded form.
    """
    if isinstance(value, dict):
        return {str(k): _canonical(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        items = [_canonical(v) for v in value]
        return sorted(items, key=lambda v: json.dumps(v, sort_keys=True))
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, str):
        return value.strip()
    return value


def cache_key(params: dict, prefix: str = KEY_PREFIX_SEARCH) -> str:
    encoded = json.dumps(_canonical(params), sort_keys=True, separators=(",", ":"), default=str)
    digest = hashlib.sha256(encoded.encode("utf-8")).hexdigest()
    return f"{prefix}:{digest}"


class RateCache(ABC):
    """Advisory cache — callers must treat any failure as a miss."""

    def key(self, params: dict, prefix: str = KEY_PREFIX_SEARCH) -> str:
        return cache_key(params, prefix)

    @abstractmethod
    async def get(self, key: str) -> CacheEntry | None:
        raise NotImplementedError

    @abstractmethod
    async def put(self, key: str, payload: Any, ttl: int) -> None:
        raise NotImplementedError

    @abstractmethod
    async def evict_expired(self) -> int:
        raise NotImplementedError

    async def close(self) -> None:
        return None


def _check_ttl(ttl: int) -> None:
    if ttl <= 0:
        raise ValueError(f"Cache TTL must be positive, got {ttl}")


class InMemoryRateCache(RateCache):
    """Process-local cache.

    All mutations happen between awaits on the event loop, so readers never
    see a half-written entry and a sweep never races a ``put``.
    """

    backend = "memory"

    def __init__(self, clock: Clock = utcnow):
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            return None
        entry = replace(entry, hit_count=entry.hit_count + 1)
        self._entries[key] = entry
        return entry

    async def put(self, key: str, payload: Any, ttl: int) -> None:
        _check_ttl(ttl)
        now = self._clock()
        self._entries[key] = CacheEntry(
            key=key,
            payload=payload,
            created_at=now,
            expires_at=now + timedelta(seconds=ttl),
        )

    async def evict_expired(self) -> int:
        now = self._clock()
        removed = 0
        for key, entry in list(self._entries.items()):
            if entry.expires_at < now and self._entries.get(key) is entry:
                del self._entries[key]
                removed += 1
        return removed


class RedisRateCache(RateCache):
    """Redis-backed cache; each entry is one hash written in a MULTI block."""

    backend = "redis"

    def __init__(self, url: str, namespace: str = "ratecache", clock: Clock = utcnow):
        self._url = url
        self._namespace = namespace
        self._clock = clock
        self._redis: redis.Redis | None = None

    async def _get_redis(self) -> redis.Redis | None:
        if self._redis is None:
            try:
                self._redis = redis.from_url(
                    self._url,
                    encoding="utf-8",
                    decode_responses=True,
                )
                await self._redis.ping()
            except Exception as e:
                logger.warning(f"Redis unavailable, rate cache disabled: {e}")
                self._redis = None
                return None
        return self._redis

    def _redis_key(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    async def get(self, key: str) -> CacheEntry | None:
        """Returns None on miss, expiry, or error."""
        try:
            r = await self._get_redis()
            if r is None:
                return None
            rkey = self._redis_key(key)
            raw = await r.hgetall(rkey)
            if not raw:
                return None
            expires_at = datetime.fromisoformat(raw["expires_at"])
            if self._clock() > expires_at:
                return None
            hits = await r.hincrby(rkey, "hits", 1)
            return CacheEntry(
                key=key,
                payload=json.loads(raw["payload"]),
                created_at=datetime.fromisoformat(raw["created_at"]),
                expires_at=expires_at,
                hit_count=hits,
            )
        except Exception as e:
            logger.warning(f"Rate cache read failed for {key}: {e}")
            return None

    async def put(self, key: str, payload: Any, ttl: int) -> None:
        _check_ttl(ttl)
        try:
            r = await self._get_redis()
            if r is None:
                return
            now = self._clock()
            rkey = self._redis_key(key)
            async with r.pipeline(transaction=True) as pipe:
                pipe.delete(rkey)
                pipe.hset(
                    rkey,
                    mapping={
                        "payload": json.dumps(payload, default=str),
                        "created_at": now.isoformat(),
                        "expires_at": (now + timedelta(seconds=ttl)).isoformat(),
                        "hits": 0,
                    },
                )
                pipe.expire(rkey, ttl)
                await pipe.execute()
        except Exception as e:
            logger.warning(f"Rate cache write failed for {key}: {e}")

    async def evict_expired(self) -> int:
        """Sweep entries whose logical expiry passed before redis dropped them."""
        try:
            r = await self._get_redis()
            if r is None:
                return 0
            now = self._clock()
            removed = 0
            async for rkey in r.scan_iter(match=f"{self._namespace}:*"):
                expires_raw = await r.hget(rkey, "expires_at")
                if expires_raw is None:
                    continue  # removed mid-scan
                if datetime.fromisoformat(expires_raw) < now:
                    removed += await r.delete(rkey)
            return removed
        except Exception as e:
            logger.warning(f"Rate cache sweep failed: {e}")
            return 0

    async def close(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None
