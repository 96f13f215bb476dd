"""
Two-tier expiring cache.

Entries live in an insertion-ordered in-memory map bounded to a fixed size
(strict FIFO eviction, not LRU). Each positive write is mirrored into a
session store when one is available; memory misses read through to it.
"""

import copy
import json
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Optional, TypeVar, Union

from config.settings import DEFAULT_EXPIRATION_MINUTES, MAX_CACHE_SIZE
from utils.api_models import CacheStats
from utils.session_store import SessionStore, best_effort
from utils.validators import normalize_key

logger = logging.getLogger("pokedex_cache.cache")

V = TypeVar("V")


class _DefaultTTL:
    def __repr__(self) -> str:
        return "<default ttl>"


DEFAULT_TTL = _DefaultTTL()


@dataclass
class CacheEntry(Generic[V]):
    """A cached value and its absolute expiry (epoch seconds, None = never)."""

    value: V
    expires_at: Optional[float] = None

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def to_json(self) -> str:
        return json.dumps({"value": self.value, "expires": self.expires_at})

    @classmethod
    def from_json(cls, raw: str) -> "CacheEntry":
        data = json.loads(raw)
        return cls(value=data["value"], expires_at=data.get("expires"))


class ExpiringCache(Generic[V]):
    """
    Key/value cache with per-entry expiration and an optional durable mirror.

    Keys are normalized with `normalize_key`. `None` is reserved as the miss
    sentinel, so `None` values are never stored. Values are deep-copied on
    `set` and on every hit, so callers never share the cached object.
    """

    def __init__(
        self,
        namespace: str,
        max_size: int = MAX_CACHE_SIZE,
        default_ttl_minutes: Optional[float] = DEFAULT_EXPIRATION_MINUTES,
        store: Optional[SessionStore] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the cache.

        Args:
            namespace: Prefix of this cache's keys in the session store.
            max_size: Maximum number of in-memory entries.
            default_ttl_minutes: Lifetime used when `set` is called without a TTL.
                0 or None means entries never expire.
            store: Optional durable mirror.
            clock: Time source returning epoch seconds.
        """
        if max_size < 1:
            raise ValueError("max_size must be at least 1")

        self.namespace = namespace
        self.max_size = max_size
        self.default_ttl_minutes = default_ttl_minutes
        self.store = store
        self._clock = clock
        self._entries: Dict[str, CacheEntry[V]] = {}

        self.hits = 0
        self.misses = 0

    def _storage_key(self, cache_key: str) -> str:
        return f"{self.namespace}{cache_key}"

    def _expiry_for(self, ttl_minutes: Optional[float]) -> Optional[float]:
        if not ttl_minutes:
            return None
        return self._clock() + ttl_minutes * 60

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, (str, int)):
            return False
        entry = self._entries.get(normalize_key(key))
        return entry is not None and not entry.is_expired(self._clock())

    async def get(self, key: Union[str, int]) -> Optional[V]:
        """
        Look up a value, memory first, then the durable mirror.

        Expired entries found in either tier are purged and reported as a miss.

        Args:
            key: Name or id.

        Returns:
            The cached value, or None on a miss.
        """
        cache_key = normalize_key(key)
        now = self._clock()

        entry = self._entries.get(cache_key)
        if entry is not None:
            if not entry.is_expired(now):
                self.hits += 1
                return copy.deepcopy(entry.value)

            del self._entries[cache_key]
            logger.debug("Cache entry expired", extra={"cache_key": cache_key[:50]})

        mirrored = await self._read_mirror(cache_key, now)
        if mirrored is not None:
            self.hits += 1
            await self._insert(cache_key, mirrored, mirror=False)
            logger.debug("Cache hit from session store", extra={"cache_key": cache_key[:50]})
            return copy.deepcopy(mirrored.value)

        self.misses += 1
        return None

    async def _read_mirror(self, cache_key: str, now: float) -> Optional[CacheEntry[V]]:
        if self.store is None:
            return None

        storage_key = self._storage_key(cache_key)
        raw = await best_effort(self.store.get_item, storage_key, default=None)
        if raw is None:
            return None

        try:
            entry = CacheEntry.from_json(raw)
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(
                f"Discarding unreadable session cache entry: {e}",
                extra={"cache_key": cache_key[:50]},
            )
            await best_effort(self.store.remove_item, storage_key, default=False)
            return None

        if entry.is_expired(now) or entry.value is None:
            await best_effort(self.store.remove_item, storage_key, default=False)
            return None

        return entry

    async def set(
        self,
        key: Union[str, int],
        value: V,
        ttl_minutes: Union[Optional[float], _DefaultTTL] = DEFAULT_TTL,
    ) -> None:
        """
        Store a value, evicting the oldest entry first if the cache is full.

        Re-caching an existing key resets its expiry but keeps its position
        in the eviction order.

        Args:
            key: Name or id.
            value: Value to store (must be JSON serializable to be mirrored).
            ttl_minutes: Lifetime in minutes; 0/None = never expires; omitted =
                the cache default.
        """
        if value is None:
            return

        if isinstance(ttl_minutes, _DefaultTTL):
            ttl_minutes = self.default_ttl_minutes

        cache_key = normalize_key(key)
        entry = CacheEntry(value=copy.deepcopy(value), expires_at=self._expiry_for(ttl_minutes))
        await self._insert(cache_key, entry, mirror=True)

    async def _insert(self, cache_key: str, entry: CacheEntry[V], mirror: bool) -> None:
        if cache_key not in self._entries and len(self._entries) >= self.max_size:
            oldest_key = next(iter(self._entries))
            del self._entries[oldest_key]
            logger.debug("Evicted oldest cache entry", extra={"cache_key": oldest_key[:50]})
            if self.store is not None:
                await best_effort(self.store.remove_item, self._storage_key(oldest_key), default=False)

        self._entries[cache_key] = entry

        if mirror and self.store is not None:
            try:
                payload = entry.to_json()
            except (TypeError, ValueError) as e:
                logger.warning(
                    f"Value not serializable, cached in memory only: {e}",
                    extra={"cache_key": cache_key[:50]},
                )
                return

            if not await best_effort(
                self.store.set_item, self._storage_key(cache_key), payload, default=False
            ):
                logger.warning(
                    "Failed to mirror cache entry to session store",
                    extra={"cache_key": cache_key[:50], "namespace": self.namespace},
                )

    async def clear(self) -> None:
        """Empty memory and remove this namespace's keys from the session store."""
        self._entries.clear()
        self.hits = 0
        self.misses = 0

        if self.store is not None:
            removed = await best_effort(self.store.remove_prefix, self.namespace, default=0)
            logger.debug(
                "Cleared session cache namespace",
                extra={"namespace": self.namespace, "removed": removed},
            )

    def get_stats(self) -> CacheStats:
        """
        Get cache statistics.

        Returns:
            CacheStats object containing hit rates and counts.
        """
        total_requests = self.hits + self.misses
        hit_rate = (self.hits / total_requests * 100) if total_requests > 0 else 0

        return {
            "size": len(self._entries),
            "max_size": self.max_size,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": f"{hit_rate:.1f}%",
        }
