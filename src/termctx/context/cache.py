"""
Context formatting cache.

Caches ranked and formatted context so that re-renders and retries with
unchanged terminal state skip the ranking pass. Entries are keyed on a
fingerprint of the item set plus the raw query, so any added, removed or
re-used item produces a different key (an implicit miss).
"""

import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Generic, Hashable, List, Optional, Sequence, Tuple, TypeVar, TYPE_CHECKING

from ..config import CacheConfig
from ..types import CacheValue, ContextItem, RankedContext

if TYPE_CHECKING:
    from ..logger import EventLogger


K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

EvictCallback = Callable[[Any, Any, str], None]


class BoundedCache(Generic[K, V]):
    """
    LRU cache bounded by entry count and entry age.

    Eviction reasons reported to `on_evict`:
    - "size": capacity exceeded, least recently used entry dropped
    - "expired": entry older than `max_age` found on access or prune
    - "manual": removed by clear()
    """

    def __init__(
        self,
        max_size: int = 10,
        max_age: float = 30.0,
        on_evict: Optional[EvictCallback] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize cache.

        Args:
            max_size: Maximum number of entries
            max_age: Maximum entry age in seconds
            on_evict: Optional observer called with (key, value, reason)
            clock: Monotonic time source in seconds
        """
        self.max_size = max(1, max_size)
        self.max_age = max_age
        self.on_evict = on_evict
        self.clock = clock
        self._entries: "OrderedDict[K, Tuple[V, float]]" = OrderedDict()
        self.stats = {
            "hits": 0,
            "misses": 0,
            "evictions": 0,
        }

    def get(self, key: K) -> Optional[V]:
        entry = self._entries.get(key)
        if entry is None:
            self.stats["misses"] += 1
            return None

        value, inserted_at = entry
        if self.clock() - inserted_at > self.max_age:
            self._evict(key, "expired")
            self.stats["misses"] += 1
            return None

        self._entries.move_to_end(key)
        self.stats["hits"] += 1
        return value

    def set(self, key: K, value: V):
        if key in self._entries:
            del self._entries[key]
        self._entries[key] = (value, self.clock())

        while len(self._entries) > self.max_size:
            oldest = next(iter(self._entries))
            self._evict(oldest, "size")

    def prune(self) -> int:
        """Drop every expired entry. Returns number removed."""
        now = self.clock()
        expired = [
            key for key, (_, inserted_at) in self._entries.items()
            if now - inserted_at > self.max_age
        ]
        for key in expired:
            self._evict(key, "expired")
        return len(expired)

    def clear(self):
        for key in list(self._entries.keys()):
            self._evict(key, "manual")

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key) -> bool:
        return key in self._entries

    def age_stats(self) -> Dict[str, float]:
        """Ages of the oldest and newest entries, in seconds."""
        if not self._entries:
            return {"size": 0, "oldest_age": 0.0, "newest_age": 0.0}
        now = self.clock()
        ages = [now - inserted_at for _, inserted_at in self._entries.values()]
        return {
            "size": len(self._entries),
            "oldest_age": max(ages),
            "newest_age": min(ages),
        }

    def _evict(self, key: K, reason: str):
        value, _ = self._entries.pop(key)
        self.stats["evictions"] += 1
        if self.on_evict:
            self.on_evict(key, value, reason)


def generate_context_fingerprint(items: Sequence[ContextItem]) -> str:
    """
    Fingerprint the identity and version of a context item set.

    Built from each item's id, creation timestamp and usage bookkeeping,
    ordered by id so that input order does not matter.
    """
    if not items:
        return "empty"

    parts = []
    for item in sorted(items, key=lambda i: str(i.id)):
        parts.append(
            f"{item.id}@{item.timestamp}"
            f"/{item.last_used_timestamp or 0}"
            f"/{item.usage_count or 0}"
        )
    return ",".join(parts)


def get_cache_key(fingerprint: str, query: str) -> str:
    return f"{fingerprint}||{query}"


class ContextCache:
    """
    Memoizes ranked+formatted context per (context state, query).

    Usage:
        cache = ContextCache()
        hit = cache.get(items, query)
        if hit is None:
            ranked = ranker.rank(items, query, budget)
            formatted = format_ranked_context(ranked)
            cache.set(items, query, ranked, formatted, tokens)
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        on_evict: Optional[EvictCallback] = None,
        logger: Optional["EventLogger"] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or CacheConfig()
        self.logger = logger
        self._observer = on_evict
        self._cache: BoundedCache[str, CacheValue] = BoundedCache(
            max_size=self.config.max_size,
            max_age=self.config.max_age_seconds,
            on_evict=self._handle_evict,
            clock=clock,
        )

    def get(
        self,
        items: Sequence[ContextItem],
        query: str,
        token_budget: Optional[int] = None,
    ) -> Optional[CacheValue]:
        """
        Return the cached value for this item set and query, if fresh.

        With `token_budget`, an entry truncated to a different budget is a miss.
        """
        key = get_cache_key(generate_context_fingerprint(items), query)
        value = self._cache.get(key)
        if value is not None and token_budget is not None and value.token_budget != token_budget:
            value = None
        if self.logger:
            self.logger.log_cache("hit" if value is not None else "miss", key, item_count=len(items))
        return value

    def set(
        self,
        items: Sequence[ContextItem],
        query: str,
        ranked: List[RankedContext],
        formatted: List[str],
        token_count: int,
        token_budget: Optional[int] = None,
    ):
        """Store ranked and formatted context for this item set and query."""
        key = get_cache_key(generate_context_fingerprint(items), query)
        self._cache.set(key, CacheValue(
            ranked=list(ranked),
            formatted=list(formatted),
            token_count=token_count,
            token_budget=token_budget,
        ))
        if self.logger:
            self.logger.log_cache(
                "set", key,
                item_count=len(items),
                formatted_count=len(formatted),
                token_count=token_count,
            )

    def invalidate(self):
        """Drop all entries."""
        self._cache.clear()

    def stats(self) -> Dict[str, Any]:
        ages = self._cache.age_stats()
        return {
            "entries": ages["size"],
            "oldest_age": ages["oldest_age"],
            "newest_age": ages["newest_age"],
            **self._cache.stats,
        }

    def __len__(self) -> int:
        return len(self._cache)

    def _handle_evict(self, key: str, value: CacheValue, reason: str):
        if self.logger:
            self.logger.log_cache("evicted", key, reason=reason)
        if self._observer:
            self._observer(key, value, reason)
