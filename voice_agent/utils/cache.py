"""
Cache module.

Topic-keyed response caching for the voice agent. Free-text questions
are normalized into a small fixed set of FAQ topics; answers are cached
per topic, either in process (bounded, insertion-order eviction) or in
the shared key-value store (TTL only).
"""
import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from prometheus_client import Counter

from ..storage.kv_store import KeyValueStore
from .config import CACHE_TTL_SECONDS, CACHE_MAX_SIZE, TTS_CACHE_MAX_SIZE

CACHE_HITS = Counter("cache_hits_total", "Total number of cache hits", ["type"])
CACHE_MISSES = Counter("cache_misses_total", "Total number of cache misses", ["type"])

# Initialize labels to ensure they show up in Prometheus
for t in ["memory", "kv", "tts"]:
    CACHE_HITS.labels(type=t)
    CACHE_MISSES.labels(type=t)

logger = logging.getLogger(__name__)

Predicate = Callable[[str], bool]


def _contains(*phrases: str) -> Predicate:
    return lambda q: any(phrase in q for phrase in phrases)


def _matches(pattern: str) -> Predicate:
    compiled = re.compile(pattern)
    return lambda q: compiled.search(q) is not None


def _all_of(*predicates: Predicate) -> Predicate:
    return lambda q: all(p(q) for p in predicates)


def _any_of(*predicates: Predicate) -> Predicate:
    return lambda q: any(p(q) for p in predicates)


# Evaluated in order; the first matching rule wins
TOPIC_RULES: List[Tuple[Predicate, str]] = [
    (
        _any_of(
            _contains("pricing", "how much", "what does it cost", "price"),
            _matches(r"cost\??$"),
        ),
        "pricing",
    ),
    (
        _any_of(
            _contains("do you work with", "work with my industry",
                      "work with my business", "my industry"),
            _matches(r"work with \w+"),
        ),
        "industry",
    ),
    (
        _all_of(
            _contains("chatgpt", "chat gpt"),
            _contains("different", "compare", "versus", "vs"),
        ),
        "chatgpt-comparison",
    ),
    (
        _all_of(
            _contains("technical", "coding", "code"),
            _contains("need", "required", "skills"),
        ),
        "technical-skills",
    ),
    (
        _all_of(
            _contains("difference", "compare"),
            _contains("tier", "plan", "package"),
        ),
        "tier-differences",
    ),
    (
        _all_of(
            _contains("how long", "when"),
            _contains("result", "see", "savings", "roi"),
        ),
        "results-timeline",
    ),
    (
        _any_of(
            _all_of(_contains("after"), _contains("term", "program")),
            _contains("what happens when", "when it ends"),
        ),
        "after-term",
    ),
    (
        _all_of(
            _contains("upgrade"),
            _contains("tier", "plan", "discovery", "foundation"),
        ),
        "upgrade-path",
    ),
    (
        _all_of(
            _contains("mistake", "error", "wrong"),
            _contains("ai", "what if", "happens"),
        ),
        "error-handling",
    ),
    (
        _all_of(
            _contains("data", "information"),
            _contains("stored", "storage", "where", "privacy"),
        ),
        "data-storage",
    ),
]

TOPICS: Tuple[str, ...] = tuple(topic for _, topic in TOPIC_RULES)


def normalize_question(question: str) -> Optional[str]:
    """
    Classify a question into a cacheable topic.

    Args:
        question: Free-text question.

    Returns:
        Topic key, or None if the question is not cacheable.
    """
    q = question.lower().strip()
    for predicate, topic in TOPIC_RULES:
        if predicate(q):
            return topic
    return None


@dataclass
class CachedResponse:
    """A response served from cache."""
    text_response: str
    audio: Optional[bytes] = None


@dataclass
class CacheEntry:
    """A cached response entry."""
    key: str
    text_response: str
    audio: Optional[bytes] = None
    timestamp: float = field(default_factory=time.time)
    hit_count: int = 0

    def is_expired(self, now: float, ttl: int) -> bool:
        """Check if entry is older than `ttl` seconds."""
        return now - self.timestamp > ttl

    def touch(self) -> None:
        """Update hit count."""
        self.hit_count += 1


class BaseResponseCache(ABC):
    """
    Topic-keyed response cache contract.

    Questions that normalize to no topic are never cached: get() returns
    None and set() does nothing.
    """

    def __init__(self, ttl: int = CACHE_TTL_SECONDS, time_func: Callable[[], float] = time.time):
        self.ttl = ttl
        self._time = time_func

    @staticmethod
    def normalize_question(question: str) -> Optional[str]:
        return normalize_question(question)

    @abstractmethod
    async def get(self, question: str) -> Optional[CachedResponse]:
        """Get the cached response for a question's topic."""

    @abstractmethod
    async def set(self, question: str, text_response: str, audio: Optional[bytes] = None) -> None:
        """Cache a response under the question's topic."""

    @abstractmethod
    async def clear(self) -> None:
        """Remove all cached responses."""

    @abstractmethod
    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""

    def clear_expired(self) -> int:
        """Remove expired entries. Store-backed caches expire natively."""
        return 0


class InMemoryResponseCache(BaseResponseCache):
    """
    In-process response cache.

    Capacity-bounded: when full, adding a new topic evicts the oldest
    inserted one (reads do not refresh position). Expired entries are
    dropped on read or by clear_expired().
    """

    backend = "memory"

    def __init__(
        self,
        max_size: int = CACHE_MAX_SIZE,
        ttl: int = CACHE_TTL_SECONDS,
        time_func: Callable[[], float] = time.time
    ):
        """
        Initialize in-memory cache.

        Args:
            max_size: Maximum number of entries.
            ttl: Time-to-live in seconds.
            time_func: Clock returning epoch seconds.
        """
        super().__init__(ttl=ttl, time_func=time_func)
        self.max_size = max_size
        self._cache: Dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0

        logger.info(f"InMemoryResponseCache initialized: max_size={max_size}, ttl={ttl}s")

    async def get(self, question: str) -> Optional[CachedResponse]:
        key = self.normalize_question(question)
        if not key:
            return None

        entry = self._cache.get(key)
        if entry is None:
            self._record_miss()
            return None

        if entry.is_expired(self._time(), self.ttl):
            del self._cache[key]
            self._record_miss()
            return None

        entry.touch()
        self._hits += 1
        CACHE_HITS.labels(type=self.backend).inc()
        logger.info(f"Cache HIT: '{key}' (hits: {entry.hit_count})")

        return CachedResponse(text_response=entry.text_response, audio=entry.audio)

    async def set(self, question: str, text_response: str, audio: Optional[bytes] = None) -> None:
        key = self.normalize_question(question)
        if not key:
            logger.debug(f"Question not cacheable: '{question}'")
            return

        # Evict oldest inserted if at capacity
        if key not in self._cache:
            while len(self._cache) >= self.max_size:
                oldest = next(iter(self._cache))
                del self._cache[oldest]

        self._cache[key] = CacheEntry(
            key=key,
            text_response=text_response,
            audio=audio,
            timestamp=self._time()
        )
        logger.info(f"Cached response for: '{key}'")

    async def clear(self) -> None:
        self._cache.clear()
        logger.info("Cache cleared")

    def clear_expired(self) -> int:
        """
        Remove expired entries.

        Returns:
            Number of entries removed.
        """
        now = self._time()
        expired = [
            key for key, entry in self._cache.items()
            if entry.is_expired(now, self.ttl)
        ]
        for key in expired:
            del self._cache[key]

        if expired:
            logger.info(f"Cleared {len(expired)} expired cache entries")
        return len(expired)

    def get_stats(self) -> Dict[str, Any]:
        now = self._time()
        total = self._hits + self._misses
        return {
            "backend": self.backend,
            "size": len(self._cache),
            "max_size": self.max_size,
            "ttl_seconds": self.ttl,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": self._hits / total if total > 0 else 0,
            "entries": [
                {
                    "key": key,
                    "hit_count": entry.hit_count,
                    "age": now - entry.timestamp
                }
                for key, entry in self._cache.items()
            ]
        }

    def _record_miss(self) -> None:
        self._misses += 1
        CACHE_MISSES.labels(type=self.backend).inc()


class KVResponseCache(BaseResponseCache):
    """
    Response cache backed by the shared key-value store.

    Expiry is delegated to the store's TTL; there is no capacity bound,
    no hit counting and no audio storage.
    """

    backend = "kv"

    def __init__(
        self,
        store: KeyValueStore,
        ttl: int = CACHE_TTL_SECONDS,
        time_func: Callable[[], float] = time.time
    ):
        """
        Initialize store-backed cache.

        Args:
            store: Key-value store.
            ttl: Time-to-live in seconds.
            time_func: Clock returning epoch seconds.
        """
        super().__init__(ttl=ttl, time_func=time_func)
        self.store = store
        logger.info(f"KVResponseCache initialized: ttl={ttl}s")

    async def get(self, question: str) -> Optional[CachedResponse]:
        key = self.normalize_question(question)
        if not key:
            return None

        value = await self.store.get(self._cache_key(key))
        if not value:
            CACHE_MISSES.labels(type=self.backend).inc()
            return None

        CACHE_HITS.labels(type=self.backend).inc()
        logger.info(f"Cache HIT (kv): '{key}'")
        return CachedResponse(text_response=value["text_response"])

    async def set(self, question: str, text_response: str, audio: Optional[bytes] = None) -> None:
        key = self.normalize_question(question)
        if not key:
            logger.debug(f"Question not cacheable: '{question}'")
            return

        await self.store.put(
            self._cache_key(key),
            {"text_response": text_response, "timestamp": self._time()},
            expiration_ttl=self.ttl
        )
        logger.info(f"Cached response for: '{key}' (kv)")

    async def clear(self) -> None:
        for topic in TOPICS:
            await self.store.delete(self._cache_key(topic))
        logger.info("KV cache cleared")

    def get_stats(self) -> Dict[str, Any]:
        return {"backend": self.backend, "ttl_seconds": self.ttl}

    @staticmethod
    def _cache_key(topic: str) -> str:
        return f"cache:{topic}"


class TextToSpeechCache:
    """
    In-process cache of synthesized audio keyed by the text's prefix.

    Insertion-order eviction once `max_size` entries are held.
    """

    KEY_LENGTH = 200

    def __init__(
        self,
        max_size: int = TTS_CACHE_MAX_SIZE,
        ttl: int = CACHE_TTL_SECONDS,
        time_func: Callable[[], float] = time.time
    ):
        self.max_size = max_size
        self.ttl = ttl
        self._time = time_func
        self._cache: Dict[str, Tuple[bytes, float]] = {}

    def get(self, text: str) -> Optional[bytes]:
        key = text[:self.KEY_LENGTH]
        item = self._cache.get(key)
        if item is None:
            CACHE_MISSES.labels(type="tts").inc()
            return None

        audio, timestamp = item
        if self._time() - timestamp >= self.ttl:
            del self._cache[key]
            CACHE_MISSES.labels(type="tts").inc()
            return None

        CACHE_HITS.labels(type="tts").inc()
        return audio

    def set(self, text: str, audio: bytes) -> None:
        key = text[:self.KEY_LENGTH]
        if key not in self._cache:
            while len(self._cache) >= self.max_size:
                del self._cache[next(iter(self._cache))]
        self._cache[key] = (audio, self._time())

    def clear(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)


# Factory function
def create_response_cache(store: Optional[KeyValueStore] = None) -> BaseResponseCache:
    """Create a store-backed cache when a store is given, in-memory otherwise."""
    if store is not None:
        return KVResponseCache(store=store)
    return InMemoryResponseCache()
