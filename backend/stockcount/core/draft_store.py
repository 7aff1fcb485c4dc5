"""
Draft persistence for in-progress stock counts.
In-memory by default; Redis-backed when REDIS_URL is configured.
"""
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional
import json
import logging

from stockcount.core.config import settings

logger = logging.getLogger(__name__)


def draft_key(user_id: str, scope: Any, prefix: Optional[str] = None) -> str:
    """Build ``reconciliation_draft_{user}_{location or record}``."""
    return f"{prefix or settings.draft_key_prefix}_{user_id}_{scope}"


class DraftStore(ABC):
    """Key-value capability used to keep unsubmitted counts recoverable."""

    @abstractmethod
    def save(self, key: str, value: Dict[str, Any]) -> None:
        """Store a JSON-serialisable draft under key."""

    @abstractmethod
    def load(self, key: str) -> Optional[Dict[str, Any]]:
        """Return the draft stored under key, or None."""

    @abstractmethod
    def clear(self, key: str) -> None:
        """Remove the draft stored under key (no-op when absent)."""


class MemoryDraftStore(DraftStore):
    """In-memory draft store with TTL support and size limit."""

    MAX_ENTRIES = 10000  # Prevent unbounded memory growth

    def __init__(
        self,
        ttl_seconds: Optional[int] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.ttl_seconds = ttl_seconds or settings.draft_ttl_seconds
        self._clock = clock
        self._drafts: Dict[str, str] = {}
        self._expiry: Dict[str, datetime] = {}

    def _evict_expired(self):
        now = self._clock()
        expired = [k for k, exp in self._expiry.items() if exp <= now]
        for k in expired:
            self._drafts.pop(k, None)
            self._expiry.pop(k, None)

    def save(self, key: str, value: Dict[str, Any]) -> None:
        if len(self._drafts) >= self.MAX_ENTRIES:
            self._evict_expired()
        # If still at limit after eviction, remove oldest entries
        if len(self._drafts) >= self.MAX_ENTRIES:
            oldest_keys = sorted(self._expiry, key=self._expiry.get)[:100]
            for k in oldest_keys:
                self._drafts.pop(k, None)
                self._expiry.pop(k, None)
        # Stored serialised so callers never share mutable state with the store
        self._drafts[key] = json.dumps(value, default=str)
        self._expiry[key] = self._clock() + timedelta(seconds=self.ttl_seconds)

    def load(self, key: str) -> Optional[Dict[str, Any]]:
        if key not in self._drafts:
            return None
        if self._clock() >= self._expiry.get(key, datetime.min):
            self.clear(key)
            return None
        return json.loads(self._drafts[key])

    def clear(self, key: str) -> None:
        self._drafts.pop(key, None)
        self._expiry.pop(key, None)

    def __len__(self) -> int:
        return len(self._drafts)


class RedisDraftStore(DraftStore):
    """Redis-backed draft store with in-memory fallback."""

    def __init__(self, redis_url: Optional[str] = None, ttl_seconds: Optional[int] = None):
        self.ttl_seconds = ttl_seconds or settings.draft_ttl_seconds
        self._redis = None
        self._fallback = MemoryDraftStore(ttl_seconds=self.ttl_seconds)
        if redis_url:
            self.initialize(redis_url)

    def initialize(self, redis_url: str):
        try:
            import redis
            self._redis = redis.from_url(
                redis_url, socket_connect_timeout=2, decode_responses=True,
            )
            self._redis.ping()
            logger.info("Redis draft store connected")
        except Exception as e:
            logger.warning(f"Redis unavailable, keeping drafts in memory: {e}")
            self._redis = None

    @property
    def is_connected(self) -> bool:
        return self._redis is not None

    def save(self, key: str, value: Dict[str, Any]) -> None:
        serialized = json.dumps(value, default=str)
        if self._redis:
            try:
                self._redis.setex(key, self.ttl_seconds, serialized)
                return
            except Exception as e:
                logger.warning(f"Redis save failed for {key}, using memory: {e}")
        self._fallback.save(key, value)

    def load(self, key: str) -> Optional[Dict[str, Any]]:
        if self._redis:
            try:
                val = self._redis.get(key)
                if val:
                    return json.loads(val)
            except Exception as e:
                logger.warning(f"Redis load failed for {key}, using memory: {e}")
        return self._fallback.load(key)

    def clear(self, key: str) -> None:
        if self._redis:
            try:
                self._redis.delete(key)
            except Exception as e:
                logger.warning(f"Redis clear failed for {key}: {e}")
        self._fallback.clear(key)


_draft_store: Optional[DraftStore] = None


def get_draft_store() -> DraftStore:
    """Process-wide draft store, Redis-backed when REDIS_URL is set."""
    global _draft_store
    if _draft_store is None:
        if settings.redis_url:
            _draft_store = RedisDraftStore(settings.redis_url)
        else:
            _draft_store = MemoryDraftStore()
    return _draft_store
