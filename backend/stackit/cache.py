"""
StackIt Backend — In-Memory Response Cache
============================================

What:  Process-wide cache of serialized GET responses, keyed by path + query.
Why:   Question lists, question detail and tag listings are read far more
       often than they change. Serving them from memory for a short TTL takes
       most of that load off the database.
How:   One cachetools.TTLCache per distinct TTL (a TTLCache has a single
       expiry for all of its entries). Entries expire on their own; writes do
       NOT invalidate anything, so readers may see data up to one TTL old.

Lifecycle:
    Built by create_app() and stored on app.state.cache.
    ResponseCacheMiddleware reads and fills it; /health reports `stats()`;
    shutdown calls `clear()`.

Limitations:
    Per-process only. Several workers each keep their own copy.
"""

import hashlib
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from cachetools import TTLCache

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CachedResponse:
    """A response body frozen at the time it was cached."""

    body: bytes
    status_code: int
    media_type: Optional[str]
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def etag(self) -> str:
        return '"' + hashlib.md5(self.body).hexdigest() + '"'


class ResponseCache:
    """
    TTL cache for HTTP responses.

    Attributes:
        max_entries: Upper bound on entries per TTL bucket (LRU eviction past it)
    """

    def __init__(self, max_entries: int = 1000, enabled: bool = True):
        self.max_entries = max_entries
        self.enabled = enabled
        self._buckets: Dict[int, TTLCache] = {}
        self._hits = 0
        self._misses = 0

    def _bucket(self, ttl: int) -> TTLCache:
        bucket = self._buckets.get(ttl)
        if bucket is None:
            bucket = TTLCache(maxsize=self.max_entries, ttl=ttl)
            self._buckets[ttl] = bucket
        return bucket

    def get(self, key: str, ttl: int) -> Optional[CachedResponse]:
        if not self.enabled:
            return None
        entry = self._bucket(ttl).get(key)
        if entry is None:
            self._misses += 1
        else:
            self._hits += 1
        return entry

    def set(self, key: str, ttl: int, response: CachedResponse) -> None:
        if not self.enabled:
            return
        self._bucket(ttl)[key] = response

    def clear(self) -> None:
        for bucket in self._buckets.values():
            bucket.clear()
        logger.debug("Response cache cleared")

    def stats(self) -> Dict[str, object]:
        lookups = self._hits + self._misses
        return {
            "enabled": self.enabled,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / lookups, 4) if lookups else 0.0,
            "entries": sum(len(bucket) for bucket in self._buckets.values()),
        }
