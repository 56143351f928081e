"""
Raw response cache: serialized GET payloads keyed by canonical request URL.
"""
import logging
from typing import Optional

from statcache.store import KeyValueStore
from .core import CacheEntry
from config.settings import settings

logger = logging.getLogger("cache.raw")

COLLECTION = "api_cache"


def string_hash(value: str) -> int:
    """
    32-bit signed polynomial string hash (h = 31*h + c).

    Stable across processes, unlike the built-in hash().
    """
    h = 0
    for char in value:
        h = (31 * h + ord(char)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return h


def url_to_doc_id(url: str) -> str:
    """
    Storage-safe document id for a URL.

    Negative hashes get a "neg" marker instead of "-". Collisions are possible
    and not mitigated.
    """
    return "cache_" + str(string_hash(url)).replace("-", "neg")


class RawResponseCache:
    """Caches raw response bodies in the document store."""

    def __init__(self, store: KeyValueStore, collection: str = COLLECTION):
        self._store = store
        self._collection = collection

    def get(self, url: str) -> Optional[str]:
        """Cached response body for the URL, or None."""
        document = self._store.get(self._collection, url_to_doc_id(url))
        if document is None:
            return None
        return document.get("response")

    def get_entry(self, url: str) -> Optional[CacheEntry]:
        """Cached entry with its write timestamp, or None."""
        document = self._store.get(self._collection, url_to_doc_id(url))
        if document is None:
            return None
        return CacheEntry(
            key=document.get("url", url),
            payload=document.get("response"),
            stored_at=document.stored_at,
        )

    def put(self, url: str, payload: str) -> None:
        """Store a response body for the URL, replacing any previous one."""
        self._store.put(
            self._collection,
            url_to_doc_id(url),
            {"url": url, "response": payload},
        )
        logger.debug(f"Stored raw response for {url} ({len(payload)} chars)")

    def remove(self, url: str) -> None:
        self._store.delete(self._collection, url_to_doc_id(url))

    def clear(self) -> int:
        return self._store.clear(self._collection)

    def contains(self, url: str) -> bool:
        return self._store.get(self._collection, url_to_doc_id(url)) is not None

    def cleanup(self, max_entries: Optional[int] = None) -> int:
        """
        Remove old entries to keep the collection size manageable.

        Keeps only the most recently stored `max_entries` responses.

        Returns:
            Number of entries removed
        """
        cap = settings.raw_cache_max_entries if max_entries is None else max_entries
        return self._store.evict_oldest(self._collection, cap)

    def __len__(self) -> int:
        return self._store.count(self._collection)
