"""
Persisted TTL cache: serialized values plus independent freshness metadata.

Values and metadata live in separate collections so either half can be
patched alone. Full writes go through store_entry(), which writes both
documents in one transaction.
"""
import logging
import re
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Type, TypeVar

from pydantic import ValidationError

from statcache.store import KeyValueStore
from .core import CacheMetadata, type_adapter
from config.settings import settings

logger = logging.getLogger("cache.ttl_store")

T = TypeVar("T")

DATA_COLLECTION = "ttl_cache_data"
METADATA_COLLECTION = "ttl_cache_metadata"
METADATA_SUFFIX = "_metadata"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9]")


def generate_cache_key(url: str) -> str:
    """Replace every character outside [A-Za-z0-9] with '_'."""
    return _UNSAFE_CHARS.sub("_", url)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TTLStore:
    """
    Value + metadata storage keyed by sanitized cache key.

    Data documents hold {data, timestamp}; metadata documents, stored under
    key + "_metadata" in their own collection, hold {cachedAt, expiresAt}.
    """

    def __init__(
        self,
        store: KeyValueStore,
        max_entries: Optional[int] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Args:
            store: Backing document store
            max_entries: Cap on data entries (oldest evicted first)
            clock: Source of write timestamps
        """
        self._store = store
        self._max_entries = settings.ttl_cache_max_entries if max_entries is None else max_entries
        self._clock = clock

    generate_cache_key = staticmethod(generate_cache_key)

    # =========================================================================
    # Data half
    # =========================================================================

    def store_cache_data(self, key: str, value: Any, schema: Type[T]) -> None:
        """Serialize and store a value; metadata is left untouched."""
        self._store.put(DATA_COLLECTION, key, self._data_fields(value, schema))
        self._evict()

    def get_cache_data(self, key: str, schema: Type[T]) -> Optional[T]:
        """
        Stored value decoded as `schema`, or None.

        Undecodable data is logged and reported as absent.
        """
        document = self._store.get(DATA_COLLECTION, key)
        if document is None:
            return None
        raw = document.get("data")
        if raw is None:
            return None
        try:
            return type_adapter(schema).validate_json(raw)
        except (ValidationError, ValueError) as e:
            logger.warning(f"Error decoding cache data for key {key}: {e}")
            return None

    def get_raw_data(self, key: str) -> Optional[str]:
        """Serialized value as stored."""
        document = self._store.get(DATA_COLLECTION, key)
        return document.get("data") if document else None

    # =========================================================================
    # Metadata half
    # =========================================================================

    def store_cache_metadata(self, key: str, metadata: CacheMetadata) -> None:
        """Store freshness metadata; the value is left untouched."""
        self._store.put(METADATA_COLLECTION, key + METADATA_SUFFIX, metadata.to_dict())

    def get_cache_metadata(self, key: str) -> Optional[CacheMetadata]:
        document = self._store.get(METADATA_COLLECTION, key + METADATA_SUFFIX)
        if document is None:
            return None
        try:
            return CacheMetadata.from_dict(document.fields)
        except ValueError as e:
            logger.warning(f"Error decoding cache metadata for key {key}: {e}")
            return None

    # =========================================================================
    # Both halves
    # =========================================================================

    def store_entry(self, key: str, value: Any, schema: Type[T], metadata: CacheMetadata) -> None:
        """Write value and metadata together in a single transaction."""
        self._store.put_many([
            (DATA_COLLECTION, key, self._data_fields(value, schema)),
            (METADATA_COLLECTION, key + METADATA_SUFFIX, metadata.to_dict()),
        ])
        self._evict()

    def remove(self, key: str) -> bool:
        """Delete both halves. Returns True if anything was removed."""
        removed_data = self._store.delete(DATA_COLLECTION, key)
        removed_meta = self._store.delete(METADATA_COLLECTION, key + METADATA_SUFFIX)
        return removed_data or removed_meta

    def clear(self) -> int:
        count = self._store.clear(DATA_COLLECTION)
        self._store.clear(METADATA_COLLECTION)
        return count

    def __len__(self) -> int:
        return self._store.count(DATA_COLLECTION)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _data_fields(self, value: Any, schema: Type[T]) -> dict:
        payload = type_adapter(schema).dump_json(value).decode("utf-8")
        return {"data": payload, "timestamp": int(self._clock().timestamp())}

    def _evict(self) -> None:
        if self._max_entries is None:
            return
        oldest = self._store.query_ordered_by(DATA_COLLECTION, "stored_at", ascending=True)
        excess = len(oldest) - self._max_entries
        for document in oldest[:max(excess, 0)]:
            self.remove(document.key)
            logger.info(f"Evicted TTL entry {document.key} (cap={self._max_entries})")
