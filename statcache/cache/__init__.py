"""
Caching module: raw response cache, fetch-or-cache client, TTL store and
stale-while-revalidate orchestration.
"""
from .core import (
    CacheEntry,
    CacheMetadata,
    CacheSource,
    CachedResponse,
    CachedTypedResponse,
    DataKind,
    TTLCachedResponse,
    type_adapter,
)
from .expiration import (
    EXPIRATION_POLICIES,
    SCHEDULE_EXPIRATION,
    STATS_EXPIRATION,
    DailyCutoffExpiration,
    DailyRolloverExpiration,
    ExpirationStrategy,
    expiration_for,
)
from .raw_cache import RawResponseCache, url_to_doc_id
from .http_client import CachedHttpClient, canonical_url
from .coalescer import RequestCoalescer
from .ttl_store import TTLStore, generate_cache_key
from .swr_client import StaleWhileRevalidateClient

__all__ = [
    # Core types
    "CacheEntry",
    "CacheMetadata",
    "CacheSource",
    "CachedResponse",
    "CachedTypedResponse",
    "DataKind",
    "TTLCachedResponse",
    "type_adapter",
    # Expiration policies
    "EXPIRATION_POLICIES",
    "SCHEDULE_EXPIRATION",
    "STATS_EXPIRATION",
    "DailyCutoffExpiration",
    "DailyRolloverExpiration",
    "ExpirationStrategy",
    "expiration_for",
    # Storage
    "RawResponseCache",
    "url_to_doc_id",
    "TTLStore",
    "generate_cache_key",
    # Clients
    "CachedHttpClient",
    "canonical_url",
    "RequestCoalescer",
    "StaleWhileRevalidateClient",
]
