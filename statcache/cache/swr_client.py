"""
Stale-while-revalidate orchestration over the TTL store.
"""
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Type, TypeVar

from statcache.errors import CacheError
from .core import CacheMetadata, TTLCachedResponse
from .coalescer import RequestCoalescer
from .expiration import ExpirationStrategy
from .http_client import CachedHttpClient
from .ttl_store import TTLStore
from config.settings import settings

logger = logging.getLogger("cache.swr")

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StaleWhileRevalidateClient:
    """
    TTL-governed GET with stale-while-revalidate:
    - Miss (no value or no metadata): synchronous fetch, store, return fresh
    - Fresh (now <= expires_at): return stored value, no network
    - Stale (now > expires_at): return stored value at once and refresh in
      the background; the new value is only seen by the next read
    - Concurrent misses on a key share one upstream call
    - Concurrent stale reads on a key share one background refresh
    """

    def __init__(
        self,
        http_client: CachedHttpClient,
        ttl_store: TTLStore,
        clock: Callable[[], datetime] = _utcnow,
        max_revalidation_workers: Optional[int] = None,
        coalesce_timeout: float = 30.0,
    ):
        """
        Initialize the client.

        Args:
            http_client: Fetch-or-cache client used for every network call
            ttl_store: Value + metadata storage
            clock: Source of "now" (injectable for tests)
            max_revalidation_workers: Thread pool size for background refreshes
            coalesce_timeout: Timeout for waiting on a coalesced miss
        """
        self._http = http_client
        self._ttl = ttl_store
        self._clock = clock
        self._coalescer = RequestCoalescer(timeout=coalesce_timeout)

        workers = max_revalidation_workers or settings.revalidation_workers
        self._revalidation_pool = ThreadPoolExecutor(
            max_workers=workers,
            thread_name_prefix="cache-revalidate",
        )
        self._revalidating: Dict[str, Future] = {}
        self._revalidating_lock = threading.Lock()

        self._stats = {
            "hits_fresh": 0,
            "hits_stale": 0,
            "misses": 0,
            "revalidations": 0,
            "revalidation_failures": 0,
        }
        self._stats_lock = threading.Lock()

    # =========================================================================
    # Reads
    # =========================================================================

    def get(self, url: str, schema: Type[T], strategy: ExpirationStrategy) -> TTLCachedResponse[T]:
        """
        Get a value, serving cached data whenever any exists.

        Args:
            url: Resource URL
            schema: Type the payload decodes into
            strategy: Computes the expiration for freshly fetched data

        Returns:
            TTLCachedResponse with the data and its freshness flags
        """
        now = self._clock()
        cache_key = self._ttl.generate_cache_key(url)

        metadata = self._ttl.get_cache_metadata(cache_key)
        existing = self._ttl.get_cache_data(cache_key, schema) if metadata is not None else None

        if metadata is None or existing is None:
            logger.info(f"CACHE MISS: {url}")
            self._count("misses")
            return self._fetch_fresh(url, schema, strategy, cache_key)

        if not metadata.is_expired(now):
            logger.debug(f"CACHE HIT (fresh): {url} [expires={metadata.expires_at.isoformat()}]")
            self._count("hits_fresh")
            return TTLCachedResponse(
                data=existing,
                is_success=True,
                is_from_cache=True,
                cached_at=metadata.cached_at,
                expires_at=metadata.expires_at,
                is_expired=False,
                is_refreshing=False,
            )

        logger.info(f"CACHE HIT (stale, revalidating): {url} [expired={metadata.expires_at.isoformat()}]")
        self._count("hits_stale")
        refresh = self._trigger_background_refresh(url, schema, strategy, cache_key)
        return TTLCachedResponse(
            data=existing,
            is_success=True,
            is_from_cache=True,
            cached_at=metadata.cached_at,
            expires_at=metadata.expires_at,
            is_expired=True,
            is_refreshing=True,
            refresh=refresh,
        )

    def pending_refresh(self, url: str) -> Optional[Future]:
        """Future of the in-flight background refresh for a URL, if any."""
        with self._revalidating_lock:
            return self._revalidating.get(self._ttl.generate_cache_key(url))

    # =========================================================================
    # Writes
    # =========================================================================

    def set(self, url: str, value: T, schema: Type[T], strategy: ExpirationStrategy) -> None:
        """
        Unconditionally (re)write a value and fresh metadata.

        Used to seed the cache from something other than a GET.
        """
        now = self._clock()
        cache_key = self._ttl.generate_cache_key(url)
        metadata = CacheMetadata(cached_at=now, expires_at=strategy.expiration_for(now))
        self._ttl.store_entry(cache_key, value, schema, metadata)
        logger.debug(f"Cache set: {url} [expires={metadata.expires_at.isoformat()}]")

    def update_property(
        self,
        url: str,
        schema: Type[T],
        strategy: ExpirationStrategy,
        update_fn: Callable[[Optional[T]], Optional[T]],
    ) -> bool:
        """
        Patch a cached value in place, without any network call.

        `update_fn` receives the current value (or None). A non-None result is
        written back; the existing metadata, and so the existing expiration,
        is kept when present, otherwise a fresh expiration is computed. A None
        result leaves the cache untouched.

        Returns:
            True if a write occurred
        """
        cache_key = self._ttl.generate_cache_key(url)
        existing = self._ttl.get_cache_data(cache_key, schema)
        updated = update_fn(existing)
        if updated is None:
            return False

        metadata = self._ttl.get_cache_metadata(cache_key)
        if metadata is not None:
            self._ttl.store_cache_data(cache_key, updated, schema)
        else:
            now = self._clock()
            self._ttl.store_entry(
                cache_key,
                updated,
                schema,
                CacheMetadata(cached_at=now, expires_at=strategy.expiration_for(now)),
            )
        return True

    def invalidate(self, url: str) -> bool:
        """Remove a cached value and its metadata."""
        removed = self._ttl.remove(self._ttl.generate_cache_key(url))
        if removed:
            logger.info(f"Invalidated cache: {url}")
        return removed

    # =========================================================================
    # Internals
    # =========================================================================

    def _fetch_fresh(
        self,
        url: str,
        schema: Type[T],
        strategy: ExpirationStrategy,
        cache_key: str,
    ) -> TTLCachedResponse[T]:
        try:
            response = self._coalescer.get_or_fetch(
                cache_key,
                lambda: self._http.get_typed(url, schema, force_refresh=True),
            )
        except Exception as e:
            logger.warning(f"Fetch failed for {url}: {e}")
            return TTLCachedResponse(
                data=None,
                is_success=False,
                is_from_cache=False,
                error=CacheError(message=f"Unexpected error: {e}"),
            )

        if not response.is_success:
            return TTLCachedResponse(
                data=None,
                is_success=False,
                is_from_cache=False,
                raw_payload=response.raw_payload,
                error=response.error or CacheError(message="Unknown error"),
            )

        now = self._clock()
        metadata = CacheMetadata(cached_at=now, expires_at=strategy.expiration_for(now))
        self._ttl.store_entry(cache_key, response.data, schema, metadata)
        return TTLCachedResponse(
            data=response.data,
            is_success=True,
            is_from_cache=response.is_from_cache,
            raw_payload=response.raw_payload,
            cached_at=metadata.cached_at,
            expires_at=metadata.expires_at,
            is_expired=False,
            is_refreshing=False,
        )

    def _trigger_background_refresh(
        self,
        url: str,
        schema: Type[T],
        strategy: ExpirationStrategy,
        cache_key: str,
    ) -> Future:
        """Start a background refresh without blocking, or join the running one."""
        with self._revalidating_lock:
            running = self._revalidating.get(cache_key)
            if running is not None and not running.done():
                logger.debug(f"Already revalidating: {url}")
                return running
            future = self._revalidation_pool.submit(
                self._refresh, url, schema, strategy, cache_key
            )
            self._revalidating[cache_key] = future

        future.add_done_callback(lambda _: self._forget_refresh(cache_key, future))
        return future

    def _forget_refresh(self, cache_key: str, future: Future) -> None:
        with self._revalidating_lock:
            if self._revalidating.get(cache_key) is future:
                del self._revalidating[cache_key]

    def _refresh(
        self,
        url: str,
        schema: Type[T],
        strategy: ExpirationStrategy,
        cache_key: str,
    ) -> bool:
        """
        Background refresh body. Failures are logged and dropped; the stale
        entry stays as it was.

        Returns:
            True if the cache was updated
        """
        try:
            logger.debug(f"Background refresh started: {url}")
            response = self._http.get_typed(url, schema, force_refresh=True)
            if not response.is_success:
                logger.warning(f"Background refresh failed for {url}: {response.error}")
                self._count("revalidation_failures")
                return False

            now = self._clock()
            metadata = CacheMetadata(cached_at=now, expires_at=strategy.expiration_for(now))
            self._ttl.store_entry(cache_key, response.data, schema, metadata)
            self._count("revalidations")
            logger.info(f"Background refresh completed for: {url}")
            return True
        except Exception as e:
            logger.warning(f"Background refresh failed for {url}: {e}")
            self._count("revalidation_failures")
            return False

    def _count(self, stat: str) -> None:
        with self._stats_lock:
            self._stats[stat] += 1

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        with self._stats_lock:
            stats = dict(self._stats)
        total_hits = stats["hits_fresh"] + stats["hits_stale"]
        total_requests = total_hits + stats["misses"]
        hit_rate = (total_hits / total_requests * 100) if total_requests > 0 else 0

        with self._revalidating_lock:
            revalidating_count = len(self._revalidating)

        return {
            **stats,
            "entries": len(self._ttl),
            "hit_rate_percent": round(hit_rate, 1),
            "coalescer": self._coalescer.get_stats(),
            "revalidating_count": revalidating_count,
        }

    def shutdown(self, wait: bool = True) -> None:
        """Stop the background refresh pool."""
        self._revalidation_pool.shutdown(wait=wait)
