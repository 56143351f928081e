"""
Wiring for the cache and sync components.

build_services() assembles one fully connected set of components over a
single document store. The HTTP app builds one on first use; tests build
their own with an in-memory store, a fake session and a fixed clock.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

import requests

from statcache.cache import (
    CachedHttpClient,
    RawResponseCache,
    StaleWhileRevalidateClient,
    TTLStore,
)
from statcache.daily import DailyDataCache
from statcache.registry import (
    BatchSynchronizer,
    CachedItemRepository,
    ManifestManager,
    ManifestRepository,
    SyncContainer,
)
from statcache.store import KeyValueStore
from config.settings import settings

logger = logging.getLogger("statcache.services")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Services:
    store: KeyValueStore
    raw_cache: RawResponseCache
    http: CachedHttpClient
    ttl_store: TTLStore
    swr: StaleWhileRevalidateClient
    manifests: ManifestRepository
    items: CachedItemRepository
    manager: ManifestManager
    synchronizer: BatchSynchronizer
    container: SyncContainer
    daily: DailyDataCache

    def clear_all(self) -> dict:
        """Drop every cached document. Returns per-area counts."""
        return {
            "rawResponses": self.raw_cache.clear(),
            "ttlEntries": self.ttl_store.clear(),
            "charts": self.synchronizer.clear_all(),
            "manifest": self.manifests.clear(),
        }

    def shutdown(self) -> None:
        self.container.shutdown(wait=True)
        self.swr.shutdown(wait=True)
        self.store.close()


def build_services(
    database_url: Optional[str] = None,
    session: Optional[requests.Session] = None,
    clock: Callable[[], datetime] = _utcnow,
) -> Services:
    """
    Build every component over one document store.

    Args:
        database_url: SQLAlchemy URL; defaults to settings.database_url
        session: requests-compatible session used for all network calls
        clock: Source of "now" shared by every component
    """
    store = KeyValueStore(database_url, clock=clock)
    raw_cache = RawResponseCache(store)
    removed = raw_cache.cleanup()
    if removed:
        logger.info(f"Startup cleanup removed {removed} raw responses")

    headers = {"X-API-Key": settings.api_key} if settings.api_key else None
    http = CachedHttpClient(raw_cache, session=session, default_headers=headers)
    ttl_store = TTLStore(store, clock=clock)
    swr = StaleWhileRevalidateClient(http, ttl_store, clock=clock)

    manifests = ManifestRepository(store)
    items = CachedItemRepository(store)
    manager = ManifestManager(http, manifests, clock=clock)
    synchronizer = BatchSynchronizer(http, items, clock=clock)
    container = SyncContainer(manager, synchronizer, clock=clock)

    return Services(
        store=store,
        raw_cache=raw_cache,
        http=http,
        ttl_store=ttl_store,
        swr=swr,
        manifests=manifests,
        items=items,
        manager=manager,
        synchronizer=synchronizer,
        container=container,
        daily=DailyDataCache(swr),
    )
