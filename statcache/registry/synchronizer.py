"""
Batch synchronizer: brings the local chart catalog in line with a manifest.
"""
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timezone
from typing import Callable, Iterable, Iterator, List, Optional, Set, Tuple
from urllib.parse import urljoin

from pydantic import ValidationError

from statcache.cache import CachedHttpClient
from statcache.errors import CacheError, NotFoundError, SerializationError
from .models import CachedItem, Manifest, ManifestEntry, SyncProgress
from .repository import CachedItemRepository
from .visualizations import decode_visualization
from config.settings import settings

logger = logging.getLogger("registry.sync")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def resolve_location(base_url: str, location: str) -> str:
    """Absolute URL for a manifest entry; relative locations hang off base_url."""
    return urljoin(base_url.rstrip("/") + "/", location)


class BatchSynchronizer:
    """
    Downloads every manifest entry whose remote copy is newer than the local one.

    synchronize() is a generator: nothing happens until it is iterated, it
    yields one SyncProgress per processed entry (downloaded, skipped or
    failed), and the last snapshot has is_complete set. A failing entry is
    recorded in failed_items and never stops the rest of the batch. There is
    no retry; a failed entry is picked up again by the next run.

    Usage:
        for progress in synchronizer.synchronize(manifest.entries):
            print(progress.status_message)
    """

    def __init__(
        self,
        http_client: CachedHttpClient,
        items: CachedItemRepository,
        clock: Callable[[], datetime] = _utcnow,
        max_concurrent_downloads: Optional[int] = None,
        base_url: Optional[str] = None,
    ):
        """
        Args:
            http_client: Client used for payload downloads (cache bypassed)
            items: Local chart catalog
            clock: Source of cached_at timestamps
            max_concurrent_downloads: Download thread pool size
            base_url: Base for relative entry locations
        """
        self._http = http_client
        self._items = items
        self._clock = clock
        self._max_workers = max_concurrent_downloads or settings.sync_max_concurrent_downloads
        self._base_url = base_url or settings.data_base_url

    # =========================================================================
    # Batch
    # =========================================================================

    def synchronize(
        self,
        entries: Iterable[ManifestEntry],
        remove_orphans: bool = True,
    ) -> Iterator[SyncProgress]:
        """
        Sync a batch of entries, yielding progress as each one finishes.

        Args:
            entries: Manifest entries to bring up to date; non-chart entries
                are skipped and not counted
            remove_orphans: Delete cached items absent from `entries` before
                the final snapshot is yielded
        """
        entries = [e for e in entries if e.visualization_kind.is_chart]
        total = len(entries)
        logger.info(f"Sync started: {total} charts")

        if total == 0:
            if remove_orphans:
                self._remove_orphans(set())
            yield SyncProgress(completed=0, total=0)
            return

        completed = 0
        failed: List[Tuple[str, str]] = []

        with ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="chart-sync") as pool:
            futures = {pool.submit(self._sync_entry, entry): entry for entry in entries}
            for future in as_completed(futures):
                entry = futures[future]
                error = future.result()
                completed += 1
                if error is not None:
                    failed.append((entry.item_id, str(error)))

                if completed == total:
                    if remove_orphans:
                        self._remove_orphans({e.item_id for e in entries})
                    logger.info(f"Sync finished: {total - len(failed)}/{total} successful")

                yield SyncProgress(
                    completed=completed,
                    total=total,
                    failed_items=tuple(failed),
                    current_item=entry.item_id,
                )

    def sync_item(self, manifest: Manifest, item_id: str) -> Optional[CacheError]:
        """
        Sync a single manifest entry.

        Returns:
            None on success (or when already current), otherwise the error;
            NotFoundError if the id is not in the manifest
        """
        entry = manifest.find(item_id)
        if entry is None or not entry.visualization_kind.is_chart:
            return NotFoundError.for_item(item_id)
        return self._sync_entry(entry)

    # =========================================================================
    # Catalog helpers
    # =========================================================================

    def cached_item_ids(self) -> List[str]:
        return self._items.all_ids()

    def estimate_cache_size(self) -> int:
        return self._items.estimate_size()

    def mark_viewed(self, item_id: str) -> bool:
        return self._items.mark_viewed(item_id)

    def clear_all(self) -> int:
        """Delete every cached chart."""
        removed = self._items.clear()
        logger.info(f"Cleared {removed} cached charts")
        return removed

    # =========================================================================
    # Internals
    # =========================================================================

    def needs_download(self, entry: ManifestEntry) -> bool:
        local = self._items.get(entry.item_id)
        return local is None or entry.updated_at > local.updated_at

    def _sync_entry(self, entry: ManifestEntry) -> Optional[CacheError]:
        """Download and store one entry if it is out of date. Never raises."""
        try:
            if not self.needs_download(entry):
                logger.debug(f"Chart up to date: {entry.item_id}")
                return None
            return self._download(entry)
        except Exception as e:
            logger.warning(f"Sync failed for {entry.item_id}: {e}")
            return CacheError(message=f"Unexpected error: {e}")

    def _download(self, entry: ManifestEntry) -> Optional[CacheError]:
        url = resolve_location(self._base_url, entry.remote_location)
        response = self._http.get(url, use_cache=False)
        if not response.is_success:
            logger.warning(f"Download failed for {entry.item_id}: {response.error}")
            return response.error or CacheError(message="Unknown error")

        try:
            decoded = decode_visualization(entry.visualization_kind, response.payload)
        except ValidationError as e:
            logger.warning(f"Decode failed for {entry.item_id}: {e}")
            return SerializationError(message=f"JSON parsing error: {e}", raw_payload=response.payload)

        if decoded.visualization_type != entry.visualization_kind:
            return SerializationError(
                message=(
                    f"Expected {entry.visualization_kind.value} payload, "
                    f"got {decoded.visualization_type.value}"
                ),
                raw_payload=response.payload,
            )

        self._items.save(CachedItem(
            id=entry.item_id,
            visualization_kind=entry.visualization_kind,
            payload=response.payload,
            updated_at=entry.updated_at,
            cached_at=self._clock(),
            viewed=False,
            interval=entry.interval,
        ))
        logger.info(f"Downloaded chart: {entry.item_id}")
        return None

    def _remove_orphans(self, keep: Set[str]) -> int:
        removed = 0
        for item_id in self._items.all_ids():
            if item_id not in keep:
                self._items.delete(item_id)
                removed += 1
        if removed:
            logger.info(f"Removed {removed} orphaned charts")
        return removed
