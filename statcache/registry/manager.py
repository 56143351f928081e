"""
Manifest manager: keeps a local copy of the chart manifest and decides when
it must be downloaded again.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from pydantic import ValidationError

from statcache.cache import CachedHttpClient
from statcache.errors import CacheError, SerializationError
from .models import Manifest, ManifestMetadata
from .repository import ManifestRepository
from config.settings import settings

logger = logging.getLogger("registry.manager")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ManifestResult:
    """Outcome of a manifest read or refresh."""
    manifest: Optional[Manifest] = None
    error: Optional[CacheError] = None
    is_from_cache: bool = False

    @property
    def is_success(self) -> bool:
        return self.manifest is not None and self.error is None

    @classmethod
    def success(cls, manifest: Manifest, is_from_cache: bool = False) -> "ManifestResult":
        return cls(manifest=manifest, is_from_cache=is_from_cache)

    @classmethod
    def failure(cls, error: CacheError) -> "ManifestResult":
        return cls(error=error)


class ManifestManager:
    """
    Fetches and caches the versioned manifest.

    The manifest is re-downloaded when none is cached or when the last
    download is older than the staleness threshold (12 hours by default).
    Entries under the dev/ prefix are only kept in dev mode.
    """

    def __init__(
        self,
        http_client: CachedHttpClient,
        repository: ManifestRepository,
        clock: Callable[[], datetime] = _utcnow,
        manifest_url: Optional[str] = None,
        stale_after: Optional[timedelta] = None,
        dev_mode: Optional[bool] = None,
    ):
        self._http = http_client
        self._repository = repository
        self._clock = clock
        self.manifest_url = manifest_url or f"{settings.data_base_url.rstrip('/')}{settings.manifest_path}"
        self.stale_after = stale_after or timedelta(hours=settings.manifest_stale_hours)
        self.dev_mode = settings.dev_mode if dev_mode is None else dev_mode

    def check_and_update(self) -> ManifestResult:
        """Return the cached manifest, refreshing it first when missing or stale."""
        metadata = self._repository.get_metadata()
        manifest = self._repository.get_manifest()

        if manifest is None or metadata is None:
            logger.info("No cached manifest, downloading")
            return self.force_refresh()

        if self.is_stale(metadata):
            logger.info(
                f"Manifest is stale (downloaded {metadata.last_download_time.isoformat()}), refreshing"
            )
            return self.force_refresh()

        logger.debug(f"Using cached manifest version {metadata.version}")
        return ManifestResult.success(manifest, is_from_cache=True)

    def force_refresh(self) -> ManifestResult:
        """Download, parse and persist the manifest regardless of its age."""
        response = self._http.get(self.manifest_url, force_refresh=True)
        if not response.is_success:
            logger.warning(f"Manifest download failed: {response.error}")
            return ManifestResult.failure(response.error or CacheError(message="Unknown error"))

        try:
            manifest = Manifest.model_validate_json(response.payload)
        except ValidationError as e:
            logger.warning(f"Manifest parse failed: {e}")
            return ManifestResult.failure(
                SerializationError(message=f"JSON parsing error: {e}", raw_payload=response.payload)
            )

        manifest = manifest.filtered(self.dev_mode)
        metadata = ManifestMetadata(last_download_time=self._clock(), version=manifest.version)
        self._repository.save(manifest, metadata)
        logger.info(f"Manifest version {manifest.version} saved ({manifest.entry_count} charts)")
        return ManifestResult.success(manifest)

    def is_stale(self, metadata: Optional[ManifestMetadata], now: Optional[datetime] = None) -> bool:
        """True when there is no metadata or the last download is past the threshold."""
        if metadata is None:
            return True
        now = now or self._clock()
        return now - metadata.last_download_time > self.stale_after

    def get_metadata(self) -> Optional[ManifestMetadata]:
        return self._repository.get_metadata()

    def get_cached_manifest(self) -> Optional[Manifest]:
        return self._repository.get_manifest()

    def has_manifest(self) -> bool:
        return self._repository.get_manifest() is not None

    def clear(self) -> None:
        self._repository.clear()
