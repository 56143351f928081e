"""
Persistence for the manifest and the cached chart catalog.

Both repositories are thin views over KeyValueStore collections.
"""
import json
import logging
from typing import List, Optional

from pydantic import ValidationError

from statcache.store import KeyValueStore
from .models import CachedItem, Manifest, ManifestMetadata

logger = logging.getLogger("registry.repository")

MANIFEST_COLLECTION = "manifest"
ITEM_COLLECTION = "cached_items"

_MANIFEST_KEY = "current"
_METADATA_KEY = "metadata"


class ManifestRepository:
    """The single cached manifest and its download metadata."""

    def __init__(self, store: KeyValueStore):
        self._store = store

    def get_manifest(self) -> Optional[Manifest]:
        document = self._store.get(MANIFEST_COLLECTION, _MANIFEST_KEY)
        if document is None:
            return None
        try:
            return Manifest.model_validate_json(document.get("manifest", ""))
        except ValidationError as e:
            logger.warning(f"Discarding unreadable cached manifest: {e}")
            return None

    def get_metadata(self) -> Optional[ManifestMetadata]:
        document = self._store.get(MANIFEST_COLLECTION, _METADATA_KEY)
        if document is None:
            return None
        try:
            return ManifestMetadata.from_dict(document.fields)
        except (KeyError, ValueError) as e:
            logger.warning(f"Discarding unreadable manifest metadata: {e}")
            return None

    def save(self, manifest: Manifest, metadata: ManifestMetadata) -> None:
        """Persist the manifest and its metadata together."""
        self._store.put_many([
            (
                MANIFEST_COLLECTION,
                _MANIFEST_KEY,
                {"manifest": manifest.model_dump_json(by_alias=True)},
            ),
            (MANIFEST_COLLECTION, _METADATA_KEY, metadata.to_dict()),
        ])

    def clear(self) -> int:
        return self._store.clear(MANIFEST_COLLECTION)


class CachedItemRepository:
    """Downloaded chart payloads keyed by manifest id."""

    def __init__(self, store: KeyValueStore):
        self._store = store

    def get(self, item_id: str) -> Optional[CachedItem]:
        document = self._store.get(ITEM_COLLECTION, item_id)
        if document is None:
            return None
        try:
            return CachedItem.from_dict(document.fields)
        except (KeyError, ValueError) as e:
            logger.warning(f"Discarding unreadable cached item {item_id}: {e}")
            return None

    def save(self, item: CachedItem) -> None:
        self._store.put(ITEM_COLLECTION, item.id, item.to_dict())

    def delete(self, item_id: str) -> bool:
        return self._store.delete(ITEM_COLLECTION, item_id)

    def all_ids(self) -> List[str]:
        return self._store.keys(ITEM_COLLECTION)

    def all_items(self) -> List[CachedItem]:
        items = []
        for item_id in self.all_ids():
            item = self.get(item_id)
            if item is not None:
                items.append(item)
        return items

    def mark_viewed(self, item_id: str) -> bool:
        """Flag an item as viewed. Returns False if it is not cached."""
        item = self.get(item_id)
        if item is None:
            return False
        self.save(item.mark_viewed())
        return True

    def estimate_size(self) -> int:
        """Approximate bytes used by cached payloads."""
        total = 0
        for item_id in self.all_ids():
            document = self._store.get(ITEM_COLLECTION, item_id)
            if document is not None:
                total += len(json.dumps(document.fields).encode("utf-8"))
        return total

    def count(self) -> int:
        return self._store.count(ITEM_COLLECTION)

    def clear(self) -> int:
        return self._store.clear(ITEM_COLLECTION)
