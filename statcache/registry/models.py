"""
Data models for the chart manifest and the locally cached chart catalog.

Manifest shapes are pydantic models (they arrive over the wire); local
catalog state is plain dataclasses.
"""
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pydantic import Field, field_validator, model_validator

from .visualizations import ChartModel, VisualizationKind

logger = logging.getLogger("registry.models")

DEV_PREFIX = "dev/"


# =============================================================================
# Manifest (wire format)
# =============================================================================

class ManifestEntry(ChartModel):
    """One downloadable chart definition."""
    id: str
    updated_at: datetime
    visualization_kind: VisualizationKind = Field(alias="visualizationType")
    remote_location: str = Field(alias="url")
    title: str = ""
    interval: Optional[str] = None

    @property
    def is_dev(self) -> bool:
        return self.id.startswith(DEV_PREFIX)

    @property
    def item_id(self) -> str:
        """Local id: the dev/ prefix and a .json suffix are dropped, '/' becomes '_'."""
        item_id = self.id[len(DEV_PREFIX):] if self.is_dev else self.id
        if item_id.endswith(".json"):
            item_id = item_id[:-len(".json")]
        return item_id.replace("/", "_")

    @property
    def sport(self) -> Optional[str]:
        """Sport code from ids shaped like 'nfl__team_tiers'."""
        if "__" not in self.item_id:
            return None
        return self.item_id.split("__", 1)[0].upper()


class Manifest(ChartModel):
    """Versioned catalog of downloadable charts."""
    version: str
    last_updated: Optional[datetime] = None
    entries: List[ManifestEntry] = Field(default_factory=list, alias="charts")

    @model_validator(mode="before")
    @classmethod
    def _drop_unknown_kinds(cls, data: Any) -> Any:
        """Entries of a kind this build does not know are skipped, not fatal."""
        if not isinstance(data, dict):
            return data
        key = "charts" if "charts" in data else "entries"
        raw_entries = data.get(key)
        if not isinstance(raw_entries, list):
            return data

        kept = []
        for raw in raw_entries:
            if isinstance(raw, dict):
                kind = raw.get("visualizationType", raw.get("visualization_kind"))
                if not VisualizationKind.known(kind):
                    logger.warning(f"Skipping manifest entry {raw.get('id')}: unknown kind {kind!r}")
                    continue
            kept.append(raw)
        return {**data, key: kept}

    @field_validator("entries")
    @classmethod
    def _unique_ids(cls, entries: List[ManifestEntry]) -> List[ManifestEntry]:
        seen = set()
        for entry in entries:
            if entry.item_id in seen:
                raise ValueError(f"Duplicate manifest id: {entry.item_id}")
            seen.add(entry.item_id)
        return entries

    def find(self, item_id: str) -> Optional[ManifestEntry]:
        for entry in self.entries:
            if entry.item_id == item_id:
                return entry
        return None

    def entries_for_sport(self, sport: str) -> List[ManifestEntry]:
        return [e for e in self.entries if e.sport == sport.upper()]

    def filtered(self, dev_mode: bool) -> "Manifest":
        """Copy keeping only dev/ entries in dev mode, only non-dev entries otherwise."""
        entries = [e for e in self.entries if e.is_dev == dev_mode]
        return self.model_copy(update={"entries": entries})

    @property
    def entry_count(self) -> int:
        return len(self.entries)


@dataclass(frozen=True)
class ManifestMetadata:
    """When the manifest was last downloaded and which version it was."""
    last_download_time: datetime
    version: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "lastDownloadTime": self.last_download_time.isoformat(),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ManifestMetadata":
        return cls(
            last_download_time=datetime.fromisoformat(data["lastDownloadTime"]),
            version=data["version"],
        )


# =============================================================================
# Local catalog
# =============================================================================

@dataclass
class CachedItem:
    """
    A downloaded chart payload.

    `updated_at` is the manifest timestamp the payload was downloaded for and
    is what staleness is judged against.
    """
    id: str
    visualization_kind: VisualizationKind
    payload: str
    updated_at: datetime
    cached_at: datetime
    viewed: bool = False
    interval: Optional[str] = None

    @property
    def size_estimate_bytes(self) -> int:
        return len(self.payload.encode("utf-8"))

    def mark_viewed(self) -> "CachedItem":
        return replace(self, viewed=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "visualizationKind": self.visualization_kind.value,
            "payload": self.payload,
            "updatedAt": self.updated_at.isoformat(),
            "cachedAt": self.cached_at.isoformat(),
            "viewed": self.viewed,
            "interval": self.interval,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CachedItem":
        return cls(
            id=data["id"],
            visualization_kind=VisualizationKind(data["visualizationKind"]),
            payload=data["payload"],
            updated_at=datetime.fromisoformat(data["updatedAt"]),
            cached_at=datetime.fromisoformat(data["cachedAt"]),
            viewed=bool(data.get("viewed", False)),
            interval=data.get("interval"),
        )


@dataclass(frozen=True)
class SyncProgress:
    """
    Snapshot of a synchronization run.

    A run emits one snapshot per processed entry; the last has is_complete set.
    """
    completed: int
    total: int
    failed_items: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)
    current_item: str = ""

    @property
    def is_complete(self) -> bool:
        return self.total == 0 or self.completed >= self.total

    @property
    def percentage(self) -> int:
        if self.total <= 0:
            return 100
        return int(self.completed / self.total * 100)

    @property
    def has_failures(self) -> bool:
        return len(self.failed_items) > 0

    @property
    def successful_count(self) -> int:
        return self.completed - len(self.failed_items)

    @property
    def status_message(self) -> str:
        if self.total == 0:
            return "No charts to sync"
        if self.is_complete and not self.has_failures:
            return f"Sync complete: {self.total} charts"
        if self.is_complete:
            return f"Sync complete: {self.successful_count}/{self.total} successful"
        return f"Syncing {self.current_item} ({self.completed}/{self.total})"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "completed": self.completed,
            "total": self.total,
            "failedItems": [{"id": i, "error": e} for i, e in self.failed_items],
            "isComplete": self.is_complete,
            "percentage": self.percentage,
            "status": self.status_message,
        }
