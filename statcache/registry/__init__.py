"""
Chart registry: manifest management, local catalog and batch synchronization.
"""
from .models import (
    CachedItem,
    Manifest,
    ManifestEntry,
    ManifestMetadata,
    SyncProgress,
)
from .visualizations import VisualizationKind, decode_visualization, visualization_to_dict
from .repository import CachedItemRepository, ManifestRepository
from .manager import ManifestManager, ManifestResult
from .synchronizer import BatchSynchronizer, resolve_location
from .container import SyncContainer, SyncCompleted, SyncFailed, SyncState, reduce

__all__ = [
    "CachedItem",
    "Manifest",
    "ManifestEntry",
    "ManifestMetadata",
    "SyncProgress",
    "VisualizationKind",
    "decode_visualization",
    "visualization_to_dict",
    "CachedItemRepository",
    "ManifestRepository",
    "ManifestManager",
    "ManifestResult",
    "BatchSynchronizer",
    "resolve_location",
    "SyncContainer",
    "SyncCompleted",
    "SyncFailed",
    "SyncState",
    "reduce",
]
