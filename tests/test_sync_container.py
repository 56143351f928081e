"""
Tests for the sync container: reducer, side effects and the single-refresh
guard.
"""
import threading

import pytest

from statcache.registry import (
    BatchSynchronizer,
    CachedItemRepository,
    ManifestManager,
    ManifestRepository,
    SyncCompleted,
    SyncContainer,
    SyncFailed,
    SyncState,
    reduce,
)
from statcache.registry.container import ProgressUpdated, SyncErrored, SyncStarted
from statcache.registry.models import SyncProgress

BASE = "https://data.example.com"
MANIFEST_URL = f"{BASE}/registry"

MANIFEST = {
    "version": "3",
    "charts": [
        {
            "id": "nfl__tiers",
            "updatedAt": "2024-06-15T10:00:00Z",
            "visualizationType": "LINE_CHART",
            "url": "nfl__tiers.json",
        }
    ],
}

CHART = {
    "sport": "NFL",
    "visualizationType": "LINE_CHART",
    "title": "Trend",
    "lastUpdated": "2024-06-15T10:00:00Z",
    "series": [{"label": "KC", "dataPoints": [{"x": 1, "y": 2}]}],
}


@pytest.fixture
def container(http_client, store, clock):
    manager = ManifestManager(
        http_client, ManifestRepository(store), clock=clock, manifest_url=MANIFEST_URL, dev_mode=False
    )
    synchronizer = BatchSynchronizer(http_client, CachedItemRepository(store), clock=clock, base_url=BASE)
    sync = SyncContainer(manager, synchronizer, clock=clock)
    yield sync
    sync.shutdown()


def test_reducer_is_pure():
    state = SyncState()
    started = reduce(state, SyncStarted())

    assert state.is_syncing is False
    assert started.is_syncing is True
    assert started.is_loading is True


def test_reducer_error_keeps_previous_manifest_without_fallback():
    progress = SyncProgress(completed=1, total=2)
    state = reduce(SyncState(is_syncing=True), ProgressUpdated(progress))
    errored = reduce(state, SyncErrored("boom"))

    assert errored.progress == progress
    assert errored.last_error == "boom"
    assert errored.is_syncing is False


def test_refresh_syncs_catalog_and_posts_completion(container, session, clock):
    session.add_json(MANIFEST_URL, MANIFEST)
    session.add_json(f"{BASE}/nfl__tiers.json", CHART)

    assert container.refresh() is True

    state = container.state
    assert state.manifest.version == "3"
    assert state.progress.is_complete
    assert state.is_syncing is False
    assert state.last_synced_at == clock.now
    effects = container.drain_effects()
    assert len(effects) == 1
    assert isinstance(effects[0], SyncCompleted)
    assert effects[0].progress.completed == 1


def test_manifest_failure_falls_back_and_posts_failure(container, session):
    session.add_json(MANIFEST_URL, MANIFEST)
    session.add_json(f"{BASE}/nfl__tiers.json", CHART)
    container.refresh()
    container.drain_effects()
    session.add_text(MANIFEST_URL, "", status=502, reason="Bad Gateway")

    container.refresh(force=True)

    state = container.state
    assert state.manifest.version == "3"
    assert "502" in state.last_error
    assert state.is_syncing is False
    effects = container.drain_effects()
    assert isinstance(effects[0], SyncFailed)


def test_overlapping_refresh_is_rejected(container, session):
    """A refresh requested while one runs does no work"""
    session.add_json(MANIFEST_URL, MANIFEST)
    session.add_json(f"{BASE}/nfl__tiers.json", CHART)
    session.gate = threading.Event()

    future = container.refresh_in_background()
    try:
        assert future is not None
        assert container.state.is_syncing is True
        assert container.refresh_in_background() is None
        assert container.refresh() is False
    finally:
        session.gate.set()

    future.result(timeout=5)
    assert container.state.is_syncing is False
    assert session.call_count(MANIFEST_URL) == 1
    assert container.refresh_in_background() is not None
