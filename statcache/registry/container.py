"""
Sync container: owns the catalog sync state, applies events through a pure
reducer and publishes one-shot side effects for whoever drives the UI.
"""
import logging
import queue
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, List, Optional, Union

from .manager import ManifestManager
from .models import Manifest, SyncProgress
from .synchronizer import BatchSynchronizer

logger = logging.getLogger("registry.container")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SyncState:
    manifest: Optional[Manifest] = None
    progress: Optional[SyncProgress] = None
    is_loading: bool = False
    is_syncing: bool = False
    last_error: Optional[str] = None
    last_synced_at: Optional[datetime] = None


# ===== Events =====

@dataclass(frozen=True)
class SyncStarted:
    pass


@dataclass(frozen=True)
class ManifestLoaded:
    manifest: Manifest


@dataclass(frozen=True)
class ProgressUpdated:
    progress: SyncProgress


@dataclass(frozen=True)
class SyncFinished:
    finished_at: datetime


@dataclass(frozen=True)
class SyncErrored:
    message: str
    fallback: Optional[Manifest] = None


SyncEvent = Union[SyncStarted, ManifestLoaded, ProgressUpdated, SyncFinished, SyncErrored]


# ===== Side effects =====

@dataclass(frozen=True)
class SyncCompleted:
    progress: Optional[SyncProgress]


@dataclass(frozen=True)
class SyncFailed:
    message: str


SideEffect = Union[SyncCompleted, SyncFailed]


def reduce(state: SyncState, event: SyncEvent) -> SyncState:
    """Next state for an event. Pure."""
    if isinstance(event, SyncStarted):
        return replace(state, is_loading=True, is_syncing=True, last_error=None, progress=None)
    if isinstance(event, ManifestLoaded):
        return replace(state, manifest=event.manifest, is_loading=False)
    if isinstance(event, ProgressUpdated):
        return replace(state, progress=event.progress)
    if isinstance(event, SyncFinished):
        return replace(state, is_loading=False, is_syncing=False, last_synced_at=event.finished_at)
    if isinstance(event, SyncErrored):
        return replace(
            state,
            manifest=event.fallback if event.fallback is not None else state.manifest,
            is_loading=False,
            is_syncing=False,
            last_error=event.message,
        )
    raise ValueError(f"Unknown sync event: {event!r}")


class SyncContainer:
    """
    Drives manifest refresh + batch sync and tracks the result.

    Only one refresh runs at a time: a refresh requested while another is in
    progress is rejected without doing any work.
    """

    def __init__(
        self,
        manager: ManifestManager,
        synchronizer: BatchSynchronizer,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._manager = manager
        self._synchronizer = synchronizer
        self._clock = clock
        self._state = SyncState()
        self._state_lock = threading.Lock()
        self._effects: "queue.Queue[SideEffect]" = queue.Queue()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="catalog-sync")

    @property
    def state(self) -> SyncState:
        with self._state_lock:
            return self._state

    @property
    def effects(self) -> "queue.Queue[SideEffect]":
        return self._effects

    def drain_effects(self) -> List[SideEffect]:
        """Pop every pending side effect."""
        drained = []
        while True:
            try:
                drained.append(self._effects.get_nowait())
            except queue.Empty:
                return drained

    def refresh(self, force: bool = False) -> bool:
        """
        Refresh the manifest and sync the catalog on the calling thread.

        Returns:
            False if a refresh was already running
        """
        if not self._begin():
            return False
        self._run(force)
        return True

    def refresh_in_background(self, force: bool = False) -> Optional[Future]:
        """Start a refresh on the container's worker, or None if one is running."""
        if not self._begin():
            return None
        return self._executor.submit(self._run, force)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    # =========================================================================
    # Internals
    # =========================================================================

    def _dispatch(self, event: SyncEvent) -> None:
        with self._state_lock:
            self._state = reduce(self._state, event)

    def _begin(self) -> bool:
        with self._state_lock:
            if self._state.is_syncing:
                logger.info("Sync already in progress, ignoring refresh")
                return False
            self._state = reduce(self._state, SyncStarted())
            return True

    def _run(self, force: bool) -> None:
        try:
            result = self._manager.force_refresh() if force else self._manager.check_and_update()
            if not result.is_success:
                message = str(result.error)
                self._dispatch(SyncErrored(message, fallback=self._manager.get_cached_manifest()))
                self._effects.put(SyncFailed(message))
                return

            self._dispatch(ManifestLoaded(result.manifest))
            last_progress = None
            for progress in self._synchronizer.synchronize(result.manifest.entries):
                self._dispatch(ProgressUpdated(progress))
                last_progress = progress

            self._dispatch(SyncFinished(finished_at=self._clock()))
            self._effects.put(SyncCompleted(last_progress))
        except Exception as e:
            logger.exception(f"Sync failed: {e}")
            self._dispatch(SyncErrored(f"Unexpected error: {e}"))
            self._effects.put(SyncFailed(f"Unexpected error: {e}"))
