"""
statcache - diagnostics and refresh API

Exposes the local chart catalog, the daily data cache and manual sync
triggers over HTTP.
"""
import logging
import threading
from typing import Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException, Query
from pydantic import ValidationError

from statcache.daily import DailyError
from statcache.registry import decode_visualization, visualization_to_dict
from statcache.services import Services, build_services

load_dotenv()

logger = logging.getLogger("statcache.api")

APP_VERSION = "v0.1.0"
APP_NAME = "statcache"

app = FastAPI(
    title=APP_NAME,
    description="Chart catalog sync and stale-while-revalidate cache diagnostics",
    version=APP_VERSION,
)

_services: Optional[Services] = None
_services_lock = threading.Lock()


def get_services() -> Services:
    """Shared component set, built once on first use."""
    global _services
    if _services is None:
        with _services_lock:
            if _services is None:
                _services = build_services()
    return _services


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok", "version": APP_VERSION}


@app.get("/cache/stats")
def cache_stats(services: Services = Depends(get_services)):
    """Get cache statistics."""
    return {
        "swr": services.swr.get_stats(),
        "rawResponses": len(services.raw_cache),
        "charts": {
            "count": services.items.count(),
            "estimatedBytes": services.synchronizer.estimate_cache_size(),
        },
    }


# =============================================================================
# Chart catalog
# =============================================================================

@app.get("/charts")
def list_charts(
    sport: Optional[str] = Query(None, description="Only charts for this sport, e.g. NFL"),
    services: Services = Depends(get_services),
):
    """List manifest entries with their local cache status."""
    manifest = services.manager.get_cached_manifest()
    if manifest is None:
        return {"version": None, "charts": []}

    entries = manifest.entries_for_sport(sport) if sport else manifest.entries
    charts = []
    for entry in entries:
        item = services.items.get(entry.item_id)
        charts.append({
            "id": entry.item_id,
            "title": entry.title,
            "visualizationType": entry.visualization_kind.value,
            "updatedAt": entry.updated_at.isoformat(),
            "interval": entry.interval,
            "cached": item is not None,
            "viewed": item.viewed if item else False,
            "upToDate": item is not None and not services.synchronizer.needs_download(entry),
        })
    return {"version": manifest.version, "charts": charts}


@app.get("/charts/{item_id}")
def get_chart(item_id: str, services: Services = Depends(get_services)):
    """Decoded chart payload for a cached manifest entry."""
    manifest = services.manager.get_cached_manifest()
    if manifest is None or manifest.find(item_id) is None:
        raise HTTPException(status_code=404, detail=f"Chart '{item_id}' not found in manifest")

    item = services.items.get(item_id)
    if item is None:
        raise HTTPException(status_code=404, detail=f"Chart '{item_id}' not cached")

    try:
        visualization = decode_visualization(item.visualization_kind, item.payload)
    except ValidationError as e:
        logger.warning(f"Cached chart {item_id} no longer decodes: {e}")
        raise HTTPException(status_code=500, detail=f"Cached chart '{item_id}' is unreadable")

    return {
        "id": item.id,
        "viewed": item.viewed,
        "cachedAt": item.cached_at.isoformat(),
        "chart": visualization_to_dict(visualization),
    }


@app.post("/charts/{item_id}/viewed")
def mark_chart_viewed(item_id: str, services: Services = Depends(get_services)):
    """Flag a cached chart as viewed."""
    if not services.synchronizer.mark_viewed(item_id):
        raise HTTPException(status_code=404, detail=f"Chart '{item_id}' not cached")
    return {"id": item_id, "viewed": True}


# =============================================================================
# Sync
# =============================================================================

@app.post("/sync", status_code=202)
def start_sync(
    force: bool = Query(False, description="Re-download the manifest even if it is fresh"),
    services: Services = Depends(get_services),
):
    """Start a manifest refresh + catalog sync in the background."""
    if services.container.refresh_in_background(force=force) is None:
        raise HTTPException(status_code=409, detail="Sync already in progress")
    return {"status": "started", "force": force}


@app.get("/diagnostics")
def diagnostics(services: Services = Depends(get_services)):
    """Manifest freshness and sync state."""
    metadata = services.manager.get_metadata()
    state = services.container.state
    return {
        "manifest": {
            "version": metadata.version if metadata else None,
            "lastDownloadTime": metadata.last_download_time.isoformat() if metadata else None,
            "isStale": services.manager.is_stale(metadata),
            "devMode": services.manager.dev_mode,
        },
        "sync": {
            "isLoading": state.is_loading,
            "isSyncing": state.is_syncing,
            "lastError": state.last_error,
            "lastSyncedAt": state.last_synced_at.isoformat() if state.last_synced_at else None,
            "progress": state.progress.to_dict() if state.progress else None,
        },
        "cachedChartIds": services.synchronizer.cached_item_ids(),
    }


@app.delete("/cache")
def clear_cache(services: Services = Depends(get_services)):
    """Drop every cached response, TTL entry, chart and the manifest."""
    cleared = services.clear_all()
    logger.info(f"Cache cleared: {cleared}")
    return {"cleared": cleared}


# =============================================================================
# Daily data
# =============================================================================

@app.get("/day/{date_code}/schedule")
def day_schedule(date_code: str, services: Services = Depends(get_services)):
    """Schedule for a day, served stale-while-revalidate."""
    result = services.daily.get_schedule(date_code)
    if isinstance(result, DailyError):
        raise HTTPException(status_code=502, detail=result.message)
    return result.to_dict()


@app.get("/day/{date_code}/stats/{user_id}")
def day_stats(date_code: str, user_id: str, services: Services = Depends(get_services)):
    """Per-user stats for a day, served stale-while-revalidate."""
    result = services.daily.get_stats(date_code, user_id)
    if isinstance(result, DailyError):
        raise HTTPException(status_code=502, detail=result.message)
    return result.to_dict()
