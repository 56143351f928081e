"""
Tests for the diagnostics / refresh HTTP API
"""
import threading
import time

import pytest
from fastapi.testclient import TestClient

import statcache.main
from config.settings import settings
from statcache.main import app, get_services
from statcache.services import build_services

DATA = settings.data_base_url.rstrip("/")
MANIFEST_URL = f"{DATA}{settings.manifest_path}"
API = settings.api_base_url.rstrip("/")

MANIFEST = {
    "version": "7",
    "charts": [
        {
            "id": "nba__net_rating",
            "updatedAt": "2024-06-15T10:00:00Z",
            "visualizationType": "SCATTER_PLOT",
            "url": "nba__net_rating.json",
            "title": "Net rating",
        }
    ],
}

CHART = {
    "sport": "NBA",
    "visualizationType": "SCATTER_PLOT",
    "title": "Net rating",
    "lastUpdated": "2024-06-15T10:00:00Z",
    "xAxisLabel": "Offense",
    "yAxisLabel": "Defense",
    "dataPoints": [{"label": "BOS", "x": 120.1, "y": 108.2}],
}


@pytest.fixture
def services(session, clock):
    built = build_services("sqlite://", session=session, clock=clock)
    app.dependency_overrides[get_services] = lambda: built
    yield built
    app.dependency_overrides.clear()
    built.shutdown()


@pytest.fixture
def client(services):
    return TestClient(app)


@pytest.fixture
def synced(services, session):
    session.add_json(MANIFEST_URL, MANIFEST)
    session.add_json(f"{DATA}/nba__net_rating.json", CHART)
    assert services.container.refresh() is True
    return services


def test_health_endpoint_returns_ok(client):
    """Test that /health returns status: ok"""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_charts_empty_before_first_sync(client):
    response = client.get("/charts")
    assert response.json() == {"version": None, "charts": []}


def test_charts_lists_cached_status(client, synced):
    data = client.get("/charts").json()

    assert data["version"] == "7"
    chart = data["charts"][0]
    assert chart["id"] == "nba__net_rating"
    assert chart["cached"] is True
    assert chart["upToDate"] is True
    assert chart["viewed"] is False


def test_charts_filter_by_sport(client, synced):
    assert len(client.get("/charts", params={"sport": "nba"}).json()["charts"]) == 1
    assert client.get("/charts", params={"sport": "NFL"}).json()["charts"] == []


def test_get_chart_returns_decoded_payload(client, synced):
    response = client.get("/charts/nba__net_rating")

    assert response.status_code == 200
    chart = response.json()["chart"]
    assert chart["visualizationType"] == "SCATTER_PLOT"
    assert chart["dataPoints"][0]["label"] == "BOS"


def test_get_unknown_chart_is_404(client, synced):
    assert client.get("/charts/nope").status_code == 404


def test_mark_viewed(client, synced):
    assert client.post("/charts/nba__net_rating/viewed").status_code == 200
    assert client.get("/charts/nba__net_rating").json()["viewed"] is True
    assert client.post("/charts/nope/viewed").status_code == 404


def test_sync_starts_in_background(client, services, session):
    session.add_json(MANIFEST_URL, MANIFEST)
    session.add_json(f"{DATA}/nba__net_rating.json", CHART)

    response = client.post("/sync")

    assert response.status_code == 202
    services.container.shutdown(wait=True)
    assert services.items.get("nba__net_rating") is not None


def test_sync_while_running_is_409(client, services):
    services.container._begin()
    response = client.post("/sync")
    assert response.status_code == 409


def test_diagnostics_reports_manifest_and_sync_state(client, synced):
    data = client.get("/diagnostics").json()

    assert data["manifest"]["version"] == "7"
    assert data["manifest"]["isStale"] is False
    assert data["sync"]["isSyncing"] is False
    assert data["sync"]["progress"]["isComplete"] is True
    assert data["cachedChartIds"] == ["nba__net_rating"]


def test_cache_stats(client, synced):
    data = client.get("/cache/stats").json()
    assert data["charts"]["count"] == 1
    assert data["rawResponses"] >= 1


def test_delete_cache_clears_everything(client, synced):
    response = client.delete("/cache")

    assert response.status_code == 200
    assert response.json()["cleared"]["charts"] == 1
    assert client.get("/charts").json()["charts"] == []


def test_day_schedule(client, session):
    session.add_json(f"{API}/day/20240615/schedule", {"fastbreakCard": []})

    first = client.get("/day/20240615/schedule").json()
    second = client.get("/day/20240615/schedule").json()

    assert first["isFromCache"] is False
    assert second["isFromCache"] is True
    assert session.call_count() == 1


def test_day_stats_upstream_error_is_502(client):
    assert client.get("/day/20240615/stats/u1").status_code == 502


def test_get_services_builds_once_under_concurrency(monkeypatch):
    """Concurrent first requests share one component set"""
    built = []

    def slow_build():
        time.sleep(0.05)
        services = object()
        built.append(services)
        return services

    monkeypatch.setattr(statcache.main, "_services", None)
    monkeypatch.setattr(statcache.main, "build_services", slow_build)
    barrier = threading.Barrier(4)
    results = []

    def request():
        barrier.wait(timeout=5)
        results.append(get_services())

    threads = [threading.Thread(target=request) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5)

    assert len(built) == 1
    assert len(results) == 4
    assert all(r is built[0] for r in results)
