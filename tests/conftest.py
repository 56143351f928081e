"""
Shared fixtures: in-memory document store, a fake HTTP session and a
controllable clock.
"""
import json
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import pytest

from statcache.cache import CachedHttpClient, RawResponseCache, TTLStore
from statcache.store import KeyValueStore


# 12:00 in New York (EDT), well clear of any DST transition
NOON_NY = datetime(2024, 6, 15, 16, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = NOON_NY):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeResponse:
    def __init__(self, text: str = "", status_code: int = 200, reason: str = "OK"):
        self.text = text
        self.status_code = status_code
        self.reason = reason


class FakeSession:
    """
    requests.Session stand-in serving canned responses by URL.

    Unknown URLs answer 404. A route may be an exception instance, which is
    raised instead of answering. Setting `gate` makes every call block until
    the event is set.
    """

    def __init__(self):
        self.routes: Dict[str, Any] = {}
        self.calls: List[Tuple[str, Optional[dict]]] = []
        self.gate: Optional[threading.Event] = None
        self._lock = threading.Lock()

    def add_json(self, url: str, body: Any, status: int = 200) -> None:
        self.routes[url] = FakeResponse(json.dumps(body), status_code=status)

    def add_text(self, url: str, text: str, status: int = 200, reason: str = "OK") -> None:
        self.routes[url] = FakeResponse(text, status_code=status, reason=reason)

    def add_error(self, url: str, error: Exception) -> None:
        self.routes[url] = error

    def get(self, url, params=None, headers=None, timeout=None):
        with self._lock:
            self.calls.append((url, params))
        if self.gate is not None:
            self.gate.wait(timeout=5)
        route = self.routes.get(url)
        if route is None:
            return FakeResponse("", status_code=404, reason="Not Found")
        if isinstance(route, Exception):
            raise route
        return route

    def call_count(self, url: Optional[str] = None) -> int:
        with self._lock:
            if url is None:
                return len(self.calls)
            return sum(1 for called, _ in self.calls if called == url)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    kv = KeyValueStore("sqlite://", clock=clock)
    yield kv
    kv.close()


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def raw_cache(store):
    return RawResponseCache(store)


@pytest.fixture
def http_client(raw_cache, session):
    return CachedHttpClient(raw_cache, session=session, timeout=5)


@pytest.fixture
def ttl_store(store, clock):
    return TTLStore(store, clock=clock)
