"""
Request coalescing to prevent duplicate upstream calls.

When several threads ask for the same key at once, only one call is made and
every caller receives the same result.
"""
import logging
import threading
import time
from concurrent import futures
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger("cache.coalescer")


@dataclass
class InFlightRequest:
    """Tracks an in-progress upstream call."""
    future: Future = field(default_factory=Future)
    started_at: float = field(default_factory=time.time)
    waiter_count: int = 0


class RequestCoalescer:
    """
    Ensures concurrent calls for the same key share one upstream call.

    Pattern:
    - First caller for a key runs fetch_fn
    - Later callers for the same key wait on its future
    - When the fetch completes all callers get the same result
    - Errors raised by fetch_fn propagate to every caller

    Usage:
        coalescer = RequestCoalescer()
        response = coalescer.get_or_fetch("schedule_key", lambda: client.get(url))
    """

    def __init__(self, timeout: float = 30.0):
        """
        Args:
            timeout: Max seconds a joining caller waits for the in-flight call
        """
        self._in_flight: Dict[str, InFlightRequest] = {}
        self._lock = threading.Lock()
        self._timeout = timeout

    def get_or_fetch(self, key: str, fetch_fn: Callable[[], Any]) -> Any:
        """
        Join an in-flight call for `key` or start a new one.

        Raises:
            TimeoutError: If waiting on another caller's fetch times out
        """
        with self._lock:
            in_flight = self._in_flight.get(key)
            if in_flight is not None:
                in_flight.waiter_count += 1
                logger.debug(f"Coalescing request for {key} (waiters: {in_flight.waiter_count})")
                is_initiator = False
            else:
                in_flight = InFlightRequest()
                self._in_flight[key] = in_flight
                is_initiator = True

        if is_initiator:
            try:
                in_flight.future.set_result(fetch_fn())
            except Exception as e:
                in_flight.future.set_exception(e)
            finally:
                with self._lock:
                    self._in_flight.pop(key, None)
            return in_flight.future.result()

        try:
            return in_flight.future.result(timeout=self._timeout)
        except futures.TimeoutError:
            logger.error(f"Timeout waiting for coalesced request: {key}")
            raise

    def in_flight(self, key: str) -> Optional[Future]:
        """Future of the in-flight call for `key`, if any."""
        with self._lock:
            request = self._in_flight.get(key)
            return request.future if request else None

    def waiters(self, key: str) -> int:
        """Callers currently joined to the in-flight call for `key`."""
        with self._lock:
            request = self._in_flight.get(key)
            return request.waiter_count if request else 0

    @property
    def active_requests(self) -> int:
        with self._lock:
            return len(self._in_flight)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "active_requests": len(self._in_flight),
                "active_keys": list(self._in_flight.keys()),
            }
