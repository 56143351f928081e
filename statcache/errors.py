"""
Error taxonomy for the fetch, cache and sync paths.

These are values, not exceptions: every fetch-path outcome is returned to the
immediate caller as a result carrying one of these, and callers dispatch on
the concrete type.
"""
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class CacheError:
    """Base class for every expected failure outcome."""
    message: str

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class NetworkError(CacheError):
    """Transport failure or timeout; no response was received."""


@dataclass(frozen=True)
class HttpStatusError(CacheError):
    """The server answered with a non-200 status."""
    status: int = 0

    @classmethod
    def from_status(cls, status: int, reason: Optional[str]) -> "HttpStatusError":
        return cls(message=f"HTTP {status}: {reason or ''}".rstrip(), status=status)


@dataclass(frozen=True)
class SerializationError(CacheError):
    """Payload did not decode into the expected shape."""
    raw_payload: Optional[str] = None


@dataclass(frozen=True)
class NotFoundError(CacheError):
    """Requested id is absent from the current manifest."""
    item_id: str = ""

    @classmethod
    def for_item(cls, item_id: str) -> "NotFoundError":
        return cls(message=f"Item '{item_id}' not found in manifest", item_id=item_id)
