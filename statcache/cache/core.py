"""
Core cache data structures.
"""
from concurrent.futures import Future
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from functools import lru_cache
from typing import Any, Dict, Generic, Optional, TypeVar

from pydantic import TypeAdapter

from statcache.errors import CacheError

T = TypeVar("T")


class DataKind(Enum):
    """Kinds of TTL-governed resources with different expiration policies."""
    SCHEDULE = "schedule"   # Rolls over at local midnight
    STATS = "stats"         # Rolls over at the 05:30 stats cutoff


class CacheSource(Enum):
    """Where the data handed to the caller came from."""
    FRESH = "fresh"         # Within TTL
    STALE = "stale"         # Past TTL, served while revalidating
    UPSTREAM = "upstream"   # Fetched from the network


@dataclass
class CacheEntry:
    """A raw cached payload keyed by request."""
    key: str
    payload: str
    stored_at: datetime


@dataclass(frozen=True)
class CacheMetadata:
    """
    Freshness window of a TTL cache entry.

    Stored separately from the value so it can be patched on its own.
    """
    cached_at: datetime
    expires_at: datetime

    def __post_init__(self):
        if not self.expires_at > self.cached_at:
            raise ValueError(
                f"expires_at ({self.expires_at.isoformat()}) must be after "
                f"cached_at ({self.cached_at.isoformat()})"
            )

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def to_dict(self) -> Dict[str, str]:
        return {
            "cachedAt": self.cached_at.isoformat(),
            "expiresAt": self.expires_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional["CacheMetadata"]:
        cached_at = data.get("cachedAt")
        expires_at = data.get("expiresAt")
        if not cached_at or not expires_at:
            return None
        return cls(
            cached_at=datetime.fromisoformat(cached_at),
            expires_at=datetime.fromisoformat(expires_at),
        )


@dataclass
class CachedResponse:
    """Outcome of a raw GET through the response cache."""
    payload: Optional[str]
    is_from_cache: bool
    status: Optional[int] = None
    error: Optional[CacheError] = None

    @property
    def is_success(self) -> bool:
        return self.payload is not None and self.error is None


@dataclass
class CachedTypedResponse(Generic[T]):
    """Outcome of a GET decoded into a declared shape."""
    data: Optional[T]
    raw_payload: Optional[str]
    is_from_cache: bool
    status: Optional[int] = None
    error: Optional[CacheError] = None

    @property
    def is_success(self) -> bool:
        return self.data is not None and self.error is None


@dataclass
class TTLCachedResponse(Generic[T]):
    """
    Outcome of a stale-while-revalidate read.

    When `is_refreshing` is True, `refresh` is the background refresh future;
    its result is only visible to the next read.
    """
    data: Optional[T]
    is_success: bool
    is_from_cache: bool
    raw_payload: Optional[str] = None
    error: Optional[CacheError] = None
    cached_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    is_expired: bool = False
    is_refreshing: bool = False
    refresh: Optional[Future] = None

    @property
    def cache_source(self) -> CacheSource:
        if not self.is_from_cache:
            return CacheSource.UPSTREAM
        if self.is_expired:
            return CacheSource.STALE
        return CacheSource.FRESH

    def meta(self) -> Dict[str, Any]:
        """Freshness flags for API responses."""
        return {
            "cacheSource": self.cache_source.value,
            "cachedAt": self.cached_at.isoformat() if self.cached_at else None,
            "expiresAt": self.expires_at.isoformat() if self.expires_at else None,
            "isExpired": self.is_expired,
            "isRefreshing": self.is_refreshing,
        }


@lru_cache(maxsize=None)
def type_adapter(schema: Any) -> TypeAdapter:
    """Shared TypeAdapter per schema; building one compiles a validator."""
    return TypeAdapter(schema)
