"""
HTTP client that adds response caching for GET requests only.

The cache key is the canonical request URL: query parameters sorted by name so
that logically identical requests share one entry.
"""
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple, Type, TypeVar
from urllib.parse import parse_qsl, urlsplit, urlunsplit

import requests
from pydantic import ValidationError

from statcache.errors import HttpStatusError, NetworkError, SerializationError
from .core import CachedResponse, CachedTypedResponse, type_adapter
from .raw_cache import RawResponseCache
from config.settings import settings

logger = logging.getLogger("cache.http")

T = TypeVar("T")


def canonical_url(url: str, params: Optional[Mapping[str, Any]] = None) -> str:
    """
    Build the cache key for a GET request.

    No parameters: the URL is returned unchanged. Otherwise parameters from the
    URL and from `params` are merged, sorted by name and rendered as
    `base?k1=v1&k2=v2`. Repeated values are emitted as `k=v1&k=v2`. Values are
    not escaped, so this is not a collision-proof encoding.
    """
    parts = urlsplit(url)
    pairs: List[Tuple[str, str]] = parse_qsl(parts.query, keep_blank_values=True)

    for key, value in (params or {}).items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            pairs.extend((key, str(v)) for v in value)
        else:
            pairs.append((key, str(value)))

    if not pairs:
        return url

    base = urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
    # sorted() is stable: repeated keys keep their original value order
    query = "&".join(f"{key}={value}" for key, value in sorted(pairs, key=lambda p: p[0]))
    return f"{base}?{query}"


class CachedHttpClient:
    """
    GET-with-cache client.

    On a cache hit the stored payload is returned without any network call.
    On a miss the request is made; a 200 body is cached under the canonical
    key. Failures come back as error values on the response, never as
    exceptions.

    Usage:
        client = CachedHttpClient(RawResponseCache(store))
        response = client.get("https://example.com/x", params={"b": 2, "a": 1})
        if response.is_success:
            ...
    """

    def __init__(
        self,
        cache: RawResponseCache,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
        default_headers: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize the client.

        Args:
            cache: Raw response cache used for GET payloads
            session: requests-compatible session (anything with .get)
            timeout: Request timeout in seconds
            default_headers: Headers sent with every request
        """
        self._cache = cache
        self._session = session or requests.Session()
        self._timeout = timeout if timeout is not None else settings.http_timeout_seconds
        self._default_headers = dict(default_headers or {})

    def get(
        self,
        url: str,
        use_cache: bool = True,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
        force_refresh: bool = False,
    ) -> CachedResponse:
        """
        Perform a cached GET request.

        Args:
            url: Request URL (may already carry a query string)
            use_cache: Read from and write to the cache
            params: Extra query parameters
            headers: Extra request headers
            force_refresh: Skip the cache read but still store a 200 body

        Returns:
            CachedResponse with the payload and cache status
        """
        cache_key = canonical_url(url, params)

        if use_cache and not force_refresh:
            cached = self._cache.get(cache_key)
            if cached is not None:
                logger.debug(f"CACHE HIT: {cache_key}")
                return CachedResponse(payload=cached, is_from_cache=True)

        return self._fetch(url, cache_key, use_cache, params, headers)

    def get_typed(
        self,
        url: str,
        schema: Type[T],
        use_cache: bool = True,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
        force_refresh: bool = False,
    ) -> CachedTypedResponse[T]:
        """
        Perform a cached GET request and decode the JSON payload.

        A successful network fetch is cached before decoding, so a schema
        mismatch keeps the bytes. Decode failures return a SerializationError
        with the raw payload attached.

        Args:
            url: Request URL
            schema: Type to decode into (pydantic model or any TypeAdapter type)
        """
        response = self.get(
            url,
            use_cache=use_cache,
            params=params,
            headers=headers,
            force_refresh=force_refresh,
        )
        if not response.is_success:
            return CachedTypedResponse(
                data=None,
                raw_payload=response.payload,
                is_from_cache=response.is_from_cache,
                status=response.status,
                error=response.error,
            )

        try:
            data = type_adapter(schema).validate_json(response.payload)
        except (ValidationError, ValueError) as e:
            logger.warning(f"Decode failed for {url}: {e}")
            return CachedTypedResponse(
                data=None,
                raw_payload=response.payload,
                is_from_cache=response.is_from_cache,
                status=response.status,
                error=SerializationError(
                    message=f"JSON parsing error: {e}",
                    raw_payload=response.payload,
                ),
            )

        return CachedTypedResponse(
            data=data,
            raw_payload=response.payload,
            is_from_cache=response.is_from_cache,
            status=response.status,
        )

    def invalidate(self, url: str, params: Optional[Mapping[str, Any]] = None) -> None:
        """Drop the cached response for a request."""
        self._cache.remove(canonical_url(url, params))

    def clear_cache(self) -> int:
        """Drop every cached response."""
        return self._cache.clear()

    def _fetch(
        self,
        url: str,
        cache_key: str,
        use_cache: bool,
        params: Optional[Mapping[str, Any]],
        headers: Optional[Mapping[str, str]],
    ) -> CachedResponse:
        request_headers = {**self._default_headers, **(headers or {})}
        try:
            response = self._session.get(
                url,
                params=dict(params) if params else None,
                headers=request_headers or None,
                timeout=self._timeout,
            )
        except Exception as e:
            logger.warning(f"Network error for {url}: {e}")
            return CachedResponse(
                payload=None,
                is_from_cache=False,
                error=NetworkError(message=f"Network error: {e}"),
            )

        if response.status_code != 200:
            logger.info(f"HTTP {response.status_code} for {url}")
            return CachedResponse(
                payload=None,
                is_from_cache=False,
                status=response.status_code,
                error=HttpStatusError.from_status(response.status_code, response.reason),
            )

        payload = response.text
        if use_cache:
            self._cache.put(cache_key, payload)
        logger.info(f"FETCHED: {cache_key}")
        return CachedResponse(payload=payload, is_from_cache=False, status=response.status_code)
