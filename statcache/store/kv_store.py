"""
Persisted key-value document store.

Every higher-level cache (raw responses, TTL data/metadata, manifest, cached
chart items) is a logical view over documents kept here. Documents live in
named collections and are addressed by string key.
"""
import json
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.engine import Engine

from statcache.db import create_db_engine, init_db, make_session_factory
from statcache.models import CacheDocument

logger = logging.getLogger("store.kv")

# Ordering by this field uses the write timestamp column instead of the JSON body
STORED_AT = "stored_at"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything we write is UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class Document:
    """A stored document: its key, its JSON fields and when it was written."""
    key: str
    fields: Dict[str, Any] = field(default_factory=dict)
    stored_at: Optional[datetime] = None

    def get(self, name: str, default: Any = None) -> Any:
        return self.fields.get(name, default)


class KeyValueStore:
    """
    SQLAlchemy-backed document store with per-collection ordered queries.

    Access is serialised through a re-entrant lock, so isolated get/put calls
    from several threads are safe. Read-modify-write sequences made by callers
    are NOT atomic: two writers can lose an update.

    Usage:
        store = KeyValueStore("sqlite://")
        store.put("api_cache", "cache_123", {"url": url, "response": body})
        doc = store.get("api_cache", "cache_123")
    """

    def __init__(
        self,
        database_url: Optional[str] = None,
        engine: Optional[Engine] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Initialize the store.

        Args:
            database_url: SQLAlchemy URL; defaults to settings.database_url
            engine: Pre-built engine (takes precedence over database_url)
            clock: Source of write timestamps
        """
        self._engine = engine or create_db_engine(database_url)
        init_db(self._engine)
        self._session_factory = make_session_factory(self._engine)
        self._lock = threading.RLock()
        self._clock = clock

    # =========================================================================
    # Single documents
    # =========================================================================

    def get(self, collection: str, key: str) -> Optional[Document]:
        """Get a document, or None if absent."""
        with self._lock:
            session = self._session_factory()
            try:
                row = self._find(session, collection, key)
                if row is None:
                    return None
                return self._to_document(row)
            finally:
                session.close()

    def put(self, collection: str, key: str, fields: Dict[str, Any]) -> Document:
        """Create or overwrite a document. Returns the stored document."""
        stored = self.put_many([(collection, key, fields)])
        return stored[0]

    def put_many(self, items: Iterable[Tuple[str, str, Dict[str, Any]]]) -> List[Document]:
        """
        Write several documents in a single transaction.

        Either every document is written or none is.

        Args:
            items: (collection, key, fields) triples
        """
        items = list(items)
        with self._lock:
            session = self._session_factory()
            try:
                now = self._clock()
                stored = []
                for collection, key, fields in items:
                    body = json.dumps(fields)
                    row = self._find(session, collection, key)
                    if row is None:
                        row = CacheDocument(collection=collection, key=key, body=body, stored_at=now)
                        session.add(row)
                    else:
                        row.body = body
                        row.stored_at = now
                    stored.append(Document(key=key, fields=dict(fields), stored_at=now))
                session.commit()
                return stored
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()

    def delete(self, collection: str, key: str) -> bool:
        """
        Delete a document.

        Returns:
            True if a document was found and removed
        """
        with self._lock:
            session = self._session_factory()
            try:
                row = self._find(session, collection, key)
                if row is None:
                    return False
                session.delete(row)
                session.commit()
                return True
            finally:
                session.close()

    # =========================================================================
    # Collection queries
    # =========================================================================

    def query_ordered_by(
        self,
        collection: str,
        field_name: str = STORED_AT,
        ascending: bool = True,
        limit: Optional[int] = None,
    ) -> List[Document]:
        """
        Query a collection ordered by a field.

        Args:
            collection: Collection name
            field_name: "stored_at" or a top-level JSON field of the document
            ascending: Oldest/smallest first when True
            limit: Maximum documents to return
        """
        if field_name == STORED_AT:
            order_expr = CacheDocument.stored_at
        else:
            order_expr = func.json_extract(CacheDocument.body, f'$."{field_name}"')

        if not ascending:
            order_expr = order_expr.desc()
        tie_breaker = CacheDocument.id if ascending else CacheDocument.id.desc()

        with self._lock:
            session = self._session_factory()
            try:
                query = (
                    session.query(CacheDocument)
                    .filter(CacheDocument.collection == collection)
                    .order_by(order_expr, tie_breaker)
                )
                if limit is not None:
                    query = query.limit(limit)
                return [self._to_document(row) for row in query.all()]
            finally:
                session.close()

    def keys(self, collection: str) -> List[str]:
        """All keys in a collection, in insertion order."""
        with self._lock:
            session = self._session_factory()
            try:
                rows = (
                    session.query(CacheDocument.key)
                    .filter(CacheDocument.collection == collection)
                    .order_by(CacheDocument.id)
                    .all()
                )
                return [row.key for row in rows]
            finally:
                session.close()

    def count(self, collection: str) -> int:
        """Number of documents in a collection."""
        with self._lock:
            session = self._session_factory()
            try:
                return (
                    session.query(CacheDocument)
                    .filter(CacheDocument.collection == collection)
                    .count()
                )
            finally:
                session.close()

    def clear(self, collection: str) -> int:
        """
        Delete every document in a collection.

        Returns:
            Number of documents deleted
        """
        with self._lock:
            session = self._session_factory()
            try:
                deleted = (
                    session.query(CacheDocument)
                    .filter(CacheDocument.collection == collection)
                    .delete(synchronize_session=False)
                )
                session.commit()
                if deleted:
                    logger.info(f"Cleared {deleted} documents from '{collection}'")
                return deleted
            finally:
                session.close()

    def evict_oldest(self, collection: str, max_entries: int) -> int:
        """
        Keep only the newest `max_entries` documents of a collection.

        Oldest-by-write-timestamp documents are deleted first.

        Returns:
            Number of documents evicted
        """
        if max_entries < 0:
            raise ValueError("max_entries must be >= 0")

        with self._lock:
            documents = self.query_ordered_by(collection, STORED_AT, ascending=True)
            excess = len(documents) - max_entries
            if excess <= 0:
                return 0
            for document in documents[:excess]:
                self.delete(collection, document.key)
            logger.info(f"Evicted {excess} oldest documents from '{collection}' (cap={max_entries})")
            return excess

    def close(self) -> None:
        """Release pooled connections."""
        self._engine.dispose()

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _find(session, collection: str, key: str) -> Optional[CacheDocument]:
        return (
            session.query(CacheDocument)
            .filter(CacheDocument.collection == collection, CacheDocument.key == key)
            .first()
        )

    @staticmethod
    def _to_document(row: CacheDocument) -> Document:
        return Document(
            key=row.key,
            fields=json.loads(row.body),
            stored_at=_as_utc(row.stored_at),
        )
