"""
Database models for the statcache document store
SQLAlchemy ORM model backing every persisted collection
"""
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CacheDocument(Base):
    """
    A single JSON document inside a named collection.
    One record per (collection, key); overwritten on every put.
    """
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    collection = Column(String, nullable=False, index=True)
    key = Column(String, nullable=False)
    body = Column(Text, nullable=False)
    stored_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)

    # Constraints
    __table_args__ = (
        UniqueConstraint("collection", "key", name="uix_collection_key"),
    )

    def __repr__(self):
        return f"<CacheDocument(collection='{self.collection}', key='{self.key}', stored_at={self.stored_at})>"
