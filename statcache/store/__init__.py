"""
Persisted document storage shared by every cache layer.
"""
from .kv_store import Document, KeyValueStore, STORED_AT

__all__ = [
    "Document",
    "KeyValueStore",
    "STORED_AT",
]
