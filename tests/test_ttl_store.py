"""
Tests for the TTL store: separate data/metadata halves, key sanitisation and
eviction.
"""
from datetime import timedelta
from typing import Dict, List

import pytest
from pydantic import BaseModel

from statcache.cache import CacheMetadata, TTLStore, generate_cache_key, type_adapter
from statcache.cache.ttl_store import DATA_COLLECTION, METADATA_COLLECTION


class Board(BaseModel):
    name: str
    scores: List[int]


def metadata_at(now, hours=1):
    return CacheMetadata(cached_at=now, expires_at=now + timedelta(hours=hours))


def test_generate_cache_key_replaces_unsafe_chars():
    key = generate_cache_key("https://api.x.com/day/20240615/stats/u-1?x=1")
    assert key == "https___api_x_com_day_20240615_stats_u_1_x_1"
    assert all(c.isalnum() or c == "_" for c in key)


def test_metadata_lives_in_its_own_collection(store, ttl_store, clock):
    ttl_store.store_entry("k", Board(name="a", scores=[1]), Board, metadata_at(clock.now))

    assert store.get(DATA_COLLECTION, "k") is not None
    assert store.get(METADATA_COLLECTION, "k_metadata") is not None
    assert store.get(DATA_COLLECTION, "k_metadata") is None


def test_store_entry_round_trips_value_and_metadata(ttl_store, clock):
    meta = metadata_at(clock.now)
    ttl_store.store_entry("k", Board(name="a", scores=[1, 2]), Board, meta)

    assert ttl_store.get_cache_data("k", Board) == Board(name="a", scores=[1, 2])
    assert ttl_store.get_cache_metadata("k") == meta


def test_data_document_records_timestamp(store, ttl_store, clock):
    ttl_store.store_cache_data("k", {"a": 1}, Dict[str, int])
    doc = store.get(DATA_COLLECTION, "k")
    assert doc.get("timestamp") == int(clock.now.timestamp())


def test_halves_can_be_written_independently(ttl_store, clock):
    ttl_store.store_cache_data("k", Board(name="a", scores=[]), Board)
    assert ttl_store.get_cache_metadata("k") is None

    ttl_store.store_cache_metadata("k", metadata_at(clock.now))
    assert ttl_store.get_cache_data("k", Board).name == "a"


def test_undecodable_data_reads_as_absent(ttl_store):
    ttl_store.store_cache_data("k", {"name": 1}, Dict[str, int])
    assert ttl_store.get_cache_data("k", Board) is None


def test_remove_deletes_both_halves(ttl_store, clock):
    ttl_store.store_entry("k", Board(name="a", scores=[]), Board, metadata_at(clock.now))

    assert ttl_store.remove("k") is True
    assert ttl_store.get_cache_data("k", Board) is None
    assert ttl_store.get_cache_metadata("k") is None
    assert ttl_store.remove("k") is False


def test_eviction_drops_oldest_beyond_cap(store, clock):
    ttl = TTLStore(store, max_entries=2, clock=clock)
    for name in ("a", "b", "c"):
        ttl.store_entry(name, Board(name=name, scores=[]), Board, metadata_at(clock.now))
        clock.advance(seconds=1)

    assert len(ttl) == 2
    assert ttl.get_cache_data("a", Board) is None
    assert ttl.get_cache_metadata("a") is None
    assert ttl.get_cache_data("c", Board).name == "c"


def test_metadata_rejects_non_increasing_window(clock):
    with pytest.raises(ValueError):
        CacheMetadata(cached_at=clock.now, expires_at=clock.now)


def test_type_adapter_is_built_once_per_schema(ttl_store, clock):
    """Repeated reads reuse the compiled adapter instead of rebuilding it"""
    assert type_adapter(Board) is type_adapter(Board)
    assert type_adapter(Dict[str, int]) is type_adapter(Dict[str, int])
    assert type_adapter(Board) is not type_adapter(Dict[str, int])

    ttl_store.store_entry("k", Board(name="a", scores=[1]), Board, metadata_at(clock.now))
    hits = type_adapter.cache_info().hits
    ttl_store.get_cache_data("k", Board)
    assert type_adapter.cache_info().hits == hits + 1
