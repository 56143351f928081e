"""
Tests for the persisted key-value document store.
"""
import pytest

from statcache.store import KeyValueStore


def test_put_then_get_returns_fields(store):
    """A stored document comes back with its fields and write timestamp"""
    store.put("things", "a", {"value": 1, "name": "alpha"})
    doc = store.get("things", "a")

    assert doc is not None
    assert doc.key == "a"
    assert doc.get("value") == 1
    assert doc.get("name") == "alpha"
    assert doc.stored_at is not None
    assert doc.stored_at.tzinfo is not None


def test_get_missing_returns_none(store):
    assert store.get("things", "nope") is None


def test_put_overwrites_existing_document(store):
    """One document per key: a second put replaces the first"""
    store.put("things", "a", {"value": 1})
    store.put("things", "a", {"value": 2})

    assert store.get("things", "a").get("value") == 2
    assert store.count("things") == 1


def test_collections_are_independent(store):
    store.put("one", "k", {"v": 1})
    store.put("two", "k", {"v": 2})

    assert store.get("one", "k").get("v") == 1
    assert store.get("two", "k").get("v") == 2
    store.clear("one")
    assert store.get("two", "k") is not None


def test_delete_reports_whether_anything_was_removed(store):
    store.put("things", "a", {})
    assert store.delete("things", "a") is True
    assert store.delete("things", "a") is False


def test_put_many_writes_all_documents(store):
    store.put_many([
        ("data", "k", {"v": 1}),
        ("meta", "k_metadata", {"m": 2}),
    ])
    assert store.get("data", "k").get("v") == 1
    assert store.get("meta", "k_metadata").get("m") == 2


def test_put_many_is_all_or_nothing(store):
    """An unserializable document aborts the whole batch"""
    store.put("data", "existing", {"v": 1})

    with pytest.raises(TypeError):
        store.put_many([
            ("data", "existing", {"v": 2}),
            ("data", "broken", {"v": object()}),
        ])

    assert store.get("data", "existing").get("v") == 1
    assert store.get("data", "broken") is None


def test_query_ordered_by_write_time(store, clock):
    store.put("things", "first", {})
    clock.advance(seconds=1)
    store.put("things", "second", {})
    clock.advance(seconds=1)
    store.put("things", "third", {})

    ascending = [d.key for d in store.query_ordered_by("things")]
    descending = [d.key for d in store.query_ordered_by("things", ascending=False)]

    assert ascending == ["first", "second", "third"]
    assert descending == ["third", "second", "first"]


def test_query_ordered_by_json_field_with_limit(store):
    store.put("things", "b", {"rank": 2})
    store.put("things", "c", {"rank": 3})
    store.put("things", "a", {"rank": 1})

    docs = store.query_ordered_by("things", "rank", ascending=True, limit=2)
    assert [d.key for d in docs] == ["a", "b"]


def test_evict_oldest_keeps_newest(store, clock):
    for i in range(5):
        store.put("things", f"k{i}", {"i": i})
        clock.advance(seconds=1)

    evicted = store.evict_oldest("things", 2)

    assert evicted == 3
    assert sorted(store.keys("things")) == ["k3", "k4"]


def test_evict_oldest_rejects_negative_cap(store):
    with pytest.raises(ValueError):
        store.evict_oldest("things", -1)


def test_clear_returns_count(store):
    store.put("things", "a", {})
    store.put("things", "b", {})
    assert store.clear("things") == 2
    assert store.count("things") == 0


def test_file_backed_store_persists_between_instances(tmp_path):
    """Documents survive reopening the same database file"""
    url = f"sqlite:///{tmp_path / 'cache.db'}"
    first = KeyValueStore(url)
    first.put("things", "a", {"v": 42})
    first.close()

    second = KeyValueStore(url)
    try:
        assert second.get("things", "a").get("v") == 42
    finally:
        second.close()
