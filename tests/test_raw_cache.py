"""
Tests for the raw response cache and its document ids.
"""
from statcache.cache import RawResponseCache, url_to_doc_id
from statcache.cache.raw_cache import string_hash


def test_string_hash_matches_known_values():
    assert string_hash("") == 0
    assert string_hash("a") == 97
    assert string_hash("hello") == 99162322


def test_negative_hash_uses_neg_marker():
    """Negative hashes never put '-' in the document id"""
    assert string_hash("polygenelubricants") == -2147483648
    assert url_to_doc_id("polygenelubricants") == "cache_neg2147483648"


def test_doc_id_is_stable():
    url = "https://api.example.com/day/20240615/schedule"
    assert url_to_doc_id(url) == url_to_doc_id(url)
    assert url_to_doc_id(url).startswith("cache_")


def test_put_get_remove(raw_cache):
    url = "https://api.example.com/x"
    assert raw_cache.get(url) is None

    raw_cache.put(url, '{"a": 1}')
    assert raw_cache.get(url) == '{"a": 1}'
    assert raw_cache.contains(url)

    raw_cache.remove(url)
    assert raw_cache.get(url) is None


def test_get_entry_carries_url_and_timestamp(raw_cache, clock):
    url = "https://api.example.com/x"
    raw_cache.put(url, "body")
    entry = raw_cache.get_entry(url)

    assert entry.key == url
    assert entry.payload == "body"
    assert entry.stored_at == clock.now


def test_cleanup_keeps_most_recent(store, clock):
    cache = RawResponseCache(store)
    for i in range(4):
        cache.put(f"https://api.example.com/{i}", str(i))
        clock.advance(seconds=1)

    assert cache.cleanup(max_entries=2) == 2
    assert len(cache) == 2
    assert cache.get("https://api.example.com/0") is None
    assert cache.get("https://api.example.com/3") == "3"
