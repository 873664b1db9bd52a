import logging

import fakeredis
import pytest
import redis

from app.utils import redis_cache


@pytest.fixture
def fake(monkeypatch):
    client = fakeredis.FakeRedis(decode_responses=True)
    monkeypatch.setattr(redis_cache, "get_redis_client", lambda: client)
    return client


class BrokenRedis:
    def get(self, key):
        raise redis.exceptions.ConnectionError("refused")

    def setex(self, key, expire, value):
        raise redis.exceptions.TimeoutError("slow")

    def delete(self, key):
        raise redis.exceptions.ConnectionError("refused")


def test_banks_round_trip_with_ttl(fake):
    banks = [{"code": "632005", "name": "Absa"}]
    assert redis_cache.get_cached_banks() is None
    redis_cache.cache_banks(banks, expire=100)
    assert redis_cache.get_cached_banks() == banks
    # jitter adds at most a tenth of the ttl
    assert 100 <= fake.ttl(redis_cache.BANKS_KEY) <= 110


def test_search_filters_invalidate(fake):
    redis_cache.cache_search_filters({"locations": ["Gauteng"]})
    assert redis_cache.get_cached_search_filters() == {"locations": ["Gauteng"]}
    redis_cache.invalidate_search_filters()
    assert redis_cache.get_cached_search_filters() is None


def test_malformed_entry_is_ignored(fake, caplog):
    fake.set(redis_cache.BANKS_KEY, "{not json")
    with caplog.at_level(logging.WARNING):
        assert redis_cache.get_cached_banks() is None
    assert "Discarding malformed cache entry" in caplog.text


def test_redis_errors_are_logged_not_raised(monkeypatch, caplog):
    monkeypatch.setattr(redis_cache, "get_redis_client", lambda: BrokenRedis())
    with caplog.at_level(logging.WARNING):
        assert redis_cache.get_cached_banks() is None
        redis_cache.cache_banks([{"code": "1"}])
        redis_cache.invalidate_search_filters()
    assert "Could not read cache key" in caplog.text
    assert "Could not write cache key" in caplog.text
    assert "Could not clear search filter cache" in caplog.text


def test_disabled_url_uses_null_client(monkeypatch):
    monkeypatch.setattr(redis_cache, "_redis_client", None)
    monkeypatch.setattr(redis_cache.settings, "REDIS_URL", "disabled")
    client = redis_cache.get_redis_client()
    assert isinstance(client, redis_cache._NullRedis)
    assert client.get("anything") is None
    assert client.incr("counter") == 0
    redis_cache.close_redis_client()
    assert redis_cache._redis_client is None
