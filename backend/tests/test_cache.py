"""Test cases for the cache backends and invalidation."""

import json
from unittest.mock import MagicMock

import pytest
import redis

from gradebook.services.cache import (
    InMemoryCache, NullCache, RedisCache, annual_average_key, assessment_stats_key, build_cache,
    class_subject_average_key, invalidate_for_assignment, student_progress_key, subject_grade_key,
)


class FakeTimer:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestInMemoryCache:
    """Test cases for the per-process cache."""

    def test_set_and_get(self):
        """Test a stored value is returned."""
        cache = InMemoryCache(default_ttl=60)
        cache.set("k", {"value": 1})
        assert cache.get("k") == {"value": 1}

    def test_miss(self):
        """Test a missing key returns None."""
        assert InMemoryCache().get("missing") is None

    def test_expiry(self):
        """Test entries disappear after their TTL."""
        timer = FakeTimer()
        cache = InMemoryCache(default_ttl=60, clock=timer)
        cache.set("short", 1, ttl=5)
        cache.set("long", 2)

        timer.now += 10
        assert cache.get("short") is None
        assert cache.get("long") == 2
        assert len(cache) == 1

    def test_invalidate(self):
        """Test invalidation removes the given keys and ignores unknown ones."""
        cache = InMemoryCache()
        cache.set("a", 1)
        cache.set("b", 2)
        cache.invalidate("a", "unknown")
        assert cache.get("a") is None
        assert cache.get("b") == 2


class TestRedisCache:
    """Test cases for the Redis backend with a mocked client."""

    def test_set_serializes_with_prefix(self):
        """Test values are stored as JSON under the prefix with a TTL."""
        client = MagicMock()
        cache = RedisCache(client=client, prefix="test:", default_ttl=30)
        cache.set("k", {"value": 12.5})
        client.set.assert_called_once_with("test:k", json.dumps({"value": 12.5}), ex=30)

    def test_get_deserializes(self):
        """Test stored JSON is decoded."""
        client = MagicMock()
        client.get.return_value = '{"value": 3}'
        cache = RedisCache(client=client)
        assert cache.get("k") == {"value": 3}
        client.get.assert_called_once_with("gradebook:k")

    def test_get_undecodable(self):
        """Test a corrupt entry is treated as a miss."""
        client = MagicMock()
        client.get.return_value = "not json"
        assert RedisCache(client=client).get("k") is None

    def test_errors_are_misses(self):
        """Test backend failures do not propagate."""
        client = MagicMock()
        client.get.side_effect = redis.ConnectionError("down")
        client.set.side_effect = redis.ConnectionError("down")
        client.delete.side_effect = redis.ConnectionError("down")
        cache = RedisCache(client=client)

        assert cache.get("k") is None
        cache.set("k", 1)
        cache.invalidate("k")

    def test_invalidate(self):
        """Test invalidation deletes every prefixed key in one call."""
        client = MagicMock()
        RedisCache(client=client, prefix="p:").invalidate("a", "b")
        client.delete.assert_called_once_with("p:a", "p:b")

    def test_invalidate_nothing(self):
        """Test an empty invalidation does not reach the server."""
        client = MagicMock()
        RedisCache(client=client).invalidate()
        client.delete.assert_not_called()


class TestBuildCache:
    """Test cases for backend selection."""

    def test_memory(self):
        """Test the memory backend."""
        assert isinstance(build_cache("memory"), InMemoryCache)

    def test_none(self):
        """Test the disabled backend."""
        cache = build_cache("none")
        assert isinstance(cache, NullCache)
        cache.set("k", 1)
        assert cache.get("k") is None

    def test_unknown(self):
        """Test an unknown backend name fails loudly."""
        with pytest.raises(ValueError):
            build_cache("memcached")


class TestInvalidateForAssignment:
    """Test cases for assignment-driven invalidation."""

    def test_drops_every_affected_key(self, cache, started, student, objective_assessment,
                                      class_subject, academic_year):
        """Test the stats, grade, average and progress keys go together."""
        assignment = started(student, objective_assessment)
        keys = [
            assessment_stats_key(objective_assessment.id),
            class_subject_average_key(class_subject.id),
            subject_grade_key(student.id, class_subject.id),
            annual_average_key(student.id, academic_year.id),
            student_progress_key(student.id),
            student_progress_key(student.id, academic_year.id),
        ]
        unrelated = subject_grade_key(student.id + 1000, class_subject.id)
        for key in keys + [unrelated]:
            cache.set(key, {"value": 1})

        invalidate_for_assignment(cache, assignment)

        assert all(cache.get(key) is None for key in keys)
        assert cache.get(unrelated) == {"value": 1}

    def test_without_cache(self, started, student, objective_assessment):
        """Test a missing cache is a no-op."""
        invalidate_for_assignment(None, started(student, objective_assessment))
