"""Cache port used by the read-side services.

Keys are built by the helpers below; the state machine, grading and authoring services
invalidate exactly the keys a change affects. Backend failures are
logged and treated as cache misses.
"""

import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

import redis

from .. import config

logger = logging.getLogger(__name__)


def assessment_stats_key(assessment_id: int) -> str:
    return f"assessment:{assessment_id}:stats"


def subject_grade_key(student_id: int, class_subject_id: int) -> str:
    return f"student:{student_id}:subject:{class_subject_id}:grade"


def annual_average_key(student_id: int, academic_year_id: int) -> str:
    return f"student:{student_id}:year:{academic_year_id}:average"


def class_subject_average_key(class_subject_id: int) -> str:
    return f"class_subject:{class_subject_id}:average"


def student_progress_key(student_id: int, academic_year_id: Optional[int] = None) -> str:
    return f"student:{student_id}:progress:{academic_year_id or 'current'}"


class Cache(ABC):
    """get / set / invalidate-by-key contract."""

    @abstractmethod
    def get(self, key: str) -> Any:
        """Return the cached value or None on a miss."""
        pass

    @abstractmethod
    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        pass

    @abstractmethod
    def invalidate(self, *keys: str) -> None:
        pass


class NullCache(Cache):
    """A cache that never stores anything."""

    def get(self, key: str) -> Any:
        return None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        return None

    def invalidate(self, *keys: str) -> None:
        return None


class InMemoryCache(Cache):
    """Per-process TTL cache."""

    def __init__(self, default_ttl: Optional[int] = None, clock=time.monotonic):
        self.default_ttl = default_ttl or config.CACHE_TTL_SECONDS
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Any]] = {}

    def get(self, key: str) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        self._entries[key] = (self._clock() + (ttl or self.default_ttl), value)

    def invalidate(self, *keys: str) -> None:
        for key in keys:
            self._entries.pop(key, None)

    def __len__(self):
        return len(self._entries)


class RedisCache(Cache):
    """Redis-backed cache storing JSON values under a key prefix."""

    def __init__(self, url: Optional[str] = None, prefix: str = "gradebook:",
                 default_ttl: Optional[int] = None, client=None):
        self._r = client or redis.from_url(url or config.REDIS_URL, decode_responses=True)
        self._p = prefix
        self.default_ttl = default_ttl or config.CACHE_TTL_SECONDS
        logger.info(f"RedisCache initialized: prefix={prefix}")

    def _k(self, key: str) -> str:
        return f"{self._p}{key}"

    def get(self, key: str) -> Any:
        try:
            raw = self._r.get(self._k(key))
        except redis.RedisError as e:
            logger.warning(f"Cache get failed for {key}: {e}")
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"Discarding undecodable cache entry {key}")
            return None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        try:
            self._r.set(self._k(key), json.dumps(value), ex=ttl or self.default_ttl)
        except (redis.RedisError, TypeError) as e:
            logger.warning(f"Cache set failed for {key}: {e}")

    def invalidate(self, *keys: str) -> None:
        if not keys:
            return
        try:
            self._r.delete(*(self._k(k) for k in keys))
        except redis.RedisError as e:
            logger.warning(f"Cache invalidate failed for {keys}: {e}")


def build_cache(backend: Optional[str] = None) -> Cache:
    """Create the cache selected by ``CACHE_BACKEND``."""
    backend = (backend or config.CACHE_BACKEND).lower()
    if backend == "redis":
        return RedisCache()
    if backend == "memory":
        return InMemoryCache()
    if backend == "none":
        return NullCache()
    raise ValueError(f"Unknown cache backend: {backend}")


def invalidate_for_assignment(cache: Optional[Cache], assignment) -> None:
    """Drop every cached aggregate an assignment change can affect."""
    if cache is None:
        return

    assessment = assignment.assessment
    class_subject = assessment.class_subject
    enrollment = assignment.enrollment
    keys = [
        assessment_stats_key(assessment.id),
        class_subject_average_key(class_subject.id),
    ]
    if enrollment is not None:
        student_id = enrollment.student_id
        keys.extend([
            subject_grade_key(student_id, class_subject.id),
            student_progress_key(student_id),
        ])
        school_class = class_subject.school_class
        if school_class is not None:
            keys.extend([
                annual_average_key(student_id, school_class.academic_year_id),
                student_progress_key(student_id, school_class.academic_year_id),
            ])
    cache.invalidate(*keys)


def invalidate_for_assessment(cache: Optional[Cache], assessment) -> None:
    """Drop the cached aggregates of every student the assessment is set for."""
    if cache is None:
        return

    class_subject = assessment.class_subject
    keys = [
        assessment_stats_key(assessment.id),
        class_subject_average_key(class_subject.id),
    ]
    school_class = class_subject.school_class
    if school_class is not None:
        for enrollment in school_class.enrollments:
            student_id = enrollment.student_id
            keys.extend([
                subject_grade_key(student_id, class_subject.id),
                annual_average_key(student_id, school_class.academic_year_id),
                student_progress_key(student_id),
                student_progress_key(student_id, school_class.academic_year_id),
            ])
    cache.invalidate(*keys)
