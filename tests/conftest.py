"""
Shared fixtures: an in-memory Redis double and a controllable clock.
"""

from collections import defaultdict
from datetime import datetime, timedelta, timezone
import pytest
import redis
from services.api.domain.versioning import VersioningController
from services.api.domain.workflow_service import WorkflowService
from services.api.infra.redis_store import RedisStore


def _b(value):
    return value if isinstance(value, bytes) else str(value).encode()


class FakeRedis:
    """Covers the subset of redis-py commands the record store uses"""

    def __init__(self):
        self.values = {}
        self.sets = defaultdict(set)
        self.lists = defaultdict(list)
        self.down = False

    def _check(self):
        if self.down:
            raise redis.ConnectionError("connection refused")

    def get(self, key):
        self._check()
        return self.values.get(key)

    def set(self, key, value, nx=False):
        self._check()
        if nx and key in self.values:
            return None
        self.values[key] = _b(value)
        return True

    def delete(self, *keys):
        self._check()
        removed = 0
        for key in keys:
            for bucket in (self.values, self.sets, self.lists):
                if key in bucket:
                    del bucket[key]
                    removed += 1
        return removed

    def sadd(self, key, *members):
        self._check()
        before = len(self.sets[key])
        self.sets[key].update(_b(m) for m in members)
        return len(self.sets[key]) - before

    def srem(self, key, *members):
        self._check()
        before = len(self.sets[key])
        self.sets[key].difference_update(_b(m) for m in members)
        return before - len(self.sets[key])

    def smembers(self, key):
        self._check()
        return set(self.sets.get(key, set()))

    def rpush(self, key, *values):
        self._check()
        self.lists[key].extend(_b(v) for v in values)
        return len(self.lists[key])

    def lrange(self, key, start, end):
        self._check()
        items = self.lists.get(key, [])
        return list(items[start:] if end == -1 else items[start:end + 1])

    def ping(self):
        self._check()
        return True

    def close(self):
        pass

    def pipeline(self):
        return FakePipeline(self)


class FakePipeline:

    def __init__(self, client):
        self.client = client
        self.calls = []

    def __getattr__(self, name):
        def queue(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            return self
        return queue

    def execute(self):
        results = [getattr(self.client, name)(*args, **kwargs) for name, args, kwargs in self.calls]
        self.calls = []
        return results


class FakeClock:

    def __init__(self):
        self.now = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def store(fake_redis):
    return RedisStore(client=fake_redis)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def versioning(store, clock):
    return VersioningController(store, autocommit_enabled=True, clock=clock)


@pytest.fixture
def service(store):
    return WorkflowService(store)
