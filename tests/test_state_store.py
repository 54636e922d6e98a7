import threading

import pytest

import quantum_rng
from quantum_rng.constants import CONTRACT_OWNER
from quantum_rng.core import GeneratorState, MemoryStateStore, RedisStateStore


class MockLock:
    def __init__(self, client, name, acquirable=True):
        self.client = client
        self.name = name
        self.acquirable = acquirable

    def acquire(self):
        self.client.lock_events.append(("acquire", self.name))
        return self.acquirable

    def release(self):
        self.client.lock_events.append(("release", self.name))


class MockRedisClient:
    def __init__(self, preset=None, acquirable=True):
        self.store = {key: dict(value) for key, value in (preset or {}).items()}
        self.acquirable = acquirable
        self.lock_events = []
        self.lock_args = []
        self.hset_calls = []

    def hmget(self, key, *fields):
        values = self.store.get(key, {})
        return [values.get(f) for f in fields]

    def hset(self, key, mapping):
        self.hset_calls.append((key, dict(mapping)))
        self.store.setdefault(key, {}).update(
            {f: str(v).encode() for f, v in mapping.items()}
        )

    def lock(self, name, timeout=None, blocking_timeout=None):
        self.lock_args.append((name, timeout, blocking_timeout))
        return MockLock(self, name, self.acquirable)


def test_redis_store_empty_reads_zero():
    store = RedisStateStore(MockRedisClient())
    assert store.load() == GeneratorState(0, 0)


def test_redis_store_reads_existing():
    client = MockRedisClient(
        {"qrng:state": {"last_random_number": b"17", "nonce": b"4"}}
    )
    store = RedisStateStore(client)
    assert store.load() == GeneratorState(last_random_number=17, nonce=4)


def test_redis_store_commit_writes_both_fields():
    client = MockRedisClient()
    store = RedisStateStore(client, key="custom")
    store.commit(GeneratorState(last_random_number=9, nonce=2))
    assert client.hset_calls == [("custom", {"last_random_number": 9, "nonce": 2})]
    assert store.load() == GeneratorState(9, 2)


def test_redis_store_transaction_locks():
    client = MockRedisClient()
    store = RedisStateStore(client, lock_timeout=3)
    with store.transaction():
        assert client.lock_events == [("acquire", "qrng:state:lock")]
    assert client.lock_events[-1] == ("release", "qrng:state:lock")
    assert client.lock_args == [("qrng:state:lock", 3, 3)]


def test_redis_store_lock_unavailable():
    client = MockRedisClient(acquirable=False)
    store = RedisStateStore(client)
    rng = quantum_rng.RandomNumberGenerator(
        quantum_rng.FixtureEntropySource(), store=store
    )
    with pytest.raises(RuntimeError):
        rng.generate(CONTRACT_OWNER, 10)
    assert client.hset_calls == []


def test_redis_store_invalid_lock_timeout():
    with pytest.raises(ValueError):
        RedisStateStore(MockRedisClient(), lock_timeout=0)


def test_generator_over_redis():
    client = MockRedisClient()
    store = RedisStateStore(client)
    source = quantum_rng.FixtureEntropySource(b"\x00" * 16, 1234567, 9876543)
    rng = quantum_rng.RandomNumberGenerator(source, store=store)
    assert rng.generate(CONTRACT_OWNER, 100).result == 8
    assert client.store["qrng:state"] == {"last_random_number": b"8", "nonce": b"1"}

    rng.reset_nonce(CONTRACT_OWNER)
    assert rng.get_nonce() == 0
    assert rng.get_last_random_number() == 8

    again = quantum_rng.RandomNumberGenerator(source, store=RedisStateStore(client))
    assert again.get_last_random_number() == 8


def test_memory_store_concurrent_generation():
    rng = quantum_rng.RandomNumberGenerator(quantum_rng.FixtureEntropySource())
    results = []

    def worker():
        for _ in range(50):
            results.append(rng.generate(CONTRACT_OWNER, 1000))

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert rng.get_nonce() == 200
    assert len(results) == 200


def test_memory_store_default_state():
    store = MemoryStateStore()
    assert store.load() == GeneratorState()
    with store.transaction():
        store.commit(GeneratorState(1, 1))
    assert store.load() == GeneratorState(1, 1)
