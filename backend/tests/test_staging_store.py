"""Tests for the DuckDB staging store."""
import threading

import pytest

from filebed.staging import StagingStore


class FakeClock:
    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(tmp_path, clock):
    s = StagingStore(str(tmp_path / "staging.duckdb"), clock=clock)
    yield s
    s.close()


class TestSessionTable:
    def test_put_and_get_session(self, store):
        store.put_session("abc", {"uploaded_chunks": [], "total_chunks": 2}, ttl_seconds=60)
        assert store.get_session("abc") == {"uploaded_chunks": [], "total_chunks": 2}

    def test_get_missing_session_returns_none(self, store):
        assert store.get_session("nope") is None

    def test_session_expires_after_ttl(self, store, clock):
        store.put_session("abc", {"x": 1}, ttl_seconds=60)
        clock.now += 59
        assert store.get_session("abc") is not None
        clock.now += 1
        assert store.get_session("abc") is None

    def test_put_session_replaces_record(self, store):
        store.put_session("abc", {"x": 1}, ttl_seconds=60)
        store.put_session("abc", {"x": 2}, ttl_seconds=60)
        assert store.get_session("abc") == {"x": 2}

    def test_delete_session(self, store):
        store.put_session("abc", {"x": 1}, ttl_seconds=60)
        assert store.delete_session("abc") is True
        assert store.get_session("abc") is None
        assert store.delete_session("abc") is False


class TestUpdateSession:
    def test_update_applies_mutation(self, store):
        store.put_session("abc", {"n": 1}, ttl_seconds=60)

        def bump(record):
            record["n"] += 1
            return record

        assert store.update_session("abc", bump) == {"n": 2}
        assert store.get_session("abc") == {"n": 2}

    def test_update_returning_none_keeps_record(self, store):
        store.put_session("abc", {"n": 1}, ttl_seconds=60)
        assert store.update_session("abc", lambda record: None) == {"n": 1}
        assert store.get_session("abc") == {"n": 1}

    def test_update_missing_session_returns_none(self, store):
        assert store.update_session("nope", lambda record: record) is None

    def test_update_preserves_expiry(self, store, clock):
        store.put_session("abc", {"n": 1}, ttl_seconds=60)
        clock.now += 50
        store.update_session("abc", lambda record: {"n": 2})
        clock.now += 10
        assert store.get_session("abc") is None

    def test_update_error_rolls_back(self, store):
        store.put_session("abc", {"n": 1}, ttl_seconds=60)

        def boom(record):
            raise RuntimeError("mutation failed")

        with pytest.raises(RuntimeError):
            store.update_session("abc", boom)
        assert store.get_session("abc") == {"n": 1}

    def test_concurrent_updates_do_not_lose_indices(self, store):
        store.put_session("abc", {"uploaded_chunks": []}, ttl_seconds=60)

        def add(index):
            def mutate(record):
                record["uploaded_chunks"] = sorted([*record["uploaded_chunks"], index])
                return record
            store.update_session("abc", mutate)

        threads = [threading.Thread(target=add, args=(i,)) for i in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert store.get_session("abc")["uploaded_chunks"] == list(range(20))


class TestChunkTable:
    def test_put_and_get_chunk(self, store):
        assert store.put_chunk("abc", 0, b"hello", ttl_seconds=60) is True
        assert store.get_chunk("abc", 0) == b"hello"

    def test_chunk_is_immutable_once_written(self, store):
        store.put_chunk("abc", 0, b"first", ttl_seconds=60)
        assert store.put_chunk("abc", 0, b"second", ttl_seconds=60) is False
        assert store.get_chunk("abc", 0) == b"first"

    def test_expired_chunk_can_be_rewritten(self, store, clock):
        store.put_chunk("abc", 0, b"first", ttl_seconds=60)
        clock.now += 61
        assert store.get_chunk("abc", 0) is None
        assert store.put_chunk("abc", 0, b"second", ttl_seconds=60) is True
        assert store.get_chunk("abc", 0) == b"second"

    def test_chunks_are_keyed_per_session(self, store):
        store.put_chunk("a", 0, b"aaa", ttl_seconds=60)
        store.put_chunk("b", 0, b"bbb", ttl_seconds=60)
        assert store.get_chunk("a", 0) == b"aaa"
        assert store.get_chunk("b", 0) == b"bbb"

    def test_list_chunk_indices_sorted(self, store):
        for index in (2, 0, 1):
            store.put_chunk("abc", index, b"x", ttl_seconds=60)
        store.put_chunk("other", 5, b"x", ttl_seconds=60)
        assert store.list_chunk_indices("abc") == [0, 1, 2]

    def test_delete_chunk(self, store):
        store.put_chunk("abc", 0, b"x", ttl_seconds=60)
        assert store.delete_chunk("abc", 0) is True
        assert store.get_chunk("abc", 0) is None
        assert store.delete_chunk("abc", 0) is False

    def test_chunk_bytes_roundtrip_binary(self, store):
        payload = bytes(range(256)) * 16
        store.put_chunk("abc", 0, payload, ttl_seconds=60, metadata={"chunkIndex": 0})
        assert store.get_chunk("abc", 0) == payload


class TestPurgeExpired:
    def test_purge_removes_only_expired_rows(self, store, clock):
        store.put_session("old", {"x": 1}, ttl_seconds=10)
        store.put_chunk("old", 0, b"x", ttl_seconds=10)
        store.put_session("new", {"x": 1}, ttl_seconds=100)
        store.put_chunk("new", 0, b"x", ttl_seconds=100)

        clock.now += 20
        assert store.purge_expired() == 2

        assert store.get_session("new") is not None
        assert store.get_chunk("new", 0) == b"x"
        assert store.delete_session("old") is False
        assert store.delete_chunk("old", 0) is False

    def test_purge_with_nothing_expired(self, store):
        store.put_session("abc", {"x": 1}, ttl_seconds=60)
        assert store.purge_expired() == 0
