"""Tests for the chunk ingestor."""
import itertools
import threading

import pytest

from filebed.uploads.exceptions import InvalidRequest, SessionNotFound


@pytest.fixture
def sessions(upload_service):
    return upload_service.sessions


@pytest.fixture
def ingestor(upload_service):
    return upload_service.ingestor


def _new_session(sessions, total_chunks=3, backend="blob"):
    session_id, _ = sessions.create_session("a.png", 300, total_chunks, "image/png", backend)
    return session_id


class TestIngestChunk:
    def test_records_index_and_progress(self, sessions, ingestor, staging_store):
        sid = _new_session(sessions)

        progress = ingestor.ingest_chunk(sid, 1, b"b" * 100)

        assert progress.chunk_index == 1
        assert progress.uploaded_chunks == [1]
        assert progress.progress == 33.3
        assert progress.duplicate is False
        assert staging_store.get_chunk(sid, 1) == b"b" * 100

    def test_indices_kept_sorted(self, sessions, ingestor):
        sid = _new_session(sessions, total_chunks=4)
        for index in (3, 0, 2):
            progress = ingestor.ingest_chunk(sid, index, b"x")
        assert progress.uploaded_chunks == [0, 2, 3]
        assert progress.progress == 75.0

    def test_idempotent_by_index(self, sessions, ingestor):
        sid = _new_session(sessions)
        once = ingestor.ingest_chunk(sid, 0, b"x").uploaded_chunks
        twice = ingestor.ingest_chunk(sid, 0, b"x")
        assert twice.uploaded_chunks == once == [0]
        assert twice.duplicate is True

    def test_duplicate_does_not_overwrite_first_payload(self, sessions, ingestor, staging_store):
        sid = _new_session(sessions)
        ingestor.ingest_chunk(sid, 0, b"first")
        ingestor.ingest_chunk(sid, 0, b"second")

        assert sessions.get_session(sid).uploaded_chunks == [0]
        assert staging_store.get_chunk(sid, 0) == b"first"

    def test_staged_blob_without_index_keeps_first_payload(self, sessions, ingestor, staging_store):
        """A blob staged by an interrupted earlier attempt wins over the resend."""
        sid = _new_session(sessions)
        staging_store.put_chunk(sid, 2, b"earlier", ttl_seconds=60)

        progress = ingestor.ingest_chunk(sid, 2, b"later")

        assert progress.uploaded_chunks == [2]
        assert staging_store.get_chunk(sid, 2) == b"earlier"

    def test_unknown_session(self, ingestor):
        with pytest.raises(SessionNotFound):
            ingestor.ingest_chunk("missing", 0, b"x")

    @pytest.mark.parametrize("index", [-1, 3, 100])
    def test_out_of_range_index_rejected(self, sessions, ingestor, staging_store, index):
        sid = _new_session(sessions)
        with pytest.raises(InvalidRequest):
            ingestor.ingest_chunk(sid, index, b"x")
        assert staging_store.list_chunk_indices(sid) == []
        assert sessions.get_session(sid).uploaded_chunks == []

    @pytest.mark.parametrize(
        "session_id,index,data",
        [(None, 0, b"x"), ("", 0, b"x"), ("sid", None, b"x"), ("sid", 0, b""), ("sid", 0, None)],
    )
    def test_missing_fields_rejected(self, ingestor, session_id, index, data):
        with pytest.raises(InvalidRequest):
            ingestor.ingest_chunk(session_id, index, data)

    @pytest.mark.parametrize("order", list(itertools.permutations(range(3))))
    def test_any_arrival_order_collects_all_indices(self, sessions, ingestor, order):
        sid = _new_session(sessions)
        for index in order:
            ingestor.ingest_chunk(sid, index, bytes([index]))
        assert sessions.get_session(sid).uploaded_chunks == [0, 1, 2]

    def test_concurrent_ingestion_loses_no_index(self, sessions, ingestor):
        sid = _new_session(sessions, total_chunks=16)
        errors = []

        def send(index):
            try:
                ingestor.ingest_chunk(sid, index, bytes([index]) * 10)
            except Exception as exc:  # pragma: no cover - surfaced below
                errors.append(exc)

        threads = [threading.Thread(target=send, args=(i % 16,)) for i in range(32)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert sessions.get_session(sid).uploaded_chunks == list(range(16))
