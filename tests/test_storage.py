"""Tests for the artifact store and the job index backends."""
import os
import time
from datetime import timedelta

import pytest

from pdftools.errors import NotFound
from pdftools.jobs.index import FileJobIndex, InMemoryJobIndex, is_valid_job_id
from pdftools.jobs.models import JobKind, JobRecord
from pdftools.storage.artifacts import ArtifactStore, safe_filename

from conftest import FakeClock


@pytest.fixture
def store(tmp_path):
    return ArtifactStore(str(tmp_path / "store"))


def make_record(store, clock, kind=JobKind.COMPRESS, ttl_minutes=15, data=b"%PDF-1.4 data"):
    path = store.write(data, "out.pdf")
    return JobRecord.create(
        kind,
        output_path=path,
        output_filename="out.pdf",
        ttl=timedelta(minutes=ttl_minutes),
        now=clock(),
    )


class TestArtifactStore:

    def test_write_publishes_into_outputs(self, store):
        path = store.write(b"hello", "report.pdf")
        assert os.path.dirname(path) == store.output_dir
        assert path.endswith("-report.pdf")
        with open(path, "rb") as fh:
            assert fh.read() == b"hello"

    def test_write_paths_are_unique(self, store):
        assert store.write(b"a", "x.pdf") != store.write(b"b", "x.pdf")

    def test_delete_is_idempotent(self, store):
        path = store.write(b"hello", "a.pdf")
        store.delete(path)
        store.delete(path)
        assert not os.path.exists(path)

    def test_delete_refuses_outside_paths(self, store, tmp_path):
        outside = tmp_path / "keep.txt"
        outside.write_text("x")
        with pytest.raises(ValueError):
            store.delete(str(outside))
        assert outside.exists()

    def test_read_stream_missing_raises_not_found(self, store):
        with pytest.raises(NotFound):
            store.read_stream(os.path.join(store.output_dir, "gone.pdf"))

    def test_open_stream_survives_unlink(self, store):
        path = store.write(b"x" * 1000, "a.pdf")
        stream = store.read_stream(path)
        store.delete(path)
        assert stream.read() == b"x" * 1000
        stream.close()

    def test_cleanup_staging_removes_only_old_files(self, store):
        old = store.staging_path(".pdf")
        new = store.staging_path(".pdf")
        for p in (old, new):
            with open(p, "wb") as fh:
                fh.write(b"partial")
        past = time.time() - 7200
        os.utime(old, (past, past))

        assert store.cleanup_staging(3600) == 1
        assert not os.path.exists(old)
        assert os.path.exists(new)

    @pytest.mark.parametrize("raw,expected", [
        ("report.pdf", "report.pdf"),
        ("../../etc/passwd", "passwd"),
        ("C:\\Users\\me\\my file.pdf", "my_file.pdf"),
        ("", "file.pdf"),
        ("...", "file.pdf"),
    ])
    def test_safe_filename(self, raw, expected):
        assert safe_filename(raw) == expected


class TestFileJobIndex:

    @pytest.fixture
    def index(self, tmp_path):
        return FileJobIndex(str(tmp_path / "index"))

    def test_put_get_roundtrip(self, index, store):
        clock = FakeClock()
        record = make_record(store, clock)
        index.put(record)

        loaded = index.get(record.id)
        assert loaded == record
        assert loaded.expires_at == clock() + timedelta(minutes=15)

    def test_unknown_id_returns_none(self, index):
        assert index.get("cpdf_doesnotexist") is None

    def test_unsafe_ids_are_never_looked_up(self, index):
        assert index.get("../../etc/passwd") is None
        assert not is_valid_job_id("a/b")
        assert not is_valid_job_id("")

    def test_delete_is_idempotent(self, index, store):
        record = make_record(store, FakeClock())
        index.put(record)
        index.delete(record.id)
        index.delete(record.id)
        assert index.get(record.id) is None

    def test_no_temp_files_left_after_put(self, index, store, tmp_path):
        index.put(make_record(store, FakeClock()))
        names = os.listdir(tmp_path / "index")
        assert len(names) == 1
        assert names[0].endswith(".json")

    def test_corrupt_record_treated_as_missing(self, index, tmp_path):
        (tmp_path / "index" / "cpdf_broken.json").write_text('{"id": "cpdf_bro')
        assert index.get("cpdf_broken") is None
        assert list(index.list_all()) == []

    def test_unreadable_record_is_skipped(self, index, store, tmp_path):
        # A directory in place of a record file makes open() raise an OSError
        (tmp_path / "index" / "cpdf_unreadable.json").mkdir()
        good = make_record(store, FakeClock())
        index.put(good)

        assert index.get("cpdf_unreadable") is None
        assert [r.id for r in index.list_all()] == [good.id]

    def test_list_all(self, index, store):
        clock = FakeClock()
        records = [make_record(store, clock) for _ in range(3)]
        for r in records:
            index.put(r)
        assert {r.id for r in index.list_all()} == {r.id for r in records}


class TestInMemoryJobIndex:

    def test_same_contract(self, store):
        index = InMemoryJobIndex()
        record = make_record(store, FakeClock())
        index.put(record)
        assert index.get(record.id) == record
        assert [r.id for r in index.list_all()] == [record.id]
        index.delete(record.id)
        index.delete(record.id)
        assert index.get(record.id) is None

    def test_returned_records_are_copies(self, store):
        index = InMemoryJobIndex()
        record = make_record(store, FakeClock())
        index.put(record)
        index.get(record.id).metadata["x"] = 1
        assert "x" not in index.get(record.id).metadata


class TestJobRecord:

    def test_expiry_boundary(self, store):
        clock = FakeClock()
        record = make_record(store, clock)
        assert not record.is_expired(clock() + timedelta(minutes=14, seconds=59))
        assert record.is_expired(clock() + timedelta(minutes=15))

    def test_ids_and_tokens(self, store):
        clock = FakeClock()
        a, b = make_record(store, clock), make_record(store, clock)
        assert a.id.startswith("cpdf_")
        assert a.id != b.id
        assert a.access_token != b.access_token
        assert len(a.access_token) >= 32

    def test_media_type(self, store):
        clock = FakeClock()
        assert make_record(store, clock).media_type == "application/pdf"
        assert make_record(store, clock, kind=JobKind.ZIP).media_type == "application/zip"
