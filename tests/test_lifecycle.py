"""Token gating, read-time expiry and the expiry sweeper."""
import os
from datetime import timedelta

import pytest

from pdftools.errors import Forbidden, NotFound
from pdftools.jobs.gateway import DownloadGateway
from pdftools.jobs.index import FileJobIndex, InMemoryJobIndex
from pdftools.jobs.models import JobKind, JobRecord
from pdftools.jobs.sweeper import ExpirySweeper, reap_job
from pdftools.storage.artifacts import ArtifactStore

from conftest import FakeClock


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(tmp_path):
    return ArtifactStore(str(tmp_path / "store"))


@pytest.fixture
def index(tmp_path):
    return FileJobIndex(str(tmp_path / "index"))


@pytest.fixture
def gateway(index, store, clock):
    return DownloadGateway(index, store, clock=clock)


@pytest.fixture
def sweeper(index, store, clock):
    return ExpirySweeper(index, store, interval_seconds=60, clock=clock)


def publish(index, store, clock, ttl_minutes=15, with_input=False, data=b"%PDF-1.4 artifact"):
    output_path = store.write(data, "doc.pdf")
    inputs = []
    if with_input:
        upload = store.upload_path("source.pdf")
        with open(upload, "wb") as fh:
            fh.write(b"%PDF-1.4 source")
        inputs.append(upload)
    record = JobRecord.create(
        JobKind.COMPRESS,
        output_path=output_path,
        output_filename="doc-compressed.pdf",
        ttl=timedelta(minutes=ttl_minutes),
        now=clock(),
        input_refs=inputs,
    )
    index.put(record)
    return record


class TestDownloadGateway:

    def test_fetch_with_correct_token(self, gateway, index, store, clock):
        record = publish(index, store, clock)
        download = gateway.fetch(record.id, record.access_token)
        assert download.read_all() == b"%PDF-1.4 artifact"
        assert download.filename == "doc-compressed.pdf"
        assert download.media_type == "application/pdf"
        assert download.size == len(b"%PDF-1.4 artifact")

    @pytest.mark.parametrize("token", ["", "wrong", "x" * 32])
    def test_wrong_token_is_forbidden(self, gateway, index, store, clock, token):
        record = publish(index, store, clock)
        with pytest.raises(Forbidden):
            gateway.fetch(record.id, token)

    def test_token_of_another_job_is_forbidden(self, gateway, index, store, clock):
        a = publish(index, store, clock)
        b = publish(index, store, clock)
        with pytest.raises(Forbidden):
            gateway.fetch(a.id, b.access_token)

    def test_unknown_job_is_not_found(self, gateway):
        with pytest.raises(NotFound):
            gateway.fetch("cpdf_000000000000", "anything")

    def test_expired_is_forbidden_before_any_sweep(self, gateway, index, store, clock):
        record = publish(index, store, clock, with_input=True)
        clock.advance(minutes=15)
        with pytest.raises(Forbidden):
            gateway.fetch(record.id, record.access_token)

    def test_expired_read_reaps_the_job(self, gateway, index, store, clock):
        record = publish(index, store, clock, with_input=True)
        clock.advance(minutes=16)
        with pytest.raises(Forbidden):
            gateway.fetch(record.id, record.access_token)
        assert index.get(record.id) is None
        assert not os.path.exists(record.output_path)
        assert not os.path.exists(record.input_refs[0])
        with pytest.raises(NotFound):
            gateway.fetch(record.id, record.access_token)

    def test_dangling_record_is_not_found(self, gateway, index, store, clock):
        record = publish(index, store, clock)
        store.delete(record.output_path)
        with pytest.raises(NotFound):
            gateway.fetch(record.id, record.access_token)

    def test_valid_until_just_before_expiry(self, gateway, index, store, clock):
        record = publish(index, store, clock)
        clock.advance(minutes=14, seconds=59)
        assert gateway.fetch(record.id, record.access_token).read_all()


class TestExpirySweeper:

    def test_reaps_only_expired(self, sweeper, index, store, clock):
        old = publish(index, store, clock, with_input=True)
        clock.advance(minutes=10)
        fresh = publish(index, store, clock)
        clock.advance(minutes=6)

        assert sweeper.sweep_once() == 1
        assert index.get(old.id) is None
        assert not os.path.exists(old.output_path)
        assert not os.path.exists(old.input_refs[0])
        assert index.get(fresh.id) is not None
        assert os.path.exists(fresh.output_path)

    def test_sweep_is_idempotent(self, sweeper, index, store, clock):
        records = [publish(index, store, clock) for _ in range(3)]
        clock.advance(hours=1)

        assert sweeper.sweep_once() == 3
        assert sweeper.sweep_once() == 0
        assert list(index.list_all()) == []
        for r in records:
            assert not os.path.exists(r.output_path)

    def test_reaps_at_exact_expiry(self, sweeper, index, store, clock):
        publish(index, store, clock)
        clock.advance(minutes=15)
        assert sweeper.sweep_once() == 1

    def test_already_missing_artifact_is_fine(self, sweeper, index, store, clock):
        record = publish(index, store, clock)
        store.delete(record.output_path)
        clock.advance(minutes=20)
        assert sweeper.sweep_once() == 1
        assert index.get(record.id) is None

    def test_one_bad_record_does_not_stop_the_sweep(self, store, clock):
        index = InMemoryJobIndex()
        good = publish(index, store, clock)
        bad = publish(index, store, clock)
        # A path outside the store makes the delete raise
        bad.output_path = "/etc/hostname"
        index.put(bad)
        clock.advance(hours=1)

        sweeper = ExpirySweeper(index, store, clock=clock)
        assert sweeper.sweep_once() == 1
        assert index.get(good.id) is None
        assert index.get(bad.id) is not None

    def test_artifact_deleted_before_record(self, index, store, clock):
        record = publish(index, store, clock)
        calls = []

        class RecordingIndex(InMemoryJobIndex):
            def delete(self, job_id):
                calls.append(("index", os.path.exists(record.output_path)))
                super().delete(job_id)

        reap_job(record, RecordingIndex(), store)
        assert calls == [("index", False)]

    async def test_start_and_stop(self, sweeper):
        await sweeper.start()
        await sweeper.stop()
        await sweeper.stop()
