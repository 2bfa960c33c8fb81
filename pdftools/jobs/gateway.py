"""Token- and expiry-checked access to published artifacts."""

import hmac
import os
from dataclasses import dataclass
from typing import BinaryIO, Iterator

from pdftools.errors import Forbidden, NotFound
from pdftools.jobs.index import JobIndex
from pdftools.jobs.models import Clock, JobRecord, utcnow
from pdftools.jobs.sweeper import reap_job
from pdftools.logging_config import logger
from pdftools.storage.artifacts import ArtifactStore

CHUNK_SIZE = 64 * 1024


@dataclass
class ArtifactDownload:
    """An opened artifact ready to be streamed."""
    stream: BinaryIO
    filename: str
    media_type: str
    size: int

    def iter_chunks(self) -> Iterator[bytes]:
        try:
            while True:
                chunk = self.stream.read(CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk
        finally:
            self.stream.close()

    def read_all(self) -> bytes:
        try:
            return self.stream.read()
        finally:
            self.stream.close()


class DownloadGateway:
    def __init__(self, index: JobIndex, store: ArtifactStore, clock: Clock = utcnow):
        self._index = index
        self._store = store
        self._clock = clock

    def authorize(self, job_id: str, token: str) -> JobRecord:
        """Return the record if (job_id, token) grants access right now.

        Raises NotFound for unknown or dangling jobs and Forbidden for a bad
        token or an elapsed expiry.
        """
        record = self._index.get(job_id)
        if record is None:
            raise NotFound("Job not found")

        if not hmac.compare_digest(
            (token or "").encode("utf-8"), record.access_token.encode("utf-8")
        ):
            raise Forbidden("Invalid token")

        if record.is_expired(self._clock()):
            # Expiry is authoritative at read time; reap now rather than
            # waiting for the next sweep.
            try:
                reap_job(record, self._index, self._store)
            except Exception:
                logger.exception(f"[Gateway] Failed to reap expired job {job_id}")
            raise Forbidden("Link expired")

        if not self._store.exists(record.output_path):
            raise NotFound("Artifact no longer exists")

        return record

    def fetch(self, job_id: str, token: str) -> ArtifactDownload:
        record = self.authorize(job_id, token)
        stream = self._store.read_stream(record.output_path)
        size = os.fstat(stream.fileno()).st_size
        return ArtifactDownload(
            stream=stream,
            filename=record.output_filename,
            media_type=record.media_type,
            size=size,
        )
