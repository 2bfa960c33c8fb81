"""Processing pipeline: validate, transform, publish artifact, then record.

Per request::

    Received -> Validating -> Transforming -> Publishing -> Completed
                    |               |
                Rejected (4xx)  Failed (422)

A JobRecord is only written once its artifact is on disk; any failure
cleans up whatever the request had produced so far.
"""

import asyncio
import shutil
from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional, Sequence
from urllib.parse import quote

from pdftools.errors import (
    InvalidInput,
    NotFound,
    PayloadTooLarge,
    PdfToolsError,
    ProcessingFailed,
    UnsupportedFileType,
)
from pdftools.jobs.gateway import DownloadGateway
from pdftools.jobs.index import JobIndex
from pdftools.jobs.models import Clock, JobKind, JobRecord, JobResult, new_job_id, utcnow
from pdftools.logging_config import logger
from pdftools.processing.archive import ArchiveEntry, write_zip
from pdftools.processing.ghostscript import CompressOptions, GhostscriptCompressor
from pdftools.processing.merger import PdfPart, merge_pdfs
from pdftools.storage.artifacts import ArtifactStore, safe_filename
from pdftools.storage.stats import UsageCounter


@dataclass
class SourceFile:
    """An upload already spooled to disk."""
    path: str
    filename: str
    content_type: str
    size: int


@dataclass
class BundleItem:
    job_id: str
    token: str


def is_pdf(filename: Optional[str], content_type: Optional[str]) -> bool:
    return "pdf" in (content_type or "").lower() or (filename or "").lower().endswith(".pdf")


def compression_ratio(input_bytes: int, output_bytes: int) -> float:
    if input_bytes <= 0:
        return 0.0
    return 1 - (output_bytes / input_bytes)


def compressed_filename(original: str) -> str:
    stem = safe_filename(original)
    if stem.lower().endswith(".pdf"):
        stem = stem[:-4]
    return f"{stem or 'file'}-compressed.pdf"


class ProcessingPipeline:
    def __init__(
        self,
        index: JobIndex,
        store: ArtifactStore,
        gateway: DownloadGateway,
        compressor: GhostscriptCompressor,
        usage: Optional[UsageCounter] = None,
        max_upload_bytes: int = 50 * 1024 * 1024,
        merge_max_files: int = 50,
        merge_timeout_seconds: float = 120,
        compress_ttl: timedelta = timedelta(minutes=15),
        merge_ttl: timedelta = timedelta(hours=1),
        public_base_url: str = "",
        clock: Clock = utcnow,
    ):
        self._index = index
        self._store = store
        self._gateway = gateway
        self._compressor = compressor
        self._usage = usage
        self.max_upload_bytes = max_upload_bytes
        self.merge_max_files = merge_max_files
        self.merge_timeout_seconds = merge_timeout_seconds
        self.compress_ttl = compress_ttl
        self.merge_ttl = merge_ttl
        self._base_url = public_base_url.rstrip("/")
        self._clock = clock

    def download_url(self, record: JobRecord) -> str:
        return f"{self._base_url}/v1/jobs/{record.id}/download?token={quote(record.access_token)}"

    # ------------------------------------------------------------------
    # Compress
    # ------------------------------------------------------------------

    async def compress(self, source: SourceFile, options: CompressOptions) -> JobResult:
        staged = self._store.staging_path(".pdf")
        output_path = None
        try:
            self._validate_upload(source.filename, source.content_type, source.size)
            if source.size == 0:
                raise InvalidInput("Uploaded file is empty")

            logger.info(
                f"[Compress] Start {source.filename} ({source.size / 1e6:.2f}MB) "
                f"quality={options.quality.value} dpi={options.downsample_dpi}"
            )
            await self._compressor.compress(source.path, staged, options)

            output_bytes = self._store.size(staged)
            if output_bytes >= source.size:
                # Compression didn't help; hand back the original bytes
                shutil.copyfile(source.path, staged)
                output_bytes = source.size

            output_filename = compressed_filename(source.filename)
            output_path = self._store.publish(staged, output_filename)
            ratio = compression_ratio(source.size, output_bytes)
            record = JobRecord.create(
                JobKind.COMPRESS,
                output_path=output_path,
                output_filename=output_filename,
                ttl=self.compress_ttl,
                now=self._clock(),
                input_refs=[source.path],
                metadata={
                    "input_filename": source.filename,
                    "input_bytes": source.size,
                    "output_bytes": output_bytes,
                    "compression_ratio": ratio,
                },
            )
            self._publish_record(record)
        except BaseException:
            self._store.delete(staged)
            if output_path:
                self._store.delete(output_path)
            self._store.delete(source.path)
            raise

        self._bump_usage()
        logger.info(f"[Compress] Done {source.filename} -> {output_filename} ({record.id}, ratio={ratio:.2f})")
        return JobResult(
            job_id=record.id,
            kind=record.kind,
            download_url=self.download_url(record),
            expires_at=record.expires_at,
            output_filename=output_filename,
            output_bytes=output_bytes,
            input_filename=source.filename,
            input_bytes=source.size,
            compression_ratio=ratio,
        )

    # ------------------------------------------------------------------
    # Merge
    # ------------------------------------------------------------------

    async def merge(
        self,
        parts: Sequence[PdfPart],
        passwords: Optional[Sequence[Optional[str]]] = None,
        skip_locked: bool = False,
    ) -> JobResult:
        if len(parts) < 2:
            raise InvalidInput("Need at least 2 PDFs", status_code=422)
        if len(parts) > self.merge_max_files:
            raise InvalidInput(f"At most {self.merge_max_files} PDFs can be merged", status_code=422)
        for part in parts:
            self._validate_upload(part.filename, part.content_type, len(part.data))

        loop = asyncio.get_running_loop()
        try:
            outcome = await asyncio.wait_for(
                loop.run_in_executor(None, merge_pdfs, list(parts), passwords, skip_locked),
                timeout=self.merge_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(f"[Merge] Timed out after {self.merge_timeout_seconds}s")
            raise ProcessingFailed("Merging took too long")

        if len(outcome.merged) < 2:
            raise InvalidInput("Need at least 2 readable PDFs", status_code=422)

        job_id = new_job_id(JobKind.MERGE)
        output_filename = f"merged-{job_id}.pdf"
        output_path = self._store.write(outcome.data, output_filename)
        record = JobRecord.create(
            JobKind.MERGE,
            job_id=job_id,
            output_path=output_path,
            output_filename=output_filename,
            ttl=self.merge_ttl,
            now=self._clock(),
            metadata={
                "output_bytes": len(outcome.data),
                "page_count": outcome.page_count,
                "sources": outcome.merged,
                "skipped": outcome.skipped,
            },
        )
        try:
            self._publish_record(record)
        except BaseException:
            self._store.delete(output_path)
            raise

        self._bump_usage()
        logger.info(
            f"[Merge] Done {len(outcome.merged)} file(s), {outcome.page_count} page(s) -> {record.id}"
            + (f", skipped {len(outcome.skipped)}" if outcome.skipped else "")
        )
        return JobResult(
            job_id=record.id,
            kind=record.kind,
            download_url=self.download_url(record),
            expires_at=record.expires_at,
            output_filename=output_filename,
            output_bytes=len(outcome.data),
            page_count=outcome.page_count,
            skipped=outcome.skipped,
        )

    # ------------------------------------------------------------------
    # Zip bundle
    # ------------------------------------------------------------------

    async def zip_bundle(self, items: Sequence[BundleItem]) -> JobResult:
        if not items:
            raise InvalidInput("items required")

        entries: List[ArchiveEntry] = []
        for item in items:
            try:
                record = self._gateway.authorize(item.job_id, item.token)
            except PdfToolsError:
                # Partial bundles are fine; unusable items are dropped
                continue
            entries.append(ArchiveEntry(path=record.output_path, name=record.output_filename))

        if not entries:
            raise NotFound("no valid files")

        job_id = new_job_id(JobKind.ZIP)
        output_filename = f"{job_id}.zip"
        staged = self._store.staging_path(".zip")
        loop = asyncio.get_running_loop()
        try:
            try:
                count = await loop.run_in_executor(None, write_zip, entries, staged)
            except FileNotFoundError:
                # An artifact was swept between authorization and bundling
                raise NotFound("no valid files")
            output_path = self._store.publish(staged, output_filename)
        except BaseException:
            self._store.delete(staged)
            raise

        record = JobRecord.create(
            JobKind.ZIP,
            job_id=job_id,
            output_path=output_path,
            output_filename=output_filename,
            ttl=self.compress_ttl,
            now=self._clock(),
            metadata={"count": count, "output_bytes": self._store.size(output_path)},
        )
        try:
            self._publish_record(record)
        except BaseException:
            self._store.delete(output_path)
            raise

        logger.info(f"[Zip] Bundled {count} file(s) -> {record.id}")
        return JobResult(
            job_id=record.id,
            kind=record.kind,
            download_url=self.download_url(record),
            expires_at=record.expires_at,
            output_filename=output_filename,
            output_bytes=record.metadata["output_bytes"],
            count=count,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _validate_upload(self, filename: str, content_type: str, size: int) -> None:
        if not is_pdf(filename, content_type):
            raise UnsupportedFileType()
        if size > self.max_upload_bytes:
            raise PayloadTooLarge(self.max_upload_bytes)

    def _publish_record(self, record: JobRecord) -> None:
        if not self._store.exists(record.output_path):
            raise ProcessingFailed("Output file missing after processing")
        self._index.put(record)

    def _bump_usage(self) -> None:
        if self._usage is None:
            return
        try:
            self._usage.increment()
        except Exception:
            logger.exception("[Stats] Usage counter update failed")
