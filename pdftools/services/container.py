"""Builds and holds every component the API needs."""

import os
from dataclasses import dataclass
from datetime import timedelta

from fastapi import Request

from pdftools.config import Settings
from pdftools.jobs.gateway import DownloadGateway
from pdftools.jobs.index import FileJobIndex, JobIndex
from pdftools.jobs.models import Clock, utcnow
from pdftools.jobs.sweeper import ExpirySweeper
from pdftools.processing.ghostscript import GhostscriptCompressor
from pdftools.processing.pipeline import ProcessingPipeline
from pdftools.services.mailer import EmailShareService
from pdftools.services.rate_limit import CooldownLimiter
from pdftools.storage.artifacts import ArtifactStore
from pdftools.storage.stats import ContactList, ReviewAggregate, UsageCounter


@dataclass
class Services:
    settings: Settings
    store: ArtifactStore
    index: JobIndex
    gateway: DownloadGateway
    pipeline: ProcessingPipeline
    sweeper: ExpirySweeper
    usage: UsageCounter
    reviews: ReviewAggregate
    mailer: EmailShareService


def build_services(settings: Settings, clock: Clock = utcnow) -> Services:
    store = ArtifactStore(settings.storage_dir)
    index = FileJobIndex(settings.index_dir)
    gateway = DownloadGateway(index, store, clock=clock)
    usage = UsageCounter(os.path.join(settings.data_dir, "stats.json"), clock=clock)
    reviews = ReviewAggregate(os.path.join(settings.data_dir, "reviews.json"), clock=clock)
    contacts = ContactList(os.path.join(settings.data_dir, "emails.json"), clock=clock)

    compress_ttl = timedelta(minutes=settings.file_ttl_minutes)
    merge_ttl = timedelta(minutes=settings.merge_ttl_minutes)

    pipeline = ProcessingPipeline(
        index=index,
        store=store,
        gateway=gateway,
        compressor=GhostscriptCompressor(
            binary=settings.ghostscript_bin,
            timeout_seconds=settings.ghostscript_timeout_seconds,
        ),
        usage=usage,
        max_upload_bytes=settings.max_upload_bytes,
        merge_max_files=settings.merge_max_files,
        merge_timeout_seconds=settings.merge_timeout_seconds,
        compress_ttl=compress_ttl,
        merge_ttl=merge_ttl,
        public_base_url=settings.public_base_url,
        clock=clock,
    )
    sweeper = ExpirySweeper(
        index,
        store,
        interval_seconds=settings.sweep_interval_seconds,
        staging_max_age_seconds=max(compress_ttl, merge_ttl).total_seconds(),
        clock=clock,
    )
    mailer = EmailShareService(
        settings,
        gateway,
        CooldownLimiter(settings.email_cooldown_seconds, clock=clock),
        contacts,
    )
    return Services(
        settings=settings,
        store=store,
        index=index,
        gateway=gateway,
        pipeline=pipeline,
        sweeper=sweeper,
        usage=usage,
        reviews=reviews,
        mailer=mailer,
    )


def get_services(request: Request) -> Services:
    """FastAPI dependency: the container attached by create_app()."""
    return request.app.state.services
