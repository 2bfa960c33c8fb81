"""Job record data model for published artifacts."""

import secrets
import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

# Injected wherever "now" matters so tests can move time.
Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobKind(str, Enum):
    COMPRESS = "compress"
    MERGE = "merge"
    ZIP = "zip"


_ID_PREFIX = {
    JobKind.COMPRESS: "cpdf",
    JobKind.MERGE: "merge",
    JobKind.ZIP: "zip",
}


def new_job_id(kind: JobKind) -> str:
    return f"{_ID_PREFIX[kind]}_{uuid.uuid4().hex[:12]}"


def new_access_token() -> str:
    return secrets.token_urlsafe(24)


class JobRecord(BaseModel):
    """One published artifact and what is needed to guard and reap it."""
    id: str
    kind: JobKind
    input_refs: List[str] = Field(default_factory=list)
    output_path: str
    output_filename: str
    access_token: str = Field(default_factory=new_access_token)
    created_at: datetime
    expires_at: datetime
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def create(
        cls,
        kind: JobKind,
        output_path: str,
        output_filename: str,
        ttl: timedelta,
        now: datetime,
        job_id: Optional[str] = None,
        input_refs: Optional[List[str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> "JobRecord":
        return cls(
            id=job_id or new_job_id(kind),
            kind=kind,
            input_refs=input_refs or [],
            output_path=output_path,
            output_filename=output_filename,
            created_at=now,
            expires_at=now + ttl,
            metadata=metadata or {},
        )

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    @property
    def media_type(self) -> str:
        if self.kind == JobKind.ZIP:
            return "application/zip"
        return "application/pdf"


class JobResult(BaseModel):
    """What the pipeline hands back to the API layer after publishing."""
    job_id: str
    kind: JobKind
    download_url: str
    expires_at: datetime
    output_filename: str
    output_bytes: int
    input_filename: Optional[str] = None
    input_bytes: Optional[int] = None
    compression_ratio: Optional[float] = None
    page_count: Optional[int] = None
    count: Optional[int] = None
    skipped: List[str] = Field(default_factory=list)
