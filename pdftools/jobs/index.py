"""Job index interface and its JSON-file / in-memory implementations."""

import os
import re
import threading
from abc import ABC, abstractmethod
from typing import Dict, Iterator, List, Optional

from pydantic import ValidationError

from pdftools.jobs.models import JobRecord
from pdftools.logging_config import logger

# Ids become filenames, so nothing outside this set is ever looked up.
_SAFE_ID = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def is_valid_job_id(job_id: str) -> bool:
    return bool(job_id) and _SAFE_ID.match(job_id) is not None


class JobIndex(ABC):
    """Abstract key-value store of job records keyed by job id."""

    @abstractmethod
    def put(self, record: JobRecord) -> None:
        """Persist a record. A partially written record is never readable."""
        ...

    @abstractmethod
    def get(self, job_id: str) -> Optional[JobRecord]:
        """Return the record, or None if unknown."""
        ...

    @abstractmethod
    def delete(self, job_id: str) -> None:
        """Remove a record. Unknown ids are not an error."""
        ...

    @abstractmethod
    def list_all(self) -> Iterator[JobRecord]:
        """Iterate every readable record (used by the sweeper)."""
        ...


class FileJobIndex(JobIndex):
    """One ``<job_id>.json`` file per job, written temp-then-rename."""

    def __init__(self, index_dir: str):
        self._dir = index_dir
        os.makedirs(self._dir, exist_ok=True)

    def _path(self, job_id: str) -> str:
        return os.path.join(self._dir, f"{job_id}.json")

    def put(self, record: JobRecord) -> None:
        if not is_valid_job_id(record.id):
            raise ValueError(f"Invalid job id: {record.id!r}")
        path = self._path(record.id)
        tmp_path = f"{path}.{threading.get_ident()}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as fh:
            fh.write(record.model_dump_json())
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_path, path)

    def get(self, job_id: str) -> Optional[JobRecord]:
        if not is_valid_job_id(job_id):
            return None
        return self._load(self._path(job_id))

    def delete(self, job_id: str) -> None:
        if not is_valid_job_id(job_id):
            return
        try:
            os.unlink(self._path(job_id))
        except FileNotFoundError:
            pass

    def list_all(self) -> Iterator[JobRecord]:
        try:
            names = os.listdir(self._dir)
        except FileNotFoundError:
            return iter(())
        # Batch read: collect first so the directory isn't held open
        records: List[JobRecord] = []
        for name in sorted(names):
            if not name.endswith(".json"):
                continue
            record = self._load(os.path.join(self._dir, name))
            if record is not None:
                records.append(record)
        return iter(records)

    def _load(self, path: str) -> Optional[JobRecord]:
        try:
            with open(path, "r", encoding="utf-8") as fh:
                raw = fh.read()
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning(f"[Index] Cannot read job record {path}: {exc}")
            return None
        try:
            return JobRecord.model_validate_json(raw)
        except ValidationError as exc:
            logger.warning(f"[Index] Unreadable job record {path}: {exc}")
            return None


class InMemoryJobIndex(JobIndex):
    """Process-local index; same contract as the file index."""

    def __init__(self):
        self._records: Dict[str, JobRecord] = {}
        self._lock = threading.Lock()

    def put(self, record: JobRecord) -> None:
        with self._lock:
            self._records[record.id] = record.model_copy(deep=True)

    def get(self, job_id: str) -> Optional[JobRecord]:
        with self._lock:
            record = self._records.get(job_id)
            return record.model_copy(deep=True) if record else None

    def delete(self, job_id: str) -> None:
        with self._lock:
            self._records.pop(job_id, None)

    def list_all(self) -> Iterator[JobRecord]:
        with self._lock:
            snapshot = [r.model_copy(deep=True) for r in self._records.values()]
        return iter(snapshot)
