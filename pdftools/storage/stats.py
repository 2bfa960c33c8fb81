"""Flat JSON-file stores: usage counter, review aggregate, contact list."""

import copy
import json
import os
import threading
from typing import Any, Callable, Dict, List

from pdftools.errors import InvalidInput
from pdftools.jobs.models import Clock, utcnow
from pdftools.logging_config import logger


class JsonFileStore:
    """A single JSON document on disk with guarded read-modify-write.

    The lock is process-local; this service runs as one instance.
    """

    def __init__(self, path: str, default_factory: Callable[[], Any]):
        self._path = path
        self._default_factory = default_factory
        self._lock = threading.Lock()
        os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)

    def read(self) -> Any:
        with self._lock:
            return self._read_unlocked()

    def update(self, fn: Callable[[Any], Any]) -> Any:
        """Apply fn to the current document, persist and return the result."""
        with self._lock:
            doc = fn(self._read_unlocked())
            self._write_unlocked(doc)
            return copy.deepcopy(doc)

    def _read_unlocked(self) -> Any:
        try:
            with open(self._path, "r", encoding="utf-8") as fh:
                return json.load(fh)
        except FileNotFoundError:
            return self._default_factory()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            logger.warning(f"[Stats] Resetting unreadable {self._path}: {exc}")
            return self._default_factory()

    def _write_unlocked(self, doc: Any) -> None:
        tmp_path = f"{self._path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as fh:
            json.dump(doc, fh)
        os.replace(tmp_path, self._path)


class UsageCounter:
    """Process-wide count of completed processing jobs."""

    def __init__(self, path: str, clock: Clock = utcnow):
        self._clock = clock
        self._store = JsonFileStore(path, self._default)

    def _default(self) -> Dict[str, Any]:
        return {"total_processed": 0, "updated_at": self._clock().isoformat()}

    def increment(self) -> Dict[str, Any]:
        def bump(doc: Dict[str, Any]) -> Dict[str, Any]:
            doc["total_processed"] = int(doc.get("total_processed", 0)) + 1
            doc["updated_at"] = self._clock().isoformat()
            return doc

        return self._store.update(bump)

    def summary(self) -> Dict[str, Any]:
        doc = self._store.read()
        return {
            "total_processed": int(doc.get("total_processed", 0)),
            "updated_at": doc.get("updated_at"),
        }


class ReviewAggregate:
    """Star-rating aggregate (count, sum, 1..5 distribution)."""

    def __init__(self, path: str, clock: Clock = utcnow):
        self._clock = clock
        self._store = JsonFileStore(path, self._default)

    def _default(self) -> Dict[str, Any]:
        return {
            "count": 0,
            "sum": 0,
            "distribution": {str(n): 0 for n in range(1, 6)},
            "updated_at": self._clock().isoformat(),
        }

    def add(self, rating: Any) -> Dict[str, Any]:
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise InvalidInput("rating must be 1..5", code="invalid_rating")

        def record(doc: Dict[str, Any]) -> Dict[str, Any]:
            doc["count"] = int(doc.get("count", 0)) + 1
            doc["sum"] = int(doc.get("sum", 0)) + rating
            dist = doc.setdefault("distribution", {})
            dist[str(rating)] = int(dist.get(str(rating), 0)) + 1
            doc["updated_at"] = self._clock().isoformat()
            return doc

        return self._summarize(self._store.update(record))

    def summary(self) -> Dict[str, Any]:
        return self._summarize(self._store.read())

    @staticmethod
    def _summarize(doc: Dict[str, Any]) -> Dict[str, Any]:
        count = int(doc.get("count", 0))
        avg = doc.get("sum", 0) / count if count else 0
        distribution = {str(n): 0 for n in range(1, 6)}
        distribution.update(doc.get("distribution", {}))
        return {
            "review_count": count,
            "rating_value": round(avg, 2),
            "distribution": distribution,
            "updated_at": doc.get("updated_at"),
        }


class ContactList:
    """Append-only list of people who opted in to updates."""

    def __init__(self, path: str, clock: Clock = utcnow):
        self._clock = clock
        self._store = JsonFileStore(path, list)

    def append(self, entry: Dict[str, Any]) -> None:
        def add(doc: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
            if not isinstance(doc, list):
                doc = []
            doc.append({**entry, "ts": self._clock().isoformat()})
            return doc

        self._store.update(add)

    def all(self) -> List[Dict[str, Any]]:
        doc = self._store.read()
        return doc if isinstance(doc, list) else []
