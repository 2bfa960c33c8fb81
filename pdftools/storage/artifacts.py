"""On-disk placement of uploads, staged outputs and published artifacts."""

import os
import re
import time
import uuid
from typing import BinaryIO

from pdftools.errors import NotFound

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def safe_filename(name: str, default: str = "file.pdf") -> str:
    """Reduce a client-supplied filename to a plain basename."""
    base = os.path.basename((name or "").replace("\\", "/"))
    base = _UNSAFE_CHARS.sub("_", base).strip("._")
    return base[:120] or default


class ArtifactStore:
    """Owns every file the service writes.

    Layout under ``base_dir``::

        uploads/            spooled client uploads
        outputs/            published artifacts
        outputs/.staging/   files still being produced
    """

    def __init__(self, base_dir: str):
        self._base_dir = os.path.abspath(base_dir)
        self._upload_dir = os.path.join(self._base_dir, "uploads")
        self._output_dir = os.path.join(self._base_dir, "outputs")
        self._staging_dir = os.path.join(self._output_dir, ".staging")
        for path in (self._upload_dir, self._output_dir, self._staging_dir):
            os.makedirs(path, exist_ok=True)

    @property
    def output_dir(self) -> str:
        return self._output_dir

    def upload_path(self, filename: str) -> str:
        """Fresh path for an incoming upload."""
        return os.path.join(self._upload_dir, f"{uuid.uuid4().hex}-{safe_filename(filename)}")

    def staging_path(self, suffix: str = "") -> str:
        """Fresh path an external writer may produce a file at."""
        return os.path.join(self._staging_dir, f"{uuid.uuid4().hex}{suffix}")

    def publish(self, staged_path: str, filename: str) -> str:
        """Atomically move a finished staged file into outputs/."""
        self._check_inside(staged_path)
        final_path = os.path.join(self._output_dir, f"{uuid.uuid4().hex[:12]}-{safe_filename(filename)}")
        os.replace(staged_path, final_path)
        return final_path

    def write(self, data: bytes, filename: str) -> str:
        """Persist bytes as a published artifact. Raises OSError on disk failure."""
        staged = self.staging_path()
        try:
            with open(staged, "wb") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
        except OSError:
            self.delete(staged)
            raise
        return self.publish(staged, filename)

    def delete(self, path: str) -> None:
        """Remove a file; a missing file counts as success."""
        if not path:
            return
        self._check_inside(path)
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass

    def read_stream(self, path: str) -> BinaryIO:
        """Open an artifact for sequential reading.

        The returned handle stays valid even if the file is unlinked while
        it is being streamed.
        """
        self._check_inside(path)
        try:
            return open(path, "rb")
        except (FileNotFoundError, IsADirectoryError):
            raise NotFound("Artifact no longer exists")

    def exists(self, path: str) -> bool:
        return bool(path) and os.path.isfile(path)

    def size(self, path: str) -> int:
        return os.path.getsize(path)

    def cleanup_staging(self, max_age_seconds: float) -> int:
        """Remove staging files older than max_age. Returns count removed."""
        now = time.time()
        removed = 0
        if not os.path.exists(self._staging_dir):
            return 0
        for entry in os.listdir(self._staging_dir):
            path = os.path.join(self._staging_dir, entry)
            if not os.path.isfile(path):
                continue
            try:
                if now - os.path.getmtime(path) > max_age_seconds:
                    os.unlink(path)
                    removed += 1
            except FileNotFoundError:
                continue
        return removed

    def _check_inside(self, path: str) -> None:
        resolved = os.path.abspath(path)
        if os.path.commonpath([resolved, self._base_dir]) != self._base_dir:
            raise ValueError(f"Path outside artifact store: {path}")
