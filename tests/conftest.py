"""
Test configuration and fixtures.

Every test gets its own storage directory, a controllable clock and a fake
Ghostscript binary (a tiny shell script) so no real gs install is needed.
"""
import io
import os
import shutil
import stat
import tempfile
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from pypdf import PdfWriter

# Keep the module-level app in pdftools.main away from the working tree
_IMPORT_STORAGE_DIR = tempfile.mkdtemp(prefix="pdftools-test-")
os.environ.setdefault("STORAGE_DIR", _IMPORT_STORAGE_DIR)

from pdftools.config import Settings
from pdftools.main import create_app


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def make_pdf(pages: int = 1, width: float = 200, rotate: int = 0, password: Optional[str] = None) -> bytes:
    """Blank-page PDF; page i is ``width + i`` points wide so order is checkable."""
    writer = PdfWriter()
    for i in range(pages):
        page = writer.add_blank_page(width=width + i, height=300)
        if rotate:
            page.rotate(rotate)
    if password:
        writer.encrypt(password)
    buf = io.BytesIO()
    writer.write(buf)
    return buf.getvalue()


def write_script(path, body: str) -> str:
    path.write_text("#!/bin/sh\n" + body)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(path)


# Writes the first half of the input to -sOutputFile=..., like a good compression run
SHRINK_GS = """
out=""
last=""
for arg in "$@"; do
  case "$arg" in
    -sOutputFile=*) out="${arg#-sOutputFile=}" ;;
  esac
  last="$arg"
done
size=$(wc -c < "$last")
head -c $((size / 2)) "$last" > "$out"
"""

GROW_GS = """
out=""
last=""
for arg in "$@"; do
  case "$arg" in
    -sOutputFile=*) out="${arg#-sOutputFile=}" ;;
  esac
  last="$arg"
done
cat "$last" "$last" > "$out"
"""

# Near-total reduction: a single byte out
TINY_GS = """
out=""
for arg in "$@"; do
  case "$arg" in
    -sOutputFile=*) out="${arg#-sOutputFile=}" ;;
  esac
done
printf x > "$out"
"""

FAIL_GS = """
echo "Error: /syntaxerror in pdfmark" >&2
exit 1
"""

HANG_GS = """
exec sleep 30
"""


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_gs(tmp_path):
    """Paths to the fake Ghostscript variants."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    return {
        "shrink": write_script(bin_dir / "gs-shrink", SHRINK_GS),
        "grow": write_script(bin_dir / "gs-grow", GROW_GS),
        "tiny": write_script(bin_dir / "gs-tiny", TINY_GS),
        "fail": write_script(bin_dir / "gs-fail", FAIL_GS),
        "hang": write_script(bin_dir / "gs-hang", HANG_GS),
    }


@pytest.fixture
def settings(tmp_path, fake_gs) -> Settings:
    return Settings(
        storage_dir=str(tmp_path / "var"),
        ghostscript_bin=fake_gs["shrink"],
        ghostscript_timeout_seconds=5,
        max_upload_mb=1,
        smtp_host=None,
        email_cooldown_seconds=30,
        public_base_url="",
    )


@pytest.fixture
def app(settings, clock):
    return create_app(settings, clock=clock)


@pytest.fixture
def services(app):
    return app.state.services


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def sample_pdf() -> bytes:
    return make_pdf(pages=3, width=100)


@pytest.fixture(scope="session", autouse=True)
def _remove_import_storage_dir():
    yield
    shutil.rmtree(_IMPORT_STORAGE_DIR, ignore_errors=True)
