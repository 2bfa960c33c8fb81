"""Health check endpoint."""

import platform
import shutil
import sys
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from pdftools.services.container import Services, get_services

router = APIRouter()

_STARTED = time.monotonic()


@router.get("/health")
async def health_check(services: Services = Depends(get_services)):
    """Service health and whether the compression engine is on PATH."""
    gs_path = shutil.which(services.settings.ghostscript_bin)
    return {
        "status": "healthy",
        "uptime_seconds": round(time.monotonic() - _STARTED, 1),
        "time": datetime.now(timezone.utc).isoformat(),
        "ghostscript": {"available": gs_path is not None, "path": gs_path},
        "python_version": sys.version.split()[0],
        "platform": platform.platform(),
    }
