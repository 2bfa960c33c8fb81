"""Job download and zip bundling."""

from typing import List, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from pdftools.processing.pipeline import BundleItem
from pdftools.services.container import Services, get_services

router = APIRouter()


class ZipItem(BaseModel):
    job_id: str = ""
    token: str = ""


class ZipRequest(BaseModel):
    items: List[ZipItem] = Field(min_length=1)


class ZipResponse(BaseModel):
    job_id: str
    status: str
    download_url: str
    expires_at: str
    count: int


def content_disposition(filename: str) -> str:
    ascii_name = filename.encode("ascii", "ignore").decode("ascii").replace('"', "") or "download"
    if ascii_name == filename:
        return f'attachment; filename="{filename}"'
    return f"attachment; filename=\"{ascii_name}\"; filename*=utf-8''{quote(filename)}"


@router.post("/jobs/zip", response_model=ZipResponse)
async def zip_jobs(request: ZipRequest, services: Services = Depends(get_services)):
    """Bundle the artifacts of several jobs into one zip.

    Items that are unknown, expired or carry the wrong token are left out.
    """
    items = [BundleItem(job_id=i.job_id, token=i.token) for i in request.items]
    result = await services.pipeline.zip_bundle(items)
    return ZipResponse(
        job_id=result.job_id,
        status="completed",
        download_url=result.download_url,
        expires_at=result.expires_at.isoformat(),
        count=result.count or 0,
    )


@router.get("/jobs/{job_id}/download")
async def download_job(
    job_id: str,
    token: Optional[str] = Query(None),
    services: Services = Depends(get_services),
):
    """Stream a job's artifact. 404 if unknown, 403 on bad token or expiry."""
    download = services.gateway.fetch(job_id, token or "")
    return StreamingResponse(
        download.iter_chunks(),
        media_type=download.media_type,
        headers={
            "Content-Disposition": content_disposition(download.filename),
            "Content-Length": str(download.size),
            "Cache-Control": "no-store",
        },
    )
