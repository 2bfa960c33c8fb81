"""PDF merge endpoint.

  POST /v1/pdf/merge: multipart files[] (ordered), optional passwords[], skip_locked
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Request
from starlette.datastructures import UploadFile

from pdftools.errors import InvalidInput, PayloadTooLarge, UnsupportedFileType
from pdftools.processing.merger import PdfPart
from pdftools.processing.pipeline import is_pdf
from pdftools.services.container import Services, get_services

router = APIRouter()

_TRUTHY = {"1", "true", "yes", "on"}


def _getlist(form, name: str) -> list:
    # Browsers send files[]; plain clients often send files
    return form.getlist(f"{name}[]") or form.getlist(name)


def parse_bool(value: Optional[str]) -> bool:
    return str(value or "").strip().lower() in _TRUTHY


async def read_part(upload: UploadFile, max_bytes: int) -> PdfPart:
    filename = upload.filename or "file.pdf"
    if not is_pdf(filename, upload.content_type):
        raise UnsupportedFileType("Only PDF files are supported")
    data = await upload.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise PayloadTooLarge(max_bytes)
    return PdfPart(filename=filename, content_type=upload.content_type or "", data=data)


@router.post("/pdf/merge")
async def merge_pdfs(request: Request, services: Services = Depends(get_services)):
    """Merge the uploaded PDFs in the order given.

    Returns:
        {job_id, status, output{filename, bytes, page_count, download_url, expires_at}, skipped}
    """
    pipeline = services.pipeline
    try:
        form = await request.form()
    except Exception:
        raise InvalidInput("Expected a multipart form upload", status_code=422)

    uploads = [u for u in _getlist(form, "files") if isinstance(u, UploadFile)]
    if len(uploads) < 2:
        raise InvalidInput("Need at least 2 PDFs", status_code=422)
    if len(uploads) > pipeline.merge_max_files:
        raise InvalidInput(f"At most {pipeline.merge_max_files} PDFs can be merged", status_code=422)

    parts: List[PdfPart] = []
    for upload in uploads:
        parts.append(await read_part(upload, pipeline.max_upload_bytes))

    passwords = [p if isinstance(p, str) and p else None for p in _getlist(form, "passwords")]
    skip_locked = parse_bool(form.get("skip_locked"))

    result = await pipeline.merge(parts, passwords=passwords, skip_locked=skip_locked)
    return {
        "job_id": result.job_id,
        "status": "completed",
        "output": {
            "filename": result.output_filename,
            "bytes": result.output_bytes,
            "page_count": result.page_count,
            "download_url": result.download_url,
            "expires_at": result.expires_at.isoformat(),
        },
        "skipped": result.skipped,
    }
