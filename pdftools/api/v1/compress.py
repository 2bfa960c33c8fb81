"""PDF compression endpoint.

  POST /v1/pdf/compress: multipart upload, returns a token-gated download link
"""

import math
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import ValidationError

from pdftools.errors import InvalidInput, PayloadTooLarge, UnsupportedFileType
from pdftools.processing.ghostscript import CompressOptions
from pdftools.processing.pipeline import SourceFile, is_pdf
from pdftools.services.container import Services, get_services
from pdftools.storage.artifacts import ArtifactStore

router = APIRouter()

_CHUNK = 1024 * 1024  # 1 MB


async def spool_upload(file: UploadFile, store: ArtifactStore, max_bytes: int) -> SourceFile:
    """Stream an upload to disk, enforcing the size ceiling as it arrives."""
    filename = file.filename or "file.pdf"
    dest = store.upload_path(filename)
    total = 0
    try:
        with open(dest, "wb") as out:
            while True:
                chunk = await file.read(_CHUNK)
                if not chunk:
                    break
                total += len(chunk)
                if total > max_bytes:
                    raise PayloadTooLarge(max_bytes)
                out.write(chunk)
    except BaseException:
        store.delete(dest)
        raise
    return SourceFile(
        path=dest,
        filename=filename,
        content_type=file.content_type or "",
        size=total,
    )


@router.post("/pdf/compress")
async def compress_pdf(
    file: Optional[UploadFile] = File(None),
    compression: str = Form("medium"),
    downsample_dpi: int = Form(150),
    remove_metadata: bool = Form(False),
    services: Services = Depends(get_services),
):
    """Compress one PDF with Ghostscript.

    Returns:
        {job_id, status, input{filename, bytes},
         output{filename, bytes, compression_ratio, download_url, expires_at},
         options}
    """
    if file is None or not file.filename:
        raise InvalidInput("No file uploaded")

    try:
        options = CompressOptions(
            quality=compression,
            downsample_dpi=downsample_dpi,
            remove_metadata=remove_metadata,
        )
    except ValidationError as exc:
        raise InvalidInput(f"Invalid compression options: {exc.errors()[0].get('msg', 'invalid value')}")

    # Reject by type before spending disk on the upload
    if not is_pdf(file.filename, file.content_type):
        raise UnsupportedFileType()

    pipeline = services.pipeline
    source = await spool_upload(file, services.store, pipeline.max_upload_bytes)
    result = await pipeline.compress(source, options)

    return {
        "job_id": result.job_id,
        "status": "completed",
        "input": {
            "filename": result.input_filename,
            "bytes": result.input_bytes,
        },
        "output": {
            "filename": result.output_filename,
            "bytes": result.output_bytes,
            "compression_ratio": math.floor((result.compression_ratio or 0.0) * 100) / 100,
            "download_url": result.download_url,
            "expires_at": result.expires_at.isoformat(),
        },
        "options": {
            "compression": options.quality.value,
            "downsample_dpi": options.downsample_dpi,
            "remove_metadata": options.remove_metadata,
        },
    }
