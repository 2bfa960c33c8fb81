"""Send a finished PDF by email."""

from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from pdftools.services.container import Services, get_services
from pdftools.services.mailer import ShareRequest

router = APIRouter()


class EmailSendRequest(BaseModel):
    from_email: str
    to_email: str
    job_id: str = Field(min_length=1)
    token: str = Field(min_length=1)
    from_name: str = Field(default="PDF Tools user", max_length=200)
    message: str = Field(default="", max_length=5000)
    file_name: Optional[str] = Field(default=None, max_length=255)
    download_url: Optional[str] = None
    consent_news: bool = False
    consent_product: bool = False


def client_key(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


@router.post("/email/send")
async def send_email(
    body: EmailSendRequest,
    request: Request,
    services: Services = Depends(get_services),
):
    message_id = await services.mailer.share(
        ShareRequest(**body.model_dump()),
        client_key(request),
    )
    return {"ok": True, "id": message_id}
