"""
Email sharing of published artifacts.

The artifact is resolved through the download gateway, so a share needs the
same job id + token a download needs and is refused once the link expires.
"""

import html
import re
import uuid
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Optional

import aiosmtplib

from pdftools.config import Settings
from pdftools.errors import EmailFailed, InvalidInput, ServiceUnavailable, TooManyRequests
from pdftools.jobs.gateway import DownloadGateway
from pdftools.logging_config import logger
from pdftools.services.rate_limit import CooldownLimiter
from pdftools.storage.stats import ContactList

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_email(value: Optional[str]) -> bool:
    return isinstance(value, str) and _EMAIL_RE.match(value) is not None


@dataclass
class ShareRequest:
    from_email: str
    to_email: str
    job_id: str
    token: str
    from_name: str = "PDF Tools user"
    message: str = ""
    file_name: Optional[str] = None
    download_url: Optional[str] = None
    consent_news: bool = False
    consent_product: bool = False


def render_text(site: str, req: ShareRequest, file_name: str) -> str:
    lines = [
        f"{site} sent you a PDF.",
        f"From: {req.from_name}",
    ]
    if req.message:
        lines.append(f"\nNote:\n{req.message}")
    lines.append(f"\nFile: {file_name}")
    if req.download_url:
        lines.append(f"Download link: {req.download_url}")
    return "\n".join(lines)


def render_html(site: str, req: ShareRequest, file_name: str) -> str:
    note = html.escape(req.message or "")
    parts = [
        '<div style="font:14px/1.5 -apple-system,Segoe UI,Roboto,Arial,sans-serif;color:#111">',
        f"<p><strong>{html.escape(site)}</strong> sent you a PDF.</p>",
        f"<p><strong>From:</strong> {html.escape(req.from_name)}</p>",
    ]
    if note:
        parts.append(f'<p style="white-space:pre-wrap"><strong>Note:</strong><br>{note}</p>')
    parts.append(f"<p><strong>File:</strong> {html.escape(file_name)}</p>")
    if req.download_url:
        url = html.escape(req.download_url, quote=True)
        parts.append(f'<p>Download link (if needed): <a href="{url}">{url}</a></p>')
    parts.append("</div>")
    return "\n".join(parts)


class EmailShareService:
    def __init__(
        self,
        settings: Settings,
        gateway: DownloadGateway,
        limiter: CooldownLimiter,
        contacts: Optional[ContactList] = None,
    ):
        self._settings = settings
        self._gateway = gateway
        self._limiter = limiter
        self._contacts = contacts

    async def share(self, req: ShareRequest, client_key: str) -> str:
        """Send the artifact; returns the message id."""
        if not self._limiter.hit(client_key):
            raise TooManyRequests()

        if not is_email(req.from_email) or not is_email(req.to_email):
            raise InvalidInput("Missing or invalid fields.")

        if not self._settings.smtp_configured:
            raise ServiceUnavailable("Email is not configured on this server.")

        download = self._gateway.fetch(req.job_id, req.token)
        attachment = download.read_all()
        file_name = req.file_name or download.filename

        site = self._settings.site_name
        msg = EmailMessage()
        msg["From"] = f"{site} <{self._settings.mail_from}>"
        msg["To"] = req.to_email
        msg["Reply-To"] = f"{req.from_name} <{req.from_email}>"
        msg["Subject"] = f"{site}: {file_name}"
        message_id = f"<{uuid.uuid4()}@{self._settings.mail_from.split('@')[-1]}>"
        msg["Message-ID"] = message_id
        msg.set_content(render_text(site, req, file_name))
        msg.add_alternative(render_html(site, req, file_name), subtype="html")
        maintype, subtype = download.media_type.split("/", 1)
        msg.add_attachment(attachment, maintype=maintype, subtype=subtype, filename=file_name)

        port = self._settings.smtp_port
        try:
            await aiosmtplib.send(
                msg,
                hostname=self._settings.smtp_host,
                port=port,
                username=self._settings.smtp_user,
                password=self._settings.smtp_pass,
                use_tls=port == 465,
                validate_certs=self._settings.smtp_strict_tls,
                timeout=30,
            )
        except (aiosmtplib.SMTPException, OSError) as exc:
            logger.error(f"[Email] Send to {req.to_email} failed: {exc}")
            raise EmailFailed("Could not send the email.")

        logger.info(f"[Email] Sent {file_name} ({req.job_id}) to {req.to_email}")

        if (req.consent_news or req.consent_product) and self._contacts is not None:
            try:
                self._contacts.append({
                    "from_name": req.from_name,
                    "from_email": req.from_email,
                    "consent_news": req.consent_news,
                    "consent_product": req.consent_product,
                })
            except OSError:
                logger.exception("[Email] Could not save contact consent")

        return message_id
