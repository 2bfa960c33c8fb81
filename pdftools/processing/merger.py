"""Lossless PDF concatenation with pypdf."""

import io
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from pypdf import PasswordType, PdfReader, PdfWriter

from pdftools.errors import InvalidOrEncryptedPdf
from pdftools.logging_config import logger


@dataclass
class PdfPart:
    """One uploaded source file, held in memory."""
    filename: str
    content_type: str
    data: bytes


@dataclass
class MergeOutcome:
    data: bytes
    page_count: int
    merged: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


def open_pdf(part: PdfPart, password: Optional[str] = None) -> PdfReader:
    """Open a part, decrypting it if needed. Raises InvalidOrEncryptedPdf."""
    try:
        reader = PdfReader(io.BytesIO(part.data))
        if reader.is_encrypted:
            if reader.decrypt(password or "") == PasswordType.NOT_DECRYPTED:
                raise InvalidOrEncryptedPdf(f"{part.filename} is password protected")
        # Touch every page now so a broken page tree fails here, not mid-merge
        for _ in reader.pages:
            pass
        if len(reader.pages) == 0:
            raise InvalidOrEncryptedPdf(f"{part.filename} has no pages")
        return reader
    except InvalidOrEncryptedPdf:
        raise
    except Exception as exc:
        logger.info(f"[Merge] Could not open {part.filename}: {type(exc).__name__}: {exc}")
        raise InvalidOrEncryptedPdf(f"{part.filename} is corrupted or encrypted")


def merge_pdfs(
    parts: Sequence[PdfPart],
    passwords: Optional[Sequence[Optional[str]]] = None,
    skip_locked: bool = False,
) -> MergeOutcome:
    """Concatenate pages of parts in the given order.

    Pages are copied, not re-rendered; per-page rotation is kept. Parts that
    cannot be opened are skipped when skip_locked is set, otherwise the first
    one aborts the merge.
    """
    passwords = list(passwords or [])
    readers: List[PdfReader] = []
    merged: List[str] = []
    skipped: List[str] = []

    for i, part in enumerate(parts):
        password = passwords[i] if i < len(passwords) else None
        try:
            readers.append(open_pdf(part, password))
            merged.append(part.filename)
        except InvalidOrEncryptedPdf:
            if not skip_locked:
                raise
            skipped.append(part.filename)

    writer = PdfWriter()
    for reader in readers:
        for page in reader.pages:
            writer.add_page(page)

    buf = io.BytesIO()
    writer.write(buf)
    return MergeOutcome(
        data=buf.getvalue(),
        page_count=len(writer.pages),
        merged=merged,
        skipped=skipped,
    )
