"""
Error taxonomy for the PDF tools API.

Every error carries a stable ``code`` and an HTTP ``status_code``; the
handlers in ``pdftools.main`` render them as
``{"error": {"code": ..., "message": ...}}``.
"""

from typing import Any, Dict, Optional


class PdfToolsError(Exception):
    """Base exception for all client-visible errors."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"code": self.code, "message": self.message}
        body.update(self.details)
        return body


# ============================================
# Client errors (4xx)
# ============================================

class InvalidInput(PdfToolsError):
    """Malformed request, too few files, bad option values."""

    status_code = 400
    code = "invalid_request"


class UnsupportedFileType(InvalidInput):
    status_code = 415
    code = "invalid_file_type"

    def __init__(self, message: str = "Only .pdf files are allowed."):
        super().__init__(message)


class PayloadTooLarge(PdfToolsError):
    status_code = 413
    code = "file_too_large"

    def __init__(self, max_bytes: int):
        super().__init__(
            "This PDF exceeds the maximum upload size.",
            details={"max_bytes": max_bytes, "max_mb": max_bytes // (1024 * 1024)},
        )


class InvalidOrEncryptedPdf(PdfToolsError):
    """A source PDF could not be opened (encrypted or corrupt)."""

    status_code = 422
    code = "invalid_or_encrypted_pdf"


class ProcessingFailed(PdfToolsError):
    """The external transformer crashed, timed out or produced nothing."""

    status_code = 422
    code = "processing_failed"


class NotFound(PdfToolsError):
    status_code = 404
    code = "not_found"

    def __init__(self, message: str = "Not found"):
        super().__init__(message)


class Forbidden(PdfToolsError):
    status_code = 403
    code = "forbidden"

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)


class TooManyRequests(PdfToolsError):
    status_code = 429
    code = "too_many"

    def __init__(self, message: str = "Please wait a few seconds and try again."):
        super().__init__(message)


# ============================================
# Server errors (5xx)
# ============================================

class EmailFailed(PdfToolsError):
    status_code = 502
    code = "email_failed"


class ServiceUnavailable(PdfToolsError):
    status_code = 503
    code = "email_unavailable"


class InternalError(PdfToolsError):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str = "Unexpected server error."):
        super().__init__(message)
