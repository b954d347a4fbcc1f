"""
Error kinds raised while handling a review request.

Each kind carries the HTTP status it is reported with, so the API layer can
turn any of them into a JSON body with a single exception handler.
"""

from typing import Any, Dict, Optional

from reviewer.constants import TIMEOUT_SUGGESTION


class ReviewError(Exception):
    status_code = 500
    default_message = "Failed to generate review"

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[str] = None,
        **extra: Any,
    ):
        self.message = message or self.default_message
        self.details = details
        self.extra = extra
        super().__init__(details or self.message)

    def to_dict(self, request_id: Optional[str] = None) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message}
        if self.details:
            body["details"] = self.details
        body.update(self.extra)
        if request_id:
            body["requestId"] = request_id
        return body


class NoFileUploaded(ReviewError):
    status_code = 400
    default_message = "No file uploaded"


class UnsupportedFileType(ReviewError):
    status_code = 400
    default_message = "Only code files are allowed"


class EmptyInput(ReviewError):
    status_code = 400
    default_message = "File appears to be empty"


class PayloadTooLarge(ReviewError):
    status_code = 400
    default_message = "File too large for review"


class BackendError(ReviewError):
    """The inference backend was unreachable or answered with a non-2xx status."""

    status_code = 500

    def __init__(self, backend: str, status: Optional[int] = None, body: str = ""):
        self.status = status
        self.body = body
        if status is None:
            details = f"{backend} API unreachable: {body}"
        else:
            details = f"{backend} API error: {status} - {body}"
        super().__init__(details=details, backendStatus=status)


class ReviewTimeout(ReviewError):
    status_code = 408

    def __init__(self, timeout_seconds: float, suggestion: Optional[str] = None):
        self.timeout_seconds = timeout_seconds
        super().__init__(
            message=f"Request timeout - Model took longer than {timeout_seconds:g} seconds",
            suggestion=suggestion or TIMEOUT_SUGGESTION,
        )


class InvalidBackendResponse(ReviewError):
    status_code = 500

    def __init__(self, backend: str):
        super().__init__(details=f"Invalid response from {backend} API")


class InternalError(ReviewError):
    status_code = 500
