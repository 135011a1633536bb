"""
StudyBuddy Backend — Upload Size Limit Middleware
===================================================

What:  Rejects oversized uploads with 413 before the body is read.
How:   Compares Content-Length on upload paths with MAX_UPLOAD_SIZE plus an
       allowance for multipart boundaries and the other form fields. Upload
       requests without a usable Content-Length (chunked bodies) get 411, so
       the limit cannot be skipped by streaming.
Who:   Runs before FastAPI parses the multipart form, which a route dependency
       cannot do. NoteTreeService re-checks the actual file size.
"""

import logging
from typing import Any, Dict, Iterable, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from studybuddy.exceptions import PayloadTooLargeError
from studybuddy.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)

MULTIPART_OVERHEAD = 64 * 1024


class UploadSizeLimitMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app: ASGIApp,
        max_upload_size: int,
        paths: Iterable[str] = ("/api/user/upload-note-file",),
    ):
        super().__init__(app)
        self.max_upload_size = max_upload_size
        self.limit = max_upload_size + MULTIPART_OVERHEAD
        self.paths = set(paths)

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.method != "POST" or request.url.path not in self.paths:
            return await call_next(request)

        rid = request_id_var.get("")
        content_length = _parse_length(request.headers.get("content-length"))

        if content_length is None:
            logger.warning("[%s] Rejected upload without Content-Length", rid)
            return _error(
                411,
                "Content-Length header is required for uploads",
                "length_required",
                rid,
            )

        if content_length > self.limit:
            logger.warning(
                "[%s] Rejected upload of %d bytes (limit %d)",
                rid,
                content_length,
                self.max_upload_size,
            )
            exc = PayloadTooLargeError(max_size=self.max_upload_size, actual_size=content_length)
            return _error(413, exc.message, "payload_too_large", rid, exc.context)

        return await call_next(request)


def _error(
    status_code: int,
    message: str,
    code: str,
    rid: str,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    content: Dict[str, Any] = {"error": message, "code": code}
    if details:
        content["details"] = details
    content["request_id"] = rid
    return JSONResponse(status_code=status_code, content=content)


def _parse_length(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        length = int(value)
    except ValueError:
        return None
    return length if length >= 0 else None
