"""
Exception handling, request logging and timing middleware for the Talent Match API
"""
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.middleware.base import BaseHTTPMiddleware

from talent_match.utils.exceptions import RateLimitError, TalentMatchError, map_to_http_exception
from talent_match.utils.logging_config import get_logger

logger = get_logger(__name__)

MAX_LOGGED_BODY_BYTES = 10000
REDACTED_HEADERS = ("authorization", "apikey", "cookie")

INTERNAL_ERROR = {
    "error": "Internal server error",
    "message": "An unexpected error occurred. Please try again later.",
}


def error_response(
    request_id: str, status_code: int, detail: Any, headers: Optional[Dict[str, str]] = None
) -> JSONResponse:
    """Standardized JSON error body shared by every non-streaming route."""
    body = detail if isinstance(detail, dict) else {"message": str(detail)}
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "request_id": request_id,
            "status_code": status_code,
            **body,
        },
        headers={"X-Request-ID": request_id, **(headers or {})},
    )


def classify_failure(exc: Exception) -> Tuple[int, Dict[str, Any], Optional[Dict[str, str]]]:
    """(status, body, extra headers) for an exception that escaped a route."""
    if isinstance(exc, TalentMatchError):
        http_exc = map_to_http_exception(exc)
        headers = None
        if isinstance(exc, RateLimitError) and exc.retry_after is not None:
            headers = {"Retry-After": str(int(exc.retry_after))}
        return http_exc.status_code, http_exc.detail, headers
    if isinstance(exc, ValidationError):
        # A stored document or payload did not fit one of our models
        return 400, {
            "error": "Data validation failed",
            "message": "Invalid data format or values",
            "validation_errors": exc.errors(include_url=False, include_context=False),
        }, None
    return 500, dict(INTERNAL_ERROR), None


class ExceptionHandlerMiddleware(BaseHTTPMiddleware):
    """
    Outermost middleware: tags every request with an id and turns uncaught
    errors into the standardized error body. Streaming routes report their
    failures inside the stream and never reach the error branch.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        route = f"{request.method} {request.url.path}"
        logger.info(
            f"Request started: {route}",
            extra={"request_id": request_id, "client_ip": request.client.host if request.client else "unknown"},
        )

        try:
            response = await call_next(request)
        except Exception as exc:
            status_code, body, headers = classify_failure(exc)
            log_extra = {"request_id": request_id, "status_code": status_code}
            if isinstance(exc, TalentMatchError):
                log_extra.update(error_code=exc.error_code, details=exc.details)
            logger.error(
                f"{exc.__class__.__name__} in {route} -> {status_code}: {exc}",
                extra=log_extra,
                exc_info=status_code >= 500 and not isinstance(exc, TalentMatchError),
            )
            return error_response(request_id, status_code, body, headers)

        logger.info(f"Request completed: {route} - {response.status_code}", extra={"request_id": request_id})
        response.headers["X-Request-ID"] = request_id
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Debug-level request details; small JSON bodies are logged, uploads are not read."""

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        request_id = getattr(request.state, "request_id", "-")

        logger.debug(
            f"Request details: {request.method} {request.url.path}",
            extra={
                "request_id": request_id,
                "headers": {
                    k: "<redacted>" if k in REDACTED_HEADERS else v for k, v in request.headers.items()
                },
                "body": await self._loggable_body(request),
            },
        )

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                f"Request failed: {request.method} {request.url.path} after {time.perf_counter() - started:.3f}s",
                extra={"request_id": request_id, "exception": str(exc)},
            )
            raise

        logger.info(
            f"Response: {request.method} {request.url.path} - {response.status_code} "
            f"in {time.perf_counter() - started:.3f}s",
            extra={"request_id": request_id},
        )
        return response

    @staticmethod
    async def _loggable_body(request: Request) -> Optional[str]:
        if request.method not in ("POST", "PUT", "PATCH"):
            return None
        content_type = request.headers.get("content-type", "")
        size = int(request.headers.get("content-length") or 0)
        if content_type.startswith("multipart/"):
            return f"<Upload: {size} bytes>"
        if size >= MAX_LOGGED_BODY_BYTES:
            return f"<Large body: {size} bytes>"
        try:
            return (await request.body()).decode("utf-8", errors="ignore")[:1000]
        except Exception:
            return "<Unable to read body>"


class PerformanceMiddleware(BaseHTTPMiddleware):
    """Flags slow requests and sets X-Processing-Time (time to first byte for streams)."""

    def __init__(self, app, slow_request_threshold: float = 2.0):
        super().__init__(app)
        self.slow_request_threshold = slow_request_threshold

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - started

        if elapsed > self.slow_request_threshold:
            logger.warning(
                f"Slow request: {request.method} {request.url.path} took {elapsed:.3f}s",
                extra={"request_id": getattr(request.state, "request_id", "-")},
            )
        response.headers["X-Processing-Time"] = f"{elapsed:.3f}"
        return response
