"""
RFC 7807 problem responses for the segments API.

Route code raises ``APIException`` subclasses. The segmentation core raises
``SegmentError`` subclasses and knows nothing about HTTP; ``problem_for``
decides which problem each of them becomes.

See: https://datatracker.ietf.org/doc/html/rfc7807
"""

from typing import Optional, Any
from enum import Enum
from pydantic import BaseModel
from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging
import uuid
from datetime import datetime

from app.middleware.correlation import get_request_id
from app.services.segments.errors import (
    RuleValidationError,
    SegmentError,
    SegmentNotFound,
    StoreFailure,
    Unauthenticated,
)

logger = logging.getLogger(__name__)

PROBLEM_MEDIA_TYPE = "application/problem+json"

# Seconds a client should wait before retrying after a store failure
STORE_RETRY_AFTER = 5


class ErrorCode(str, Enum):
    """Machine-readable problem codes."""

    UNAUTHORIZED = "AUTH_001"
    FORBIDDEN = "AUTH_002"
    VALIDATION_ERROR = "VAL_001"
    NOT_FOUND = "RES_001"
    CONFLICT = "RES_003"
    DATABASE_ERROR = "EXT_004"
    INTERNAL_ERROR = "SRV_001"


# status -> (code, title); anything else is reported as an internal error
STATUS_PROBLEMS: dict[int, tuple[ErrorCode, str]] = {
    400: (ErrorCode.VALIDATION_ERROR, "Bad Request"),
    401: (ErrorCode.UNAUTHORIZED, "Unauthorized"),
    403: (ErrorCode.FORBIDDEN, "Forbidden"),
    404: (ErrorCode.NOT_FOUND, "Not Found"),
    405: (ErrorCode.VALIDATION_ERROR, "Method Not Allowed"),
    409: (ErrorCode.CONFLICT, "Conflict"),
    422: (ErrorCode.VALIDATION_ERROR, "Validation Error"),
    503: (ErrorCode.DATABASE_ERROR, "Service Unavailable"),
}


def _status_problem(status_code: int) -> tuple[ErrorCode, str]:
    return STATUS_PROBLEMS.get(status_code, (ErrorCode.INTERNAL_ERROR, "Internal Server Error"))


def current_trace_id() -> str:
    """Request ID of the current request, or a fresh one outside a request."""
    request_id = get_request_id()
    if request_id and request_id != "unknown":
        return request_id
    return uuid.uuid4().hex[:12]


class ProblemDetail(BaseModel):
    """
    RFC 7807 body.

    ``errors`` lists rule or field problems on 422 responses. ``retry_after``
    and ``phase`` are only set when the record store failed mid-operation.
    """

    type: str
    title: str
    status: int
    detail: str
    instance: Optional[str] = None
    code: str
    timestamp: str
    trace_id: str
    errors: Optional[list[dict[str, Any]]] = None
    retry_after: Optional[int] = None
    phase: Optional[str] = None

    model_config = {
        "json_schema_extra": {
            "example": {
                "type": "/problems/res-001",
                "title": "Not Found",
                "status": 404,
                "detail": "ICP Segment with ID 12 was not found",
                "instance": "/api/v2/icp-segments/12",
                "code": "RES_001",
                "timestamp": "2026-01-29T10:30:00Z",
                "trace_id": "abc123def456",
            }
        }
    }

    @classmethod
    def build(cls, status_code: int, detail: str, instance: Optional[str], **extra) -> "ProblemDetail":
        code, title = _status_problem(status_code)
        code = extra.pop("code", None) or code
        return cls(
            type=f"/problems/{code.value.lower().replace('_', '-')}",
            title=title,
            status=status_code,
            detail=detail,
            instance=instance,
            code=code.value,
            timestamp=datetime.utcnow().isoformat() + "Z",
            trace_id=extra.pop("trace_id", None) or current_trace_id(),
            **extra,
        )


class APIException(HTTPException):
    """HTTPException rendered as a problem response by ``create_exception_handlers``."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        code: Optional[ErrorCode] = None,
        errors: Optional[list[dict[str, Any]]] = None,
        retry_after: Optional[int] = None,
        phase: Optional[str] = None,
        headers: Optional[dict[str, str]] = None,
    ):
        self.code = code or _status_problem(status_code)[0]
        self.errors = errors
        self.retry_after = retry_after
        self.phase = phase
        super().__init__(status_code=status_code, detail=detail, headers=headers)

    def to_problem_detail(self, instance: Optional[str] = None) -> ProblemDetail:
        return ProblemDetail.build(
            self.status_code,
            self.detail,
            instance,
            code=self.code,
            errors=self.errors,
            retry_after=self.retry_after,
            phase=self.phase,
        )


class NotFoundError(APIException):
    def __init__(self, detail: str):
        super().__init__(404, detail)


class RuleRejectedError(APIException):
    """A rule set failed validation; ``errors`` names the offending leaf."""

    def __init__(self, detail: str, errors: list[dict[str, Any]]):
        super().__init__(422, detail, errors=errors)


class UnauthorizedError(APIException):
    def __init__(self, detail: str = "Authentication required"):
        super().__init__(401, detail, headers={"WWW-Authenticate": "Bearer"})


class ForbiddenError(APIException):
    def __init__(self, detail: str = "Not allowed"):
        super().__init__(403, detail)


class BadRequestError(APIException):
    def __init__(self, detail: str):
        super().__init__(400, detail)


class ConflictError(APIException):
    def __init__(self, detail: str):
        super().__init__(409, detail)


class StoreUnavailableError(APIException):
    """Record store failure. Re-running the whole operation is safe."""

    def __init__(self, detail: str, phase: Optional[str] = None):
        super().__init__(
            503,
            detail,
            retry_after=STORE_RETRY_AFTER,
            phase=phase,
            headers={"Retry-After": str(STORE_RETRY_AFTER)},
        )


def problem_for(exc: SegmentError) -> APIException:
    """Map a segmentation error onto the API exception it is reported as."""
    if isinstance(exc, Unauthenticated):
        return UnauthorizedError(exc.detail)
    if isinstance(exc, SegmentNotFound):
        return NotFoundError(str(exc))
    if isinstance(exc, RuleValidationError):
        return RuleRejectedError(str(exc), errors=[exc.to_error_item()])
    if isinstance(exc, StoreFailure):
        return StoreUnavailableError(exc.detail, phase=exc.phase)
    return APIException(500, str(exc))


# =============================================================================
# HANDLERS
# =============================================================================


def create_exception_handlers(allowed_origins: list[str]):
    """
    Build the app's exception handlers.

    Error responses bypass CORSMiddleware when raised from deep in the stack,
    so the handlers echo allowed origins themselves.

    Usage in main.py:
        handlers = create_exception_handlers(allowed_origins)
        app.add_exception_handler(APIException, handlers["api"])
        app.add_exception_handler(SegmentError, handlers["segment"])
    """

    def respond(request: Request, problem: ProblemDetail, headers: Optional[dict] = None) -> JSONResponse:
        response = JSONResponse(
            status_code=problem.status,
            content=problem.model_dump(exclude_none=True),
            media_type=PROBLEM_MEDIA_TYPE,
            headers=headers,
        )
        origin = request.headers.get("origin", "")
        if origin and origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Vary"] = "Origin"
        return response

    async def handle_api_exception(request: Request, exc: APIException) -> JSONResponse:
        problem = exc.to_problem_detail(instance=request.url.path)
        logger.warning(
            f"{problem.code} {exc.status_code}: {exc.detail}",
            extra={"trace_id": problem.trace_id, "path": request.url.path},
        )
        return respond(request, problem, exc.headers)

    async def handle_segment_error(request: Request, exc: SegmentError) -> JSONResponse:
        if isinstance(exc, StoreFailure):
            logger.error(
                f"Record store failure: {exc}",
                extra={"phase": exc.phase, "path": request.url.path},
            )
        return await handle_api_exception(request, problem_for(exc))

    async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        problem = ProblemDetail.build(exc.status_code, str(exc.detail), request.url.path)
        return respond(request, problem, getattr(exc, "headers", None))

    async def handle_validation_exception(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [
            {
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"],
            }
            for error in exc.errors()
        ]
        problem = ProblemDetail.build(422, "Request validation failed", request.url.path, errors=errors)
        return respond(request, problem)

    async def handle_generic_exception(request: Request, exc: Exception) -> JSONResponse:
        trace_id = current_trace_id()
        logger.exception(
            f"Unhandled exception: {type(exc).__name__}",
            extra={"trace_id": trace_id, "path": request.url.path},
        )

        # Don't expose internal details in production
        from app.config import settings
        detail = str(exc) if settings.DEBUG and not settings.is_production else "An unexpected error occurred"

        problem = ProblemDetail.build(500, detail, request.url.path, trace_id=trace_id)
        return respond(request, problem)

    return {
        "api": handle_api_exception,
        "segment": handle_segment_error,
        "http": handle_http_exception,
        "validation": handle_validation_exception,
        "generic": handle_generic_exception,
    }
