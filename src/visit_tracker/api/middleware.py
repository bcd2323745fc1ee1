"""RFC 9457 Problem Details rendering and request guards."""

from typing import Callable, Dict, Optional, Tuple, Type

from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from ..domain.errors import (
    AlreadyActiveError,
    ConcurrentModificationError,
    InvalidAlertOutcomeError,
    InvalidOrExpiredLinkError,
    NoActiveAlertError,
    SessionCompletedError,
    SessionNotActiveError,
    SessionNotFoundError,
    TooManyContactsError,
    TrackingError,
    UnauthorizedError,
)
from ..utils.logging_config import get_logger, log_exception

logger = get_logger("api")

PROBLEM_JSON = "application/problem+json"

# Domain error -> (HTTP status, Problem Details title)
TRACKING_ERROR_MAP: Dict[Type[TrackingError], Tuple[int, str]] = {
    AlreadyActiveError: (status.HTTP_409_CONFLICT, "Tracking Already Active"),
    SessionCompletedError: (status.HTTP_409_CONFLICT, "Tracking Already Completed"),
    SessionNotFoundError: (status.HTTP_404_NOT_FOUND, "Tracking Session Not Found"),
    SessionNotActiveError: (status.HTTP_409_CONFLICT, "Tracking Session Not Active"),
    NoActiveAlertError: (status.HTTP_409_CONFLICT, "No Active Panic Alert"),
    TooManyContactsError: (status.HTTP_409_CONFLICT, "Too Many Shared Contacts"),
    InvalidOrExpiredLinkError: (status.HTTP_404_NOT_FOUND, "Tracking Link Not Found"),
    UnauthorizedError: (status.HTTP_403_FORBIDDEN, "Forbidden"),
    ConcurrentModificationError: (status.HTTP_409_CONFLICT, "Concurrent Modification"),
    InvalidAlertOutcomeError: (
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Invalid Alert Outcome",
    ),
}

DEFAULT_TITLES = {
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    405: "Method Not Allowed",
    409: "Conflict",
    413: "Payload Too Large",
    422: "Unprocessable Entity",
    429: "Too Many Requests",
    500: "Internal Server Error",
    503: "Service Unavailable",
}


def problem_response(
    status_code: int,
    title: str,
    detail: Optional[str] = None,
    type_uri: Optional[str] = None,
    instance: Optional[str] = None,
    headers: Optional[Dict[str, str]] = None,
    **extra_fields,
) -> JSONResponse:
    """Create a JSON response in RFC 9457 Problem Details format."""
    problem = {
        "type": type_uri or f"https://httpstatuses.com/{status_code}",
        "title": title,
        "status": status_code,
    }

    if detail:
        problem["detail"] = detail
    if instance:
        problem["instance"] = instance

    problem.update(extra_fields)

    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(problem),
        media_type=PROBLEM_JSON,
        headers=headers,
    )


def status_for(exc: TrackingError) -> Tuple[int, str]:
    """Look up status and title, walking the class hierarchy."""
    for cls in type(exc).__mro__:
        if cls in TRACKING_ERROR_MAP:
            return TRACKING_ERROR_MAP[cls]
    return status.HTTP_400_BAD_REQUEST, "Tracking Error"


class ProblemDetailsException(StarletteHTTPException):
    """HTTPException that carries RFC 9457 Problem Details fields."""

    def __init__(
        self,
        status_code: int,
        title: str,
        detail: Optional[str] = None,
        type_uri: Optional[str] = None,
        instance: Optional[str] = None,
        **extra_fields,
    ):
        super().__init__(status_code=status_code, detail=detail)
        self.title = title
        self.type_uri = type_uri
        self.instance = instance
        self.extra_fields = extra_fields


async def tracking_error_handler(request: Request, exc: TrackingError) -> JSONResponse:
    status_code, title = status_for(exc)
    logger.info(
        f"{request.method} {request.url.path} -> {status_code} {type(exc).__name__}"
    )
    return problem_response(
        status_code=status_code,
        title=title,
        detail=exc.detail,
        instance=request.url.path,
    )


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    if isinstance(exc, ProblemDetailsException):
        return problem_response(
            status_code=exc.status_code,
            title=exc.title,
            detail=exc.detail,
            type_uri=exc.type_uri,
            instance=exc.instance or request.url.path,
            headers=getattr(exc, "headers", None),
            **exc.extra_fields,
        )
    return problem_response(
        status_code=exc.status_code,
        title=DEFAULT_TITLES.get(exc.status_code, "HTTP Error"),
        detail=exc.detail if isinstance(exc.detail, str) else None,
        instance=request.url.path,
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return problem_response(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        title="Validation Error",
        detail="Request validation failed",
        instance=request.url.path,
        errors=exc.errors(),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Render every handled error as application/problem+json."""
    app.add_exception_handler(TrackingError, tracking_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)


class ProblemDetailsMiddleware(BaseHTTPMiddleware):
    """Turns unexpected exceptions into a 500 Problem Details response."""

    def __init__(self, app: ASGIApp):
        super().__init__(app)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            log_exception(
                "api", exc, {"method": request.method, "path": request.url.path}
            )
            return problem_response(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                title="Internal Server Error",
                detail="An unexpected error occurred",
                instance=request.url.path,
            )


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Rejects request bodies above a fixed size."""

    def __init__(self, app: ASGIApp, request_limit: int = 16 * 1024):  # 16KB
        super().__init__(app)
        self.request_limit = request_limit

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        content_length = request.headers.get("content-length")
        if content_length:
            try:
                length = int(content_length)
            except ValueError:
                return problem_response(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    title="Bad Request",
                    detail="Invalid Content-Length header",
                )
            if length > self.request_limit:
                return problem_response(
                    status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                    title="Request Entity Too Large",
                    detail=f"Request size {length} bytes exceeds limit of {self.request_limit} bytes",
                )

        return await call_next(request)
