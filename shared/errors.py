"""Application error taxonomy and the FastAPI handlers that render it.

Every error leaves the API as the same envelope:

    {"error": {"message": "...", "status": 400, "code": "invalid_phone"}}

External-service failures are classified once, where the Google clients
receive the provider response, into a closed set of kinds. Callers branch on
``kind`` (or on the permanent/transient subclass), never on message text.
"""
import enum

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = structlog.get_logger(__name__)


class LiveyError(Exception):
    """Base exception for all application errors."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "internal_error"

    def __init__(self, message: str = "An internal error occurred", code: str | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ValidationError(LiveyError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_error"


class NotFoundError(LiveyError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"

    def __init__(self, message: str = "Resource not found", code: str | None = None):
        super().__init__(message, code)


class AuthError(LiveyError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "unauthorized"


class StorageError(LiveyError):
    code = "storage_error"


class ExternalErrorKind(str, enum.Enum):
    REVOKED = "revoked"
    NOT_FOUND = "not_found"
    QUOTA = "quota"
    TRANSIENT = "transient"


PERMANENT_KINDS = frozenset({ExternalErrorKind.REVOKED, ExternalErrorKind.NOT_FOUND})


class ExternalServiceError(LiveyError):
    """A classified failure talking to an external provider."""

    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, kind: ExternalErrorKind, message: str):
        super().__init__(message, code=kind.value)
        self.kind = kind

    @property
    def is_permanent(self) -> bool:
        return self.kind in PERMANENT_KINDS

    @classmethod
    def classify(cls, kind: ExternalErrorKind, message: str) -> "ExternalServiceError":
        if kind in PERMANENT_KINDS:
            return PermanentExternalError(kind, message)
        return TransientExternalError(kind, message)


class PermanentExternalError(ExternalServiceError):
    """Revoked refresh token or a spreadsheet that no longer exists."""

    def __init__(self, kind: ExternalErrorKind, message: str):
        if kind not in PERMANENT_KINDS:
            raise ValueError(f"{kind} is not a permanent failure kind")
        super().__init__(kind, message)


class TransientExternalError(ExternalServiceError):
    """Quota, network, timeout or malformed-response failures. Retryable."""

    def __init__(self, kind: ExternalErrorKind, message: str):
        if kind in PERMANENT_KINDS:
            raise ValueError(f"{kind} is not a transient failure kind")
        super().__init__(kind, message)


def _envelope(status_code: int, message: str, code: str | None = None) -> JSONResponse:
    body = {"message": message, "status": status_code}
    if code:
        body["code"] = code
    return JSONResponse(status_code=status_code, content={"error": body})


async def livey_error_handler(request: Request, exc: LiveyError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("api_error", path=request.url.path, method=request.method,
                     code=exc.code, error=exc.message)
    return _envelope(exc.status_code, exc.message, exc.code)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = [".".join(str(p) for p in err.get("loc", ()) if p != "body") for err in exc.errors()]
    message = "Invalid request body"
    if any(fields):
        message = f"Invalid request body: {', '.join(f for f in fields if f)}"
    return _envelope(status.HTTP_400_BAD_REQUEST, message, "invalid_request")


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    response = _envelope(exc.status_code, str(exc.detail))
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error", path=request.url.path, method=request.method)
    return _envelope(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(LiveyError, livey_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
