import logging
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ParcelApiError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ParcelApiError):
    status_code = status.HTTP_400_BAD_REQUEST
    kind = "validation_error"


class AuthError(ParcelApiError):
    status_code = status.HTTP_401_UNAUTHORIZED
    kind = "auth_error"


class OwnershipError(AuthError):
    """Authenticated identity does not own the requested records."""
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(ParcelApiError):
    status_code = status.HTTP_404_NOT_FOUND
    kind = "not_found"


class AdapterError(ParcelApiError):
    """Record store or external provider unreachable or rejected the call."""
    status_code = status.HTTP_502_BAD_GATEWAY
    kind = "adapter_error"


class ConsistencyError(ParcelApiError):
    """A parcel/payment mutation would break, or has broken, the one-payment-per-parcel invariant."""
    status_code = status.HTTP_409_CONFLICT
    kind = "consistency_error"


class DuplicateRecordError(ConsistencyError):
    """Insert rejected by a uniqueness constraint."""
    kind = "duplicate_record"


def error_body(kind: str, message: str) -> dict:
    return {"success": False, "error": kind, "message": message}


async def parcel_api_error_handler(request: Request, exc: ParcelApiError):
    if isinstance(exc, AdapterError):
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.warning("%s %s rejected (%s): %s", request.method, request.url.path, exc.kind, exc.message)

    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == status.HTTP_401_UNAUTHORIZED else None
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.kind, exc.message),
        headers=headers,
    )


async def not_found_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == status.HTTP_404_NOT_FOUND and exc.detail == "Not Found":
        return JSONResponse(status_code=404, content={"message": "Route Not Found"})
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)


def register_error_handlers(app: FastAPI):
    app.add_exception_handler(ParcelApiError, parcel_api_error_handler)
    app.add_exception_handler(StarletteHTTPException, not_found_handler)
