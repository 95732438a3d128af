"""FastAPI exception handlers for converting MarketplaceError to HTTP responses.

Each error kind maps to one HTTP status so clients can tell retryable
gateway failures apart from validation, authorization and conflict errors:
- 400 Bad Request: validation failures and rejected webhooks
- 401 Unauthorized: no authenticated user
- 403 Forbidden: authorization failures
- 404 Not Found: missing booking, payment or listing
- 409 Conflict: illegal transitions, duplicate payments, double refunds
- 502 Bad Gateway: Stripe failures (details.retryable tells whether to retry)

Usage:
    from marketplace_api.exceptions import register_exception_handlers
    register_exception_handlers(app)
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_401_UNAUTHORIZED,
    HTTP_403_FORBIDDEN,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_502_BAD_GATEWAY,
)

from marketplace.models import (
    AuthorizationError,
    ConflictError,
    ErrorCode,
    GatewayError,
    MarketplaceError,
    NotFoundError,
    ValidationError,
)
from marketplace.utils.logging import get_logger
from marketplace_api.models.common import format_validation_errors

logger = get_logger(__name__)

# Checked in order; the first matching class wins
ERROR_KIND_TO_HTTP_STATUS: list[tuple[type[MarketplaceError], int]] = [
    (ValidationError, HTTP_400_BAD_REQUEST),
    (AuthorizationError, HTTP_403_FORBIDDEN),
    (NotFoundError, HTTP_404_NOT_FOUND),
    (ConflictError, HTTP_409_CONFLICT),
    (GatewayError, HTTP_502_BAD_GATEWAY),
]

# Codes whose status differs from their kind's
ERROR_CODE_TO_HTTP_STATUS: dict[ErrorCode, int] = {
    ErrorCode.AUTH_REQUIRED: HTTP_401_UNAUTHORIZED,
    ErrorCode.INVALID_WEBHOOK: HTTP_400_BAD_REQUEST,
}


def get_http_status_for_error(exc: MarketplaceError) -> int:
    """Get the HTTP status code for a MarketplaceError.

    Returns:
        HTTP status code, defaults to 400 if not explicitly mapped.
    """
    if exc.code in ERROR_CODE_TO_HTTP_STATUS:
        return ERROR_CODE_TO_HTTP_STATUS[exc.code]
    for kind, status_code in ERROR_KIND_TO_HTTP_STATUS:
        if isinstance(exc, kind):
            return status_code
    return HTTP_400_BAD_REQUEST


async def marketplace_error_handler(request: Request, exc: MarketplaceError) -> JSONResponse:
    """Convert a domain error to its JSON error body and HTTP status."""
    status_code = get_http_status_for_error(exc)
    if status_code >= HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=status_code,
        content=exc.to_error_response().model_dump(mode="json"),
    )


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Wrap FastAPI's request validation errors in the standard error structure."""
    return JSONResponse(
        status_code=422,
        content=format_validation_errors(list(exc.errors())).model_dump(mode="json"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app."""
    app.add_exception_handler(MarketplaceError, marketplace_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, request_validation_handler)  # type: ignore[arg-type]
