"""Global exception handlers for consistent error responses.

Design:
- RateLimitExceededError → 429 with a bilingual body and rate-limit headers
- Other AppError subclasses → 400/403/500 with the standard error envelope
- Unexpected Exception → generic 500 (safety net)
- All error envelopes include request_id for tracing
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from ratewall.core.config import settings
from ratewall.core.errors import (
    AppError,
    AuthenticationAppError,
    ConfigurationAppError,
    RateLimitExceededError,
    StoreUnavailableError,
)
from ratewall.core.logging import get_request_id
from ratewall.core.rate_limit import rate_limit_headers

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE_AR = "طلبات كثيرة جداً. يرجى المحاولة لاحقاً."
RATE_LIMIT_MESSAGE_EN = "Too many requests. Please try again later."


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceededError) -> JSONResponse:
    """Render a denied decision as HTTP 429.

    The body and headers are the same whether the caller exceeded a limit or
    is explicitly blocked; the reason only appears in logs.
    ``RATE_LIMIT_INCLUDE_HEADERS`` only governs the ``X-RateLimit-*`` headers;
    ``Retry-After`` is sent on every 429.
    """
    decision = exc.decision
    logger.info(
        "rate_limit.responded_429",
        extra={
            "reason": exc.reason,
            "request_path": request.url.path,
            "retry_after_s": decision.retry_after_seconds,
            "request_id": get_request_id(),
        },
    )

    if settings.rate_limit.include_headers:
        headers = rate_limit_headers(decision)
    else:
        headers = {}
        if decision.retry_after_seconds is not None:
            headers["Retry-After"] = str(decision.retry_after_seconds)
    return JSONResponse(
        status_code=429,
        content={
            "success": False,
            "error": RATE_LIMIT_MESSAGE_AR,
            "error_en": RATE_LIMIT_MESSAGE_EN,
            "retryAfter": decision.retry_after_seconds,
        },
        headers=headers,
    )


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle domain application errors with consistent JSON format.

    Routes domain errors to appropriate HTTP status codes:
    - ValidationAppError → 400 Bad Request (client fault)
    - AuthenticationAppError → 403 Forbidden (authorization fault)
    - ConfigurationAppError, StoreUnavailableError → 500 (server fault)
    """
    status_code = 400
    if isinstance(exc, AuthenticationAppError):
        status_code = 403
    elif isinstance(exc, (ConfigurationAppError, StoreUnavailableError)):
        status_code = 500

    log = logger.error if status_code >= 500 else logger.warning
    log(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "has_details": bool(exc.details),
            "request_id": get_request_id(),
        },
    )

    error_content = {
        "code": exc.code,
        "message": exc.message,
        "request_id": get_request_id(),
    }
    # Server-side details (policy names, backends) stay in the logs
    if exc.details and status_code < 500:
        error_content["details"] = exc.details

    return JSONResponse(
        status_code=status_code,
        content={"error": error_content},
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors (safety net).

    Logs detailed information for debugging while returning a generic message
    (no stack traces to the client).
    """
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
            "request_id": get_request_id(),
        },
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
                "request_id": get_request_id(),
            }
        },
    )


def setup_exception_handlers(app) -> None:
    """Register all exception handlers with FastAPI app.

    Starlette resolves handlers by exception MRO, so the 429 handler wins over
    the generic AppError handler for RateLimitExceededError.
    """
    app.exception_handler(RateLimitExceededError)(rate_limit_exceeded_handler)
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
