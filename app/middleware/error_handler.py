"""Global error handling: domain exception handlers + catch-all middleware."""

import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.middleware.logging import redact_pii
from app.services.quota_service import FrequencyNotAllowedError, QuotaExceededError

logger = logging.getLogger(__name__)


async def quota_exceeded_handler(request: Request, exc: QuotaExceededError) -> JSONResponse:
    return JSONResponse(
        status_code=403,
        content={
            "detail": str(exc),
            "error": "quota_exceeded",
            "limit": exc.limit,
            "tier": exc.tier,
        },
    )


async def frequency_not_allowed_handler(request: Request, exc: FrequencyNotAllowedError) -> JSONResponse:
    return JSONResponse(
        status_code=403,
        content={
            "detail": str(exc),
            "error": "frequency_not_allowed",
            "frequency": exc.frequency,
            "tier": exc.tier,
            "allowed_frequencies": exc.allowed,
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Render tier errors so the client can show an upgrade prompt."""
    app.add_exception_handler(QuotaExceededError, quota_exceeded_handler)
    app.add_exception_handler(FrequencyNotAllowedError, frequency_not_allowed_handler)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Catch unhandled exceptions and return safe error responses."""

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            error_msg = redact_pii(str(exc))
            tb = traceback.format_exc()

            logger.error(
                "Unhandled exception: %s\n%s",
                error_msg,
                redact_pii(tb),
            )

            return JSONResponse(
                status_code=500,
                content={
                    "detail": "An internal error occurred. Please try again later.",
                    "error_type": type(exc).__name__,
                },
            )
