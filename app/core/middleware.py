# app/core/middleware.py
"""Custom middleware and exception handlers for request handling"""
import uuid
import time
import logging
from fastapi import FastAPI
from starlette.requests import Request
from starlette.responses import JSONResponse

from app.core.exceptions import (
    SchedulingError, NotFound, InvalidInput, SlotUnavailable, InvalidState, PersistenceFailure
)

logger = logging.getLogger(__name__)

SLOT_UNAVAILABLE_MESSAGE = "This time is no longer available, please choose another."

STATUS_CODES = {
    NotFound: 404,
    InvalidInput: 400,
    SlotUnavailable: 409,
    InvalidState: 409,
    PersistenceFailure: 503,
}


async def correlation_id_middleware(request: Request, call_next):
    """Add correlation ID to all requests for tracing"""
    correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
    request.state.correlation_id = correlation_id

    response = await call_next(request)
    response.headers["X-Correlation-ID"] = correlation_id
    return response


async def request_logging_middleware(request: Request, call_next):
    """Log all incoming requests"""
    start_time = time.time()
    correlation_id = getattr(request.state, "correlation_id", "unknown")

    response = await call_next(request)

    duration = time.time() - start_time
    logger.info(
        f"{request.method} {request.url.path} -> {response.status_code} "
        f"({round(duration * 1000, 2)} ms)",
        extra={
            "correlation_id": correlation_id,
            "client": request.client.host if request.client else "unknown",
        }
    )

    return response


async def scheduling_error_handler(request: Request, exc: SchedulingError):
    """Map the scheduling error taxonomy onto HTTP responses"""
    status_code = next(
        (code for error_type, code in STATUS_CODES.items() if isinstance(exc, error_type)),
        500
    )
    body = exc.to_dict()

    if isinstance(exc, SlotUnavailable):
        body["message"] = SLOT_UNAVAILABLE_MESSAGE
        body["details"] = {**exc.details, "reason": exc.message}

    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected ({exc.code}): {exc.message}")

    return JSONResponse(status_code=status_code, content=body)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SchedulingError, scheduling_error_handler)
