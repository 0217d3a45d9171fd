"""FastAPI middleware for request tracing, error handling, and CORS.

Middleware stack (applied bottom-up):
    1. RequestIDMiddleware — injects X-Request-ID into every request/response
    2. ErrorHandlerMiddleware — catches domain exceptions -> structured JSON errors
    3. CORSMiddleware — allows the web frontend origin
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

import structlog
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from aetherlock.domain.exceptions import (
    AetherLockError,
    AuthenticationError,
    AuthorizationError,
    DuplicateOperationError,
    EscrowNotFoundError,
    EvidenceNotFoundError,
    InvalidTransitionError,
    MessageNotFoundError,
    PreconditionError,
    SettlementError,
    StorageUnavailable,
    ValidationError,
)

if TYPE_CHECKING:
    from fastapi import FastAPI, Request, Response

    from aetherlock.config import Settings

logger = structlog.get_logger(__name__)


def status_code_for(exc: AetherLockError) -> int:
    """HTTP status for a domain error. Subclasses are matched before their bases."""
    if isinstance(exc, AuthenticationError):
        return 401
    if isinstance(exc, AuthorizationError):
        return 403
    if isinstance(exc, (EscrowNotFoundError, MessageNotFoundError, EvidenceNotFoundError)):
        return 404
    if isinstance(exc, (PreconditionError, DuplicateOperationError)):
        return 409
    if isinstance(exc, ValidationError):
        return 422
    if isinstance(exc, SettlementError):
        return 502
    if isinstance(exc, StorageUnavailable):
        return 503
    return 400


# ---------------------------------------------------------------------------
# 1. Request ID Middleware
# ---------------------------------------------------------------------------
class RequestIDMiddleware(BaseHTTPMiddleware):
    """Inject a unique X-Request-ID into every request for log correlation."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        # Use client-provided ID or generate one
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


# ---------------------------------------------------------------------------
# 2. Error Handler Middleware
# ---------------------------------------------------------------------------
class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Catch domain exceptions and return structured JSON error responses."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        try:
            return await call_next(request)
        except InvalidTransitionError as exc:
            logger.warning(
                "state_machine.invalid_transition",
                current=exc.current_status,
                trigger=exc.trigger,
            )
            return _error_response(409, exc)
        except DuplicateOperationError as exc:
            logger.warning("idempotency.duplicate", error=exc.message)
            return _error_response(409, exc)
        except AetherLockError as exc:
            status_code = status_code_for(exc)
            log = logger.error if status_code >= 500 else logger.warning
            log("domain.error", error=exc.message, code=exc.code, status=status_code)
            return _error_response(status_code, exc)
        except Exception as exc:
            logger.exception("unhandled.error", error=str(exc))
            return JSONResponse(
                status_code=500,
                content={
                    "error": "INTERNAL_ERROR",
                    "message": "An unexpected error occurred",
                },
            )


def _error_response(status_code: int, exc: AetherLockError) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": exc.code, "message": exc.message},
    )


# ---------------------------------------------------------------------------
# Setup function
# ---------------------------------------------------------------------------
def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register all middleware on the FastAPI application.

    Order matters — middleware is applied bottom-up, so the last added
    middleware runs first.
    """
    # CORS (runs first)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Error handling (runs second)
    app.add_middleware(ErrorHandlerMiddleware)

    # Request ID (runs last = outermost)
    app.add_middleware(RequestIDMiddleware)
