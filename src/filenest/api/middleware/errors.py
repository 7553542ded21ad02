"""Error handling middleware for consistent JSON error responses.

Every error leaves the API as:
- error: machine-readable code
- message: human-readable description
- detail: optional structured data
- request_id: correlation ID
"""

import logging
from collections.abc import Callable
from typing import Any

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from filenest.api.middleware.request_id import get_request_id
from filenest.services.admission import AdmissionDecision, AdmissionReason, UploadDecision

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Base exception for API errors with structured details."""

    def __init__(
        self,
        error: str,
        message: str,
        status_code: int = 400,
        detail: dict[str, Any] | None = None,
    ) -> None:
        """Initialize API error.

        Args:
            error: Machine-readable error code (e.g., "quota_exceeded").
            message: Human-readable error description.
            status_code: HTTP status code to return.
            detail: Optional additional details.
        """
        self.error = error
        self.message = message
        self.status_code = status_code
        self.detail = detail
        super().__init__(message)


class NotFoundError(APIError):
    """Resource not found error (404)."""

    def __init__(self, resource: str, identifier: str) -> None:
        super().__init__(
            error="not_found",
            message=f"{resource} not found: {identifier}",
            status_code=404,
        )


class GoneError(APIError):
    """Resource no longer available (410)."""

    def __init__(self, resource: str, identifier: str) -> None:
        super().__init__(
            error="expired",
            message=f"{resource} has expired: {identifier}",
            status_code=410,
        )


class AuthenticationError(APIError):
    """Authentication error (401)."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(error="unauthorized", message=message, status_code=401)


class ServiceUnavailableError(APIError):
    """A dependency needed to decide the request is down (503)."""

    def __init__(self, message: str) -> None:
        super().__init__(error="service_unavailable", message=message, status_code=503)


class QuotaExceededAPIError(APIError):
    """Tier limit reached (403).

    The body carries what a client needs to offer an upgrade: the limit, the
    current usage, the tier, and whether a higher tier would admit it.
    """

    def __init__(self, message: str, detail: dict[str, Any]) -> None:
        super().__init__(
            error="quota_exceeded",
            message=message,
            status_code=403,
            detail=detail,
        )

    @classmethod
    def from_decision(cls, decision: AdmissionDecision | UploadDecision) -> APIError:
        """Convert a rejected admission decision to an API error."""
        if decision.reason == AdmissionReason.UNAVAILABLE:
            return ServiceUnavailableError("Quota check unavailable, try again later")

        tier = decision.tier.value if decision.tier else None
        if isinstance(decision, AdmissionDecision):
            return cls(
                "Monthly file request limit reached",
                {
                    "reason": decision.reason.value,
                    "limit": decision.limit,
                    "current": decision.current_count,
                    "tier": tier,
                    "upgrade_available": decision.upgrade_available,
                },
            )
        return cls(
            f"Upload rejected: {decision.reason.value.replace('_', ' ')}",
            {
                "reason": decision.reason.value,
                "limit": decision.limit,
                "current": decision.current,
                "needed": decision.needed,
                "tier": tier,
                "upgrade_available": decision.upgrade_available,
            },
        )


def build_error_response(
    error: str,
    message: str,
    status_code: int,
    detail: dict[str, Any] | None = None,
) -> JSONResponse:
    """Build a standardized error response.

    Returns:
        JSONResponse with consistent error structure.
    """
    body: dict[str, Any] = {
        "error": error,
        "message": message,
    }

    request_id = get_request_id()
    if request_id:
        body["request_id"] = request_id

    if detail:
        body["detail"] = detail

    return JSONResponse(status_code=status_code, content=body)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Catches exceptions and returns consistent JSON errors.

    Handles APIError subclasses, HTTPException, pydantic ValidationError, and
    anything else as a logged 500.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Response]
    ) -> Response:
        try:
            return await call_next(request)
        except APIError as exc:
            return build_error_response(
                error=exc.error,
                message=exc.message,
                status_code=exc.status_code,
                detail=exc.detail,
            )
        except HTTPException as exc:
            return build_error_response(
                error="http_error",
                message=str(exc.detail),
                status_code=exc.status_code,
            )
        except ValidationError as exc:
            return build_error_response(
                error="validation_error",
                message="Request validation failed",
                status_code=422,
                detail={"errors": exc.errors(include_url=False)},
            )
        except Exception:
            logger.exception(
                "Unexpected error processing request: %s %s",
                request.method,
                request.url.path,
            )
            return build_error_response(
                error="internal_error",
                message="An internal error occurred",
                status_code=500,
            )
