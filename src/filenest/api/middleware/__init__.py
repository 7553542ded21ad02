"""FileNest API middleware components.

- Request ID tracking for log correlation
- Consistent error response formatting
- Admin API key authentication
"""

from filenest.api.middleware.errors import (
    APIError,
    ErrorHandlerMiddleware,
    QuotaExceededAPIError,
    build_error_response,
)
from filenest.api.middleware.request_id import RequestIDMiddleware, get_request_id

__all__ = [
    "APIError",
    "ErrorHandlerMiddleware",
    "QuotaExceededAPIError",
    "RequestIDMiddleware",
    "build_error_response",
    "get_request_id",
]
