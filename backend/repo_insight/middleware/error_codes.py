"""Error codes for standardized API error responses.

Maps service exceptions to HTTP status codes, and HTTP status codes to
semantic error codes for consistent client-side handling.
"""

import math
from enum import Enum

from fastapi import HTTPException

from repo_insight.services.analysis_exceptions import (
    AnalysisAccessDenied,
    AnalysisConflictError,
    AnalysisError,
    AnalysisNotFoundError,
    AnalysisValidationError,
)
from repo_insight.services.github.exceptions import (
    GithubConfigurationError,
    GithubError,
    GithubNotFoundError,
    GithubRateLimitError,
    GithubRetryableError,
)


class ErrorCode(str, Enum):
    """Standardized error codes for API responses."""

    # Client errors (4xx)
    BAD_REQUEST = "BAD_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    RATE_LIMITED = "RATE_LIMITED"

    # Server errors (5xx)
    INTERNAL_ERROR = "INTERNAL_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    GATEWAY_ERROR = "GATEWAY_ERROR"


STATUS_TO_ERROR_CODE: dict[int, ErrorCode] = {
    400: ErrorCode.BAD_REQUEST,
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.FORBIDDEN,
    404: ErrorCode.NOT_FOUND,
    409: ErrorCode.CONFLICT,
    429: ErrorCode.RATE_LIMITED,
    500: ErrorCode.INTERNAL_ERROR,
    502: ErrorCode.GATEWAY_ERROR,
    503: ErrorCode.SERVICE_UNAVAILABLE,
}

# Most specific first; the first isinstance match wins.
EXCEPTION_STATUS: list[tuple[type[Exception], int]] = [
    (AnalysisValidationError, 400),
    (AnalysisAccessDenied, 403),
    (AnalysisNotFoundError, 404),
    (AnalysisConflictError, 409),
    (AnalysisError, 502),
    (GithubNotFoundError, 404),
    (GithubRateLimitError, 429),
    (GithubConfigurationError, 503),
    (GithubRetryableError, 503),
    (GithubError, 502),
]


def get_error_code(status_code: int) -> ErrorCode:
    """Get ErrorCode from HTTP status code."""
    return STATUS_TO_ERROR_CODE.get(status_code, ErrorCode.INTERNAL_ERROR)


def to_http_exception(exc: Exception) -> HTTPException:
    """Translate a service exception into an HTTPException with an error code."""
    status_code = next(
        (code for exc_type, code in EXCEPTION_STATUS if isinstance(exc, exc_type)),
        500,
    )
    headers = None
    if isinstance(exc, GithubRateLimitError) and exc.retry_after is not None:
        headers = {"Retry-After": str(math.ceil(exc.retry_after))}
    return HTTPException(
        status_code=status_code,
        detail={"code": get_error_code(status_code).value, "message": str(exc)},
        headers=headers,
    )
