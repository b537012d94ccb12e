"""
Error taxonomy for the Health Search Engine

Only ValidationError, RateLimitExceeded and NotFoundError reach the caller.
Budget, upstream and repository failures are absorbed by the pipeline into a
degraded but successful response.
"""
from typing import Optional
from datetime import datetime


class HealthSearchError(Exception):
    """Base class for all service errors"""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class ValidationError(HealthSearchError):
    """Bad input, fixable by the caller"""

    code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(HealthSearchError):
    code = "NOT_FOUND"
    status_code = 404


class RateLimitExceeded(HealthSearchError):
    """Client exhausted its quota for an endpoint category"""

    code = "RATE_LIMIT_EXCEEDED"
    status_code = 429

    def __init__(
        self,
        retry_after_seconds: int,
        limit: int = 0,
        reset_at: Optional[datetime] = None,
    ):
        super().__init__(
            f"Rate limit exceeded. Try again in {retry_after_seconds} seconds."
        )
        self.retry_after_seconds = retry_after_seconds
        self.limit = limit
        self.reset_at = reset_at


class BudgetExceeded(HealthSearchError):
    """AI spend reached the configured ceiling; the call was not made"""

    code = "BUDGET_EXCEEDED"

    def __init__(self, spent: float, ceiling: float):
        super().__init__(f"AI budget exhausted: ${spent:.6f} of ${ceiling:.2f}")
        self.spent = spent
        self.ceiling = ceiling


class UpstreamError(HealthSearchError):
    """Topic extraction upstream failed or returned an unusable response"""

    code = "UPSTREAM_ERROR"
    status_code = 502

    def __init__(self, message: str = "", cost: float = 0.0):
        super().__init__(message)
        # Spend already incurred by a call that reached upstream
        self.cost = cost


class UpstreamTimeout(UpstreamError):
    code = "UPSTREAM_TIMEOUT"
    status_code = 504


class RepositoryUnavailable(HealthSearchError):
    """Primary content store unreachable or not configured"""

    code = "REPOSITORY_UNAVAILABLE"
    status_code = 503


class InternalError(HealthSearchError):
    code = "INTERNAL_ERROR"
    status_code = 500
