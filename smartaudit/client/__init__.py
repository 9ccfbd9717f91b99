from .api import ResilientApiClient, SmartAuditApi
from .cache import TTLCache
from .errors import (
    ApiError,
    AuditFailedError,
    AuthenticationError,
    InsufficientCreditsError,
    NetworkError,
    PayloadTooLargeError,
    PlanRestrictionError,
    PollTimeoutError,
    RateLimitError,
    ServerError,
)
from .poller import PollOutcome, ResultPoller
from .transport import AiohttpTransport, ApiResponse
from .view import AuditViewModel, ViewState, render

__all__ = [
    "ResilientApiClient", "SmartAuditApi", "TTLCache",
    "ApiError", "AuditFailedError", "AuthenticationError", "InsufficientCreditsError",
    "NetworkError", "PayloadTooLargeError", "PlanRestrictionError", "PollTimeoutError",
    "RateLimitError", "ServerError",
    "PollOutcome", "ResultPoller", "AiohttpTransport", "ApiResponse",
    "AuditViewModel", "ViewState", "render",
]
