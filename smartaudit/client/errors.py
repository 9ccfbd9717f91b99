# smartaudit/client/errors.py
from typing import Optional

# NetworkError kinds
RESET = "reset"
TIMEOUT = "timeout"
DNS = "dns"
REFUSED = "refused"

TRANSIENT_NETWORK_KINDS = (RESET, TIMEOUT)


class ApiError(Exception):
    """Base class for every failure surfaced by the SmartAudit client."""

    transient = False

    def __init__(self, message: str, status: Optional[int] = None, payload: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.payload = payload or {}


class NetworkError(ApiError):
    def __init__(self, message: str, kind: str):
        super().__init__(message)
        self.kind = kind

    @property
    def transient(self):
        return self.kind in TRANSIENT_NETWORK_KINDS


class ServerError(ApiError):
    transient = True


class AuthenticationError(ApiError):
    pass


class InsufficientCreditsError(ApiError):
    def __init__(self, message: str, required: Optional[int], available: Optional[int],
                 payload: Optional[dict] = None):
        super().__init__(message, status=402, payload=payload)
        self.required = required
        self.available = available


class PlanRestrictionError(ApiError):
    def __init__(self, message: str, plan_required: Optional[str], payload: Optional[dict] = None):
        super().__init__(message, status=403, payload=payload)
        self.plan_required = plan_required


class RateLimitError(ApiError):
    def __init__(self, message: str, retry_after: Optional[float] = None,
                 payload: Optional[dict] = None):
        super().__init__(message, status=429, payload=payload)
        self.retry_after = retry_after


class PayloadTooLargeError(ApiError):
    pass


class AuditFailedError(ApiError):
    def __init__(self, message: str, session_id: Optional[str] = None):
        super().__init__(message)
        self.session_id = session_id


class PollTimeoutError(ApiError):
    def __init__(self, session_id: str, attempts: int):
        super().__init__(f"Audit {session_id} did not finish after {attempts} status checks")
        self.session_id = session_id
        self.attempts = attempts
