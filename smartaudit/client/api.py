# smartaudit/client/api.py
"""
Resilient HTTP client shared by the IDE, browser and assistant callers.

``ResilientApiClient`` is transport-agnostic: it owns the TTL cache, the
per-operation retry counters, input sanitization and the security-event
log. ``SmartAuditApi`` maps the SmartAudit endpoints onto it.

Clock and sleep are injectable so TTL expiry and backoff timing can be
driven without real waiting.
"""
import asyncio
import logging
import os
import re
import secrets
import time
from typing import Any, Awaitable, Callable, Dict, Optional
from urllib.parse import quote, urlparse

from smartaudit.core import cost

from .cache import TTLCache
from .errors import (
    DNS,
    ApiError,
    AuthenticationError,
    InsufficientCreditsError,
    NetworkError,
    PayloadTooLargeError,
    PlanRestrictionError,
    RateLimitError,
    ServerError,
)
from .transport import AiohttpTransport, ApiResponse

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://smartaudit-ai.replit.app"
CLIENT_VERSION = "1.0.0"

MAX_RETRIES = 3
BASE_DELAY = 1.0  # seconds
MAX_BODY_CHARS = 100_000
MAX_KEY_LENGTH = 100

USER_INFO_TTL = 60.0
HISTORY_TTL = 30.0

_UNSAFE_KEY_CHARS = re.compile(r"[^a-zA-Z0-9.-]")
_UNSAFE_LANGUAGE_CHARS = re.compile(r"[^a-z]")
_HTML_COMMENT = re.compile(r"<!--[\s\S]*?-->")
_SCRIPT_TAG = re.compile(r"<script[\s\S]*?</script>", re.I)


# ---------------------------
# Sanitization
# ---------------------------

def validate_url(url: Optional[str], default: str = DEFAULT_BASE_URL) -> str:
    """Accept http(s) URLs only; anything else falls back to ``default``."""
    try:
        parsed = urlparse(url or "")
    except ValueError:
        parsed = None
    if parsed is None or parsed.scheme not in ("http", "https") or not parsed.netloc:
        logger.warning("Invalid API URL %r, using default", url)
        return default
    return url.rstrip("/")


def sanitize_identifier(value: Optional[str], max_length: int = MAX_KEY_LENGTH) -> str:
    """Keep letters, digits, dots and hyphens; cap the length."""
    return _UNSAFE_KEY_CHARS.sub("", value or "")[:max_length]


def sanitize_language(language: Optional[str]) -> str:
    return _UNSAFE_LANGUAGE_CHARS.sub("", (language or "").lower()) or "solidity"


def sanitize_contract_code(code: str) -> str:
    """Strip HTML comments and script blocks, leaving the code structure intact."""
    return _SCRIPT_TAG.sub("", _HTML_COMMENT.sub("", code)).strip()


def new_request_id() -> str:
    return secrets.token_hex(16)


def _parse_retry_after(value) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return max(0.0, float(value))
    except (TypeError, ValueError):
        return None


def _as_dict(data) -> dict:
    return data if isinstance(data, dict) else {}


# ---------------------------
# Generic executor
# ---------------------------

class ResilientApiClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        transport: Optional[Callable[..., Awaitable[ApiResponse]]] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        max_retries: int = MAX_RETRIES,
        base_delay: float = BASE_DELAY,
        timeout: float = 30,
        max_body_chars: int = MAX_BODY_CHARS,
    ):
        self.base_url = validate_url(base_url or os.getenv("SMARTAUDIT_API_URL") or DEFAULT_BASE_URL)
        self.api_key = sanitize_identifier(api_key if api_key is not None else os.getenv("SMARTAUDIT_API_KEY"))
        self.transport = transport or AiohttpTransport()
        self.cache = TTLCache(clock=clock, sleep=sleep)
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.timeout = timeout
        self.max_body_chars = max_body_chars
        self._clock = clock
        self._sleep = sleep
        self._retry_attempts: Dict[str, int] = {}

    async def __aenter__(self):
        self.cache.start()
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    async def aclose(self) -> None:
        await self.cache.close()
        close = getattr(self.transport, "close", None)
        if close is not None:
            await close()

    # --- request plumbing ---

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "X-Client-Version": CLIENT_VERSION,
            "X-Request-ID": new_request_id(),
            "X-Timestamp": str(int(time.time() * 1000)),
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def request(self, method: str, path: str, json=None, params=None) -> Any:
        """One exchange, no retry. Returns the decoded body or raises ApiError."""
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            response = await self.transport(method, url, headers=self._headers(), json=json,
                                            params=params, timeout=self.timeout)
        except NetworkError as e:
            self.log_security_event(e)
            raise
        if not response.ok:
            error = self.error_for(response)
            self.log_security_event(error)
            raise error
        return response.data

    @staticmethod
    def error_for(response: ApiResponse) -> ApiError:
        data = _as_dict(response.data)
        status = response.status
        message = data.get("error") or data.get("message") or f"HTTP {status}"

        if status == 401:
            return AuthenticationError(message, status=401, payload=data)
        if status == 402:
            return InsufficientCreditsError(
                message,
                required=data.get("required", data.get("creditsNeeded")),
                available=data.get("available", data.get("currentBalance")),
                payload=data,
            )
        if status == 403:
            return PlanRestrictionError(message, data.get("planRequired"), payload=data)
        if status == 413:
            return PayloadTooLargeError(message, status=413, payload=data)
        if status == 429:
            headers = {k.lower(): v for k, v in (response.headers or {}).items()}
            retry_after = _parse_retry_after(headers.get("retry-after"))
            if retry_after is None:
                retry_after = _parse_retry_after(data.get("retryAfter"))
            return RateLimitError(message, retry_after=retry_after, payload=data)
        if status >= 500:
            return ServerError(message, status=status, payload=data)
        return ApiError(message, status=status, payload=data)

    @staticmethod
    def log_security_event(error: ApiError) -> None:
        """Log auth, abuse and DNS failures apart from generic errors. Never raises."""
        if isinstance(error, AuthenticationError):
            logger.warning("Authentication failed - possible compromised API key")
        elif isinstance(error, RateLimitError):
            logger.warning("Rate limit exceeded - possible abuse detected (retry after %s)",
                           error.retry_after)
        elif isinstance(error, NetworkError) and error.kind == DNS:
            logger.warning("DNS resolution failed - possible network manipulation")
        else:
            logger.debug("API error: %s", error)

    # --- retry ---

    @staticmethod
    def should_retry(error: ApiError) -> bool:
        if isinstance(error, RateLimitError):
            return error.retry_after is not None
        return bool(error.transient)

    def retry_delay(self, error: ApiError, attempts: int) -> float:
        if isinstance(error, RateLimitError) and error.retry_after is not None:
            return error.retry_after
        return self.base_delay * (2 ** attempts)

    async def retry_with_backoff(self, fn: Callable[[], Awaitable[Any]], context: str) -> Any:
        """
        Run ``fn``, retrying transient failures with exponential backoff.

        Attempts are counted per ``context`` key; the counter resets on
        success and when the error finally propagates.
        """
        while True:
            attempts = self._retry_attempts.get(context, 0)
            try:
                result = await fn()
            except ApiError as e:
                if attempts < self.max_retries and self.should_retry(e):
                    delay = self.retry_delay(e, attempts)
                    logger.info("Retrying %s in %.1fs (attempt %d/%d): %s",
                                context, delay, attempts + 1, self.max_retries, e,
                                extra={"attempt": attempts + 1})
                    self._retry_attempts[context] = attempts + 1
                    await self._sleep(delay)
                    continue
                self._retry_attempts.pop(context, None)
                raise
            self._retry_attempts.pop(context, None)
            return result

    def attempts(self, context: str) -> int:
        return self._retry_attempts.get(context, 0)

    async def cached(self, key: str, fetch_fn: Callable[[], Awaitable[Any]], ttl: float) -> Any:
        return await self.cache.get_or_fetch(key, fetch_fn, ttl)

    def check_body(self, contract_code: Optional[str]) -> str:
        """Validate and clean contract code before it leaves the process."""
        if not contract_code or not contract_code.strip():
            raise ApiError("Contract code is required")
        if len(contract_code) > self.max_body_chars:
            raise PayloadTooLargeError(
                f"Contract code too large (max {self.max_body_chars // 1000}KB)")
        return sanitize_contract_code(contract_code)


# ---------------------------
# SmartAudit endpoints
# ---------------------------

class SmartAuditApi:
    """Typed calls against the SmartAudit HTTP surface."""

    def __init__(self, client: ResilientApiClient, user_id: Optional[str] = None):
        self.client = client
        self.user_id = sanitize_identifier(user_id) or None

    @staticmethod
    def estimate_cost(contract_code: str, language: str = "solidity") -> cost.CreditCostEstimate:
        # same pricing code the server charges with
        return cost.estimate(contract_code, sanitize_language(language))

    async def start_audit(self, contract_code: str, language: str = "solidity",
                          file_name: Optional[str] = None, is_public: bool = True,
                          contract_address: Optional[str] = None,
                          network: Optional[str] = None) -> Dict[str, Any]:
        body = {
            "contractCode": self.client.check_body(contract_code),
            "contractLanguage": sanitize_language(language),
            "isPublic": bool(is_public),
        }
        if file_name:
            body["title"] = sanitize_identifier(file_name)
        if contract_address:
            body["contractSource"] = sanitize_identifier(contract_address)
        if network:
            body["network"] = sanitize_language(network)
        if self.user_id:
            body["userId"] = self.user_id

        async def call():
            return await self.client.request("POST", "/api/audit/sessions", json=body)

        data = _as_dict(await self.client.retry_with_backoff(call, "startAudit"))
        self.client.cache.invalidate_prefix(self._history_key_prefix())
        return {
            "sessionId": data.get("sessionId"),
            "sessionKey": data.get("sessionKey"),
            "status": data.get("status"),
            "creditsUsed": data.get("creditsUsed"),
        }

    async def get_status(self, session_id: str) -> Dict[str, Any]:
        # not retried: the poller treats each call as one tick
        path = f"/api/audit/status/{quote(str(session_id), safe='')}"
        return _as_dict(await self.client.request("GET", path))

    async def get_results(self, session_id: str) -> Dict[str, Any]:
        path = f"/api/audit/results/{quote(str(session_id), safe='')}"

        async def call():
            return await self.client.request("GET", path)

        return _as_dict(await self.client.retry_with_backoff(call, f"getResults:{session_id}"))

    def _history_key_prefix(self) -> str:
        return f"auditHistory:{self.user_id}:"

    async def get_history(self, limit: int = 20, user_id: Optional[str] = None):
        uid = sanitize_identifier(user_id) or self.user_id
        if not uid:
            raise ApiError("A user id is required for audit history")
        safe_limit = min(max(1, int(limit)), 100)

        async def call():
            return await self.client.request("GET", f"/api/audit/history/{uid}",
                                             params={"limit": safe_limit})

        async def fetch():
            data = await self.client.retry_with_backoff(call, "getAuditHistory")
            return _as_dict(data).get("items", [])

        return await self.client.cached(f"auditHistory:{uid}:{safe_limit}", fetch, HISTORY_TTL)

    async def get_user_info(self) -> Dict[str, Any]:
        if not self.user_id:
            raise ApiError("A user id is required for account information")

        async def call():
            return await self.client.request("GET", f"/api/credits/balance/{self.user_id}")

        async def fetch():
            return _as_dict(await self.client.retry_with_backoff(call, "getUserInfo"))

        return await self.client.cached(f"userInfo:{self.user_id}", fetch, USER_INFO_TTL)
