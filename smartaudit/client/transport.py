# smartaudit/client/transport.py
"""
Wire layer for the client: one coroutine per HTTP exchange.

A transport is any awaitable callable
``transport(method, url, headers=..., json=..., params=..., timeout=...)``
returning an ``ApiResponse``. Connection-level failures are raised as
``NetworkError`` with a kind the retry policy understands; HTTP error
statuses are returned, not raised.
"""
import asyncio
import json
import logging
import socket
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import aiohttp

from .errors import DNS, REFUSED, RESET, TIMEOUT, NetworkError

logger = logging.getLogger(__name__)

USER_AGENT = "SmartAudit-Python/1.0.0"


@dataclass
class ApiResponse:
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    data: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


def classify_connection_error(exc: BaseException) -> str:
    """Map a connection failure to a NetworkError kind."""
    if isinstance(exc, (asyncio.TimeoutError, aiohttp.ServerTimeoutError)):
        return TIMEOUT
    os_error = getattr(exc, "os_error", None) or exc
    if isinstance(os_error, socket.gaierror):
        return DNS
    if isinstance(os_error, ConnectionRefusedError):
        return REFUSED
    return RESET


def _decode(text: str, content_type: str, url: str) -> Any:
    if content_type == "application/json":
        try:
            return json.loads(text) if text else None
        except ValueError:
            logger.warning("Malformed JSON response from %s", url)
    else:
        logger.warning("Non-JSON response from %s (%s)", url, content_type)
    return {"message": text[:500]}


class AiohttpTransport:
    """Default transport backed by one shared ``aiohttp.ClientSession``."""

    def __init__(self, session: Optional[aiohttp.ClientSession] = None):
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers={"User-Agent": USER_AGENT})
            self._owns_session = True
        return self._session

    async def __call__(self, method: str, url: str, headers=None, json=None,
                       params=None, timeout: float = 30) -> ApiResponse:
        session = await self._get_session()
        try:
            async with session.request(
                method,
                url,
                headers=headers,
                json=json,
                params=params,
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as response:
                text = await response.text(errors="replace")
                data = _decode(text, response.content_type, url)
                return ApiResponse(response.status, dict(response.headers), data)
        # ClientError also covers a connection dropped mid-body (ClientPayloadError)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            kind = classify_connection_error(e)
            raise NetworkError(f"{method} {url} failed: {e}", kind) from e

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
