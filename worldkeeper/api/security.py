"""Admin key authentication for the API.

Every endpoint except `/health` and `/version` requires the `X-Admin-Key`
header to match `ADMIN_API_KEY` (or the content of `ADMIN_API_KEY_FILE`).
Clients that keep sending bad keys are throttled with 429 responses.
"""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass
import secrets
import time
from typing import Callable, Deque, Dict, Optional

from fastapi import HTTPException, Request, Security, status
from fastapi.security import APIKeyHeader

from worldkeeper.api.logging_config import get_logger
from worldkeeper.api.settings import settings

logger = get_logger(__name__)

admin_key_header = APIKeyHeader(name="X-Admin-Key", auto_error=False)

AUTH_FAILURE_LIMIT = 20
AUTH_FAILURE_WINDOW_SECONDS = 300


@dataclass(frozen=True)
class _Verdict:
    allowed: bool
    retry_after_seconds: int = 0


class _InMemoryRateLimiter:
    """Sliding-window counter of events per client.

    Note:
        Counters live in process memory and are lost on restart.
    """

    def __init__(
        self,
        *,
        limit: int = AUTH_FAILURE_LIMIT,
        window_seconds: int = AUTH_FAILURE_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._events: Dict[str, Deque[float]] = {}

    def record(self, client: str) -> _Verdict:
        """Record one event for `client` and tell whether it is within budget.

        Args:
            client: Client identifier (remote host).

        Returns:
            _Verdict: Whether the event is allowed and, if not, when to retry.
        """

        now = self._clock()
        events = self._events.setdefault(client, deque())
        while events and events[0] <= now - self.window_seconds:
            events.popleft()

        if len(events) >= self.limit:
            wait = events[0] + self.window_seconds - now
            return _Verdict(allowed=False, retry_after_seconds=max(1, int(wait)))

        events.append(now)
        return _Verdict(allowed=True)

    def reset(self) -> None:
        self._events.clear()


_rate_limiter = _InMemoryRateLimiter()


def _client_of(request: Optional[Request]) -> str:
    if request is None or request.client is None:
        return "unknown"
    return request.client.host or "unknown"


def _reject(request: Optional[Request], status_code: int, detail: str) -> HTTPException:
    """Count an authentication failure and build the error to raise.

    Returns 429 instead of `status_code` once the client has exhausted its
    failure budget.
    """

    client = _client_of(request)
    verdict = _rate_limiter.record(client)
    if not verdict.allowed:
        logger.warning("Too many failed admin key attempts from %s", client)
        return HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many failed authentication attempts. Please retry later.",
            headers={"Retry-After": str(verdict.retry_after_seconds)},
        )
    return HTTPException(status_code=status_code, detail=detail)


async def verify_admin_key(
    request: Request,
    admin_key: Optional[str] = Security(admin_key_header),
) -> str:
    """
    Verify the admin API key.

    Args:
        request: The FastAPI request object
        admin_key: The admin API key from the request header

    Returns:
        The validated admin API key

    Raises:
        HTTPException: 503 when no key is configured, 401/403 on a missing or
            wrong key, 429 after repeated failures
    """
    configured_key = settings.get_admin_api_key()

    if not configured_key:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin API key not configured. Set ADMIN_API_KEY or ADMIN_API_KEY_FILE.",
        )

    if not admin_key:
        raise _reject(request, status.HTTP_401_UNAUTHORIZED, "Missing 'X-Admin-Key' header.")

    if not secrets.compare_digest(admin_key.encode("utf-8"), configured_key.encode("utf-8")):
        raise _reject(request, status.HTTP_403_FORBIDDEN, "Invalid admin API key.")

    return admin_key
