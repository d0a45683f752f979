"""
In-memory sliding window rate limiter for the chat endpoints.

The window is process local, like the thread cache when it runs on the
memory backend. Each limiter keeps its own history under its ``scope``.
"""

import time
from collections import defaultdict
from typing import Dict, List, Optional

from fastapi import HTTPException, Request, status
import structlog

from libs.common.settings import get_settings

logger = structlog.get_logger(__name__)

# {"<scope>|<client_id>": [timestamp, ...]}
_request_history: Dict[str, List[float]] = defaultdict(list)


class RateLimiter:
    """Sliding window rate limiter usable as a FastAPI dependency."""

    def __init__(
        self,
        scope: str,
        max_requests: int = 10,
        window_seconds: int = 60,
        enabled: Optional[bool] = None,
    ):
        """
        Initialize rate limiter.

        Args:
            scope: Name that separates this limiter's history from others
            max_requests: Maximum requests allowed in window
            window_seconds: Time window in seconds
            enabled: Force the limiter on or off; by default it is off under tests
        """
        self.scope = scope
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.enabled = enabled

    def is_enabled(self) -> bool:
        if self.enabled is not None:
            return self.enabled
        return not get_settings().is_test

    def _get_client_id(self, request: Request) -> str:
        user = getattr(request.state, "user", None)
        if user is not None:
            return f"user:{user.uid}"

        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            client_ip = forwarded_for.split(",")[0].strip()
        else:
            client_ip = request.client.host if request.client else "unknown"
        return f"ip:{client_ip}"

    def _window(self, key: str, now: float) -> List[float]:
        cutoff = now - self.window_seconds
        recent = [ts for ts in _request_history[key] if ts > cutoff]
        _request_history[key] = recent
        return recent

    async def check_rate_limit(self, request: Request) -> None:
        """
        Record the request or reject it.

        Raises:
            HTTPException: 429 with a Retry-After header when the window is full
        """
        if not self.is_enabled():
            return

        client_id = self._get_client_id(request)
        key = f"{self.scope}|{client_id}"
        now = time.time()
        recent = self._window(key, now)

        if len(recent) >= self.max_requests:
            retry_after = int(self.window_seconds - (now - recent[0])) + 1 if recent else self.window_seconds
            logger.warning(
                "Rate limit exceeded",
                scope=self.scope,
                client_id=client_id,
                current_count=len(recent),
                max_requests=self.max_requests,
            )
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail={
                    "error_code": "RATE_LIMIT_EXCEEDED",
                    "message": f"Demasiadas solicitudes. Máximo {self.max_requests} mensajes cada {self.window_seconds} segundos.",
                    "retry_after_seconds": retry_after,
                },
                headers={"Retry-After": str(retry_after)},
            )

        recent.append(now)

    async def __call__(self, request: Request) -> None:
        await self.check_rate_limit(request)


def reset_rate_limits() -> None:
    """Forget every recorded request."""
    _request_history.clear()


send_rate_limiter = RateLimiter(
    scope="chat-send",
    max_requests=get_settings().send_rate_limit_per_minute,
    window_seconds=60,
)
