"""
Rate limiting using sliding window algorithm
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse
from typing import Dict, Tuple, Optional
from collections import defaultdict, deque
import time
from threading import Lock

from examprep.config import settings
from examprep.utils.error_handler import RateLimitError, create_error_response
from examprep.utils.logger import logger


class RateLimiter:
    """Sliding window rate limiter"""

    def __init__(self):
        """Initialize rate limiter"""
        self._requests: Dict[str, deque] = defaultdict(deque)
        self._locks: Dict[str, Lock] = defaultdict(Lock)

    def _get_key(self, request: Request, user_id: Optional[str] = None) -> str:
        """Generate rate limit key"""
        if user_id:
            return f"user:{user_id}"

        # Fallback to IP address
        client_ip = request.client.host if request.client else "unknown"
        return f"ip:{client_ip}"

    def is_allowed(
        self,
        key: str,
        max_requests: int,
        window_seconds: int
    ) -> Tuple[bool, Optional[int]]:
        """
        Record a request if the window has room

        Args:
            key: Rate limit key
            max_requests: Maximum requests per window
            window_seconds: Time window in seconds

        Returns:
            Tuple of (is_allowed, retry_after_seconds)
        """
        with self._locks[key]:
            requests = self._requests[key]
            now = time.time()
            cutoff = now - window_seconds

            while requests and requests[0] < cutoff:
                requests.popleft()

            if len(requests) >= max_requests:
                retry_after = int(window_seconds - (now - requests[0])) + 1
                return False, max(1, retry_after)

            requests.append(now)
            return True, None

    def enforce(self, key: str, max_requests: int, window_seconds: int = 60) -> None:
        """
        Raise RateLimitError when the key is over its limit

        Raises:
            RateLimitError: limit exceeded
        """
        allowed, retry_after = self.is_allowed(key, max_requests, window_seconds)
        if not allowed:
            logger.warning(
                "Rate limit exceeded",
                extra={"key": key, "max_requests": max_requests, "retry_after": retry_after}
            )
            raise RateLimitError(
                f"Too many requests. Maximum {max_requests} per {window_seconds} seconds.",
                retry_after=retry_after
            )

    def check_rate_limit(
        self,
        request: Request,
        user_id: Optional[str] = None,
        max_requests: int = 60,
        window_seconds: int = 60
    ) -> Optional[JSONResponse]:
        """
        Check rate limit for request

        Returns:
            JSONResponse if rate limited, None otherwise
        """
        key = self._get_key(request, user_id)
        allowed, retry_after = self.is_allowed(key, max_requests, window_seconds)

        if not allowed:
            logger.warning(
                "Rate limit exceeded",
                extra={
                    "key": key,
                    "max_requests": max_requests,
                    "window_seconds": window_seconds,
                    "retry_after": retry_after
                }
            )

            request_id = getattr(request.state, "request_id", None)
            return create_error_response(
                message=f"Rate limit exceeded. Maximum {max_requests} requests per {window_seconds} seconds.",
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                error_code="RATE_LIMIT_EXCEEDED",
                details={"retry_after": retry_after},
                request_id=request_id
            )

        return None

    def reset(self) -> None:
        self._requests.clear()


# Global rate limiter instance
rate_limiter = RateLimiter()


async def rate_limit_middleware(request: Request, call_next):
    """Middleware for global rate limiting"""
    # Skip rate limiting for health check
    if request.url.path == "/health":
        return await call_next(request)

    user_id = getattr(request.state, "user_id", None)

    response = rate_limiter.check_rate_limit(
        request=request,
        user_id=user_id,
        max_requests=settings.RATE_LIMIT_PER_MINUTE,
        window_seconds=60
    )

    if response:
        return response

    return await call_next(request)
