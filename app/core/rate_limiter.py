"""
Redis-based per-IP rate limiting for the password reset endpoints.

Complements the per-account limits kept on the user row: those stop
guessing against one account, this stops one client from sweeping many
accounts.
"""

import logging
import redis
from fastapi import HTTPException, Request, status
from app.core.config import settings

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Redis-based fixed window rate limiter.

    Fails open: if Redis is unreachable the request is allowed and the
    error is logged.
    """

    def __init__(self):
        """Initialize Redis connection"""
        self.redis_client = redis.Redis(
            host=settings.REDIS_HOST,
            port=settings.REDIS_PORT,
            db=settings.REDIS_DB,
            decode_responses=True,
            socket_connect_timeout=1,
            socket_timeout=1,
        )

    def check_rate_limit(
        self,
        key: str,
        max_requests: int,
        window_seconds: int,
        error_message: str = "Rate limit exceeded"
    ) -> None:
        """
        Check if a request is within rate limits.

        Args:
            key: Unique identifier for this rate limit (e.g., "reset:ip:1.2.3.4")
            max_requests: Maximum number of requests allowed
            window_seconds: Time window in seconds
            error_message: Custom error message if rate limit exceeded

        Raises:
            HTTPException: 429 Too Many Requests if rate limit exceeded
        """
        try:
            current_count = self.redis_client.get(key)

            if current_count is None:
                self.redis_client.setex(key, window_seconds, 1)
                return

            if int(current_count) >= max_requests:
                ttl = self.redis_client.ttl(key)
                raise HTTPException(
                    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                    detail=f"{error_message}. Try again in {ttl} seconds."
                )
            self.redis_client.incr(key)

        except redis.RedisError as e:
            logger.error(f"Redis rate limiter error: {e}")

    def reset_limit(self, key: str) -> None:
        """Reset the rate limit for a key."""
        try:
            self.redis_client.delete(key)
        except redis.RedisError as e:
            logger.error(f"Redis reset error: {e}")


# Singleton instance
rate_limiter = RateLimiter()


def get_client_ip(request: Request) -> str:
    """
    Extract the client's IP address from the request.

    X-Forwarded-For is honoured only with settings.TRUST_FORWARDED_FOR, since
    any client can send the header.
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for and settings.TRUST_FORWARDED_FOR:
        # X-Forwarded-For can contain multiple IPs, take the first (client IP)
        return forwarded_for.split(",")[0].strip()

    return request.client.host if request.client else "unknown"


def check_reset_ip_limit(request: Request) -> None:
    """
    FastAPI dependency limiting password reset calls per client IP.

    Limit: settings.RESET_IP_MAX_REQUESTS per settings.RESET_IP_WINDOW_SECONDS,
    shared by the request, verify and complete endpoints.
    """
    if not settings.RATE_LIMIT_ENABLED:
        return

    rate_limiter.check_rate_limit(
        key=f"reset:ip:{get_client_ip(request)}",
        max_requests=settings.RESET_IP_MAX_REQUESTS,
        window_seconds=settings.RESET_IP_WINDOW_SECONDS,
        error_message="Too many password reset requests from your IP address"
    )
