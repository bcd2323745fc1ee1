"""Sliding-window rate limiting for public and authenticated endpoints."""

import threading
import time
from typing import Dict, Tuple, Optional
from collections import defaultdict, deque
from dataclasses import dataclass

from fastapi import Request, HTTPException, status  # type: ignore

from ..config import get_rate_limit_config
from ..utils.logging_config import get_logger

logger = get_logger("auth")


@dataclass
class RateLimitTier:
    """Configuration for a specific rate limiting tier."""

    max_requests: int
    window_seconds: int
    description: str = ""


@dataclass
class RateLimitConfig:
    """Global rate limiting configuration."""

    bypass_ips: Optional[set] = None
    public_strict: Optional[RateLimitTier] = None
    api_moderate: Optional[RateLimitTier] = None

    def __post_init__(self):
        if self.bypass_ips is None:
            self.bypass_ips = set()

        if self.public_strict is None:
            self.public_strict = RateLimitTier(30, 60, "Public tracking link lookups")

        if self.api_moderate is None:
            self.api_moderate = RateLimitTier(120, 60, "Authenticated API endpoints")


class GlobalRateLimiter:
    """Rate limiter with tiered limits keyed by client IP and, optionally, user."""

    def __init__(self, config: Optional[RateLimitConfig] = None):
        self.config = config or RateLimitConfig()
        self._lock = threading.Lock()

        # Format: {(key, tier): deque of timestamps}
        self._requests: Dict[Tuple[str, str], deque] = defaultdict(deque)

        self._endpoint_tiers = {
            "/v1/public/": "public_strict",
            "/v1/tracking": "api_moderate",
            "/v1/admin": "api_moderate",
        }

    def _get_client_ip(self, request: Request) -> str:
        """Extract client IP from request."""
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip

        return request.client.host if request.client else "unknown"

    def _get_tier_for_endpoint(self, endpoint_path: str) -> str:
        """Determine the rate limit tier for an endpoint."""
        for path_prefix, tier in self._endpoint_tiers.items():
            if endpoint_path.startswith(path_prefix):
                return tier
        return "api_moderate"

    def _get_tier_config(self, tier: str) -> RateLimitTier:
        return getattr(self.config, tier) or self.config.api_moderate

    def _cleanup_old_requests(
        self, key: Tuple[str, str], now: float, window_seconds: int
    ) -> None:
        """Remove old requests outside the sliding window."""
        cutoff = now - window_seconds
        while self._requests[key] and self._requests[key][0] < cutoff:
            self._requests[key].popleft()

    def _check_key(
        self, key: Tuple[str, str], tier_config: RateLimitTier, now: float, who: str
    ) -> None:
        self._cleanup_old_requests(key, now, tier_config.window_seconds)
        current = len(self._requests[key])
        if current >= tier_config.max_requests:
            logger.warning(
                f"Rate limit exceeded for {who} ({key[1]}): {current} requests in window"
            )
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=(
                    f"Too many requests. Maximum {tier_config.max_requests} requests per "
                    f"{tier_config.window_seconds} seconds allowed for "
                    f"{tier_config.description.lower()}"
                ),
                headers={"Retry-After": str(tier_config.window_seconds)},
            )

    def check_global_rate_limit(
        self, request: Request, endpoint_path: str, user_id: Optional[str] = None
    ) -> None:
        """
        Check rate limits for an endpoint.

        Args:
            request: FastAPI request object
            endpoint_path: Full endpoint path (e.g., "/v1/public/track/...")
            user_id: Optional authenticated user ID for user-based rate limiting

        Raises:
            HTTPException: If rate limit exceeded (429 Too Many Requests)
        """
        ip = self._get_client_ip(request)
        if ip in self.config.bypass_ips:
            return

        tier = self._get_tier_for_endpoint(endpoint_path)
        tier_config = self._get_tier_config(tier)
        now = time.time()

        with self._lock:
            self._check_key((ip, tier), tier_config, now, f"IP {ip}")
            if user_id:
                self._check_key((user_id, tier), tier_config, now, f"user {user_id}")
                self._requests[(user_id, tier)].append(now)
            self._requests[(ip, tier)].append(now)

    def reset(self) -> None:
        """Forget every recorded request."""
        with self._lock:
            self._requests.clear()

    def get_stats(self) -> Dict:
        """Get rate limiter statistics."""
        with self._lock:
            tracked = {key for key, _tier in self._requests.keys()}
            buckets = len(self._requests)
        return {
            "tiers": {
                name: {
                    "max_requests": tier.max_requests,
                    "window_seconds": tier.window_seconds,
                    "description": tier.description,
                }
                for name, tier in (
                    ("public_strict", self.config.public_strict),
                    ("api_moderate", self.config.api_moderate),
                )
            },
            "stats": {"tracked_keys": len(tracked), "total_request_buckets": buckets},
        }


# Global rate limiter instance
rate_limiter = GlobalRateLimiter(get_rate_limit_config())


def limit_public_lookup(request: Request) -> None:
    """FastAPI dependency guarding anonymous tracking-link lookups."""
    rate_limiter.check_global_rate_limit(request, request.url.path)
