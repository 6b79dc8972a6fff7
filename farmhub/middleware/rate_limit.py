"""
Fixed-window rate limiting keyed by client IP

Counters live in a limits storage (async in-memory by default, or redis via
RATE_LIMIT_STORAGE_URI) owned by the application instance.
"""
import logging
import math
import time
from typing import Tuple

from fastapi import Request
from limits import RateLimitItemPerMinute
from limits.aio.strategies import FixedWindowRateLimiter
from limits.storage import storage_from_string

from farmhub.core.errors import RateLimitExceeded

logger = logging.getLogger(__name__)


class RateLimiter:
    def __init__(self, storage_uri: str = "async+memory://", enabled: bool = True):
        self.enabled = enabled
        self.storage = storage_from_string(storage_uri)
        self.strategy = FixedWindowRateLimiter(self.storage)

    async def hit(self, name: str, key: str, max_requests: int, window_minutes: int) -> None:
        """
        Count one request against (name, key)

        Raises:
            RateLimitExceeded: the window's allowance is used up
        """
        if not self.enabled:
            return
        item = RateLimitItemPerMinute(max_requests, window_minutes)
        if await self.strategy.hit(item, name, key):
            return

        stats = await self.strategy.get_window_stats(item, name, key)
        retry_after = max(1, math.ceil(stats.reset_time - time.time()))
        logger.warning(
            f"Rate limit '{name}' exceeded for {key}: {max_requests} per {window_minutes} min"
        )
        raise RateLimitExceeded(max_requests, window_minutes, retry_after=retry_after)


def client_key(request: Request) -> str:
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def preset_limit(preset: str):
    """
    Limiter whose (max, windowMinutes) comes from RATE_LIMIT_<PRESET> in settings:
    general, auth, refresh, password_reset, reports
    """
    setting_name = f"RATE_LIMIT_{preset.upper()}"

    async def preset_dependency(request: Request) -> None:
        limits_pair: Tuple[int, int] = getattr(request.app.state.settings, setting_name)
        limiter: RateLimiter = request.app.state.rate_limiter
        await limiter.hit(preset, client_key(request), limits_pair[0], limits_pair[1])

    return preset_dependency


general_limit = preset_limit("general")
auth_limit = preset_limit("auth")
refresh_limit = preset_limit("refresh")
password_reset_limit = preset_limit("password_reset")
reports_limit = preset_limit("reports")
