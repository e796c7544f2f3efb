# server/app/dependencies/rate_limit.py
"""
Per-client request limits for the AI routes.

Counters live in process memory (moving one-minute window); a multi-worker
deployment limits each worker separately.
"""

from __future__ import annotations

import logging

from fastapi import Depends, HTTPException, Request
from limits import RateLimitItemPerMinute
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter

from ..config import Settings, get_settings

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "Rate limit exceeded for AI services. Please try again shortly."


def get_client_ip(request: Request) -> str:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client:
        return request.client.host
    return "unknown"


class RateLimiter:
    """FastAPI dependency; routes sharing one instance share one budget per client."""

    def __init__(self, scope: str):
        self.scope = scope
        self.storage = MemoryStorage()
        self.strategy = MovingWindowRateLimiter(self.storage)

    def reset(self) -> None:
        self.storage.reset()

    def __call__(self, request: Request, settings: Settings = Depends(get_settings)) -> None:
        per_minute = settings.AI_RATE_LIMIT_PER_MINUTE
        if per_minute <= 0:
            return
        client = get_client_ip(request)
        if not self.strategy.hit(RateLimitItemPerMinute(per_minute), self.scope, client):
            logger.warning("[rate_limit] %s exceeded for %s on %s", self.scope, client, request.url.path)
            raise HTTPException(status_code=429, detail=RATE_LIMIT_MESSAGE)


ai_rate_limit = RateLimiter("ai")
