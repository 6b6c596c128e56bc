"""In-memory sliding window rate limiter."""

from __future__ import annotations

import time
from collections import defaultdict

from fastapi import Depends, HTTPException, Request, status

from answer_engine.api.auth import Viewer, verify_token, viewer_for_org
from answer_engine.observability.logger import get_logger

logger = get_logger("rate_limiter")


class SlidingWindowRateLimiter:
    """Tracks request timestamps per key within a sliding window."""

    def __init__(self) -> None:
        self._requests: dict[str, list[float]] = defaultdict(list)

    def check(self, key: str, max_requests: int, window_seconds: int = 60) -> bool:
        """Return True if request is allowed, False if rate-limited."""
        now = time.monotonic()
        cutoff = now - window_seconds
        self._requests[key] = [t for t in self._requests[key] if t > cutoff]

        if len(self._requests[key]) >= max_requests:
            return False

        self._requests[key].append(now)
        return True


async def authorized_viewer(
    org_id: str,
    request: Request,
    claims: dict = Depends(verify_token),
) -> Viewer:
    """FastAPI dependency: authenticate, check org scope, then rate limit per user and org."""
    viewer = viewer_for_org(claims, org_id)
    settings = request.app.state.settings
    limiter: SlidingWindowRateLimiter = request.app.state.rate_limiter
    key = f"{viewer.org_id}:{viewer.user_id}"

    if not limiter.check(key, settings.rate_limit_requests_per_minute):
        logger.warning("rate_limited", key=key)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Rate limit exceeded. Try again later.",
            headers={"Retry-After": "60"},
        )
    return viewer
