"""
StackIt Backend — Rate Limiting Middleware
============================================

What:  Per-IP sliding window limits, tighter for credential endpoints.
How:   Each request is matched against the rules in order; the first rule
       whose prefix matches wins and only that rule's window is counted.

    Rule        Prefixes                                   Default
    password    /api/auth/change-password,
                /api/auth/password-reset,
                /api/auth/delete-account                   5 / 3600 s
    auth        /api/auth                                  20 / 900 s
    global      (everything else)                          100 / 900 s

Algorithm: Sliding Window Log
    Timestamps per (rule, ip); entries older than the window are dropped on
    each request. At the limit the request is refused with 429 and a
    Retry-After computed from the oldest timestamp still in the window.

Limitations:
    Per-process memory. Behind a proxy request.client is the proxy unless
    uvicorn runs with --proxy-headers.
"""

import logging
import time
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from stackit.config import Settings, settings
from stackit.exceptions import RateLimitExceededError
from stackit.middleware.logging import client_ip
from stackit.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitRule:
    name: str
    limit: int
    window: int
    prefixes: Tuple[str, ...] = ()

    def matches(self, path: str) -> bool:
        # A rule without prefixes is the catch-all
        return not self.prefixes or path.startswith(self.prefixes)


def default_rules(config: Settings = settings) -> List[RateLimitRule]:
    return [
        RateLimitRule(
            name="password",
            limit=config.password_rate_limit_requests,
            window=config.password_rate_limit_window,
            prefixes=("/api/auth/change-password", "/api/auth/password-reset", "/api/auth/delete-account"),
        ),
        RateLimitRule(
            name="auth",
            limit=config.auth_rate_limit_requests,
            window=config.auth_rate_limit_window,
            prefixes=("/api/auth",),
        ),
        RateLimitRule(
            name="global",
            limit=config.rate_limit_requests,
            window=config.rate_limit_window,
        ),
    ]


class RateLimitMiddleware(BaseHTTPMiddleware):
    """In-memory sliding window limiter with per-path rules."""

    EXCLUDED_PATHS = {"/health", "/docs", "/openapi.json", "/redoc"}
    CLEANUP_EVERY = 1000

    def __init__(self, app, rules: Optional[Sequence[RateLimitRule]] = None, **kwargs):
        super().__init__(app, **kwargs)
        self.rules = list(rules) if rules is not None else default_rules()
        self._requests: Dict[Tuple[str, str], List[float]] = defaultdict(list)
        self._seen = 0

    def _rule_for(self, path: str) -> Optional[RateLimitRule]:
        for rule in self.rules:
            if rule.matches(path):
                return rule
        return None

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in self.EXCLUDED_PATHS or request.method == "OPTIONS":
            return await call_next(request)
        rule = self._rule_for(path)
        if rule is None:
            return await call_next(request)

        ip = client_ip(request)
        key = (rule.name, ip)
        now = time.time()
        window_start = now - rule.window
        timestamps = [ts for ts in self._requests[key] if ts > window_start]
        self._requests[key] = timestamps

        if len(timestamps) >= rule.limit:
            retry_after = int(timestamps[0] + rule.window - now) + 1
            logger.warning(
                "Rate limit '%s' exceeded for IP %s: %d requests in %ds window",
                rule.name, ip, len(timestamps), rule.window,
            )
            exc = RateLimitExceededError(retry_after=retry_after, context={"rule": rule.name, "ip": ip})
            return JSONResponse(
                status_code=exc.status_code,
                content={
                    "success": False,
                    "message": exc.message,
                    "errors": [{"field": None, "message": f"Rate limit '{rule.name}' exceeded"}],
                    "request_id": request_id_var.get(""),
                },
                headers={"Retry-After": str(exc.retry_after)},
            )

        timestamps.append(now)
        self._seen += 1
        if self._seen % self.CLEANUP_EVERY == 0:
            self._cleanup_inactive(now)

        return await call_next(request)

    def _cleanup_inactive(self, now: float) -> None:
        windows = {rule.name: rule.window for rule in self.rules}
        inactive = [
            key for key, timestamps in self._requests.items()
            if not timestamps or timestamps[-1] < now - windows.get(key[0], 0)
        ]
        for key in inactive:
            del self._requests[key]
        if inactive:
            logger.debug("Cleaned up %d inactive rate limit entries", len(inactive))
