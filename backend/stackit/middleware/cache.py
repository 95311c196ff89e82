"""
StackIt Backend — Response Cache Middleware
=============================================

What:  Serves repeated GETs on read-heavy endpoints from ResponseCache.
How:
    1. Only GET requests whose path starts with a cached prefix are looked at
    2. Key = path + "?" + raw query string (query order matters)
    3. HIT  → stored body replayed, `X-Cache: HIT`
       MISS → route runs; a 200 response body is stored, `X-Cache: MISS`
    4. Both carry an `ETag`; a request whose If-None-Match equals it gets an
       empty 304 instead of the body

    Prefix            TTL
    /api/questions    cache_questions_ttl (60 s)
    /api/tags         cache_tags_ttl (300 s)

Writes do not invalidate anything; entries simply expire.
"""

import logging
from typing import Optional, Sequence, Tuple

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from stackit.cache import CachedResponse, ResponseCache
from stackit.config import Settings, settings

logger = logging.getLogger(__name__)


def default_cache_rules(config: Settings = settings) -> Sequence[Tuple[str, int]]:
    return (
        ("/api/questions", config.cache_questions_ttl),
        ("/api/tags", config.cache_tags_ttl),
    )


def cache_key(request: Request) -> str:
    query = request.url.query
    return f"{request.url.path}?{query}" if query else request.url.path


def _replay(request: Request, cached: CachedResponse, state: str) -> Response:
    etag = cached.etag
    headers = {"ETag": etag, "X-Cache": state}
    if request.headers.get("If-None-Match") == etag:
        return Response(status_code=304, headers=headers)
    return Response(
        content=cached.body,
        status_code=cached.status_code,
        media_type=cached.media_type,
        headers=headers,
    )


class ResponseCacheMiddleware(BaseHTTPMiddleware):
    """Caches successful GET responses for the configured path prefixes."""

    def __init__(self, app, rules: Optional[Sequence[Tuple[str, int]]] = None, **kwargs):
        super().__init__(app, **kwargs)
        self.rules = list(rules) if rules is not None else list(default_cache_rules())

    def _ttl_for(self, path: str) -> Optional[int]:
        for prefix, ttl in self.rules:
            if path == prefix or path.startswith(prefix + "/"):
                return ttl
        return None

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        cache: Optional[ResponseCache] = getattr(request.app.state, "cache", None)
        ttl = self._ttl_for(request.url.path)
        if request.method != "GET" or ttl is None or cache is None or not cache.enabled:
            return await call_next(request)

        key = cache_key(request)
        cached = cache.get(key, ttl)
        if cached is not None:
            return _replay(request, cached, "HIT")

        response = await call_next(request)
        if response.status_code != 200:
            return response

        body = b"".join([chunk async for chunk in response.body_iterator])
        entry = CachedResponse(
            body=body,
            status_code=response.status_code,
            media_type=response.headers.get("content-type"),
        )
        cache.set(key, ttl, entry)
        logger.debug("Cached %s for %ds", key, ttl)
        return _replay(request, entry, "MISS")
