# Middleware package init
"""
StackIt Backend — Middleware Package
======================================

What:  Cross-cutting concerns applied to every HTTP request.

Middleware Chain (outermost first):
    Request → [Rate Limit] → [Request ID] → [Logging] → [Security Headers]
            → [GZip] → [CORS] → [Response Cache] → Route Handler

    1. Rate Limit first: abusive clients are rejected before anything else runs
    2. Request ID: correlation id available to every later log line
    3. Logging: sees the final status, including cache hits and 304s
    4. Security headers: added to every response, cached ones too
    5. Response cache innermost: stores the plain route output, before
       compression and the per-origin CORS headers are added

WebSocket connections bypass all of these (BaseHTTPMiddleware only handles
HTTP scopes).
"""
