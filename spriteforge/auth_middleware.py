"""
Shared-secret authentication middleware for the worker.

Endpoints that start paid provider work (POST /pipeline/run, POST /batch/*)
require a valid X-Worker-Secret header matching WORKER_SHARED_SECRET.
Status, estimates, rate limits, templates, /health and /metrics stay open.
"""

import secrets

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from . import config

PROTECTED_PREFIXES = ("/pipeline/run", "/batch/")
SECRET_HEADER = "X-Worker-Secret"


def _requires_secret(request: Request) -> bool:
    return request.method == "POST" and request.url.path.startswith(PROTECTED_PREFIXES)


class WorkerAuthMiddleware(BaseHTTPMiddleware):
    """Reject unauthenticated requests that would spend provider credits."""

    async def dispatch(self, request: Request, call_next):
        if not _requires_secret(request):
            return await call_next(request)

        expected = config.WORKER_SHARED_SECRET
        if not expected:
            if config.ENVIRONMENT == "development":
                return await call_next(request)
            return JSONResponse(status_code=500, content={"detail": "WORKER_SHARED_SECRET not configured"})

        # compare_digest: constant time
        if not secrets.compare_digest(request.headers.get(SECRET_HEADER, ""), expected):
            return JSONResponse(status_code=401, content={"detail": "Invalid or missing worker secret"})

        return await call_next(request)
