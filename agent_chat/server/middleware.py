"""
MODULE OVERVIEW:
FastAPI middleware that times every request.

WHAT IS HAPPENING HERE:
We add an `X-Process-Time-Ms` header with the time spent inside the app. For a streaming
reply this only covers the time to the response headers, not the body that follows.
"""

import time
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from loguru import logger

class TimingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.perf_counter()
        response = await call_next(request)
        process_time_ms = (time.perf_counter() - start_time) * 1000

        response.headers["X-Process-Time-Ms"] = f"{process_time_ms:.2f}"
        if request.url.path != "/healthz":
            logger.debug(f"{request.method} {request.url.path} status={response.status_code} completed in {process_time_ms:.2f}ms")

        return response
