# scanorder/middleware.py
"""Request logging middleware"""

import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from .logging_config import get_logger

logger = get_logger("middleware")

REQUEST_ID_HEADER = "X-Request-ID"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id and log method, path, status and duration."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:12]
        started = time.perf_counter()
        client = request.client.host if request.client else "unknown"
        logger.info(f"[REQUEST] id={request_id} {request.method} {request.url.path} client={client}")

        try:
            response = await call_next(request)
        except Exception as e:
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.error(
                f"[ERROR] id={request_id} {request.method} {request.url.path} "
                f"after {elapsed_ms:.2f}ms: {e}",
                exc_info=True
            )
            raise

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            f"[RESPONSE] id={request_id} {request.method} {request.url.path} "
            f"status={response.status_code} {elapsed_ms:.2f}ms"
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Process-Time"] = f"{elapsed_ms:.2f}ms"
        return response
