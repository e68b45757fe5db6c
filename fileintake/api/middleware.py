"""FastAPI middleware components."""
import time
from typing import Awaitable, Callable
from uuid import uuid4

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from fileintake.core.logging import clear_log_context, get_logger, log_context

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
PROBE_PATHS = frozenset({"/health", "/live", "/ready"})


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tags each request with an id and logs its outcome.

    The id comes from the caller's ``X-Request-ID`` header when present
    and is echoed back along with ``X-Response-Time``. Probe requests are
    logged at debug so they do not drown out file traffic.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
        log_context(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            logger.exception("Request failed", duration_ms=_elapsed_ms(started))
            raise
        else:
            duration_ms = _elapsed_ms(started)
            fields = {
                "status_code": response.status_code,
                "duration_ms": duration_ms,
                "content_length": request.headers.get("content-length"),
            }
            if response.status_code >= 500:
                logger.error("Request completed", **fields)
            elif response.status_code >= 400:
                logger.warning("Request completed", **fields)
            elif request.url.path in PROBE_PATHS:
                logger.debug("Probe answered", **fields)
            else:
                logger.info("Request completed", **fields)

            response.headers[REQUEST_ID_HEADER] = request_id
            response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"
            return response
        finally:
            clear_log_context()


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)
