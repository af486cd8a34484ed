from __future__ import annotations

import logging
from time import perf_counter

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from src.ops.events import (
    CORRELATION_ID_HEADER,
    new_correlation_id,
    reset_correlation_id,
    set_correlation_id,
)

logger = logging.getLogger(__name__)


def _request_summary(request: Request, duration_ms: int) -> dict[str, object]:
    principal = getattr(request.state, "principal", None)
    return {
        "method": request.method,
        "path": request.url.path,
        "path_kind": getattr(request.state, "path_kind", "excluded"),
        "principal_id": getattr(principal, "entity_id", None),
        "duration_ms": duration_ms,
    }


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Outermost middleware: correlation id plus one log line per request."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        correlation_id = request.headers.get(CORRELATION_ID_HEADER) or new_correlation_id()
        token = set_correlation_id(correlation_id)
        request.state.correlation_id = correlation_id
        start = perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            summary = _request_summary(request, int((perf_counter() - start) * 1000))
            logger.exception(
                "Request failed %s %s",
                request.method,
                request.url.path,
                extra={"event_type": "api.request.failed", "correlation_id": correlation_id, "ops_payload": summary},
            )
            raise
        else:
            summary = _request_summary(request, int((perf_counter() - start) * 1000))
            summary["status_code"] = response.status_code
            response.headers["X-Request-Id"] = correlation_id
            logger.info(
                "Request completed %s %s -> %d (%dms)",
                request.method,
                request.url.path,
                response.status_code,
                summary["duration_ms"],
                extra={
                    "event_type": "api.request.completed",
                    "correlation_id": correlation_id,
                    "ops_payload": summary,
                },
            )
            return response
        finally:
            reset_correlation_id(token)
