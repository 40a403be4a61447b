"""Correlation ID middleware for request tracing.

Takes the X-Correlation-ID header from incoming requests or generates a new
ID. Pipeline logs and webhook responses use it as the request ID.
"""

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from billing.utils.logging import correlation_scope

CORRELATION_ID_HEADER = "X-Correlation-ID"


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Binds the correlation ID for the request and echoes it back."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        with correlation_scope(request.headers.get(CORRELATION_ID_HEADER)) as correlation_id:
            response = await call_next(request)
        response.headers[CORRELATION_ID_HEADER] = correlation_id
        return response
