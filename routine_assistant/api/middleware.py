"""Middleware for request processing and observability."""

from uuid import uuid4

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Tag every HTTP request with a correlation ID.

    - Reuses the X-Correlation-Id header when the client sends one
    - Binds the ID, and the X-User-Id caller when present, to the structlog context
    - Echoes the ID back in the X-Correlation-Id response header
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        correlation_id = request.headers.get("X-Correlation-Id", str(uuid4()))
        request.state.correlation_id = correlation_id

        structlog.contextvars.clear_contextvars()
        context = {"correlation_id": correlation_id}
        if request.headers.get("X-User-Id"):
            context["user_id"] = request.headers["X-User-Id"]
        structlog.contextvars.bind_contextvars(**context)

        response = await call_next(request)
        response.headers["X-Correlation-Id"] = correlation_id
        return response
