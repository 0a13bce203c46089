import logging
import time
import uuid
from urllib.parse import urlencode

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from technique_calendar.core.logging import request_context

logger = logging.getLogger(__name__)

# Query parameters that must never be written to logs
SENSITIVE_QUERY_PARAMS = {"code", "state", "token", "access_token", "refresh_token"}


def safe_url(request: Request) -> str:
    """Request path plus query string with OAuth parameters masked."""
    if not request.query_params:
        return request.url.path
    params = [
        (key, "[REDACTED]" if key in SENSITIVE_QUERY_PARAMS else value)
        for key, value in request.query_params.multi_items()
    ]
    return f"{request.url.path}?{urlencode(params)}"


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    Middleware that adds a unique request ID to each request.

    The request ID is added to the request state and as a response header,
    and each request is logged with its timing.
    """

    def __init__(self, app: ASGIApp, header_name: str = "X-Request-ID"):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get(self.header_name) or str(uuid.uuid4())
        request.state.request_id = request_id

        start_time = time.time()

        try:
            response = await call_next(request)
            response.headers[self.header_name] = request_id
            self._log_request(request, response, start_time)
            return response

        except Exception as exc:
            self._log_exception(request, exc, start_time)
            raise

    def _log_request(
        self, request: Request, response: Response, start_time: float
    ) -> None:
        """Log details about the request and response."""
        status_code = response.status_code
        log_dict = {
            "request_id": getattr(request.state, "request_id", "unknown"),
            "method": request.method,
            "url": safe_url(request),
            "status_code": status_code,
            "process_time_ms": round((time.time() - start_time) * 1000, 2),
            "client_host": request.client.host if request.client else "unknown",
        }

        if status_code >= 500:
            logger.error(f"Request failed: {log_dict}")
        elif status_code >= 400:
            logger.warning(f"Request error: {log_dict}")
        else:
            logger.info(f"Request completed: {log_dict}")

    def _log_exception(
        self, request: Request, exc: Exception, start_time: float
    ) -> None:
        """Log unhandled exceptions."""
        log_dict = {
            "request_id": getattr(request.state, "request_id", "unknown"),
            "method": request.method,
            "url": safe_url(request),
            "process_time_ms": round((time.time() - start_time) * 1000, 2),
            "client_host": request.client.host if request.client else "unknown",
            "exception": type(exc).__name__,
        }

        logger.error(f"Unhandled exception during request: {log_dict}", exc_info=True)


class LogContextMiddleware(BaseHTTPMiddleware):
    """
    Middleware that adds request information to log records.

    Sets the contextvar read by the logging filters so every record created
    while the request is processed carries the request id and path.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        context = {
            "request_id": getattr(request.state, "request_id", "unknown"),
            "method": request.method,
            "path": request.url.path,
            "client_host": request.client.host if request.client else "unknown",
        }
        token = request_context.set(context)

        try:
            return await call_next(request)
        finally:
            request_context.reset(token)


def register_middlewares(app: FastAPI) -> None:
    """
    Register all middlewares with the FastAPI app.

    Note: Middleware is executed in reverse order of registration
    (last registered is executed first), so the request id is assigned
    before the log context is built.

    Args:
        app: The FastAPI application instance
    """
    app.add_middleware(LogContextMiddleware)
    app.add_middleware(RequestIdMiddleware, header_name="X-Request-ID")
