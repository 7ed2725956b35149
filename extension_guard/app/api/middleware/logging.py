"""
Request logging middleware.

Assigns each request a correlation ID (taken from the X-Correlation-ID,
X-Trace-ID or X-Request-ID header when present), binds it to the logging
context for the duration of the request, echoes it on the response and
logs request start and completion with timing.
"""

import time
import uuid
from contextlib import nullcontext
from typing import Callable, List, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from ...utils.logging import correlation_context, get_logger

logger = get_logger(__name__)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Structured request/response logging with correlation IDs."""

    def __init__(
        self,
        app: ASGIApp,
        excluded_paths: Optional[List[str]] = None,
        slow_request_threshold_ms: float = 1000.0,
        enable_correlation_ids: bool = True
    ):
        """
        Initialize logging middleware.

        Args:
            app: ASGI application
            excluded_paths: Path prefixes that are not logged
            slow_request_threshold_ms: Threshold for slow request warnings
            enable_correlation_ids: Enable correlation ID generation
        """
        super().__init__(app)
        self.excluded_paths = list(excluded_paths or [])
        self.slow_request_threshold_ms = slow_request_threshold_ms
        self.enable_correlation_ids = enable_correlation_ids

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()

        correlation_id = self._generate_correlation_id(request)
        if self.enable_correlation_ids:
            request.state.correlation_id = correlation_id
            scope = correlation_context(correlation_id)
        else:
            scope = nullcontext()

        with scope:
            response = await self._process(request, call_next, correlation_id, start_time)

        if self.enable_correlation_ids:
            response.headers["X-Correlation-ID"] = correlation_id
        return response

    async def _process(
        self,
        request: Request,
        call_next: Callable,
        correlation_id: str,
        start_time: float
    ) -> Response:
        should_log = self._should_log_request(request)
        if should_log:
            logger.info(
                f"Request started: {request.method} {request.url.path}",
                method=request.method,
                path=request.url.path,
                client_ip=request.client.host if request.client else "unknown"
            )

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "Request processing failed",
                method=request.method,
                path=request.url.path,
                error_type=type(exc).__name__,
                error_message=str(exc)
            )
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000
        if should_log:
            log = logger.warning if duration_ms > self.slow_request_threshold_ms else logger.info
            log(
                f"Request completed: {request.method} {request.url.path}",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration_ms, 2),
                correlation_id=correlation_id
            )
        return response

    def _generate_correlation_id(self, request: Request) -> str:
        for header in ("X-Correlation-ID", "X-Trace-ID", "X-Request-ID"):
            existing_id = request.headers.get(header)
            if existing_id:
                return existing_id
        return f"req_{str(uuid.uuid4())[:8]}_{int(time.time())}"

    def _should_log_request(self, request: Request) -> bool:
        path = request.url.path
        return not any(path.startswith(excluded) for excluded in self.excluded_paths)
