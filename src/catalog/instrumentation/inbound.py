"""
Automatic spans for inbound requests.

The HTTP layer calls the adapter's hooks around each handler:

  begin(request)    start a SERVER span named for the route template
  enrich(span, ...) tag scheme, host, content length (and method/route)
  end(scope, ...)   tag the status code, record request metrics, close

handle() wires the three around an async handler. A failing hook is logged
and skipped; the handler's result or exception always reaches the caller
unchanged.
"""

import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from opentelemetry.trace import Span, SpanKind, Status, StatusCode

from ..instruments import HTTP_SERVER_DURATION, HTTP_SERVER_REQUESTS
from ..messages import Request, Response, status_class
from ..telemetry.provider import Telemetry
from ..telemetry.spans import NOOP_SCOPE, SpanScope, set_error

logger = logging.getLogger(__name__)

Handler = Callable[[Request], Awaitable[Response]]


class InboundInstrumentation:
    """Request-boundary span adapter."""

    def __init__(self, telemetry: Telemetry, record_exceptions: bool = True):
        self._telemetry = telemetry
        self._record_exceptions = record_exceptions

    def begin(self, request: Request) -> SpanScope:
        scope = self._telemetry.tracer.begin(request.route, kind=SpanKind.SERVER)
        try:
            self.enrich(scope.span, request)
        except Exception:
            logger.exception("Failed to enrich request span for %s", request.route)
        return scope

    def enrich(self, span: Span, request: Request) -> None:
        span.set_attribute("http.request.method", request.method)
        span.set_attribute("http.route", request.route)
        span.set_attribute("url.path", request.path or request.route)
        span.set_attribute("http.scheme", request.scheme)
        span.set_attribute("http.host", request.host)
        if request.content_length is not None:
            span.set_attribute("http.request_content_length", request.content_length)

    def end(
        self,
        scope: SpanScope,
        request: Request,
        duration_s: float,
        status_code: int | None = None,
        error: BaseException | None = None,
    ) -> None:
        """Finish the request span. Metrics are recorded while the span is still current."""
        span = scope.span
        if status_code is not None:
            span.set_attribute("http.response.status_code", status_code)
        if error is not None:
            if self._record_exceptions:
                span.record_exception(error)
            set_error(span, error)
        elif status_code is not None and status_code >= 500:
            span.set_status(Status(StatusCode.ERROR, f"HTTP {status_code}"))

        dimensions: dict[str, Any] = {
            "http.request.method": request.method,
            "http.route": request.route,
        }
        if status_code is not None:
            dimensions["http.response.status_code"] = status_code
            dimensions["http.response.status_class"] = status_class(status_code)
        if error is not None:
            dimensions["error.type"] = type(error).__name__
        metrics = self._telemetry.metrics
        metrics.record(HTTP_SERVER_DURATION, duration_s, dimensions)
        metrics.record(HTTP_SERVER_REQUESTS, 1, dimensions)
        scope.end()

    async def handle(self, request: Request, handler: Handler) -> Response:
        """Run handler(request) inside a request span."""
        scope = self._begin_safely(request)
        started = time.perf_counter()
        try:
            response = await handler(request)
        except BaseException as e:
            status = 500 if isinstance(e, Exception) else None
            self._end_safely(scope, request, time.perf_counter() - started, status, e)
            raise
        self._end_safely(scope, request, time.perf_counter() - started, response.status_code)
        return response

    def _begin_safely(self, request: Request) -> SpanScope:
        try:
            return self.begin(request)
        except Exception:
            logger.exception("Inbound instrumentation failed to start span for %s", request.route)
            return NOOP_SCOPE

    def _end_safely(
        self,
        scope: SpanScope,
        request: Request,
        duration_s: float,
        status_code: int | None,
        error: BaseException | None = None,
    ) -> None:
        try:
            self.end(scope, request, duration_s, status_code, error)
        except Exception:
            logger.exception("Inbound instrumentation failed to end span for %s", request.route)
            scope.end()
