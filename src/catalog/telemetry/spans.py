"""
Span helpers over the OpenTelemetry SDK tracer.

Telemetry builds one TracerProvider per process and hands it to Tracer; the
provider is never installed as the global one. The active span lives in the
OpenTelemetry context, which asyncio tasks and asyncio.to_thread() copy, so a
span started after an await or on a worker thread still finds its parent.

Two ways to open a span:

    with tracer.start_span("CreateProduct.BusinessLogic") as span:
        span.set_attribute("product.name", name)

    scope = tracer.begin("SELECT main", kind=SpanKind.CLIENT)
    ...
    scope.end()

The second form is for event hooks that open and close a span in separate
callbacks. With tracing disabled every span is INVALID_SPAN, which accepts
and ignores all calls.
"""

import contextlib
from collections.abc import Iterator, Mapping
from typing import Any

from opentelemetry import context as otel_context
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.trace import INVALID_SPAN, Span, SpanKind, Status, StatusCode

from .. import __version__

SCOPE_NAME = "catalog"


def set_error(span: Span, error: BaseException, description: str | None = None) -> None:
    """Mark span as failed: status Error plus an error.type attribute."""
    span.set_status(Status(StatusCode.ERROR, description or str(error) or type(error).__name__))
    span.set_attribute("error.type", type(error).__name__)


class SpanScope:
    """A span made current by Tracer.begin() until end() is called."""

    def __init__(self, span: Span, token: object | None = None):
        self.span = span
        self._token = token

    def end(self) -> None:
        """End the span and restore the previous context. Later calls do nothing."""
        if self._token is None:
            return
        token, self._token = self._token, None
        try:
            self.span.end()
        finally:
            otel_context.detach(token)


class Tracer:
    """Starts spans for the catalog from one TracerProvider (or none, when disabled)."""

    def __init__(self, provider: TracerProvider | None = None, record_exceptions: bool = True):
        self.provider = provider
        self.record_exceptions = record_exceptions
        if provider is not None:
            self._tracer = provider.get_tracer(SCOPE_NAME, __version__)
        else:
            self._tracer = trace.NoOpTracer()

    @property
    def enabled(self) -> bool:
        return self.provider is not None

    @contextlib.contextmanager
    def start_span(
        self,
        name: str,
        kind: SpanKind = SpanKind.INTERNAL,
        attributes: Mapping[str, Any] | None = None,
    ) -> Iterator[Span]:
        """
        Run the block inside a new span that is current for its duration.

        The parent is whatever span is current when the block starts; with
        none, the span is the root of a new trace. An exception leaving the
        block is recorded as an event (when record_exceptions is on) and sets
        status Error unless the block already set a status.
        """
        with self._tracer.start_as_current_span(
            name,
            kind=kind,
            attributes=attributes,
            record_exception=False,
            set_status_on_exception=False,
        ) as span:
            try:
                yield span
            except BaseException as e:
                self._fail(span, e)
                raise

    def begin(
        self,
        name: str,
        kind: SpanKind = SpanKind.INTERNAL,
        attributes: Mapping[str, Any] | None = None,
    ) -> SpanScope:
        """Start a span, make it current, and return the scope that ends it."""
        span = self._tracer.start_span(name, kind=kind, attributes=attributes)
        token = otel_context.attach(trace.set_span_in_context(span))
        return SpanScope(span, token)

    def _fail(self, span: Span, error: BaseException) -> None:
        if not span.is_recording():
            return
        if self.record_exceptions:
            span.record_exception(error)
        if span.status.status_code is StatusCode.UNSET:
            set_error(span, error)


NOOP_SCOPE = SpanScope(INVALID_SPAN)
