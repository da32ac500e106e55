"""
Build the SDK providers that ship spans, metrics and log records to exporters.

Spans go through a BatchSpanProcessor (or SimpleSpanProcessor when batching
is off), metrics through a PeriodicExportingMetricReader and log records
through a BatchLogRecordProcessor. The SDK owns the queues, the background
threads and the exporters' bounded retries. Delivery is at-most-once: a
failed export is logged by the SDK and dropped, and nothing here blocks or
raises into the request path.

Providers are created with shutdown_on_exit=False; Telemetry.shutdown()
decides when they flush and stop.
"""

import logging
import math
from collections.abc import Sequence

from opentelemetry.sdk._logs import LoggerProvider
from opentelemetry.sdk._logs.export import (
    BatchLogRecordProcessor,
    LogRecordExporter,
    SimpleLogRecordProcessor,
)
from opentelemetry.sdk.metrics import MeterProvider, TraceBasedExemplarFilter
from opentelemetry.sdk.metrics.export import (
    MetricExporter,
    MetricReader,
    PeriodicExportingMetricReader,
)
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SimpleSpanProcessor,
    SpanExporter,
)

logger = logging.getLogger(__name__)

DEFAULT_EXPORT_TIMEOUT_MS = 10_000


def create_tracer_provider(
    resource: Resource,
    span_exporter: SpanExporter | None = None,
    batch: bool = True,
    export_timeout_ms: int = DEFAULT_EXPORT_TIMEOUT_MS,
) -> TracerProvider:
    """TracerProvider with one span processor for span_exporter (none if it is None)."""
    provider = TracerProvider(resource=resource, shutdown_on_exit=False)
    if span_exporter is not None:
        if batch:
            processor = BatchSpanProcessor(span_exporter, export_timeout_millis=export_timeout_ms)
        else:
            processor = SimpleSpanProcessor(span_exporter)
        provider.add_span_processor(processor)
    return provider


def create_meter_provider(
    resource: Resource,
    metric_exporter: MetricExporter | None = None,
    export_interval_ms: int = 5000,
    periodic: bool = True,
    export_timeout_ms: int = DEFAULT_EXPORT_TIMEOUT_MS,
    readers: Sequence[MetricReader] = (),
) -> MeterProvider:
    """
    MeterProvider with trace-based exemplars.

    metric_exporter is driven by a PeriodicExportingMetricReader every
    export_interval_ms; with periodic=False there is no background thread and
    metrics leave only on force_flush(). Extra readers (e.g. an
    InMemoryMetricReader) are attached as given.
    """
    metric_readers = list(readers)
    if metric_exporter is not None:
        metric_readers.append(
            PeriodicExportingMetricReader(
                metric_exporter,
                export_interval_millis=export_interval_ms if periodic else math.inf,
                export_timeout_millis=export_timeout_ms,
            )
        )
    return MeterProvider(
        metric_readers=metric_readers,
        resource=resource,
        exemplar_filter=TraceBasedExemplarFilter(),
        shutdown_on_exit=False,
    )


def create_logger_provider(
    resource: Resource,
    log_exporter: LogRecordExporter | None = None,
    batch: bool = True,
    export_timeout_ms: int = DEFAULT_EXPORT_TIMEOUT_MS,
) -> LoggerProvider:
    """LoggerProvider with one log record processor for log_exporter."""
    provider = LoggerProvider(resource=resource, shutdown_on_exit=False)
    if log_exporter is not None:
        if batch:
            processor = BatchLogRecordProcessor(
                log_exporter, export_timeout_millis=export_timeout_ms
            )
        else:
            processor = SimpleLogRecordProcessor(log_exporter)
        provider.add_log_record_processor(processor)
    return provider


def shutdown_exporters(*exporters) -> None:
    """Shut down exporters that were never handed to a provider. None entries are skipped."""
    for exporter in exporters:
        if exporter is None:
            continue
        try:
            exporter.shutdown()
        except Exception:
            logger.exception("Failed to shut down %s", type(exporter).__name__)
