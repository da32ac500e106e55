"""
The process-wide observability context.

Telemetry owns one TracerProvider, MeterProvider and LoggerProvider built on
the service resource, plus the catalog's Tracer and MetricRegistry over them.
It is constructed once at startup and passed explicitly to everything that
starts spans or records metrics; none of the providers is installed as the
OpenTelemetry global.
"""

import logging
from collections.abc import Sequence

from opentelemetry.sdk._logs.export import LogRecordExporter
from opentelemetry.sdk.metrics.export import MetricExporter, MetricReader
from opentelemetry.sdk.trace.export import SpanExporter

from .. import __version__
from ..config import TelemetrySettings
from .logs import attach_log_handler, detach_log_handler
from .metrics import MetricRegistry
from .pipeline import (
    DEFAULT_EXPORT_TIMEOUT_MS,
    create_logger_provider,
    create_meter_provider,
    create_tracer_provider,
)
from .resource import ResourceDescriptor
from .spans import SCOPE_NAME, Tracer

logger = logging.getLogger(__name__)


class Telemetry:
    """Tracer + metric registry + the three SDK providers for one process."""

    def __init__(
        self,
        resource: ResourceDescriptor,
        span_exporter: SpanExporter | None = None,
        metric_exporter: MetricExporter | None = None,
        log_exporter: LogRecordExporter | None = None,
        tracing_enabled: bool = True,
        record_exceptions: bool = True,
        batch_spans: bool = True,
        metric_export_interval_ms: int = 5000,
        export_timeout_ms: int = DEFAULT_EXPORT_TIMEOUT_MS,
        periodic_metrics: bool = True,
        metric_readers: Sequence[MetricReader] = (),
    ):
        self.resource = resource
        otel_resource = resource.to_resource()
        # Built even when tracing is off so the span exporter still gets shut down.
        self.tracer_provider = create_tracer_provider(
            otel_resource, span_exporter, batch_spans, export_timeout_ms
        )
        self.meter_provider = create_meter_provider(
            otel_resource,
            metric_exporter,
            export_interval_ms=metric_export_interval_ms,
            periodic=periodic_metrics,
            export_timeout_ms=export_timeout_ms,
            readers=metric_readers,
        )
        self.logger_provider = None
        self._log_handler = None
        if log_exporter is not None:
            self.logger_provider = create_logger_provider(
                otel_resource, log_exporter, batch_spans, export_timeout_ms
            )
            self._log_handler = attach_log_handler(self.logger_provider)

        self.tracer = Tracer(
            self.tracer_provider if tracing_enabled else None,
            record_exceptions=record_exceptions,
        )
        self.metrics = MetricRegistry(self.meter_provider.get_meter(SCOPE_NAME, __version__))
        self._shutdown = False
        logger.info(
            "Telemetry started for %s %s (tracing %s)",
            resource.service_name,
            resource.service_version,
            "enabled" if tracing_enabled else "disabled",
        )

    @classmethod
    def from_settings(
        cls,
        settings: TelemetrySettings,
        span_exporter: SpanExporter | None = None,
        metric_exporter: MetricExporter | None = None,
        log_exporter: LogRecordExporter | None = None,
        periodic_metrics: bool = True,
        metric_readers: Sequence[MetricReader] = (),
    ) -> "Telemetry":
        return cls(
            ResourceDescriptor(settings.service_name, settings.service_version),
            span_exporter=span_exporter,
            metric_exporter=metric_exporter,
            log_exporter=log_exporter,
            tracing_enabled=settings.tracing_enabled,
            record_exceptions=settings.record_exceptions,
            batch_spans=settings.batch_spans,
            metric_export_interval_ms=settings.metric_export_interval_ms,
            export_timeout_ms=settings.export_timeout_ms,
            periodic_metrics=periodic_metrics,
            metric_readers=metric_readers,
        )

    def force_flush(self, timeout_millis: int = 30_000) -> bool:
        """Export everything pending on all three signals now."""
        try:
            flushed = self.meter_provider.force_flush(timeout_millis)
        except Exception:
            logger.exception("Metric flush failed")
            flushed = False
        flushed = self.tracer_provider.force_flush(timeout_millis) and flushed
        if self.logger_provider is not None:
            flushed = self.logger_provider.force_flush(timeout_millis) and flushed
        return flushed

    def shutdown(self) -> None:
        """Flush and stop exporting; later calls do nothing."""
        if self._shutdown:
            return
        self._shutdown = True
        if self._log_handler is not None:
            detach_log_handler(self._log_handler)
        self.force_flush()
        self.tracer_provider.shutdown()
        try:
            self.meter_provider.shutdown()
        except Exception:
            logger.exception("Metric reader shutdown failed")
        if self.logger_provider is not None:
            self.logger_provider.shutdown()
