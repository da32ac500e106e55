"""Tracing, metrics, logs and exemplar correlation on the OpenTelemetry SDK."""

from .exemplars import correlate
from .logs import attach_log_handler, configure_logging, detach_log_handler
from .metrics import (
    InstrumentConflictError,
    InstrumentDefinition,
    InstrumentKind,
    MetricRegistry,
    Observation,
)
from .pipeline import (
    create_logger_provider,
    create_meter_provider,
    create_tracer_provider,
    shutdown_exporters,
)
from .provider import Telemetry
from .resource import ResourceDescriptor
from .spans import NOOP_SCOPE, SpanScope, Tracer, set_error

__all__ = [
    "InstrumentConflictError",
    "InstrumentDefinition",
    "InstrumentKind",
    "MetricRegistry",
    "NOOP_SCOPE",
    "Observation",
    "ResourceDescriptor",
    "SpanScope",
    "Telemetry",
    "Tracer",
    "attach_log_handler",
    "configure_logging",
    "correlate",
    "create_logger_provider",
    "create_meter_provider",
    "create_tracer_provider",
    "detach_log_handler",
    "set_error",
    "shutdown_exporters",
]
