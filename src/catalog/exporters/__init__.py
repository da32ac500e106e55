"""Telemetry exporters for various backends."""

from .console_exporter import create_console_exporters
from .file_exporter import FileLogExporter, FileMetricExporter, FileSpanExporter
from .otlp_exporter import (
    create_otlp_log_exporter,
    create_otlp_metric_exporter,
    create_otlp_trace_exporter,
)

__all__ = [
    "create_otlp_trace_exporter",
    "create_otlp_metric_exporter",
    "create_otlp_log_exporter",
    "FileSpanExporter",
    "FileMetricExporter",
    "FileLogExporter",
    "create_console_exporters",
]
