"""
Console exporters for local runs.

Prints spans, metric batches (including exemplars) and log records to stdout.
"""

from opentelemetry.sdk._logs.export import ConsoleLogRecordExporter
from opentelemetry.sdk.metrics.export import ConsoleMetricExporter
from opentelemetry.sdk.trace.export import ConsoleSpanExporter


def create_console_exporters() -> tuple[
    ConsoleSpanExporter, ConsoleMetricExporter, ConsoleLogRecordExporter
]:
    """
    Create console exporters for all three signals.

    Returns:
        Tuple of (span_exporter, metric_exporter, log_exporter)
    """
    return ConsoleSpanExporter(), ConsoleMetricExporter(), ConsoleLogRecordExporter()
