"""
OTLP exporters for traces, metrics and logs.

Factory functions build one exporter per signal for a collector endpoint
over either protocol:

  http  -> http://collector:4318/v1/traces, /v1/metrics, /v1/logs
  grpc  -> collector:4317 (scheme stripped, insecure when http://)
"""

from typing import Any

from opentelemetry.sdk._logs.export import LogRecordExporter
from opentelemetry.sdk.metrics.export import MetricExporter
from opentelemetry.sdk.trace.export import SpanExporter

from ..config import ConfigurationError


def _signal_endpoint(endpoint: str, signal: str) -> str:
    """Append /v1/<signal> to an OTLP/HTTP base endpoint unless already present."""
    base = endpoint.rstrip("/")
    suffix = f"/v1/{signal}"
    return base if base.endswith(suffix) else f"{base}{suffix}"


def _grpc_target(endpoint: str) -> tuple[str, bool]:
    """Return (host:port, insecure) for a gRPC exporter."""
    insecure = not endpoint.startswith("https://")
    return endpoint.replace("http://", "").replace("https://", "").rstrip("/"), insecure


def create_otlp_trace_exporter(
    endpoint: str = "http://localhost:4318",
    protocol: str = "http",
    headers: dict[str, str] | None = None,
    **kwargs: Any,
) -> SpanExporter:
    """
    Create an OTLP span exporter.

    Args:
        endpoint: Collector base URL
        protocol: "http" or "grpc"
        headers: Optional headers sent with every export
        **kwargs: Passed through to the exporter (e.g. timeout)

    Returns:
        Configured SpanExporter
    """
    if protocol == "grpc":
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

        target, insecure = _grpc_target(endpoint)
        return OTLPSpanExporter(endpoint=target, insecure=insecure, headers=headers, **kwargs)
    if protocol == "http":
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import (  # type: ignore[assignment]
            OTLPSpanExporter,
        )

        return OTLPSpanExporter(
            endpoint=_signal_endpoint(endpoint, "traces"), headers=headers, **kwargs
        )
    raise ConfigurationError(f"Unsupported OTLP protocol: {protocol}")


def create_otlp_metric_exporter(
    endpoint: str = "http://localhost:4318",
    protocol: str = "http",
    headers: dict[str, str] | None = None,
    **kwargs: Any,
) -> MetricExporter:
    """Create an OTLP metric exporter; same arguments as create_otlp_trace_exporter."""
    if protocol == "grpc":
        from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter

        target, insecure = _grpc_target(endpoint)
        return OTLPMetricExporter(endpoint=target, insecure=insecure, headers=headers, **kwargs)
    if protocol == "http":
        from opentelemetry.exporter.otlp.proto.http.metric_exporter import (  # type: ignore[assignment]
            OTLPMetricExporter,
        )

        return OTLPMetricExporter(
            endpoint=_signal_endpoint(endpoint, "metrics"), headers=headers, **kwargs
        )
    raise ConfigurationError(f"Unsupported OTLP protocol: {protocol}")


def create_otlp_log_exporter(
    endpoint: str = "http://localhost:4318",
    protocol: str = "http",
    headers: dict[str, str] | None = None,
    **kwargs: Any,
) -> LogRecordExporter:
    """Create an OTLP log exporter; same arguments as create_otlp_trace_exporter."""
    if protocol == "grpc":
        from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter

        target, insecure = _grpc_target(endpoint)
        return OTLPLogExporter(endpoint=target, insecure=insecure, headers=headers, **kwargs)
    if protocol == "http":
        from opentelemetry.exporter.otlp.proto.http._log_exporter import (  # type: ignore[assignment]
            OTLPLogExporter,
        )

        return OTLPLogExporter(
            endpoint=_signal_endpoint(endpoint, "logs"), headers=headers, **kwargs
        )
    raise ConfigurationError(f"Unsupported OTLP protocol: {protocol}")
