"""
File-based exporters for offline analysis and debugging.

Writes one JSON object per line:
- spans with ids, status, attributes, exception events and resource
- metric data points with bucket counts, bounds and exemplar ids,
  so a slow bucket can be followed to its trace without a collector
- log records with severity, body and the trace/span ids of the request
  that logged them
"""

import json
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from opentelemetry.sdk._logs import ReadableLogRecord
from opentelemetry.sdk._logs.export import LogRecordExporter, LogRecordExportResult
from opentelemetry.sdk.metrics.export import (
    HistogramDataPoint,
    MetricExporter,
    MetricExportResult,
    MetricsData,
)
from opentelemetry.sdk.trace import ReadableSpan
from opentelemetry.sdk.trace.export import SpanExporter, SpanExportResult

logger = logging.getLogger(__name__)


def _hex(value: int | None, width: int) -> str | None:
    return format(value, f"0{width}x") if value else None


def _span_to_dict(span: ReadableSpan) -> dict[str, Any]:
    return {
        "name": span.name,
        "trace_id": _hex(span.context.trace_id, 32),
        "span_id": _hex(span.context.span_id, 16),
        "parent_span_id": _hex(span.parent.span_id, 16) if span.parent else None,
        "kind": span.kind.name if span.kind else "INTERNAL",
        "start_time": span.start_time,
        "end_time": span.end_time,
        "status": {
            "status_code": span.status.status_code.name,
            "description": span.status.description,
        },
        "attributes": dict(span.attributes) if span.attributes else {},
        "events": [
            {
                "name": event.name,
                "timestamp": event.timestamp,
                "attributes": dict(event.attributes) if event.attributes else {},
            }
            for event in span.events
        ],
        "resource": dict(span.resource.attributes) if span.resource else {},
    }


def _exemplar_to_dict(exemplar: Any) -> dict[str, Any]:
    return {
        "value": exemplar.value,
        "time": exemplar.time_unix_nano,
        "trace_id": _hex(exemplar.trace_id, 32),
        "span_id": _hex(exemplar.span_id, 16),
    }


def _point_to_dict(dp: Any) -> dict[str, Any]:
    point: dict[str, Any] = {
        "attributes": dict(dp.attributes) if dp.attributes else {},
        "start_time": dp.start_time_unix_nano,
        "time": dp.time_unix_nano,
    }
    if isinstance(dp, HistogramDataPoint):
        point["count"] = dp.count
        point["sum"] = dp.sum
        point["min"] = dp.min
        point["max"] = dp.max
        point["explicit_bounds"] = list(dp.explicit_bounds)
        point["bucket_counts"] = list(dp.bucket_counts)
    else:
        point["value"] = dp.value
    point["exemplars"] = [_exemplar_to_dict(e) for e in getattr(dp, "exemplars", ()) or ()]
    return point


class _JsonLinesFile:
    def __init__(self, output_path: str | Path, append: bool = True):
        self.output_path = Path(output_path)
        self.append = append
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        if not append and self.output_path.exists():
            self.output_path.unlink()

    def write(self, records: list[dict[str, Any]]) -> None:
        with open(self.output_path, "a", encoding="utf-8") as f:
            for record in records:
                f.write(json.dumps(record, default=str) + "\n")


class FileSpanExporter(SpanExporter):
    """Export spans to a JSON-lines file."""

    def __init__(self, output_path: str | Path, append: bool = True):
        self._file = _JsonLinesFile(output_path, append)
        self.output_path = self._file.output_path

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        try:
            self._file.write([_span_to_dict(span) for span in spans])
        except (OSError, TypeError, ValueError):
            logger.exception("Failed to write %d spans to %s", len(spans), self.output_path)
            return SpanExportResult.FAILURE
        return SpanExportResult.SUCCESS

    def shutdown(self) -> None:
        pass

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return True


class FileMetricExporter(MetricExporter):
    """Export metric snapshots to a JSON-lines file (one line per metric)."""

    def __init__(self, output_path: str | Path, append: bool = True):
        super().__init__()
        self._file = _JsonLinesFile(output_path, append)
        self.output_path = self._file.output_path

    def export(
        self,
        metrics_data: MetricsData,
        timeout_millis: float = 10000,
        **kwargs,
    ) -> MetricExportResult:
        records = []
        for resource_metrics in metrics_data.resource_metrics:
            resource_attrs = (
                dict(resource_metrics.resource.attributes) if resource_metrics.resource else {}
            )
            for scope_metrics in resource_metrics.scope_metrics:
                for metric in scope_metrics.metrics:
                    records.append(
                        {
                            "name": metric.name,
                            "description": metric.description,
                            "unit": metric.unit,
                            "resource": resource_attrs,
                            "data_points": [_point_to_dict(dp) for dp in metric.data.data_points],
                        }
                    )
        try:
            self._file.write(records)
        except (OSError, TypeError, ValueError):
            logger.exception("Failed to write %d metrics to %s", len(records), self.output_path)
            return MetricExportResult.FAILURE
        return MetricExportResult.SUCCESS

    def shutdown(self, timeout_millis: float = 30000, **kwargs) -> None:
        pass

    def force_flush(self, timeout_millis: float = 10000) -> bool:
        return True


def _log_to_dict(item: ReadableLogRecord) -> dict[str, Any]:
    record = item.log_record
    severity = record.severity_number
    return {
        "timestamp": record.timestamp,
        "observed_timestamp": record.observed_timestamp,
        "severity_number": severity.value if severity is not None else None,
        "severity_text": record.severity_text,
        "body": str(record.body) if record.body is not None else None,
        "attributes": dict(record.attributes) if record.attributes else {},
        "trace_id": _hex(record.trace_id, 32),
        "span_id": _hex(record.span_id, 16),
        "resource": dict(item.resource.attributes) if item.resource else {},
    }


class FileLogExporter(LogRecordExporter):
    """Export log records to a JSON-lines file."""

    def __init__(self, output_path: str | Path, append: bool = True):
        self._file = _JsonLinesFile(output_path, append)
        self.output_path = self._file.output_path

    def export(self, batch: Sequence[ReadableLogRecord]) -> LogRecordExportResult:
        try:
            self._file.write([_log_to_dict(item) for item in batch])
        except (OSError, TypeError, ValueError):
            logger.exception("Failed to write %d log records to %s", len(batch), self.output_path)
            return LogRecordExportResult.FAILURE
        return LogRecordExportResult.SUCCESS

    def shutdown(self) -> None:
        pass

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return True
