"""Shared fixtures: in-memory exporters and readers, bare providers and a wired app."""

import pytest
from opentelemetry.sdk._logs.export import InMemoryLogRecordExporter
from opentelemetry.sdk.metrics.export import (
    InMemoryMetricReader,
    MetricExporter,
    MetricExportResult,
    MetricsData,
)
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from catalog.app import CatalogApp
from catalog.config import TelemetrySettings
from catalog.products.service import NO_DELAYS
from catalog.telemetry.metrics import MetricRegistry
from catalog.telemetry.pipeline import create_meter_provider, create_tracer_provider
from catalog.telemetry.spans import Tracer

TEST_RESOURCE = Resource.create({"service.name": "test"})


class InMemoryMetricExporter(MetricExporter):
    """Keeps every exported MetricsData batch; can be told to fail."""

    def __init__(self, fail_times: int = 0):
        super().__init__()
        self.batches: list[MetricsData] = []
        self.calls = 0
        self.fail_times = fail_times
        self.shut_down = False

    def export(self, metrics_data, timeout_millis: float = 10000, **kwargs):
        self.calls += 1
        if self.calls <= self.fail_times:
            return MetricExportResult.FAILURE
        self.batches.append(metrics_data)
        return MetricExportResult.SUCCESS

    def force_flush(self, timeout_millis: float = 10000) -> bool:
        return True

    def shutdown(self, timeout_millis: float = 30000, **kwargs) -> None:
        self.shut_down = True

    def metrics(self) -> dict:
        """Latest exported metric per name."""
        latest = {}
        for batch in self.batches:
            for rm in batch.resource_metrics:
                for sm in rm.scope_metrics:
                    for metric in sm.metrics:
                        latest[metric.name] = metric
        return latest


class MetricSnapshot:
    """One collection from an InMemoryMetricReader, indexed by instrument name."""

    def __init__(self, metrics_data: MetricsData | None):
        self.by_name = {}
        if metrics_data is None:
            return
        for rm in metrics_data.resource_metrics:
            for sm in rm.scope_metrics:
                for metric in sm.metrics:
                    self.by_name[metric.name] = metric

    def points(self, name: str) -> list:
        metric = self.by_name.get(name)
        return list(metric.data.data_points) if metric is not None else []

    def point(self, name: str, attributes: dict | None = None):
        """The data point whose attributes include every given key/value, or None."""
        for point in self.points(name):
            if all(point.attributes.get(k) == v for k, v in (attributes or {}).items()):
                return point
        return None

    def count(self, name: str, attributes: dict | None = None) -> int:
        """Histogram observation count summed over matching points."""
        return sum(
            p.count
            for p in self.points(name)
            if all(p.attributes.get(k) == v for k, v in (attributes or {}).items())
        )

    def value(self, name: str, attributes: dict | None = None) -> float:
        """Counter value summed over matching points."""
        return sum(
            p.value
            for p in self.points(name)
            if all(p.attributes.get(k) == v for k, v in (attributes or {}).items())
        )

    def exemplars(self, name: str) -> list:
        return [e for p in self.points(name) for e in p.exemplars]


@pytest.fixture
def span_exporter() -> InMemorySpanExporter:
    return InMemorySpanExporter()


@pytest.fixture
def tracer_provider(span_exporter):
    provider = create_tracer_provider(TEST_RESOURCE, span_exporter, batch=False)
    yield provider
    provider.shutdown()


@pytest.fixture
def tracer(tracer_provider) -> Tracer:
    return Tracer(tracer_provider)


@pytest.fixture
def metric_reader() -> InMemoryMetricReader:
    return InMemoryMetricReader()


@pytest.fixture
def meter_provider(metric_reader):
    provider = create_meter_provider(TEST_RESOURCE, readers=[metric_reader])
    yield provider
    provider.shutdown()


@pytest.fixture
def registry(meter_provider) -> MetricRegistry:
    return MetricRegistry(meter_provider.get_meter("test"))


@pytest.fixture
def collect_metrics(metric_reader):
    """Collect from the in-memory reader now.

    Exemplars are reset by every collection, including the one a
    Telemetry.force_flush() triggers, so read them before flushing.
    """

    def _collect(reader: InMemoryMetricReader | None = None) -> MetricSnapshot:
        return MetricSnapshot((reader or metric_reader).get_metrics_data())

    return _collect


@pytest.fixture
def metric_exporter() -> InMemoryMetricExporter:
    return InMemoryMetricExporter()


@pytest.fixture
def metric_exporter_factory():
    """Build in-memory metric exporters, optionally failing the first N exports."""
    return InMemoryMetricExporter


@pytest.fixture
def log_exporter() -> InMemoryLogRecordExporter:
    return InMemoryLogRecordExporter()


@pytest.fixture
def settings() -> TelemetrySettings:
    return TelemetrySettings(batch_spans=False)


@pytest.fixture
def app(settings, span_exporter, metric_exporter, metric_reader):
    """A fully wired catalog on in-memory SQLite with no simulated delays."""
    catalog_app = CatalogApp.create(
        settings,
        span_exporter=span_exporter,
        metric_exporter=metric_exporter,
        delays=NO_DELAYS,
        periodic_metrics=False,
        metric_readers=[metric_reader],
    )
    # Drop the schema-creation spans emitted at startup.
    span_exporter.clear()
    yield catalog_app
    catalog_app.shutdown()


@pytest.fixture
def spans_named(span_exporter: InMemorySpanExporter):
    """Exported spans with the given name."""

    def _spans_named(name: str) -> list:
        return [s for s in span_exporter.get_finished_spans() if s.name == name]

    return _spans_named
