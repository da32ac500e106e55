"""
Metric instruments used by the catalog.

Registered once at startup via register_catalog_instruments(). Names follow
the OpenTelemetry HTTP/database semantic conventions where one exists.
"""

from dataclasses import dataclass

from opentelemetry.metrics import Counter, Histogram

from .config import DEFAULT_DURATION_BUCKETS
from .telemetry.metrics import MetricRegistry

HTTP_SERVER_DURATION = "http.server.request.duration"
HTTP_SERVER_REQUESTS = "http.server.requests"
DB_CLIENT_DURATION = "db.client.operation.duration"
CATALOG_OPERATION_DURATION = "catalog.operation.duration"
CATALOG_PRODUCTS_CREATED = "catalog.products.created"


@dataclass(frozen=True)
class CatalogInstruments:
    request_duration: Histogram
    request_count: Counter
    db_duration: Histogram
    operation_duration: Histogram
    products_created: Counter


def register_catalog_instruments(
    registry: MetricRegistry,
    duration_buckets: tuple[float, ...] = DEFAULT_DURATION_BUCKETS,
) -> CatalogInstruments:
    """Register (or re-use) every catalog instrument.

    Raises InstrumentConflictError if a name is already registered with other
    boundaries; that is a startup configuration error.
    """
    return CatalogInstruments(
        request_duration=registry.register_histogram(
            HTTP_SERVER_DURATION,
            duration_buckets,
            description="Duration of inbound HTTP requests",
            unit="s",
        ),
        request_count=registry.register_counter(
            HTTP_SERVER_REQUESTS,
            description="Inbound HTTP requests by route and status class",
        ),
        db_duration=registry.register_histogram(
            DB_CLIENT_DURATION,
            duration_buckets,
            description="Duration of database round trips",
            unit="s",
        ),
        operation_duration=registry.register_histogram(
            CATALOG_OPERATION_DURATION,
            duration_buckets,
            description="Duration of catalog business operations",
            unit="s",
        ),
        products_created=registry.register_counter(
            CATALOG_PRODUCTS_CREATED,
            description="Products created",
        ),
    )
