"""Tests for catalog operations and their business spans."""

import asyncio
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from opentelemetry import trace
from opentelemetry.trace import INVALID_SPAN, SpanKind, StatusCode

from catalog.app import CatalogApp
from catalog.instruments import CATALOG_OPERATION_DURATION, CATALOG_PRODUCTS_CREATED
from catalog.products.service import (
    NO_DELAYS,
    SIMULATED_ERROR_MESSAGE,
    InvalidOperationError,
    ProductValidationError,
)


@pytest.mark.parametrize("price", [Decimal("9.99"), 9.99, "9.99"])
async def test_create_product(app, spans_named, price) -> None:
    """Creating a product returns it with an id and tags the business span."""
    before = datetime.now(timezone.utc)
    product = await app.service.create_product("Widget", price)

    assert product.id > 0
    assert product.name == "Widget"
    assert product.price == Decimal("9.99")
    assert before <= product.created_at <= datetime.now(timezone.utc)

    (span,) = spans_named("CreateProduct.BusinessLogic")
    assert span.attributes["product.name"] == "Widget"
    assert span.attributes["product.price"] == 9.99
    assert span.attributes["product.created_id"] == product.id
    assert span.status.status_code == StatusCode.UNSET
    assert span.kind == SpanKind.INTERNAL


async def test_price_is_rounded_to_cents(app, spans_named) -> None:
    """The entity, the stored row and the span tag all carry the stored precision."""
    product = await app.service.create_product("Widget", "9.999")
    assert product.price == Decimal("10.00")

    stored = await app.service.get_product(product.id)
    assert stored.price == Decimal("10.00")
    assert stored.to_dict()["price"] == "10.00"

    (span,) = spans_named("CreateProduct.BusinessLogic")
    assert span.attributes["product.price"] == 10.0


async def test_half_cent_rounds_up(app) -> None:
    product = await app.service.create_product("Widget", Decimal("0.005"))
    assert product.price == Decimal("0.01")


async def test_created_at_is_utc_after_reload(app) -> None:
    product = await app.service.create_product("Widget", "1.00")
    stored = await app.service.get_product(product.id)
    assert stored.created_at.tzinfo is not None
    assert stored.created_at.utcoffset().total_seconds() == 0
    assert stored.created_at == product.created_at


async def test_create_product_counts_creations(app, collect_metrics) -> None:
    await app.service.create_product("A", "1.00")
    await app.service.create_product("B", 2)
    assert collect_metrics().value(CATALOG_PRODUCTS_CREATED) == 2
    definition = app.telemetry.metrics.get(CATALOG_PRODUCTS_CREATED)
    assert definition.instrument is app.instruments.products_created


async def test_database_spans_are_children_of_business_span(app, span_exporter) -> None:
    await app.service.create_product("Widget", "9.99")
    spans = span_exporter.get_finished_spans()
    (business,) = [s for s in spans if s.name == "CreateProduct.BusinessLogic"]
    db_spans = [s for s in spans if s.kind == SpanKind.CLIENT]
    assert db_spans
    for db_span in db_spans:
        assert db_span.parent.span_id == business.context.span_id
        assert db_span.context.trace_id == business.context.trace_id
        assert db_span.attributes["db.system"] == "sqlite"
    assert any(s.attributes["db.operation"] == "INSERT" for s in db_spans)


@pytest.mark.parametrize("price", ["abc", "-1", "NaN", "Infinity", "1e20"])
async def test_create_product_rejects_bad_price(app, spans_named, price) -> None:
    with pytest.raises(ProductValidationError):
        await app.service.create_product("Widget", price)
    (span,) = spans_named("CreateProduct.BusinessLogic")
    assert span.status.status_code == StatusCode.ERROR
    assert span.attributes["error.type"] == "ProductValidationError"


async def test_create_product_rejects_empty_name(app) -> None:
    with pytest.raises(ProductValidationError):
        await app.service.create_product("  ", "1.00")
    assert await app.service.list_products() == []


async def test_get_missing_product_is_not_an_error(app, span_exporter) -> None:
    """A not-found lookup returns None and marks no span as failed."""
    assert await app.service.get_product(9999) is None

    spans = span_exporter.get_finished_spans()
    (business,) = [s for s in spans if s.name == "GetProduct.BusinessLogic"]
    assert business.attributes["product.id"] == 9999
    assert business.attributes["result"] == "not_found"
    assert all(s.status.status_code != StatusCode.ERROR for s in spans)


async def test_get_existing_product(app, spans_named) -> None:
    created = await app.service.create_product("Gadget", "5.00")
    found = await app.service.get_product(created.id)
    assert found.id == created.id
    assert found.name == "Gadget"
    (span,) = spans_named("GetProduct.BusinessLogic")
    assert span.attributes["result"] == "found"


async def test_list_returns_newest_hundred(app, spans_named) -> None:
    """With 150 products, list returns exactly 100, newest first."""
    for i in range(150):
        await app.service.create_product(f"Product {i}", "1.00")

    products = await app.service.list_products()

    assert len(products) == 100
    assert products[0].name == "Product 149"
    assert products[-1].name == "Product 50"
    keys = [(p.created_at, p.id) for p in products]
    assert keys == sorted(keys, reverse=True)
    (span,) = spans_named("GetProducts.BusinessLogic")
    assert span.attributes["products.count"] == 100
    assert span.attributes["operation"] == "fetch_products"


async def test_simulated_error(app, spans_named) -> None:
    """The error operation raises to the caller and marks its span as failed."""
    with pytest.raises(InvalidOperationError, match=SIMULATED_ERROR_MESSAGE):
        await app.service.simulated_error()

    (span,) = spans_named("ErrorEndpoint.Processing")
    assert span.status.status_code == StatusCode.ERROR
    assert span.status.description == "Simulated error for testing"
    assert span.attributes["error.type"] == "InvalidOperationError"
    (event,) = [e for e in span.events if e.name == "exception"]
    assert event.attributes["exception.type"].endswith("InvalidOperationError")
    assert event.attributes["exception.message"] == SIMULATED_ERROR_MESSAGE


async def test_slow_operation_reports_total(app, spans_named) -> None:
    await app.service.create_product("A", "1.00")
    result = await app.service.slow_operation()
    assert result.total_products == 1
    (span,) = spans_named("SlowEndpoint.Processing")
    assert span.attributes["total.products"] == 1


async def test_concurrent_slow_operations(app, monkeypatch, collect_metrics) -> None:
    """N parallel slow operations add exactly N observations, each linked to its own span."""
    registry = app.telemetry.metrics
    observations = []
    record = registry.record

    def capture(name, value, dimensions=None):
        observation = record(name, value, dimensions)
        if name == CATALOG_OPERATION_DURATION:
            observations.append(observation)
        return observation

    monkeypatch.setattr(registry, "record", capture)
    dims = {"catalog.operation": "slow", "outcome": "ok"}

    n = 10
    await asyncio.gather(*(app.service.slow_operation() for _ in range(n)))

    assert collect_metrics().count(CATALOG_OPERATION_DURATION, dims) == n
    assert len(observations) == n
    span_ids = {o.exemplar.span_id for o in observations}
    assert len(span_ids) == n
    assert trace.get_current_span() is INVALID_SPAN


async def test_operation_duration_recorded_with_outcome(app, collect_metrics) -> None:
    with pytest.raises(InvalidOperationError):
        await app.service.simulated_error()
    await app.service.list_products()
    snapshot = collect_metrics()
    error = {"catalog.operation": "error", "outcome": "error"}
    listed = {"catalog.operation": "list", "outcome": "ok"}
    assert snapshot.count(CATALOG_OPERATION_DURATION, error) == 1
    assert snapshot.count(CATALOG_OPERATION_DURATION, listed) == 1


async def test_business_spans_can_be_turned_off(settings, span_exporter, metric_reader) -> None:
    catalog_app = CatalogApp.create(
        replace(settings, business_spans=False),
        span_exporter=span_exporter,
        delays=NO_DELAYS,
        periodic_metrics=False,
        metric_readers=[metric_reader],
    )
    try:
        await catalog_app.service.create_product("Widget", "1.00")
    finally:
        catalog_app.shutdown()
    spans = span_exporter.get_finished_spans()
    assert "CreateProduct.BusinessLogic" not in {s.name for s in spans}
    assert any(s.kind == SpanKind.CLIENT for s in spans)
