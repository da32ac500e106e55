"""Tests for request routing, the inbound adapter and request metrics."""

import pytest
from opentelemetry import trace
from opentelemetry.trace import INVALID_SPAN, SpanKind, StatusCode

from catalog.api import (
    ROUTE_ERROR,
    ROUTE_ITEM,
    ROUTE_LIST,
    ROUTE_SLOW,
    RouteNotFound,
    build_request,
    match_route,
)
from catalog.instrumentation.inbound import InboundInstrumentation
from catalog.instruments import HTTP_SERVER_DURATION, HTTP_SERVER_REQUESTS
from catalog.messages import Request, Response, status_class


@pytest.mark.parametrize(
    "method,path,route,params",
    [
        ("GET", "/api/products", ROUTE_LIST, {}),
        ("POST", "api/products/", ROUTE_LIST, {}),
        ("GET", "/api/products/42", ROUTE_ITEM, {"id": "42"}),
        ("GET", "/api/products/slow", ROUTE_SLOW, {}),
        ("get", "/api/products/error", ROUTE_ERROR, {}),
    ],
)
def test_match_route(method, path, route, params) -> None:
    assert match_route(method, path) == (route, params)


@pytest.mark.parametrize("method,path", [("DELETE", "/api/products/1"), ("GET", "/api/other")])
def test_unknown_routes(method, path) -> None:
    with pytest.raises(RouteNotFound):
        match_route(method, path)


def test_build_request_sets_content_length() -> None:
    request = build_request("POST", "/api/products", {"name": "Widget", "price": "9.99"})
    assert request.route == ROUTE_LIST
    assert request.path == "/api/products"
    assert request.content_length == len(b'{"name": "Widget", "price": "9.99"}')


def test_status_class() -> None:
    assert status_class(201) == "2xx"
    assert Response(404).status_class == "4xx"


async def test_request_span_is_parent_of_business_span(app, span_exporter) -> None:
    response = await app.api.call("POST", "/api/products", {"name": "Widget", "price": "9.99"})
    assert response.status_code == 201
    assert response.body["name"] == "Widget"
    assert response.body["price"] == "9.99"

    spans = {s.name: s for s in span_exporter.get_finished_spans()}
    server = spans[ROUTE_LIST]
    business = spans["CreateProduct.BusinessLogic"]
    assert server.kind == SpanKind.SERVER
    assert server.parent is None
    assert business.parent.span_id == server.context.span_id
    assert server.attributes["http.request.method"] == "POST"
    assert server.attributes["http.route"] == ROUTE_LIST
    assert server.attributes["http.response.status_code"] == 201
    assert server.attributes["http.scheme"] == "http"
    assert server.attributes["http.host"] == "localhost:5000"
    assert server.attributes["http.request_content_length"] > 0
    assert server.status.status_code == StatusCode.UNSET


async def test_get_missing_product_returns_404(app, span_exporter) -> None:
    response = await app.api.call("GET", "/api/products/12345")
    assert response.status_code == 404
    spans = span_exporter.get_finished_spans()
    assert all(s.status.status_code != StatusCode.ERROR for s in spans)
    (server,) = [s for s in spans if s.name == ROUTE_ITEM]
    assert server.attributes["http.response.status_code"] == 404
    assert server.attributes["url.path"] == "/api/products/12345"


async def test_list_route(app) -> None:
    await app.api.call("POST", "/api/products", {"name": "A", "price": 1})
    response = await app.api.call("GET", "/api/products")
    assert response.status_code == 200
    assert [p["name"] for p in response.body] == ["A"]


async def test_slow_route(app) -> None:
    response = await app.api.call("GET", "/api/products/slow")
    assert response.status_code == 200
    assert response.body["totalProducts"] == 0


async def test_error_route_returns_500_and_marks_spans(app, span_exporter) -> None:
    """The simulated error surfaces as a 500; both request and business spans fail."""
    response = await app.api.call("GET", "/api/products/error")
    assert response.status_code == 500
    assert response.body["error"] == "InvalidOperationError"

    spans = {s.name: s for s in span_exporter.get_finished_spans()}
    server = spans[ROUTE_ERROR]
    business = spans["ErrorEndpoint.Processing"]
    assert business.status.status_code == StatusCode.ERROR
    assert server.status.status_code == StatusCode.ERROR
    assert server.attributes["http.response.status_code"] == 500
    assert server.attributes["error.type"] == "InvalidOperationError"
    assert business.parent.span_id == server.context.span_id


async def test_invalid_create_returns_400(app) -> None:
    response = await app.api.call("POST", "/api/products", {"name": "Widget", "price": "x"})
    assert response.status_code == 400


async def test_non_integer_id_returns_400(app) -> None:
    response = await app.api.call("GET", "/api/products/abc")
    assert response.status_code == 400


async def test_unknown_route_is_404_without_span(app, span_exporter) -> None:
    response = await app.api.call("DELETE", "/api/products/1")
    assert response.status_code == 404
    assert span_exporter.get_finished_spans() == ()


async def test_created_at_round_trips_through_the_api(app) -> None:
    """The timestamp a POST returns is the one a later GET returns."""
    created = await app.api.call("POST", "/api/products", {"name": "Widget", "price": 9.99})
    fetched = await app.api.call("GET", f"/api/products/{created.body['id']}")
    assert fetched.status_code == 200
    assert fetched.body["createdAt"] == created.body["createdAt"]
    assert created.body["createdAt"].endswith("+00:00")
    assert fetched.body["price"] == created.body["price"] == "9.99"


async def test_request_metrics_carry_route_and_status(app, collect_metrics) -> None:
    await app.api.call("GET", "/api/products/1")
    await app.api.call("GET", "/api/products/error")
    not_found = {
        "http.request.method": "GET",
        "http.route": ROUTE_ITEM,
        "http.response.status_code": 404,
        "http.response.status_class": "4xx",
    }
    failed = {
        "http.request.method": "GET",
        "http.route": ROUTE_ERROR,
        "http.response.status_code": 500,
        "http.response.status_class": "5xx",
        "error.type": "InvalidOperationError",
    }
    snapshot = collect_metrics()
    assert snapshot.count(HTTP_SERVER_DURATION, not_found) == 1
    assert snapshot.count(HTTP_SERVER_DURATION, failed) == 1
    assert snapshot.value(HTTP_SERVER_REQUESTS, failed) == 1


async def test_request_histogram_exemplar_points_at_server_span(
    app, span_exporter, collect_metrics
) -> None:
    await app.api.call("GET", "/api/products")
    (server,) = [s for s in span_exporter.get_finished_spans() if s.name == ROUTE_LIST]
    (point,) = collect_metrics().points(HTTP_SERVER_DURATION)
    assert [e.span_id for e in point.exemplars] == [server.context.span_id]
    assert [e.trace_id for e in point.exemplars] == [server.context.trace_id]


async def test_handler_exception_is_reraised_by_adapter(app, span_exporter) -> None:
    inbound = InboundInstrumentation(app.telemetry)
    request = Request(method="GET", route="test/route", path="/test/route")

    async def failing(_: Request) -> Response:
        raise LookupError("nope")

    with pytest.raises(LookupError):
        await inbound.handle(request, failing)
    assert trace.get_current_span() is INVALID_SPAN
    (span,) = [s for s in span_exporter.get_finished_spans() if s.name == "test/route"]
    assert span.status.status_code == StatusCode.ERROR
    assert span.attributes["http.response.status_code"] == 500
    assert span.events[0].attributes["exception.type"] == "LookupError"


async def test_failing_hook_does_not_change_response(app, monkeypatch) -> None:
    inbound = InboundInstrumentation(app.telemetry)

    def broken_enrich(span, request):
        raise RuntimeError("instrumentation bug")

    monkeypatch.setattr(inbound, "enrich", broken_enrich)
    request = Request(method="GET", route="test/route")

    async def ok(_: Request) -> Response:
        return Response(200, "fine")

    response = await inbound.handle(request, ok)
    assert response == Response(200, "fine")
    assert trace.get_current_span() is INVALID_SPAN


async def test_failing_begin_falls_back_to_no_span(app, monkeypatch, span_exporter) -> None:
    inbound = InboundInstrumentation(app.telemetry)

    def broken_begin(request):
        raise RuntimeError("instrumentation bug")

    monkeypatch.setattr(inbound, "begin", broken_begin)

    async def ok(_: Request) -> Response:
        return Response(200, "fine")

    response = await inbound.handle(Request(method="GET", route="test/route"), ok)
    assert response.status_code == 200
    assert span_exporter.get_finished_spans() == ()
