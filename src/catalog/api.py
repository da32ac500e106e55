"""
Request dispatch for the products API.

Routes (templates are used as request span names):

  GET  api/products           list the 100 newest products
  GET  api/products/{id}      one product, 404 when absent
  POST api/products           create from {"name": ..., "price": ...}
  GET  api/products/slow      slow operation (2s + count query)
  GET  api/products/error     always fails (500)

Every request runs inside the inbound instrumentation; an exception escaping
a handler is recorded on the request span first and then turned into a 500
response here, the way a web framework's error middleware would.
"""

import json
import logging
import re
from typing import Any

from .instrumentation.inbound import InboundInstrumentation
from .messages import Request, Response
from .products.service import CatalogService, ProductValidationError

logger = logging.getLogger(__name__)

ROUTE_LIST = "api/products"
ROUTE_ITEM = "api/products/{id}"
ROUTE_SLOW = "api/products/slow"
ROUTE_ERROR = "api/products/error"

_ITEM_PATTERN = re.compile(r"^api/products/(?P<id>[^/]+)$")


class RouteNotFound(LookupError):
    pass


def match_route(method: str, path: str) -> tuple[str, dict[str, str]]:
    """Return (route template, path params) for a concrete path."""
    normalized = path.strip("/")
    method = method.upper()
    if normalized == ROUTE_LIST and method in ("GET", "POST"):
        return ROUTE_LIST, {}
    if method == "GET":
        # Literal routes win over the {id} template.
        if normalized == ROUTE_SLOW:
            return ROUTE_SLOW, {}
        if normalized == ROUTE_ERROR:
            return ROUTE_ERROR, {}
        m = _ITEM_PATTERN.match(normalized)
        if m:
            return ROUTE_ITEM, {"id": m.group("id")}
    raise RouteNotFound(f"No route for {method} /{normalized}")


def build_request(
    method: str,
    path: str,
    body: dict[str, Any] | None = None,
    scheme: str = "http",
    host: str = "localhost:5000",
) -> Request:
    """Build a routed Request the way the HTTP layer would hand it over."""
    route, params = match_route(method, path)
    content_length = len(json.dumps(body).encode("utf-8")) if body is not None else None
    return Request(
        method=method.upper(),
        route=route,
        path="/" + path.strip("/"),
        scheme=scheme,
        host=host,
        content_length=content_length,
        headers={"content-type": "application/json"} if body is not None else {},
        path_params=params,
        body=body,
    )


class CatalogApi:
    """Maps routed requests to catalog operations."""

    def __init__(self, service: CatalogService, inbound: InboundInstrumentation):
        self._service = service
        self._inbound = inbound

    async def handle(self, request: Request) -> Response:
        try:
            return await self._inbound.handle(request, self._dispatch)
        except Exception as e:
            logger.error("Unhandled error on %s %s: %s", request.method, request.route, e)
            return Response(500, {"error": type(e).__name__, "message": str(e)})

    async def call(self, method: str, path: str, body: dict[str, Any] | None = None) -> Response:
        """Route and handle a request; unknown routes get 404 without a span."""
        try:
            request = build_request(method, path, body)
        except RouteNotFound:
            return Response(404, {"error": "route not found"})
        return await self.handle(request)

    async def _dispatch(self, request: Request) -> Response:
        if request.route == ROUTE_LIST and request.method == "GET":
            products = await self._service.list_products()
            return Response(200, [p.to_dict() for p in products])

        if request.route == ROUTE_LIST and request.method == "POST":
            body = request.body or {}
            try:
                product = await self._service.create_product(
                    str(body.get("name", "")), body.get("price", "")
                )
            except ProductValidationError as e:
                return Response(400, {"error": str(e)})
            return Response(201, product.to_dict())

        if request.route == ROUTE_SLOW:
            result = await self._service.slow_operation()
            return Response(
                200, {"message": result.message, "totalProducts": result.total_products}
            )

        if request.route == ROUTE_ERROR:
            await self._service.simulated_error()

        if request.route == ROUTE_ITEM:
            try:
                product_id = int(request.path_params["id"])
            except (KeyError, ValueError):
                return Response(400, {"error": "id must be an integer"})
            product = await self._service.get_product(product_id)
            if product is None:
                return Response(404, None)
            return Response(200, product.to_dict())

        return Response(404, {"error": "route not found"})
