"""
Catalog business operations with explicit business spans.

Each operation opens one INTERNAL span around its own logic, tags it with
domain values, and records catalog.operation.duration while the span is
still active. Database calls made inside the span become its children.

Failures set the span to Error (message + error.type) and are re-raised
unchanged. "Not found" is not a failure: get_product() returns None and the
span keeps its default status.
"""

import asyncio
import contextlib
import logging
import time
from collections.abc import Iterator
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import NoReturn

from opentelemetry.trace import INVALID_SPAN, Span

from ..instruments import CATALOG_OPERATION_DURATION, CATALOG_PRODUCTS_CREATED
from ..telemetry.provider import Telemetry
from ..telemetry.spans import set_error
from .models import Product
from .repository import ProductRepository

logger = logging.getLogger(__name__)

LIST_LIMIT = 100
SIMULATED_ERROR_MESSAGE = "Simulated error for testing"

# Matches the price column, Numeric(18, 2).
_PRICE_QUANTUM = Decimal("0.01")
_PRICE_LIMIT = Decimal("1e16")


class CatalogError(Exception):
    """Base class for catalog operation failures."""

    pass


class InvalidOperationError(CatalogError):
    """Raised by the simulated-error operation."""

    pass


class ProductValidationError(CatalogError):
    """Raised when a create request carries an invalid name or price."""

    pass


@dataclass(frozen=True)
class SimulatedDelays:
    """Artificial work per operation, in seconds."""

    list_products: float = 0.05
    create_product: float = 0.02
    slow_operation: float = 2.0
    error_operation: float = 0.1


NO_DELAYS = SimulatedDelays(0.0, 0.0, 0.0, 0.0)


@dataclass(frozen=True)
class SlowResult:
    message: str
    total_products: int


class CatalogService:
    """The five catalog operations."""

    def __init__(
        self,
        repository: ProductRepository,
        telemetry: Telemetry,
        business_spans: bool = True,
        delays: SimulatedDelays = SimulatedDelays(),
    ):
        self._repository = repository
        self._telemetry = telemetry
        self._business_spans = business_spans
        self._delays = delays

    @contextlib.contextmanager
    def _operation(self, operation: str, span_name: str) -> Iterator[Span]:
        scope = (
            self._telemetry.tracer.start_span(span_name)
            if self._business_spans
            else contextlib.nullcontext(INVALID_SPAN)
        )
        started = time.perf_counter()
        outcome = "ok"
        with scope as span:
            try:
                yield span
            except BaseException:
                outcome = "error"
                raise
            finally:
                self._telemetry.metrics.record(
                    CATALOG_OPERATION_DURATION,
                    time.perf_counter() - started,
                    {"catalog.operation": operation, "outcome": outcome},
                )

    async def list_products(self, limit: int = LIST_LIMIT) -> list[Product]:
        """Up to `limit` most recently created products, newest first."""
        with self._operation("list", "GetProducts.BusinessLogic") as span:
            span.set_attribute("operation", "fetch_products")
            await asyncio.sleep(self._delays.list_products)
            products = await asyncio.to_thread(self._repository.list_recent, limit)
            span.set_attribute("products.count", len(products))
            return products

    async def get_product(self, product_id: int) -> Product | None:
        with self._operation("get", "GetProduct.BusinessLogic") as span:
            span.set_attribute("product.id", product_id)
            product = await asyncio.to_thread(self._repository.get, product_id)
            span.set_attribute("result", "found" if product is not None else "not_found")
            return product

    async def create_product(self, name: str, price: Decimal | float | str) -> Product:
        with self._operation("create", "CreateProduct.BusinessLogic") as span:
            span.set_attribute("product.name", name)
            try:
                value = _parse_price(price)
                span.set_attribute("product.price", float(value))
                if not name or not name.strip():
                    raise ProductValidationError("Product name must not be empty")
                await asyncio.sleep(self._delays.create_product)
            except ProductValidationError as e:
                set_error(span, e)
                raise
            product = await asyncio.to_thread(self._repository.add, name, value)
            span.set_attribute("product.created_id", product.id)
            self._telemetry.metrics.record(CATALOG_PRODUCTS_CREATED, 1)
            logger.info("Created product %s (%s)", product.id, product.name)
            return product

    async def slow_operation(self) -> SlowResult:
        with self._operation("slow", "SlowEndpoint.Processing") as span:
            await asyncio.sleep(self._delays.slow_operation)
            count = await asyncio.to_thread(self._repository.count)
            span.set_attribute("total.products", count)
            return SlowResult(message="Slow operation completed", total_products=count)

    async def simulated_error(self) -> NoReturn:
        """Always fails with InvalidOperationError after a short delay."""
        with self._operation("error", "ErrorEndpoint.Processing") as span:
            try:
                await asyncio.sleep(self._delays.error_operation)
                raise InvalidOperationError(SIMULATED_ERROR_MESSAGE)
            except Exception as e:
                set_error(span, e)
                raise


def _parse_price(price: Decimal | float | str) -> Decimal:
    try:
        value = price if isinstance(price, Decimal) else Decimal(str(price))
    except (InvalidOperation, ValueError) as e:
        raise ProductValidationError(f"Invalid price: {price!r}") from e
    if not value.is_finite() or value < 0:
        raise ProductValidationError(f"Price must be a non-negative amount, got {price}")
    if value >= _PRICE_LIMIT:
        raise ProductValidationError(f"Price {price} exceeds the supported range")
    # Cents, as stored.
    return value.quantize(_PRICE_QUANTUM, rounding=ROUND_HALF_UP)
