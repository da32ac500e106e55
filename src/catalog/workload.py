"""
Drive a mixed request workload through the API.

Each request picks a route at random (weighted), so a run produces the full
mix of traces the catalog can emit: list and get (including not-found),
create, the slow path and the error path.
"""

import asyncio
import random
from collections.abc import Callable
from dataclasses import dataclass, field
from decimal import Decimal

from .api import CatalogApi
from .messages import Response
from .products.service import CatalogService

# (method, path template, relative weight)
DEFAULT_MIX: tuple[tuple[str, str, float], ...] = (
    ("GET", "api/products", 4.0),
    ("GET", "api/products/{id}", 4.0),
    ("POST", "api/products", 2.0),
    ("GET", "api/products/slow", 0.5),
    ("GET", "api/products/error", 0.5),
)

_PRODUCT_NAMES = (
    "Widget",
    "Gadget",
    "Sprocket",
    "Gizmo",
    "Doohickey",
    "Thingamajig",
)


@dataclass
class WorkloadSummary:
    requests_by_route: dict[str, int] = field(default_factory=dict)
    responses_by_status: dict[int, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(self.responses_by_status.values())

    def add(self, route: str, response: Response) -> None:
        self.requests_by_route[route] = self.requests_by_route.get(route, 0) + 1
        self.responses_by_status[response.status_code] = (
            self.responses_by_status.get(response.status_code, 0) + 1
        )


def random_product() -> tuple[str, Decimal]:
    name = f"{random.choice(_PRODUCT_NAMES)} {random.randint(1, 999)}"
    price = Decimal(random.randint(100, 99_999)) / 100
    return name, price


async def seed_products(service: CatalogService, count: int) -> int:
    """Create `count` random products; returns how many were created."""
    for _ in range(count):
        name, price = random_product()
        await service.create_product(name, price)
    return count


async def run_workload(
    api: CatalogApi,
    count: int = 100,
    interval_ms: float = 0,
    concurrency: int = 1,
    mix: tuple[tuple[str, str, float], ...] = DEFAULT_MIX,
    max_product_id: int = 100,
    progress_callback: Callable[[int, int, str, int], None] | None = None,
) -> WorkloadSummary:
    """Send `count` requests, at most `concurrency` in flight at once."""
    summary = WorkloadSummary()
    semaphore = asyncio.Semaphore(max(1, concurrency))
    weights = [w for _, _, w in mix]
    completed = 0

    async def one_request() -> None:
        nonlocal completed
        method, template, _ = random.choices(mix, weights=weights, k=1)[0]
        body = None
        path = template
        if "{id}" in template:
            # Some ids past the end on purpose, to exercise not-found.
            path = template.replace("{id}", str(random.randint(1, max_product_id + 10)))
        elif method == "POST":
            name, price = random_product()
            body = {"name": name, "price": str(price)}
        async with semaphore:
            response = await api.call(method, path, body)
        summary.add(f"{method} {template}", response)
        completed += 1
        if progress_callback:
            progress_callback(completed, count, f"{method} {template}", response.status_code)

    tasks = []
    for i in range(count):
        tasks.append(asyncio.create_task(one_request()))
        if interval_ms > 0 and i < count - 1:
            await asyncio.sleep(interval_ms / 1000.0)
    await asyncio.gather(*tasks)
    return summary
