"""Product entity, persistence and catalog operations."""

from .models import Base, Product
from .repository import Database, ProductRepository
from .service import (
    NO_DELAYS,
    SIMULATED_ERROR_MESSAGE,
    CatalogError,
    CatalogService,
    InvalidOperationError,
    ProductValidationError,
    SimulatedDelays,
    SlowResult,
)

__all__ = [
    "Base",
    "CatalogError",
    "CatalogService",
    "Database",
    "InvalidOperationError",
    "NO_DELAYS",
    "Product",
    "ProductRepository",
    "ProductValidationError",
    "SIMULATED_ERROR_MESSAGE",
    "SimulatedDelays",
    "SlowResult",
]
