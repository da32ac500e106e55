"""Automatic span adapters for the request and database boundaries."""

from .inbound import InboundInstrumentation
from .outbound import DatabaseInstrumentation, operation_kind

__all__ = [
    "InboundInstrumentation",
    "DatabaseInstrumentation",
    "operation_kind",
]
