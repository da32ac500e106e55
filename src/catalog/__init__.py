"""
Catalog - an instrumented product catalog.

This package implements a small product catalog whose operations emit
OpenTelemetry-shaped traces and metrics, with histogram exemplars that link
latency outliers back to the spans that produced them.
"""

__version__ = "1.0.0"
