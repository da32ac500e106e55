"""
Metric instrument registry over an OpenTelemetry Meter.

Instruments are registered once at startup and never change afterwards:

    registry = MetricRegistry(meter_provider.get_meter("catalog"))
    registry.register_histogram(
        "http.server.request.duration", (0.005, 0.01, ..., 10.0), unit="s"
    )
    registry.record("http.server.request.duration", 0.42, {"http.route": "api/products"})

Aggregation is the SDK's: histograms use explicit bucket boundaries given as
the instrument's advisory. The MeterProvider's TraceBasedExemplarFilter feeds
the SDK's AlignedHistogramBucketExemplarReservoir (its default for explicit
buckets), so each bucket keeps the latest exemplar pointing at the span that
was current when the value was recorded. The registry only keeps the name to
definition map, so a conflicting re-registration fails at startup.
"""

import logging
import math
import threading
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from opentelemetry import trace
from opentelemetry.metrics import Counter, Histogram, Meter
from opentelemetry.sdk.metrics import Exemplar

from ..config import ConfigurationError, validate_boundaries
from .exemplars import correlate

logger = logging.getLogger(__name__)


class InstrumentConflictError(ConfigurationError):
    """Raised when an instrument name is re-registered with a different definition."""

    pass


class InstrumentKind(Enum):
    """Supported instrument kinds."""

    COUNTER = "counter"
    HISTOGRAM = "histogram"


@dataclass(frozen=True)
class InstrumentDefinition:
    name: str
    kind: InstrumentKind
    description: str
    unit: str
    boundaries: tuple[float, ...] = ()
    instrument: Counter | Histogram | None = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class Observation:
    """One recorded value, as seen at recording time."""

    instrument: str
    value: float
    dimensions: dict[str, Any]
    time_unix_nano: int
    exemplar: Exemplar | None = None


def _attributes(dimensions: Mapping[str, Any] | None) -> dict[str, Any]:
    """Dimension values as OTLP attribute types; None values are dropped."""
    attributes: dict[str, Any] = {}
    for key, value in (dimensions or {}).items():
        if value is None:
            continue
        if not isinstance(value, (str, bool, int, float)):
            value = str(value)
        attributes[str(key)] = value
    return attributes


class MetricRegistry:
    """Named instruments for one process.

    Construct once at startup and pass it to whatever records metrics; there
    is no module-level global.
    """

    def __init__(self, meter: Meter):
        self._meter = meter
        self._definitions: dict[str, InstrumentDefinition] = {}
        self._lock = threading.Lock()

    def register_histogram(
        self,
        name: str,
        boundaries: Sequence[float],
        description: str = "",
        unit: str = "s",
    ) -> Histogram:
        """
        Register a histogram, or return the existing one with the same boundaries.

        Raises:
            ConfigurationError: boundaries are empty, non-finite or not ascending.
            InstrumentConflictError: the name exists with another kind or boundaries.
        """
        bounds = tuple(boundaries)
        validate_boundaries(name, bounds)
        bounds = tuple(float(b) for b in bounds)
        with self._lock:
            existing = self._definitions.get(name)
            if existing is not None:
                if existing.kind is not InstrumentKind.HISTOGRAM:
                    raise InstrumentConflictError(
                        f"Instrument {name!r} is already registered as a {existing.kind.value}"
                    )
                if existing.boundaries != bounds:
                    raise InstrumentConflictError(
                        f"Histogram {name!r} is already registered with boundaries "
                        f"{list(existing.boundaries)}; refusing {list(bounds)}"
                    )
                return existing.instrument
            histogram = self._meter.create_histogram(
                name,
                unit=unit,
                description=description,
                explicit_bucket_boundaries_advisory=list(bounds),
            )
            self._definitions[name] = InstrumentDefinition(
                name, InstrumentKind.HISTOGRAM, description, unit, bounds, histogram
            )
            logger.debug("Registered histogram %s with %d buckets", name, len(bounds))
            return histogram

    def register_counter(self, name: str, description: str = "", unit: str = "1") -> Counter:
        """Register a counter, or return the existing one.

        Raises:
            InstrumentConflictError: the name exists as a histogram.
        """
        with self._lock:
            existing = self._definitions.get(name)
            if existing is not None:
                if existing.kind is not InstrumentKind.COUNTER:
                    raise InstrumentConflictError(
                        f"Instrument {name!r} is already registered as a {existing.kind.value}"
                    )
                return existing.instrument
            counter = self._meter.create_counter(name, unit=unit, description=description)
            self._definitions[name] = InstrumentDefinition(
                name, InstrumentKind.COUNTER, description, unit, instrument=counter
            )
            logger.debug("Registered counter %s", name)
            return counter

    def get(self, name: str) -> InstrumentDefinition | None:
        with self._lock:
            return self._definitions.get(name)

    def definitions(self) -> list[InstrumentDefinition]:
        with self._lock:
            return list(self._definitions.values())

    def record(
        self,
        name: str,
        value: float,
        dimensions: Mapping[str, Any] | None = None,
    ) -> Observation | None:
        """
        Record one observation against a registered instrument.

        Histograms observe the value; counters add it. When a span is current
        the observation carries an exemplar for it. Misuse (unknown name,
        non-numeric or non-finite value, negative counter increment) is logged
        and dropped, returning None.
        """
        definition = self.get(name)
        if definition is None:
            logger.warning("Dropping observation for unregistered instrument %s", name)
            return None
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            logger.warning("Dropping observation for %s: %r is not a number", name, value)
            return None
        if not math.isfinite(value):
            logger.warning("Dropping non-finite observation %r for %s", value, name)
            return None
        if definition.kind is InstrumentKind.COUNTER and value < 0:
            logger.warning("Dropping negative increment %s for counter %s", value, name)
            return None

        attributes = _attributes(dimensions)
        now = time.time_ns()
        exemplar = correlate(trace.get_current_span(), value, now)
        if definition.kind is InstrumentKind.HISTOGRAM:
            definition.instrument.record(value, attributes)
        else:
            definition.instrument.add(value, attributes)
        return Observation(
            instrument=name,
            value=value,
            dimensions=attributes,
            time_unix_nano=now,
            exemplar=exemplar,
        )
