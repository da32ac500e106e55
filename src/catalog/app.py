"""
Process wiring: build telemetry, instruments, database and API once at startup.

Startup fails fast: invalid settings or conflicting instrument definitions
raise ConfigurationError before any request is served.
"""

import logging
from collections.abc import Sequence

from opentelemetry.sdk._logs.export import LogRecordExporter
from opentelemetry.sdk.metrics.export import MetricExporter, MetricReader
from opentelemetry.sdk.trace.export import SpanExporter

from .api import CatalogApi
from .config import TelemetrySettings
from .telemetry.pipeline import shutdown_exporters
from .instruments import CatalogInstruments, register_catalog_instruments
from .instrumentation.inbound import InboundInstrumentation
from .instrumentation.outbound import DatabaseInstrumentation
from .products.repository import Database, ProductRepository
from .products.service import CatalogService, SimulatedDelays
from .telemetry.provider import Telemetry

logger = logging.getLogger(__name__)


class CatalogApp:
    """Everything one process needs to serve the catalog."""

    def __init__(
        self,
        settings: TelemetrySettings,
        telemetry: Telemetry,
        instruments: CatalogInstruments,
        database: Database,
        db_instrumentation: DatabaseInstrumentation,
        service: CatalogService,
        api: CatalogApi,
    ):
        self.settings = settings
        self.telemetry = telemetry
        self.instruments = instruments
        self.database = database
        self.db_instrumentation = db_instrumentation
        self.service = service
        self.api = api

    @classmethod
    def create(
        cls,
        settings: TelemetrySettings,
        span_exporter: SpanExporter | None = None,
        metric_exporter: MetricExporter | None = None,
        log_exporter: LogRecordExporter | None = None,
        delays: SimulatedDelays | None = None,
        periodic_metrics: bool = True,
        metric_readers: Sequence[MetricReader] = (),
    ) -> "CatalogApp":
        """
        Wire a catalog around the given exporters.

        The app takes ownership of the exporters: they are shut down by
        shutdown(), or right away if startup fails.
        """
        try:
            settings.validate()
            telemetry = Telemetry.from_settings(
                settings,
                span_exporter=span_exporter,
                metric_exporter=metric_exporter,
                log_exporter=log_exporter,
                periodic_metrics=periodic_metrics,
                metric_readers=metric_readers,
            )
        except Exception:
            shutdown_exporters(span_exporter, metric_exporter, log_exporter)
            raise

        database = None
        try:
            instruments = register_catalog_instruments(
                telemetry.metrics, settings.request_duration_buckets
            )
            database = Database(settings.database_url)
            db_instrumentation = DatabaseInstrumentation(
                telemetry,
                db_system=database.db_system,
                db_name=database.db_name,
                capture_statements=settings.capture_db_statements,
                record_exceptions=settings.record_exceptions,
            )
            db_instrumentation.instrument_engine(database.engine)
            database.ensure_created()
        except Exception:
            if database is not None:
                database.dispose()
            telemetry.shutdown()
            raise

        service = CatalogService(
            ProductRepository(database),
            telemetry,
            business_spans=settings.business_spans,
            delays=delays or SimulatedDelays(),
        )
        inbound = InboundInstrumentation(telemetry, record_exceptions=settings.record_exceptions)
        api = CatalogApi(service, inbound)
        logger.info("Catalog ready (database %s)", database.url)
        return cls(settings, telemetry, instruments, database, db_instrumentation, service, api)

    def shutdown(self) -> None:
        self.db_instrumentation.uninstrument_engine(self.database.engine)
        self.database.dispose()
        self.telemetry.shutdown()
