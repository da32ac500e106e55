"""
Command-line interface for the product catalog.

Provides commands for:
- Running a mixed request workload with full tracing, metrics and logs
- Seeding products and listing them
- Showing the registered metric instruments and their buckets
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .app import CatalogApp
from .config import ConfigurationError, TelemetrySettings, load_settings
from .exporters.console_exporter import create_console_exporters
from .exporters.file_exporter import FileLogExporter, FileMetricExporter, FileSpanExporter
from .exporters.otlp_exporter import (
    create_otlp_log_exporter,
    create_otlp_metric_exporter,
    create_otlp_trace_exporter,
)
from .products.service import NO_DELAYS, SimulatedDelays
from .telemetry.logs import configure_logging
from .telemetry.metrics import InstrumentKind
from .workload import run_workload, seed_products

_MAX_PRODUCTS_SHOWN = 20


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="otelcatalog",
        description="Instrumented product catalog that emits OpenTelemetry traces, metrics and logs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run a mixed workload against a local collector
  otelcatalog run --count 100 --interval 200

  # Same over gRPC with four requests in flight
  otelcatalog run --protocol grpc --endpoint http://otel-collector:4317 --concurrency 4

  # Export to files instead of OTLP
  otelcatalog run --count 10 --output-file traces.jsonl

  # Create a few products and list them
  otelcatalog seed --count 5
        """,
    )

    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to telemetry YAML (default: resource/config/telemetry.yaml or $CATALOG_CONFIG)",
    )
    parser.add_argument(
        "--service-name",
        type=str,
        default=None,
        help="Service name for telemetry (default: from config, catalog-api)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level for the catalog logger (default: INFO)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    run_parser = subparsers.add_parser("run", help="Run a mixed request workload")
    run_parser.add_argument(
        "--endpoint",
        type=str,
        default=None,
        help="OTLP endpoint (default: from config, http://localhost:4318)",
    )
    run_parser.add_argument(
        "--protocol",
        type=str,
        default=None,
        choices=["http", "grpc"],
        help="OTLP protocol (default: from config, http)",
    )
    run_parser.add_argument(
        "--count",
        type=int,
        default=100,
        help="Number of requests to send (default: 100)",
    )
    run_parser.add_argument(
        "--interval",
        type=float,
        default=100,
        help="Interval between requests in ms (default: 100)",
    )
    run_parser.add_argument(
        "--concurrency",
        type=int,
        default=1,
        help="Maximum requests in flight (default: 1)",
    )
    run_parser.add_argument(
        "--seed",
        type=int,
        default=20,
        help="Products to create before the workload starts (default: 20)",
    )
    run_parser.add_argument(
        "--output-file",
        type=str,
        default=None,
        help="Span output file; metrics and logs go to <name>_metrics.jsonl and <name>_logs.jsonl",
    )
    run_parser.add_argument(
        "--console",
        action="store_true",
        help="Print spans, metrics and logs to stdout instead of exporting over OTLP",
    )
    run_parser.add_argument(
        "--no-metrics",
        action="store_true",
        help="Disable metric export (use when the backend accepts traces only)",
    )
    run_parser.add_argument(
        "--no-logs",
        action="store_true",
        help="Disable log export (catalog logs still go to stderr)",
    )
    run_parser.add_argument(
        "--no-delays",
        action="store_true",
        help="Skip the simulated work delays (the slow route returns immediately)",
    )
    run_parser.add_argument(
        "--show-requests",
        action="store_true",
        help="Print every request with its status code",
    )

    seed_parser = subparsers.add_parser("seed", help="Create products and list them")
    seed_parser.add_argument(
        "--count",
        type=int,
        default=10,
        help="Number of products to create (default: 10)",
    )

    subparsers.add_parser("instruments", help="Show metric instruments and bucket boundaries")

    return parser


def _sibling_path(output_file: str, suffix: str) -> Path:
    """traces.jsonl -> traces_metrics.jsonl; names without .jsonl get the suffix appended."""
    path = Path(output_file)
    stem = path.stem if path.suffix == ".jsonl" else path.name
    return path.with_name(f"{stem}_{suffix}.jsonl")


def _build_exporters(args: argparse.Namespace, settings: TelemetrySettings):
    """Return (span_exporter, metric_exporter, log_exporter, description)."""
    if args.output_file:
        span_exporter = FileSpanExporter(args.output_file)
        metric_exporter = (
            None
            if args.no_metrics
            else FileMetricExporter(_sibling_path(args.output_file, "metrics"))
        )
        log_exporter = (
            None if args.no_logs else FileLogExporter(_sibling_path(args.output_file, "logs"))
        )
        return span_exporter, metric_exporter, log_exporter, args.output_file
    if args.console:
        span_exporter, metric_exporter, log_exporter = create_console_exporters()
        return (
            span_exporter,
            None if args.no_metrics else metric_exporter,
            None if args.no_logs else log_exporter,
            "console",
        )
    headers = settings.headers or None
    span_exporter = create_otlp_trace_exporter(
        settings.endpoint, settings.protocol, headers=headers
    )
    metric_exporter = (
        None
        if args.no_metrics
        else create_otlp_metric_exporter(settings.endpoint, settings.protocol, headers=headers)
    )
    log_exporter = (
        None
        if args.no_logs
        else create_otlp_log_exporter(settings.endpoint, settings.protocol, headers=headers)
    )
    return span_exporter, metric_exporter, log_exporter, f"OTLP/{settings.protocol}"


def cmd_run(args: argparse.Namespace, settings: TelemetrySettings):
    """Run a mixed request workload."""
    span_exporter, metric_exporter, log_exporter, output = _build_exporters(args, settings)

    print("Starting catalog workload...")
    print(f"   Service: {settings.service_name} {settings.service_version}")
    print(f"   Endpoint: {settings.endpoint}")
    print(f"   Output: {output}")
    print(f"   Count: {args.count}")
    print(f"   Interval: {args.interval}ms")
    print(f"   Concurrency: {args.concurrency}")
    print()

    configure_logging(getattr(logging, args.log_level))
    # create() shuts the exporters down itself if startup fails.
    app = CatalogApp.create(
        settings,
        span_exporter=span_exporter,
        metric_exporter=metric_exporter,
        log_exporter=log_exporter,
        delays=NO_DELAYS if args.no_delays else SimulatedDelays(),
    )

    def progress_callback(current: int, total: int, route: str, status_code: int):
        if args.show_requests:
            print(f"   [{current}/{total}] {route} -> {status_code}")
        elif current % 10 == 0 or current == total:
            print(f"   Requests sent: {current}/{total}")

    async def workload():
        if args.seed > 0:
            await seed_products(app.service, args.seed)
            print(f"   Seeded {args.seed} products")
        return await run_workload(
            app.api,
            count=args.count,
            interval_ms=args.interval,
            concurrency=args.concurrency,
            max_product_id=max(args.seed, 1),
            progress_callback=progress_callback,
        )

    try:
        summary = asyncio.run(workload())
    except KeyboardInterrupt:
        print("\nWorkload interrupted")
        app.shutdown()
        sys.exit(0)
    except Exception as e:
        print(f"\nError: {e}")
        app.shutdown()
        sys.exit(1)

    app.shutdown()

    print()
    print(f"Sent {summary.total} requests")
    print("   Requests per route:")
    for route in sorted(summary.requests_by_route):
        print(f"      {route}: {summary.requests_by_route[route]}")
    print("   Responses per status:")
    for status in sorted(summary.responses_by_status):
        print(f"      {status}: {summary.responses_by_status[status]}")


def cmd_seed(args: argparse.Namespace, settings: TelemetrySettings):
    """Create products and list the newest ones."""
    app = CatalogApp.create(settings, delays=NO_DELAYS, periodic_metrics=False)

    async def seed():
        await seed_products(app.service, args.count)
        return await app.service.list_products()

    try:
        products = asyncio.run(seed())
    finally:
        app.shutdown()

    print(f"Created {args.count} products ({len(products)} listed, newest first)")
    print()
    for product in products[:_MAX_PRODUCTS_SHOWN]:
        print(f"  - #{product.id} {product.name}: {product.price}")
    if len(products) > _MAX_PRODUCTS_SHOWN:
        print(f"  ... and {len(products) - _MAX_PRODUCTS_SHOWN} more")


def cmd_instruments(args: argparse.Namespace, settings: TelemetrySettings):
    """Show the metric instruments the catalog registers."""
    app = CatalogApp.create(settings, delays=NO_DELAYS, periodic_metrics=False)
    try:
        instruments = app.telemetry.metrics.definitions()
    finally:
        app.shutdown()

    print("Metric instruments:")
    print()
    for instrument in sorted(instruments, key=lambda i: i.name):
        print(f"  - {instrument.name}")
        print(f"    Type: {instrument.kind.value}, Unit: {instrument.unit}")
        if instrument.description:
            print(f"    {instrument.description}")
        if instrument.kind is InstrumentKind.HISTOGRAM:
            bounds = ", ".join(f"{b:g}" for b in instrument.boundaries)
            print(f"    Buckets: {bounds}")
        print()


def main():
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    try:
        settings = load_settings(
            args.config,
            service_name=args.service_name,
            endpoint=getattr(args, "endpoint", None),
            protocol=getattr(args, "protocol", None),
        )
        if args.command == "run":
            cmd_run(args, settings)
        elif args.command == "seed":
            cmd_seed(args, settings)
        elif args.command == "instruments":
            cmd_instruments(args, settings)
        else:
            parser.print_help()
            sys.exit(1)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
