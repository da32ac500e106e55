"""
Configuration for the instrumented catalog.

Settings are loaded from resource/config/telemetry.yaml (or the file named by
CATALOG_CONFIG) and then overridden by the standard OpenTelemetry environment
variables, so a container can point the exporter at its collector without
editing files:

  OTEL_SERVICE_NAME, OTEL_SERVICE_VERSION,
  OTEL_EXPORTER_OTLP_ENDPOINT, OTEL_EXPORTER_OTLP_PROTOCOL,
  CATALOG_DATABASE_URL

Invalid settings raise ConfigurationError. Callers treat it as fatal at startup.
"""

import math
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml

# Request-duration buckets in seconds (5ms .. 10s).
DEFAULT_DURATION_BUCKETS: tuple[float, ...] = (
    0.005,
    0.01,
    0.025,
    0.05,
    0.075,
    0.1,
    0.25,
    0.5,
    0.75,
    1.0,
    2.5,
    5.0,
    7.5,
    10.0,
)

SUPPORTED_PROTOCOLS = ("http", "grpc")

# OTEL_EXPORTER_OTLP_PROTOCOL spellings mapped to the exporter factory protocol.
_PROTOCOL_ALIASES = {
    "http": "http",
    "http/protobuf": "http",
    "http/json": "http",
    "grpc": "grpc",
}


class ConfigurationError(Exception):
    """Raised when telemetry or catalog settings are inconsistent."""

    pass


def get_resources_root() -> Path:
    """Return the directory holding config/ resources.

    Resolution order:
    1. CATALOG_RESOURCES_ROOT env var
    2. resource/ under the directory containing pyproject.toml (running from source)
    3. catalog/resources/ next to this package (installed)
    """
    env_root = os.environ.get("CATALOG_RESOURCES_ROOT")
    if env_root:
        p = Path(env_root).resolve()
        if p.is_dir():
            return p
    here = Path(__file__).resolve().parent
    for candidate in [here, *here.parents]:
        if (candidate / "pyproject.toml").is_file():
            return candidate / "resource"
    return here / "resources"


CONFIG_PATH = get_resources_root() / "config" / "telemetry.yaml"


def load_yaml(path: Path, default: Any = None) -> Any:
    """Load YAML file; return default on missing file or parse error."""
    if default is None:
        default = {}
    if not path.exists():
        return default
    try:
        with path.open(encoding="utf-8") as f:
            data: Any = yaml.safe_load(f)
    except (OSError, yaml.YAMLError):
        return default
    return data if isinstance(data, dict) else default


@dataclass(frozen=True)
class TelemetrySettings:
    """Process-wide telemetry and catalog settings. Built once at startup."""

    service_name: str = "catalog-api"
    service_version: str = "1.0.0"
    endpoint: str = "http://localhost:4318"
    protocol: str = "http"
    headers: dict[str, str] = field(default_factory=dict)
    tracing_enabled: bool = True
    business_spans: bool = True
    capture_db_statements: bool = True
    record_exceptions: bool = True
    batch_spans: bool = True
    metric_export_interval_ms: int = 5000
    export_timeout_ms: int = 10_000
    request_duration_buckets: tuple[float, ...] = DEFAULT_DURATION_BUCKETS
    database_url: str = "sqlite+pysqlite:///:memory:"

    def validate(self) -> "TelemetrySettings":
        """Check invariants; return self so it can be chained."""
        if not self.service_name.strip():
            raise ConfigurationError("service_name must not be empty")
        if self.protocol not in SUPPORTED_PROTOCOLS:
            raise ConfigurationError(
                f"Unsupported exporter protocol {self.protocol!r}; "
                f"expected one of {', '.join(SUPPORTED_PROTOCOLS)}"
            )
        if self.metric_export_interval_ms <= 0:
            raise ConfigurationError("metric_export_interval_ms must be positive")
        if self.export_timeout_ms <= 0:
            raise ConfigurationError("export_timeout_ms must be positive")
        validate_boundaries("request_duration_buckets", self.request_duration_buckets)
        return self


def validate_boundaries(name: str, boundaries: tuple[float, ...]) -> None:
    """Bucket boundaries must be non-empty, finite and strictly ascending."""
    if not boundaries:
        raise ConfigurationError(f"{name}: bucket boundaries must not be empty")
    for b in boundaries:
        if not isinstance(b, (int, float)) or isinstance(b, bool) or not math.isfinite(b):
            raise ConfigurationError(f"{name}: bucket boundary {b!r} is not a finite number")
    for lower, upper in zip(boundaries, boundaries[1:]):
        if upper <= lower:
            raise ConfigurationError(
                f"{name}: bucket boundaries must be strictly ascending ({lower} >= {upper})"
            )


def _normalize_protocol(raw: str) -> str:
    value = (raw or "").strip().lower()
    if value not in _PROTOCOL_ALIASES:
        raise ConfigurationError(f"Unsupported exporter protocol {raw!r}")
    return _PROTOCOL_ALIASES[value]


def _as_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    raise ConfigurationError(f"{key} must be true or false, got {value!r}")


def _settings_from_mapping(data: dict[str, Any]) -> dict[str, Any]:
    """Translate the YAML layout (service/exporter/tracing/metrics/database) into field kwargs."""
    kwargs: dict[str, Any] = {}

    service = data.get("service") or {}
    if isinstance(service, dict):
        if isinstance(service.get("name"), str):
            kwargs["service_name"] = service["name"]
        if service.get("version") is not None:
            kwargs["service_version"] = str(service["version"])

    exporter = data.get("exporter") or {}
    if isinstance(exporter, dict):
        if isinstance(exporter.get("endpoint"), str):
            kwargs["endpoint"] = exporter["endpoint"]
        if isinstance(exporter.get("protocol"), str):
            kwargs["protocol"] = _normalize_protocol(exporter["protocol"])
        headers = exporter.get("headers")
        if isinstance(headers, dict):
            kwargs["headers"] = {str(k): str(v) for k, v in headers.items()}
        if "batch" in exporter:
            kwargs["batch_spans"] = _as_bool(exporter["batch"], "exporter.batch")
        if "timeout_ms" in exporter:
            kwargs["export_timeout_ms"] = int(exporter["timeout_ms"])

    tracing = data.get("tracing") or {}
    if isinstance(tracing, dict):
        for key, attr_name in (
            ("enabled", "tracing_enabled"),
            ("business_spans", "business_spans"),
            ("capture_db_statements", "capture_db_statements"),
            ("record_exceptions", "record_exceptions"),
        ):
            if key in tracing:
                kwargs[attr_name] = _as_bool(tracing[key], f"tracing.{key}")

    metrics = data.get("metrics") or {}
    if isinstance(metrics, dict):
        if "export_interval_ms" in metrics:
            kwargs["metric_export_interval_ms"] = int(metrics["export_interval_ms"])
        buckets = metrics.get("request_duration_buckets")
        if buckets is not None:
            if not isinstance(buckets, list):
                raise ConfigurationError("metrics.request_duration_buckets must be a list")
            kwargs["request_duration_buckets"] = tuple(buckets)

    database = data.get("database") or {}
    if isinstance(database, dict) and isinstance(database.get("url"), str):
        kwargs["database_url"] = database["url"]

    return kwargs


def _env_overrides() -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    if os.environ.get("OTEL_SERVICE_NAME", "").strip():
        overrides["service_name"] = os.environ["OTEL_SERVICE_NAME"].strip()
    if os.environ.get("OTEL_SERVICE_VERSION", "").strip():
        overrides["service_version"] = os.environ["OTEL_SERVICE_VERSION"].strip()
    if os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT", "").strip():
        overrides["endpoint"] = os.environ["OTEL_EXPORTER_OTLP_ENDPOINT"].strip()
    if os.environ.get("OTEL_EXPORTER_OTLP_PROTOCOL", "").strip():
        overrides["protocol"] = _normalize_protocol(os.environ["OTEL_EXPORTER_OTLP_PROTOCOL"])
    if os.environ.get("CATALOG_DATABASE_URL", "").strip():
        overrides["database_url"] = os.environ["CATALOG_DATABASE_URL"].strip()
    return overrides


def load_settings(path: str | Path | None = None, **overrides: Any) -> TelemetrySettings:
    """
    Build validated settings from YAML, environment and explicit overrides.

    Precedence (lowest to highest): dataclass defaults, YAML file, environment,
    keyword overrides (used by the CLI).

    Raises:
        ConfigurationError: when the resulting settings are invalid.
    """
    if path is None:
        env_path = os.environ.get("CATALOG_CONFIG", "").strip()
        config_path = Path(env_path) if env_path else CONFIG_PATH
    else:
        config_path = Path(path)

    try:
        kwargs = _settings_from_mapping(load_yaml(config_path))
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid settings in {config_path}: {e}") from e
    kwargs.update(_env_overrides())
    kwargs.update({k: v for k, v in overrides.items() if v is not None})
    if "protocol" in overrides and overrides["protocol"] is not None:
        kwargs["protocol"] = _normalize_protocol(overrides["protocol"])
    if "request_duration_buckets" in kwargs:
        kwargs["request_duration_buckets"] = tuple(kwargs["request_duration_buckets"])

    return TelemetrySettings(**kwargs).validate()


def with_overrides(settings: TelemetrySettings, **changes: Any) -> TelemetrySettings:
    """Return a copy of settings with changes applied and re-validated."""
    return replace(settings, **changes).validate()
