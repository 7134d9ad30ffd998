"""OpenTelemetry instrumentation for autopr."""

from typing import Any

from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from src.logger import get_logger

logger = get_logger(__name__)


def get_git_version() -> str:
    """Get the current git commit SHA (short).

    Returns:
        Short commit SHA (e.g., '352de11')
        Returns 'unknown' if git is not available or not in a repo.
    """
    import subprocess

    try:
        result = subprocess.run(
            ["git", "rev-parse", "--short", "HEAD"],
            capture_output=True,
            text=True,
            check=True,
            timeout=5,
        )
        return result.stdout.strip()
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired, FileNotFoundError):
        return "unknown"


_initialized = False
_tracer: trace.Tracer | None = None
_meter: metrics.Meter | None = None
_item_counter: metrics.Counter | None = None
_duration_histogram: metrics.Histogram | None = None


def init_telemetry(
    endpoint: str,
    service_name: str,
    service_version: str | None = None,
) -> None:
    """Initialize OpenTelemetry tracing and metrics.

    Scheduled invocations are short-lived, so the metric reader exports on
    shutdown as well as periodically.

    Args:
        endpoint: OTLP endpoint URL (e.g., http://localhost:4318)
        service_name: Service name for telemetry (e.g., "autopr")
        service_version: Optional service version (e.g., git SHA)
    """
    global _initialized, _tracer, _meter
    global _item_counter, _duration_histogram

    if _initialized or not endpoint:
        return

    resource_attrs = {"service.name": service_name}
    if service_version:
        resource_attrs["service.version"] = service_version
    resource = Resource.create(resource_attrs)

    trace_exporter = OTLPSpanExporter(endpoint=f"{endpoint}/v1/traces")
    trace_provider = TracerProvider(resource=resource)
    trace_provider.add_span_processor(BatchSpanProcessor(trace_exporter))
    trace.set_tracer_provider(trace_provider)
    _tracer = trace.get_tracer(__name__)

    metric_exporter = OTLPMetricExporter(endpoint=f"{endpoint}/v1/metrics")
    metric_reader = PeriodicExportingMetricReader(metric_exporter, export_interval_millis=10000)
    meter_provider = MeterProvider(resource=resource, metric_readers=[metric_reader])
    metrics.set_meter_provider(meter_provider)
    _meter = metrics.get_meter(__name__)

    _item_counter = _meter.create_counter(
        "polling.items",
        unit="items",
        description="Items handled by polling services, by outcome",
    )
    _duration_histogram = _meter.create_histogram(
        "polling.duration",
        unit="ms",
        description="Duration of polling batches in milliseconds",
    )

    _initialized = True
    version_info = f", version={service_version}" if service_version else ""
    logger.info(
        f"OpenTelemetry initialized: endpoint={endpoint}, service={service_name}{version_info}"
    )


def get_tracer() -> trace.Tracer:
    """Get the global tracer, or a no-op tracer if not initialized."""
    return _tracer or trace.get_tracer(__name__)


def record_polling_metrics(
    service: str,
    processed: int,
    skipped: int,
    errored: int,
    duration_ms: float,
) -> None:
    """Record the outcome counts of one polling batch.

    Args:
        service: Polling service name (e.g., "ticket_ingestion")
        processed: Items processed successfully
        skipped: Items skipped (validation, transient API errors, no-ops)
        errored: Items that failed with system errors
        duration_ms: Batch wall-clock duration
    """
    if not _initialized:
        return

    attributes: dict[str, Any] = {"service": service}

    if _item_counter:
        for outcome, count in (
            ("processed", processed),
            ("skipped", skipped),
            ("errored", errored),
        ):
            if count:
                _item_counter.add(count, {**attributes, "outcome": outcome})

    if _duration_histogram:
        _duration_histogram.record(duration_ms, attributes)


def shutdown_telemetry() -> None:
    """Flush pending spans and metrics before a scheduled invocation exits."""
    global _initialized

    if not _initialized:
        return

    tracer_provider = trace.get_tracer_provider()
    if isinstance(tracer_provider, TracerProvider):
        tracer_provider.shutdown()
    meter_provider = metrics.get_meter_provider()
    if isinstance(meter_provider, MeterProvider):
        meter_provider.shutdown()
    _initialized = False
