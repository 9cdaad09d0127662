"""OpenTelemetry and structlog configuration for Vocalyn."""

import logging
import os

import structlog
from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import (
    ConsoleMetricExporter,
    MetricExporter,
    PeriodicExportingMetricReader,
)
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter, SpanExporter

# Service identification
SERVICE_NAME_VALUE = os.getenv("OTEL_SERVICE_NAME", "vocalyn-api")
SERVICE_VERSION_VALUE = os.getenv("OTEL_SERVICE_VERSION", "0.1.0")
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

logger = structlog.get_logger(__name__)


def get_resource() -> Resource:
    """Create OpenTelemetry resource with service attributes."""
    return Resource.create(
        {
            SERVICE_NAME: SERVICE_NAME_VALUE,
            SERVICE_VERSION: SERVICE_VERSION_VALUE,
            "deployment.environment": ENVIRONMENT,
        }
    )


def _env_enabled(name: str) -> bool:
    return os.getenv(name, "true").lower() == "true"


def _span_exporter() -> SpanExporter | None:
    """Pick the span exporter from OTEL_TRACES_EXPORTER (console, otlp or none)."""
    exporter_type = os.getenv("OTEL_TRACES_EXPORTER", "console")

    if exporter_type == "otlp":
        otlp_endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
        if otlp_endpoint:
            logger.info("otel_span_exporter", exporter="otlp", endpoint=otlp_endpoint)
            return OTLPSpanExporter(endpoint=otlp_endpoint)
        logger.warning("otel_otlp_endpoint_missing", signal="traces")
        return None
    if exporter_type == "console":
        logger.info("otel_span_exporter", exporter="console")
        return ConsoleSpanExporter()

    logger.info("otel_span_export_disabled")
    return None


def _metric_exporter() -> MetricExporter | None:
    """Pick the metric exporter from OTEL_METRICS_EXPORTER (console, otlp or none)."""
    exporter_type = os.getenv("OTEL_METRICS_EXPORTER", "console")

    if exporter_type == "otlp":
        otlp_endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
        if otlp_endpoint:
            logger.info("otel_metric_exporter", exporter="otlp", endpoint=otlp_endpoint)
            return OTLPMetricExporter(endpoint=otlp_endpoint)
        logger.warning("otel_otlp_endpoint_missing", signal="metrics")
        return None
    if exporter_type == "console":
        logger.info("otel_metric_exporter", exporter="console")
        return ConsoleMetricExporter()

    logger.info("otel_metric_export_disabled")
    return None


def configure_tracing() -> TracerProvider:
    """Configure OpenTelemetry tracing."""
    provider = TracerProvider(resource=get_resource())

    if _env_enabled("OTEL_ENABLE_TRACES"):
        span_exporter = _span_exporter()
        if span_exporter is not None:
            provider.add_span_processor(BatchSpanProcessor(span_exporter))
    else:
        logger.info("otel_tracing_disabled")

    # Set as global tracer provider
    trace.set_tracer_provider(provider)

    return provider


def configure_metrics() -> MeterProvider:
    """Configure OpenTelemetry metrics."""
    metric_readers = []

    if _env_enabled("OTEL_ENABLE_METRICS"):
        metric_exporter = _metric_exporter()
        if metric_exporter is not None:
            metric_readers.append(
                PeriodicExportingMetricReader(
                    metric_exporter,
                    export_interval_millis=int(os.getenv("OTEL_METRIC_EXPORT_INTERVAL", "60000")),
                )
            )
    else:
        logger.info("otel_metrics_disabled")

    provider = MeterProvider(resource=get_resource(), metric_readers=metric_readers)

    # Set as global meter provider
    metrics.set_meter_provider(provider)

    return provider


def add_otel_context(logger, method_name, event_dict):
    """Add OpenTelemetry trace context to log events."""
    span = trace.get_current_span()
    if span and span.is_recording():
        ctx = span.get_span_context()
        event_dict["trace_id"] = format(ctx.trace_id, "032x")
        event_dict["span_id"] = format(ctx.span_id, "016x")
    else:
        event_dict["trace_id"] = "0" * 32
        event_dict["span_id"] = "0" * 16
    return event_dict


def configure_logging():
    """Configure structlog with OpenTelemetry integration."""
    log_level = os.getenv("OTEL_LOG_LEVEL", "INFO").upper()
    log_format = os.getenv("LOG_FORMAT", "json").lower()  # json or console

    # Configure standard library logging
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, log_level),
    )

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_otel_context,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
    ]

    if log_format == "json":
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.processors.ExceptionRenderer(),
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.get_logger().info("logging_configured", log_level=log_level, log_format=log_format)


def initialize_observability():
    """Initialize all OpenTelemetry components."""
    # Configure logging first
    configure_logging()

    logger.info("initializing_observability")

    tracer_provider = configure_tracing()
    meter_provider = configure_metrics()

    logger.info(
        "observability_initialized",
        service_name=SERVICE_NAME_VALUE,
        service_version=SERVICE_VERSION_VALUE,
        environment=ENVIRONMENT,
    )

    return tracer_provider, meter_provider


def get_tracer(name: str = __name__) -> trace.Tracer:
    """Get a tracer instance for creating spans."""
    return trace.get_tracer(name, SERVICE_VERSION_VALUE)


def get_meter(name: str = __name__) -> metrics.Meter:
    """Get a meter instance for creating metrics."""
    return metrics.get_meter(name, SERVICE_VERSION_VALUE)


class AppMetrics:
    """Application-specific metrics."""

    def __init__(self):
        meter = get_meter("vocalyn.metrics")

        # Counters
        self.transcripts_processed = meter.create_counter(
            name="transcripts.processed",
            description="Transcripts turned into structured notes",
            unit="1",
        )

        self.chat_exchanges = meter.create_counter(
            name="chat.exchanges", description="Ask AI exchanges committed to a session", unit="1"
        )

        self.chat_exchange_failures = meter.create_counter(
            name="chat.exchange_failures",
            description="Ask AI exchanges rolled back before persisting",
            unit="1",
        )

        self.citation_parse_failures = meter.create_counter(
            name="chat.citation_parse_failures",
            description="Grounded answers whose sources payload could not be parsed",
            unit="1",
        )

        # Histograms
        self.answer_length = meter.create_histogram(
            name="chat.answer_length",
            description="Length of committed answers in characters",
            unit="char",
        )


# Global metrics instance
app_metrics: AppMetrics | None = None


def get_app_metrics() -> AppMetrics:
    """Get the global application metrics instance."""
    global app_metrics
    if app_metrics is None:
        app_metrics = AppMetrics()
    return app_metrics
