"""OpenTelemetry and structlog configuration for the chat service."""

import logging
import os

import structlog
from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import ConsoleMetricExporter, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

# Service identification
SERVICE_NAME_VALUE = os.getenv("OTEL_SERVICE_NAME", "chatstream-api")
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


def _select_exporter(signal: str, otlp_cls, console_cls):
    """Pick an exporter for a signal ("traces" or "metrics") from the environment.

    Returns None when export is disabled or misconfigured.
    """
    if os.getenv(f"OTEL_ENABLE_{signal.upper()}", "true").lower() != "true":
        logger.info("otel_signal_disabled", signal=signal)
        return None

    exporter_type = os.getenv(f"OTEL_{signal.upper()}_EXPORTER", "console")

    if exporter_type == "otlp":
        otlp_endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
        if not otlp_endpoint:
            logger.warning("otel_otlp_endpoint_missing", signal=signal)
            return None
        logger.info("otel_exporter_selected", signal=signal, exporter="otlp", endpoint=otlp_endpoint)
        return otlp_cls(endpoint=otlp_endpoint)

    if exporter_type == "console":
        logger.info("otel_exporter_selected", signal=signal, exporter="console")
        return console_cls()

    # 'none' or any other value disables export
    logger.info("otel_export_disabled", signal=signal, exporter=exporter_type)
    return None


def configure_tracing() -> TracerProvider:
    """Configure OpenTelemetry tracing."""
    provider = TracerProvider(resource=get_resource())

    span_exporter = _select_exporter("traces", OTLPSpanExporter, ConsoleSpanExporter)
    if span_exporter is not None:
        provider.add_span_processor(BatchSpanProcessor(span_exporter))

    trace.set_tracer_provider(provider)
    return provider


def configure_metrics() -> MeterProvider:
    """Configure OpenTelemetry metrics."""
    metric_readers = []

    metric_exporter = _select_exporter("metrics", OTLPMetricExporter, ConsoleMetricExporter)
    if metric_exporter is not None:
        metric_readers.append(
            PeriodicExportingMetricReader(
                metric_exporter,
                export_interval_millis=int(os.getenv("OTEL_METRIC_EXPORT_INTERVAL", "60000")),
            )
        )

    provider = MeterProvider(resource=get_resource(), metric_readers=metric_readers)
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
    # Logging first so exporter selection is logged in the configured format
    configure_logging()

    tracer_provider = configure_tracing()
    meter_provider = configure_metrics()

    structlog.get_logger().info(
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
        meter = get_meter("chatstream.metrics")

        # Counters
        self.sessions_created = meter.create_counter(
            name="chat.sessions.created", description="Chat sessions created", unit="1"
        )
        self.messages_persisted = meter.create_counter(
            name="chat.messages.persisted", description="Chat messages written to history", unit="1"
        )
        self.stream_chunks = meter.create_counter(
            name="chat.stream.chunks", description="Stream chunks forwarded to callers", unit="1"
        )
        self.streams_cancelled = meter.create_counter(
            name="chat.stream.cancelled", description="Streams cancelled by the caller", unit="1"
        )
        self.model_errors = meter.create_counter(
            name="chat.model.errors", description="Language-model failures and timeouts", unit="1"
        )
        self.store_errors = meter.create_counter(
            name="chat.store.errors", description="Failed store operations", unit="1"
        )
        self.persist_warnings = meter.create_counter(
            name="chat.persist.warnings",
            description="Delivered turns that could not be persisted",
            unit="1",
        )

        # Histograms
        self.stream_duration = meter.create_histogram(
            name="chat.stream.duration",
            description="Wall-clock duration of one streamed reply in milliseconds",
            unit="ms",
        )
        self.db_query_duration = meter.create_histogram(
            name="db.query.duration",
            description="Database query duration in milliseconds",
            unit="ms",
        )


# Global metrics instance
app_metrics: AppMetrics | None = None


def get_app_metrics() -> AppMetrics:
    """Get the global application metrics instance."""
    global app_metrics
    if app_metrics is None:
        app_metrics = AppMetrics()
    return app_metrics
