"""OpenTelemetry setup for the DailyReel backend

Everything is a no-op unless OTEL_EXPORTER_OTLP_ENDPOINT is set. Spans for the
upload pipeline and the compression engine come from ``get_tracer``; without
a configured provider those spans are non-recording.
"""
import logging

from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from dailyreel.core.config import settings

logger = logging.getLogger(__name__)

TRACER_NAME = "dailyreel"
EXPORT_TIMEOUT_MS = 30000


def _service_resource() -> Resource:
    return Resource.create({
        "service.name": settings.OTEL_SERVICE_NAME,
        "service.version": "1.0.0",
        "deployment.environment": settings.OTEL_ENVIRONMENT
    })


def _collector() -> dict:
    """Exporter arguments shared by traces, metrics and logs"""
    return {"endpoint": settings.OTEL_EXPORTER_OTLP_ENDPOINT, "insecure": True}


def initialize_otel() -> bool:
    """Install trace and metric providers; False when no collector is configured"""
    if not settings.OTEL_EXPORTER_OTLP_ENDPOINT:
        return False

    try:
        resource = _service_resource()

        tracer_provider = TracerProvider(resource=resource)
        tracer_provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(**_collector())))
        trace.set_tracer_provider(tracer_provider)

        reader = PeriodicExportingMetricReader(
            OTLPMetricExporter(**_collector()),
            export_interval_millis=5000,
            export_timeout_millis=EXPORT_TIMEOUT_MS
        )
        metrics.set_meter_provider(MeterProvider(resource=resource, metric_readers=[reader]))
        return True
    except Exception as e:
        logger.warning(f"Failed to initialize OpenTelemetry: {e}")
        return False


def setup_otel_logging() -> bool:
    """Ship log records (upload, drive, sync, ...) to the collector as well"""
    if not settings.OTEL_EXPORTER_OTLP_ENDPOINT:
        return False

    try:
        from opentelemetry._logs import set_logger_provider
        from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter
        from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
        from opentelemetry.sdk._logs.export import BatchLogRecordProcessor

        provider = LoggerProvider(resource=_service_resource())
        provider.add_log_record_processor(BatchLogRecordProcessor(
            OTLPLogExporter(**_collector()),
            max_queue_size=2048,
            export_timeout_millis=EXPORT_TIMEOUT_MS,
            schedule_delay_millis=5000
        ))
        set_logger_provider(provider)
        logging.getLogger().addHandler(LoggingHandler(level=logging.NOTSET, logger_provider=provider))
        return True
    except Exception as e:
        logger.warning(f"Failed to setup OTEL logging: {e}")
        return False


def get_tracer():
    return trace.get_tracer(TRACER_NAME)


def instrument_fastapi(app):
    FastAPIInstrumentor.instrument_app(app)


def instrument_httpx():
    """Traces every Drive API request made through httpx"""
    HTTPXClientInstrumentor().instrument()


def instrument_sqlalchemy(engine):
    try:
        SQLAlchemyInstrumentor().instrument(engine=engine)
        logger.info("SQLAlchemy instrumentation enabled")
    except Exception as e:
        logger.warning(f"Failed to instrument SQLAlchemy: {e}")
