import os
from fastapi import FastAPI
from opentelemetry import trace, metrics
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.instrumentation.psycopg2 import Psycopg2Instrumentor
from loguru import logger

# Resolved lazily through the global meter provider so the counter follows
# whatever provider setup_telemetry installs (or the no-op default).
_meter = metrics.get_meter("food_rescue.workflow")
transition_counter = _meter.create_counter(
    "workflow.transitions",
    unit="1",
    description="Accepted status transitions per entity type and target status",
)
sweep_counter = _meter.create_counter(
    "workflow.expired",
    unit="1",
    description="Entities expired by the expiry sweep",
)


def record_transition(entity_type: str, new_status: str) -> None:
    """Count one accepted transition."""
    transition_counter.add(1, {"entity_type": entity_type, "new_status": new_status})


def record_expired(entity_type: str, count: int) -> None:
    """Count entities expired by a sweep run."""
    if count:
        sweep_counter.add(count, {"entity_type": entity_type})


def setup_telemetry(app: FastAPI):
    """
    Initialize OpenTelemetry tracing and metrics when an OTLP endpoint is configured.

    Creates and registers tracer and meter providers using OTLP exporters configured via environment variables (OTEL_EXPORTER_OTLP_ENDPOINT, OTEL_SERVICE_NAME, ENVIRONMENT, OTEL_EXPORTER_OTLP_INSECURE), and instruments the provided FastAPI app plus SQLAlchemy and Psycopg2 once. If no endpoint is configured, telemetry is left disabled; setup failures are logged but not raised.

    Parameters:
        app (FastAPI): FastAPI application to instrument (excludes /health).
    """
    endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    if not endpoint:
        logger.warning("No endpoint configured. Telemetry disabled.")
        return
    try:
        resource = Resource.create(
            {
                "service.name": os.getenv("OTEL_SERVICE_NAME", "food-rescue-api"),
                "deployment.environment": os.getenv("ENVIRONMENT", "development"),
            }
        )

        insecure = os.getenv("OTEL_EXPORTER_OTLP_INSECURE", "false").lower() == "true"

        tracer_provider = TracerProvider(resource=resource)
        span_exporter = OTLPSpanExporter(endpoint=endpoint, insecure=insecure)
        tracer_provider.add_span_processor(BatchSpanProcessor(span_exporter))
        trace.set_tracer_provider(tracer_provider)

        metric_reader = PeriodicExportingMetricReader(
            OTLPMetricExporter(endpoint=endpoint, insecure=insecure)
        )
        meter_provider = MeterProvider(
            resource=resource, metric_readers=[metric_reader]
        )
        metrics.set_meter_provider(meter_provider)

        if not hasattr(setup_telemetry, "_instrumented"):
            FastAPIInstrumentor.instrument_app(app, excluded_urls="/health")
            SQLAlchemyInstrumentor().instrument(enable_commenter=True)  # type: ignore
            Psycopg2Instrumentor().instrument(  # type: ignore
                enable_commenter=True, skip_dep_check=True
            )
            setup_telemetry._instrumented = True  # type: ignore

        logger.info("Traces & Metrics Active.")

    except Exception as e:
        logger.error(f"Traces & Metrics Setup Failed: {e}")
