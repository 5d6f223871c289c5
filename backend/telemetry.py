# telemetry.py — OpenTelemetry instrumentation for HexTask
"""
Configures distributed tracing for inbound requests and outbound calls to
the hosted data service. Exports to an OTLP collector when
OTEL_EXPORTER_OTLP_ENDPOINT is set, otherwise stays disabled.
"""
import os
import logging

from database import SUPABASE_URL, BACKEND_TIMEOUT_SECONDS

logger = logging.getLogger("hextask.telemetry")

SERVICE_NAME = os.getenv("OTEL_SERVICE_NAME", "hextask-api")
SERVICE_VERSION = "1.0.0"
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
OTLP_ENDPOINT = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "")


def resource_attributes() -> dict:
    """Resource attributes attached to every span, including the upstream data service"""
    return {
        "service.name": SERVICE_NAME,
        "service.version": SERVICE_VERSION,
        "deployment.environment": ENVIRONMENT,
        "hextask.data_service.url": SUPABASE_URL,
        "hextask.data_service.timeout_s": BACKEND_TIMEOUT_SECONDS,
    }


def setup_telemetry(app=None):
    """Initialise tracing and instrument FastAPI plus the HTTPX data client.

    Returns the tracer provider, or None when tracing is not configured.
    """
    if not OTLP_ENDPOINT:
        logger.info("OpenTelemetry disabled (OTEL_EXPORTER_OTLP_ENDPOINT not set)")
        return None

    try:
        from opentelemetry import trace
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
    except ImportError:
        logger.info("OpenTelemetry SDK not installed — tracing disabled")
        return None

    provider = TracerProvider(resource=Resource.create(resource_attributes()))
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=OTLP_ENDPOINT, insecure=True)))
    trace.set_tracer_provider(provider)

    if app is not None:
        try:
            from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
            FastAPIInstrumentor.instrument_app(app, excluded_urls="health", tracer_provider=provider)
            logger.info("FastAPI instrumented with OpenTelemetry")
        except ImportError:
            logger.warning("opentelemetry-instrumentation-fastapi not installed")

    # Every call to the data service goes through httpx
    try:
        from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
        HTTPXClientInstrumentor().instrument(tracer_provider=provider)
        logger.info("HTTPX instrumented with OpenTelemetry")
    except ImportError:
        logger.warning("opentelemetry-instrumentation-httpx not installed")

    logger.info(f"OpenTelemetry initialised → {OTLP_ENDPOINT}")
    return provider
