"""
Tracing module.

Opt-in OpenTelemetry export for the voice agent service. The FastAPI
request span carries the pipeline outcome (endpoint, cache hit, cost,
rate limiting) as `voice_agent.*` attributes.
"""
import logging
from typing import Optional, Union

from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from .config import OTLP_ENDPOINT, TRACING_ENABLED, TRACING_SERVICE_NAME

logger = logging.getLogger(__name__)

ATTRIBUTE_PREFIX = "voice_agent."

# Health checks and metric scrapes are not visitor traffic
EXCLUDED_URLS = "health,metrics"


def annotate_span(**attributes: Union[str, bool, int, float]) -> None:
    """
    Attach pipeline attributes to the active span.

    A no-op when no span is recording, which is the case whenever
    tracing is disabled.
    """
    span = trace.get_current_span()
    if not span.is_recording():
        return
    for name, value in attributes.items():
        span.set_attribute(f"{ATTRIBUTE_PREFIX}{name}", value)


def setup_tracing(
    app,
    service_name: Optional[str] = None,
    enabled: Optional[bool] = None,
    endpoint: Optional[str] = None
) -> bool:
    """
    Export request spans for the voice agent app over OTLP.

    Args:
        app: The FastAPI application instance.
        service_name: Optional override of TRACING_SERVICE_NAME.
        enabled: Optional override of TRACING_ENABLED.
        endpoint: Optional override of OTLP_ENDPOINT.

    Returns:
        True if the app was instrumented.
    """
    if not (TRACING_ENABLED if enabled is None else enabled):
        logger.info("Tracing is disabled.")
        return False

    name = service_name or TRACING_SERVICE_NAME
    otlp_endpoint = endpoint or OTLP_ENDPOINT

    try:
        provider = TracerProvider(resource=Resource(attributes={SERVICE_NAME: name}))
        provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True))
        )
        trace.set_tracer_provider(provider)
        FastAPIInstrumentor.instrument_app(app, excluded_urls=EXCLUDED_URLS)
    except Exception as e:
        logger.error(f"Tracing disabled for {name}, exporter setup failed: {e}")
        return False

    logger.info(f"Tracing {name} to {otlp_endpoint}")
    return True
