# ==== OPENTELEMETRY TRACING CONFIGURATION ==== #

"""
OpenTelemetry tracing configuration for the review batch executor.

Tracing is exported over OTLP only when an endpoint is configured; otherwise
the no-op tracer provider from the API package is used and spans cost nothing.
"""

from typing import Dict, Any, Optional

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

from review_batch.settings import Settings, get_settings


# ==== TRACING INITIALIZATION ==== #

def init_tracing(service_name: str, settings: Optional[Settings] = None) -> bool:
    """
    Initialize OpenTelemetry tracing with an OTLP exporter.

    Args:
        service_name (str): Name of the service for tracing identification
        settings (Settings): Source of the OTEL_* options; global settings by default

    Returns:
        bool: True when a tracer provider was installed
    """
    settings = settings or get_settings()
    endpoint = settings.OTEL_EXPORTER_OTLP_ENDPOINT

    # Allow local runs without an APM backend
    if not endpoint:
        return False

    resource_attrs = _parse_resource_attributes(
        settings.OTEL_RESOURCE_ATTRIBUTES or ""
    )
    resource_attrs["service.name"] = settings.OTEL_SERVICE_NAME or service_name

    provider = TracerProvider(resource=Resource.create(resource_attrs))
    exporter = OTLPSpanExporter(
        endpoint=endpoint,
        headers=_parse_headers(settings.OTEL_EXPORTER_OTLP_HEADERS),
    )
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)

    HTTPXClientInstrumentor().instrument()
    return True


def _parse_headers(headers_str: str | None) -> Dict[str, str]:
    """Parse OTLP headers from the OTEL_EXPORTER_OTLP_HEADERS setting.

    Args:
        headers_str: Comma-separated key=value pairs

    Returns:
        Dictionary of headers
    """
    headers = {}
    if not headers_str:
        return headers

    for part in headers_str.split(","):
        if "=" in part:
            key, value = part.split("=", 1)
            headers[key.strip()] = value.strip()

    return headers


def _parse_resource_attributes(attrs_str: str) -> Dict[str, Any]:
    """Parse OTEL resource attributes from the OTEL_RESOURCE_ATTRIBUTES setting."""
    attrs = {}
    if not attrs_str:
        return attrs

    for part in filter(None, map(str.strip, attrs_str.split(","))):
        if "=" in part:
            key, value = part.split("=", 1)
            attrs[key] = value

    return attrs


def get_tracer(name: str) -> trace.Tracer:
    """Get a tracer instance for the given module.

    Args:
        name: Module name (typically __name__)

    Returns:
        Tracer instance
    """
    return trace.get_tracer(name)
