"""Observability configuration for Azure Monitor and OpenTelemetry.

Tracing is always available through the OpenTelemetry API; without a
configured SDK the tracer is a no-op. Azure Monitor export is opt-in.

PII and Sensitive Data Guidance:
--------------------------------
- NEVER put document bytes, file names, prompt text, or generated analysis
  text into span attributes
- Use session ids and correlation IDs to link traces
- Prefer the StructuredLogger (core/error_handler.py) which redacts sensitive
  keys automatically
- Safe span attributes: provider, model name, delta counts, byte lengths,
  outcome/error codes

For production (Azure):
- Set ENABLE_OBSERVABILITY=true
- Set APPLICATIONINSIGHTS_CONNECTION_STRING to your App Insights connection string
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache

from opentelemetry import trace


logger = logging.getLogger(__name__)

# Environment variable names
_ENV_ENABLE_OBSERVABILITY = "ENABLE_OBSERVABILITY"
_ENV_APP_INSIGHTS_CONN_STRING = "APPLICATIONINSIGHTS_CONNECTION_STRING"
_ENV_OTEL_SERVICE_NAME = "OTEL_SERVICE_NAME"

_DEFAULT_SERVICE_NAME = "cvstream-backend"

# Paths to exclude from automatic tracing (reduce noise for health checks)
EXCLUDED_URLS = "health,health/,favicon.ico"


def _is_observability_enabled() -> bool:
    """Return True when ENABLE_OBSERVABILITY holds a truthy value."""
    value = os.getenv(_ENV_ENABLE_OBSERVABILITY, "false").lower()
    return value in {"true", "1", "yes", "on"}


@lru_cache
def configure_observability() -> bool:
    """Configure OpenTelemetry export to Azure Monitor.

    Call once at application startup, before FastAPI is imported, so the
    auto-instrumentation can patch it.

    Returns:
        True if Azure Monitor export was configured, False otherwise.
    """
    if not _is_observability_enabled():
        logger.info(
            "Observability disabled. Set %s=true to enable Azure Monitor.",
            _ENV_ENABLE_OBSERVABILITY,
        )
        return False

    connection_string = os.getenv(_ENV_APP_INSIGHTS_CONN_STRING)
    if not connection_string:
        logger.warning(
            "Observability enabled but %s not set. Skipping Azure Monitor setup.",
            _ENV_APP_INSIGHTS_CONN_STRING,
        )
        return False

    try:
        # Optional extra: `pip install cvstream-backend[observability]`
        from azure.monitor.opentelemetry import configure_azure_monitor
    except ImportError:
        logger.warning(
            "azure-monitor-opentelemetry package not installed. "
            "Install the 'observability' extra to export traces."
        )
        return False

    service_name = os.getenv(_ENV_OTEL_SERVICE_NAME, _DEFAULT_SERVICE_NAME)
    os.environ.setdefault(_ENV_OTEL_SERVICE_NAME, service_name)
    os.environ.setdefault("OTEL_PYTHON_FASTAPI_EXCLUDED_URLS", EXCLUDED_URLS)

    try:
        configure_azure_monitor(connection_string=connection_string)
    except Exception as e:
        logger.exception("Failed to configure Azure Monitor observability: %s", e)
        return False

    logger.info("Azure Monitor observability configured for service '%s'", service_name)
    return True


def get_tracer(name: str) -> trace.Tracer:
    """Get an OpenTelemetry tracer for custom spans.

    Example:
        tracer = get_tracer(__name__)

        with tracer.start_as_current_span("analysis.provider_stream") as span:
            span.set_attribute("analysis.provider", "openai")

    WARNING: Never add document content or PII to span attributes!
    """
    return trace.get_tracer(name)
