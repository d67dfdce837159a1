"""
Logfire observability configuration for PowerBrief.

Provides tracing for the OneSheet pipeline stages:
- Context assembly
- Provider dispatch (Gemini / Claude)
- Normalization and persistence

Usage:
    # At app startup
    from powerbrief.core.observability import setup_logfire
    setup_logfire()

    # In services
    import logfire

    with logfire.span("dispatch_prompt", provider=provider.name):
        ...

Environment Variables:
    LOGFIRE_TOKEN: Logfire write token (spans stay local when unset)
    LOGFIRE_PROJECT_NAME: Project name in Logfire dashboard
    LOGFIRE_ENVIRONMENT: Environment name (development, staging, production)
"""

import os
import logging
from contextvars import ContextVar
from typing import Optional

import logfire

logger = logging.getLogger(__name__)

_logfire_configured = False
_logfire_exporting = False

# Correlation id of the HTTP request being served ("-" outside requests)
request_id_var: ContextVar[str] = ContextVar("request_id", default="-")


class RequestIdFilter(logging.Filter):
    """Adds the current request id to every record as ``request_id``."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        return True


def setup_logfire(
    project_name: Optional[str] = None,
    environment: Optional[str] = None,
    service_name: str = "powerbrief"
) -> bool:
    """
    Configure Logfire for observability.

    Args:
        project_name: Logfire project name (or LOGFIRE_PROJECT_NAME env var)
        environment: Environment name (or LOGFIRE_ENVIRONMENT env var)
        service_name: Service name for tracing

    Returns:
        True if spans are exported to Logfire, False if they stay local (no token)
    """
    global _logfire_configured, _logfire_exporting

    if _logfire_configured:
        logger.debug("Logfire already configured")
        return _logfire_exporting

    token = os.environ.get("LOGFIRE_TOKEN")
    project = project_name or os.environ.get("LOGFIRE_PROJECT_NAME", "powerbrief")
    env = environment or os.environ.get("LOGFIRE_ENVIRONMENT", "development")

    logfire.configure(
        token=token or None,
        service_name=service_name,
        environment=env,
        send_to_logfire=bool(token),
        console=False,
    )
    logfire.instrument_pydantic()
    _logfire_configured = True

    if not token:
        logger.info("LOGFIRE_TOKEN not set, spans are recorded locally only")
        return False

    _logfire_exporting = True
    logger.info(f"Logfire configured: project={project}, environment={env}")
    return True
