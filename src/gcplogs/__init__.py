from gcplogs.core.context import log_ctx
from gcplogs.core.metadata import (
    CREDENTIALS_ENV_VAR,
    PROJECT_ENV_VAR,
    ProjectIDResolver,
    default_project_id,
)
from gcplogs.logging_setup import GCPTraceFilter, StructuredFormatter, configure_logging
from gcplogs.tracing import TRACE_HEADER, TraceContext, Tracer, parse_trace_header

__all__ = [
    "CREDENTIALS_ENV_VAR",
    "PROJECT_ENV_VAR",
    "TRACE_HEADER",
    "GCPTraceFilter",
    "ProjectIDResolver",
    "StructuredFormatter",
    "TraceContext",
    "Tracer",
    "configure_logging",
    "default_project_id",
    "log_ctx",
    "parse_trace_header",
]
