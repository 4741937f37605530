import contextvars
from typing import Any, Dict, Optional

import opentelemetry.trace as trace

from gcplogs.tracing import Tracer

TRACE_KEY = "logging.googleapis.com/trace"
SPAN_ID_KEY = "logging.googleapis.com/spanId"
TRACE_SAMPLED_KEY = "logging.googleapis.com/trace_sampled"

# The context bucket for the request
_log_context: contextvars.ContextVar[Optional[Dict[str, Any]]] = contextvars.ContextVar(
    "gcplogs_log_context", default=None
)


class LogContext:
    def _get_ctx(self) -> Dict[str, Any]:
        ctx = _log_context.get()
        if ctx is None:
            ctx = {}
            _log_context.set(ctx)
        return ctx

    def add(self, key: str, value: Any) -> None:
        """
        Adds a key-value pair to the current request context.
        Supports dot notation for nesting (e.g., 'httpRequest.status').
        Keys starting with 'logging.googleapis.com' are kept flat.
        """
        ctx = self._get_ctx().copy()

        if "." in key and not key.startswith("logging.googleapis.com"):
            parts = key.split(".")
            d = ctx
            for part in parts[:-1]:
                if part not in d or not isinstance(d[part], dict):
                    d[part] = {}
                else:
                    d[part] = dict(d[part])
                d = d[part]
            d[parts[-1]] = value
        else:
            ctx[key] = value

        _log_context.set(ctx)

    def enrich(self, **kwargs: Any) -> None:
        """Convenience method to add multiple attributes to the context."""
        for key, value in kwargs.items():
            self.add(key, value)

    def get_all(self) -> Dict[str, Any]:
        """Returns all data in the current context."""
        return self._get_ctx()

    def clear(self) -> None:
        """Clears the context."""
        _log_context.set(None)

    def record_exception(self, exc: BaseException) -> None:
        """Standardized exception recording."""
        error_info = {
            "type": exc.__class__.__name__,
            "message": str(exc),
            "module": exc.__class__.__module__,
        }
        self.add("error", error_info)
        self.add("severity", "ERROR")

    def initialize_with_trace(self, tracer: Tracer, request: Any) -> bool:
        """
        Injects trace correlation from the request's X-Cloud-Trace-Context
        header. Returns False if the request carries no usable trace.
        """
        trace_name = tracer.from_request(request)
        if not trace_name:
            return False

        self.add(TRACE_KEY, trace_name)
        span_context = tracer.context_from_request(request)
        if span_context is not None:
            if span_context.span_id:
                self.add(SPAN_ID_KEY, span_context.span_id)
            self.add(TRACE_SAMPLED_KEY, span_context.sampled)
        return True

    def initialize_with_otel(self, project_id: Optional[str] = None) -> None:
        """Injects OTel trace and span IDs if available."""
        span = trace.get_current_span()
        if span and span.get_span_context().is_valid:
            span_context = span.get_span_context()
            trace_id = trace.format_trace_id(span_context.trace_id)
            span_id = trace.format_span_id(span_context.span_id)

            if project_id:
                # GCP standard trace format
                self.add(TRACE_KEY, Tracer(project_id).trace_name(trace_id))
            else:
                self.add(TRACE_KEY, trace_id)

            self.add(SPAN_ID_KEY, span_id)
            self.add(TRACE_SAMPLED_KEY, span_context.trace_flags.sampled)


log_ctx = LogContext()
