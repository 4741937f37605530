import json
import logging
import sys
import traceback
from datetime import datetime, timezone
from typing import IO, Any, Dict, Optional

from opentelemetry import trace

# Import Google Cloud Logging safely
try:
    import google.cloud.logging
    from google.cloud.logging.handlers import CloudLoggingHandler
except ImportError:
    google = None  # type: ignore[assignment]
    CloudLoggingHandler = None

from gcplogs.core.context import SPAN_ID_KEY, TRACE_KEY, TRACE_SAMPLED_KEY, log_ctx
from gcplogs.core.metadata import default_project_id
from gcplogs.core.serialization import default_serializer
from gcplogs.tracing import Tracer

logger = logging.getLogger(__name__)

# Lowest Python level for each Cloud Logging LogSeverity, highest first
SEVERITY_THRESHOLDS = (
    (logging.CRITICAL, "CRITICAL"),
    (logging.ERROR, "ERROR"),
    (logging.WARNING, "WARNING"),
    (logging.INFO, "INFO"),
    (logging.DEBUG, "DEBUG"),
)


def severity_for(levelno: int) -> str:
    """Maps a Python level, custom levels included, to a LogSeverity name."""
    for threshold, severity in SEVERITY_THRESHOLDS:
        if levelno >= threshold:
            return severity
    return "DEFAULT"


class GCPTraceFilter(logging.Filter):
    """
    Injects GCP-specific trace and span IDs into the log record for correlation.
    The request context (set from X-Cloud-Trace-Context by the integrations)
    wins over the active OpenTelemetry span.
    GCP requires the trace field to be in the format:
    projects/[PROJECT_ID]/traces/[TRACE_ID]
    """

    def __init__(self, project_id: Optional[str] = None):
        super().__init__()
        self.project_id = default_project_id() if project_id is None else project_id

    def filter(self, record: logging.LogRecord) -> bool:
        # Prevent logging loops by excluding logs from the logging/trace clients themselves
        if record.name.startswith(("google", "opentelemetry", "urllib3")):
            return False

        ctx = log_ctx.get_all()
        if ctx.get(TRACE_KEY):
            record.trace = ctx[TRACE_KEY]
            record.span_id = ctx.get(SPAN_ID_KEY, "")
            record.trace_sampled = ctx.get(TRACE_SAMPLED_KEY, False)
            return True

        span_context = trace.get_current_span().get_span_context()
        if span_context.is_valid:
            trace_id = trace.format_trace_id(span_context.trace_id)

            if self.project_id:
                record.trace = Tracer(self.project_id).trace_name(trace_id)
            else:
                record.trace = trace_id

            record.span_id = trace.format_span_id(span_context.span_id)
            record.trace_sampled = span_context.trace_flags.sampled

        return True


class StructuredFormatter(logging.Formatter):
    """
    Renders records as the single-line JSON understood by the Cloud Logging
    agents on Cloud Run, GKE and App Engine.
    Extra fields can be attached with `extra={"json_fields": {...}}`.
    """

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        if record.exc_info:
            # Error Reporting picks up stack traces from the message
            message = f"{message}\n{''.join(traceback.format_exception(*record.exc_info))}"
        elif record.stack_info:
            message = f"{message}\n{record.stack_info}"

        entry: Dict[str, Any] = {
            "severity": severity_for(record.levelno),
            "message": message,
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "logging.googleapis.com/sourceLocation": {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            },
        }

        trace_name = getattr(record, "trace", None)
        if trace_name:
            entry[TRACE_KEY] = trace_name
            span_id = getattr(record, "span_id", None)
            if span_id:
                entry[SPAN_ID_KEY] = span_id
            entry[TRACE_SAMPLED_KEY] = bool(getattr(record, "trace_sampled", False))

        json_fields = getattr(record, "json_fields", None)
        if isinstance(json_fields, dict):
            entry.update(json_fields)

        return json.dumps(entry, default=default_serializer)


def configure_logging(
    project_id: Optional[str] = None,
    level: int = logging.INFO,
    stream: Optional[IO[str]] = None,
    enable_cloud_logging: bool = False,
) -> None:
    """
    Sends all logging through a structured JSON stream handler on the root
    logger, correlated with the request trace.
    Safe to call more than once.
    """
    final_project_id = project_id if project_id is not None else default_project_id()
    if not final_project_id:
        logger.warning(
            "No Google Cloud project ID found; "
            "logs will carry bare trace IDs. Set GOOGLE_CLOUD_PROJECT to fix."
        )

    root = logging.getLogger()
    root.setLevel(level)

    # Replace any handler from a previous call
    for existing in list(root.handlers):
        if getattr(existing, "_gcplogs_handler", False):
            root.removeHandler(existing)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(StructuredFormatter())
    handler.addFilter(GCPTraceFilter(project_id=final_project_id))
    setattr(handler, "_gcplogs_handler", True)  # noqa: B010
    root.addHandler(handler)

    # Request logs now reach the root handler, drop the bootstrap one
    from gcplogs.core.logger import logger as request_logger

    for existing in list(request_logger.handlers):
        if getattr(existing, "_gcplogs_default", False):
            request_logger.removeHandler(existing)

    if enable_cloud_logging:
        configure_cloud_logging(project_id=final_project_id)


def configure_cloud_logging(project_id: Optional[str] = None) -> None:
    """
    Configures the native Google Cloud Logging handler.
    Correlates logs with traces through GCPTraceFilter.
    """
    if CloudLoggingHandler is None:
        logger.warning(
            "enable_cloud_logging=True but `google-cloud-logging` is not installed. "
            "Please install it via `pip install gcplogs[cloud]`."
        )
        return

    try:
        # None lets the filter resolve the project, "" means none was found
        trace_filter = GCPTraceFilter(project_id=project_id)
        client = google.cloud.logging.Client(project=trace_filter.project_id or None)
        handler = CloudLoggingHandler(client)

        # Attach the GCPTraceFilter for explicit correlation
        handler.addFilter(trace_filter)

        logging.getLogger().addHandler(handler)

        logger.info(
            "Google Cloud Logging handler attached "
            f"(Project: {trace_filter.project_id or 'auto-detected'})."
        )
    except Exception as e:
        logger.error(f"Failed to configure Google Cloud Logging: {e}")
