import logging
import time
from typing import Any

from gcplogs.core.context import log_ctx
from gcplogs.core.logger import logger
from gcplogs.tracing import Tracer


def start_request(tracer: Tracer, request: Any, method: str, path: str) -> float:
    """Resets the log context for a new request and returns its start time."""
    log_ctx.clear()
    start_time = time.time()

    # Header first, then whatever span OTel instrumentation opened
    if not log_ctx.initialize_with_trace(tracer, request):
        log_ctx.initialize_with_otel(tracer.project_id)

    log_ctx.add(
        "httpRequest",
        {
            "requestMethod": method,
            "requestUrl": path,
        },
    )
    return start_time


def finish_request(status: int, start_time: float) -> None:
    duration = time.time() - start_time
    log_ctx.add(
        "httpRequest",
        {
            **log_ctx.get_all().get("httpRequest", {}),
            "status": status,
            # Duration string, as in google.logging.type.HttpRequest
            "latency": f"{duration:.6f}s",
        },
    )


def fail_request(exc: BaseException, start_time: float) -> None:
    log_ctx.record_exception(exc)
    finish_request(500, start_time)


def emit_request_log() -> None:
    ctx = dict(log_ctx.get_all())
    if not ctx:
        return

    level = logging.ERROR if ctx.pop("severity", "INFO") == "ERROR" else logging.INFO
    http = ctx.get("httpRequest", {})
    message = f"{http.get('requestMethod', '')} {http.get('requestUrl', '')}".strip()
    logger.log(level, message or "Request processed", extra={"json_fields": ctx})
