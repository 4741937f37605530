from dataclasses import dataclass
from typing import Any, Mapping, NamedTuple, Optional

# Wire format: TRACE_ID/SPAN_ID;o=TRACE_TRUE
TRACE_HEADER = "X-Cloud-Trace-Context"


class TraceContext(NamedTuple):
    trace_id: str
    span_id: str = ""
    sampled: bool = False


def parse_trace_header(value: Any) -> Optional[TraceContext]:
    """
    Parses an X-Cloud-Trace-Context header value.
    Returns None if the header is missing, not a string, or has no TRACE_ID/
    prefix.
    The trace ID itself is not validated.
    """
    if not value or not isinstance(value, str):
        return None

    trace_id, sep, rest = value.partition("/")
    if not sep or not trace_id:
        return None

    span_id, _, options = rest.partition(";")
    sampled = False
    for option in options.split(";"):
        key, _, flag = option.strip().partition("=")
        if key == "o":
            sampled = flag.strip() == "1"

    return TraceContext(trace_id, span_id.strip(), sampled)


def get_header(request: Any, name: str) -> Any:
    """
    Reads a header from a Flask, Starlette or Django request, or any object
    whose `headers` attribute is a mapping.
    """
    headers = getattr(request, "headers", None)
    if headers is None:
        return None

    value = headers.get(name)
    if value is None and isinstance(headers, Mapping):
        # Plain dicts are case-sensitive
        lowered = name.lower()
        for key, val in headers.items():
            if isinstance(key, str) and key.lower() == lowered:
                return val
    return value


@dataclass(frozen=True)
class Tracer:
    """Builds Cloud Trace resource names for a fixed project."""

    project_id: str = ""

    def trace_name(self, trace_id: str) -> str:
        return f"projects/{self.project_id}/traces/{trace_id}"

    def from_header(self, value: Any) -> str:
        """
        Returns projects/{project_id}/traces/{TRACE_ID} for a trace header
        value, or "" if the header is malformed or no project is configured.
        """
        if not self.project_id:
            return ""

        ctx = parse_trace_header(value)
        if ctx is None:
            return ""
        return self.trace_name(ctx.trace_id)

    def from_request(self, request: Any) -> str:
        """Returns the trace resource name for an inbound request, or ""."""
        if not self.project_id:
            return ""
        return self.from_header(get_header(request, TRACE_HEADER))

    def context_from_request(self, request: Any) -> Optional[TraceContext]:
        return parse_trace_header(get_header(request, TRACE_HEADER))
