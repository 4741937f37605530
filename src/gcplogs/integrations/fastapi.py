from typing import Any, Optional

from fastapi import Request
from starlette.types import ASGIApp, Receive, Scope, Send

from gcplogs.core.metadata import default_project_id
from gcplogs.core.request_log import (
    emit_request_log,
    fail_request,
    finish_request,
    start_request,
)
from gcplogs.tracing import Tracer


class GCPLoggingMiddleware:
    def __init__(self, app: ASGIApp, project_id: Optional[str] = None):
        self.app = app
        self.tracer = Tracer(project_id if project_id is not None else default_project_id())

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope, receive)
        start_time = start_request(
            self.tracer, request, request.method, request.url.path
        )

        async def send_wrapper(message: Any) -> None:
            if message["type"] == "http.response.start":
                finish_request(message["status"], start_time)
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception as e:
            fail_request(e, start_time)
            raise e
        finally:
            emit_request_log()
