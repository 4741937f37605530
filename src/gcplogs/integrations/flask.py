import time
from typing import Optional

from flask import Flask, Response, g, request

from gcplogs.core.metadata import default_project_id
from gcplogs.core.request_log import (
    emit_request_log,
    fail_request,
    finish_request,
    start_request,
)
from gcplogs.tracing import Tracer


class GCPLogging:
    def __init__(self, app: Optional[Flask] = None, project_id: Optional[str] = None):
        self.tracer = Tracer(project_id if project_id is not None else default_project_id())
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        app.before_request(self._before_request)
        app.after_request(self._after_request)
        app.teardown_request(self._teardown_request)

    def _before_request(self) -> None:
        g._gcplogs_start_time = start_request(
            self.tracer, request, request.method, request.path
        )

    def _after_request(self, response: Response) -> Response:
        start_time = getattr(g, "_gcplogs_start_time", time.time())
        finish_request(response.status_code, start_time)
        return response

    def _teardown_request(self, exception: Optional[BaseException] = None) -> None:
        if exception:
            start_time = getattr(g, "_gcplogs_start_time", time.time())
            fail_request(exception, start_time)

        emit_request_log()
