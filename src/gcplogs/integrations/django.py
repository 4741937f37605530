from typing import Any, Callable, Coroutine, cast

from asgiref.sync import iscoroutinefunction, markcoroutinefunction
from django.conf import settings
from django.http import HttpRequest, HttpResponse

from gcplogs.core.metadata import default_project_id
from gcplogs.core.request_log import (
    emit_request_log,
    fail_request,
    finish_request,
    start_request,
)
from gcplogs.tracing import Tracer


class GCPLoggingMiddleware:
    """
    Add "gcplogs.integrations.django.GCPLoggingMiddleware" to MIDDLEWARE.
    The project ID can be pinned with the GCPLOGS_PROJECT_ID setting.
    """

    sync_capable = True
    async_capable = True

    def __init__(self, get_response: Callable[[HttpRequest], HttpResponse]):
        self.get_response = get_response
        project_id = getattr(settings, "GCPLOGS_PROJECT_ID", None)
        self.tracer = Tracer(project_id if project_id is not None else default_project_id())
        self._is_coroutine = iscoroutinefunction(get_response)
        if self._is_coroutine:
            markcoroutinefunction(self)

    def __call__(self, request: HttpRequest) -> Any:
        if self._is_coroutine:
            return self._acall(request)

        start_time = start_request(self.tracer, request, request.method or "", request.path)
        try:
            response = self.get_response(request)
            finish_request(response.status_code, start_time)
            return response
        except Exception as e:
            fail_request(e, start_time)
            raise e
        finally:
            emit_request_log()

    async def _acall(self, request: HttpRequest) -> HttpResponse:
        start_time = start_request(self.tracer, request, request.method or "", request.path)
        try:
            response = await cast(
                Coroutine[Any, Any, HttpResponse], self.get_response(request)
            )
            finish_request(response.status_code, start_time)
            return response
        except Exception as e:
            fail_request(e, start_time)
            raise e
        finally:
            emit_request_log()
