import logging
import traceback

from django.conf import settings
from django.http import Http404, JsonResponse

from .errors import ApiError

log = logging.getLogger(__name__)


class ApiErrorMiddleware:
    """Render exceptions raised by ``/api/`` views as JSON.

    ApiError subclasses keep their status and code. Anything else is logged
    and becomes a generic 500; the stack trace is only attached outside
    production.
    """

    prefix = "/api/"

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        return self.get_response(request)

    def process_exception(self, request, exc):
        if not request.path.startswith(self.prefix):
            return None
        if isinstance(exc, ApiError):
            if exc.status >= 500:
                log.error("[api] %s %s -> %s %s", request.method, request.path, exc.code, exc.message)
            return JsonResponse(exc.as_dict(), status=exc.status)
        if isinstance(exc, Http404):
            return JsonResponse({"success": False, "error": str(exc) or "Not found", "code": "NOT_FOUND"}, status=404)
        log.exception("[api] unhandled error on %s %s", request.method, request.path)
        body = {"success": False, "error": "Internal server error", "code": "INTERNAL_ERROR"}
        if not getattr(settings, "IS_PRODUCTION", False):
            body["stack"] = traceback.format_exc()
        return JsonResponse(body, status=500)
