from __future__ import annotations

import json
from typing import Any, Type

from django import forms
from django.http import HttpRequest, HttpResponseNotAllowed, JsonResponse
from django.views.decorators.csrf import csrf_exempt

from .errors import ValidationFailed


def parse_json(request: HttpRequest) -> dict[str, Any]:
    if not request.body:
        return {}
    try:
        data = json.loads(request.body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        raise ValidationFailed([{"field": "body", "message": "Invalid JSON"}])
    if not isinstance(data, dict):
        raise ValidationFailed([{"field": "body", "message": "Expected a JSON object"}])
    return data


def form_errors(form: forms.Form) -> list[dict[str, str]]:
    details = []
    for field, errors in form.errors.get_json_data().items():
        for err in errors:
            details.append({"field": "body" if field == "__all__" else field, "message": err["message"]})
    return details


def validate(form_class: Type[forms.Form], data: Any, **kwargs: Any) -> forms.Form:
    """Bind ``data`` to the schema and raise ValidationFailed if it does not clean."""
    form = form_class(data, **kwargs)
    if not form.is_valid():
        raise ValidationFailed(form_errors(form))
    return form


def client_ip(request: HttpRequest) -> str:
    forwarded = request.META.get("HTTP_X_FORWARDED_FOR")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.META.get("REMOTE_ADDR", "anon")


def ok(data: Any = None, *, status: int = 200, **extra: Any) -> JsonResponse:
    body: dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = data
    body.update(extra)
    return JsonResponse(body, status=status)


def page_params(request: HttpRequest, *, default_limit: int = 20, max_limit: int = 100) -> tuple[int, int]:
    try:
        page = max(1, int(request.GET.get("page") or 1))
    except ValueError:
        page = 1
    try:
        limit = int(request.GET.get("limit") or default_limit)
    except ValueError:
        limit = default_limit
    return page, max(1, min(limit, max_limit))


def route(**handlers):
    """Dispatch one URL to per-method views: ``route(get=list_x, post=create_x)``."""

    @csrf_exempt
    def view(request: HttpRequest, *args: Any, **kwargs: Any):
        handler = handlers.get(request.method.lower())
        if handler is None:
            return HttpResponseNotAllowed([m.upper() for m in handlers])
        return handler(request, *args, **kwargs)

    return view
