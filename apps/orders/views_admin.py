from datetime import datetime, time

from django.http import HttpRequest
from django.utils import timezone
from django.utils.dateparse import parse_date
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_http_methods, require_POST

from apps.common.errors import ValidationFailed
from apps.common.http import ok, page_params, parse_json, validate
from apps.common.policy import guard

from . import services
from .forms import AdminStatusForm, CancelForm, PaymentStatusForm, ReassignForm, RefundForm
from .models import Order
from .serializers import serialize_order


def _qs():
    return Order.objects.select_related("canteen", "user").prefetch_related("items")


def _day_bound(value: str, field: str, *, end: bool) -> datetime:
    day = parse_date(value)
    if day is None:
        raise ValidationFailed([{"field": field, "message": "Expected YYYY-MM-DD"}])
    return timezone.make_aware(datetime.combine(day, time.max if end else time.min))


@require_GET
@guard("admin.orders")
def order_list(request: HttpRequest):
    qs = _qs().order_by("-created_at")
    params = request.GET
    if params.get("status"):
        qs = qs.filter(status=params["status"])
    if params.get("payment_status"):
        qs = qs.filter(payment_status=params["payment_status"])
    if params.get("canteen_id"):
        qs = qs.filter(canteen_id=params["canteen_id"])
    if params.get("date_from"):
        qs = qs.filter(created_at__gte=_day_bound(params["date_from"], "date_from", end=False))
    if params.get("date_to"):
        qs = qs.filter(created_at__lte=_day_bound(params["date_to"], "date_to", end=True))
    if params.get("search"):
        qs = qs.filter(order_id__icontains=params["search"])
    page, limit = page_params(request)
    total = qs.count()
    rows = [serialize_order(o, with_customer=True) for o in qs[(page - 1) * limit : page * limit]]
    return ok(rows, total=total, page=page, limit=limit, pages=(total + limit - 1) // limit)


@require_GET
@guard("admin.orders")
def live_orders(request: HttpRequest):
    rows = [serialize_order(o, with_customer=True) for o in _qs().filter(status__in=Order.LIVE).order_by("created_at")]
    return ok(rows, count=len(rows))


@require_GET
@guard("admin.orders")
def order_detail(request: HttpRequest, order_ref):
    order = _qs().prefetch_related("status_changes").get(pk=services.find_order(order_ref).pk)
    return ok(serialize_order(order, with_history=True, with_customer=True))


@csrf_exempt
@require_http_methods(["PUT", "PATCH"])
@guard("admin.orders")
def override_status(request: HttpRequest, order_ref):
    data = validate(AdminStatusForm, parse_json(request)).cleaned_data
    order = services.admin_set_status(
        services.find_order(order_ref), data["status"], admin=request.user, reason=data.get("reason") or "", request=request
    )
    return ok(serialize_order(order, with_history=True))


@csrf_exempt
@require_http_methods(["PUT", "POST"])
@guard("admin.orders")
def cancel(request: HttpRequest, order_ref):
    data = validate(CancelForm, parse_json(request)).cleaned_data
    order = services.admin_cancel(
        services.find_order(order_ref), admin=request.user, reason=data.get("reason") or "", request=request
    )
    return ok(serialize_order(order), message="Order cancelled")


@csrf_exempt
@require_POST
@guard("admin.orders")
def refund(request: HttpRequest, order_ref):
    data = validate(RefundForm, parse_json(request)).cleaned_data
    order = services.refund(
        services.find_order(order_ref), admin=request.user, amount=data.get("amount"), reason=data["reason"], request=request
    )
    return ok(serialize_order(order), message="Refund recorded")


@csrf_exempt
@require_http_methods(["PUT", "PATCH"])
@guard("admin.orders")
def override_payment(request: HttpRequest, order_ref):
    data = validate(PaymentStatusForm, parse_json(request)).cleaned_data
    order = services.admin_set_payment_status(
        services.find_order(order_ref), data["payment_status"], admin=request.user, reason=data["reason"], request=request
    )
    return ok(serialize_order(order))


@csrf_exempt
@require_http_methods(["PUT", "PATCH"])
@guard("admin.orders")
def reassign(request: HttpRequest, order_ref):
    data = validate(ReassignForm, parse_json(request)).cleaned_data
    order = services.reassign(
        services.find_order(order_ref), data["canteen_id"], admin=request.user, reason=data["reason"], request=request
    )
    return ok(serialize_order(order))
