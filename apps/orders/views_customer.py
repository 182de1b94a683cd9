import json
import logging

from django.conf import settings
from django.http import HttpRequest, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_http_methods, require_POST

from apps.common.errors import ValidationFailed
from apps.common.http import ok, page_params, parse_json, route, validate
from apps.common.policy import guard

from . import services
from .forms import CancelForm, CreateOrderForm, DevConfirmForm, VerifyPaymentForm
from .models import Order
from .payments import get_gateway
from .serializers import serialize_order

log = logging.getLogger(__name__)


def _detail_qs():
    return Order.objects.select_related("canteen", "user").prefetch_related("items", "status_changes")


@guard("order.create")
def create_order(request: HttpRequest):
    data = validate(CreateOrderForm, parse_json(request)).cleaned_data
    checkout = services.create_order(
        user=request.user,
        canteen_id=data["canteen_id"],
        lines=data["items"],
        special_instructions=data.get("special_instructions") or "",
        payment_method=data["payment_method"],
        gateway=get_gateway(),
    )
    body = {"order": serialize_order(checkout.order)}
    if checkout.payment:
        body["payment"] = checkout.payment
    return ok(body, status=201, is_dev_mode=checkout.dev_mode)


@guard("order.list_own")
def list_orders(request: HttpRequest):
    qs = _detail_qs().filter(user=request.user).order_by("-created_at")
    if request.GET.get("status"):
        qs = qs.filter(status=request.GET["status"])
    page, limit = page_params(request)
    total = qs.count()
    rows = [serialize_order(o) for o in qs[(page - 1) * limit : page * limit]]
    return ok(rows, total=total, page=page, limit=limit)


orders = route(get=list_orders, post=create_order)


def _own(request: HttpRequest, order_ref) -> Order:
    return services.find_order(order_ref, user=request.user)


@require_GET
@guard("order.view")
def order_detail(request: HttpRequest, order_ref):
    order = _detail_qs().get(pk=_own(request, order_ref).pk)
    return ok(serialize_order(order, with_history=True))


@require_GET
@guard("order.view")
def order_status(request: HttpRequest, order_ref):
    order = _own(request, order_ref)
    return ok(
        {
            "order_id": order.order_id,
            "status": order.status,
            "payment_status": order.payment_status,
            "updated_at": order.updated_at.isoformat(),
        }
    )


@csrf_exempt
@require_http_methods(["PUT", "POST"])
@guard("order.cancel")
def cancel_order(request: HttpRequest, order_ref):
    reason = validate(CancelForm, parse_json(request)).cleaned_data.get("reason") or ""
    order = services.cancel_order(_own(request, order_ref), actor_role="customer", reason=reason)
    return ok(serialize_order(order), message="Order cancelled")


@csrf_exempt
@require_POST
@guard("order.pay")
def verify_payment(request: HttpRequest):
    data = validate(VerifyPaymentForm, parse_json(request)).cleaned_data
    order, already = services.verify_payment(
        user=request.user,
        order_ref=data["order_id"],
        gateway_order_id=data["razorpay_order_id"],
        gateway_payment_id=data["razorpay_payment_id"],
        signature=data["razorpay_signature"],
        gateway=get_gateway(),
    )
    message = "Payment already verified" if already else "Payment verified"
    return ok(serialize_order(order), message=message)


@csrf_exempt
@require_POST
@guard("order.pay")
def dev_confirm(request: HttpRequest):
    data = validate(DevConfirmForm, parse_json(request)).cleaned_data
    order, already = services.dev_confirm(user=request.user, order_ref=data["order_id"], gateway=get_gateway())
    return ok(serialize_order(order), message="Payment already confirmed" if already else "Payment confirmed")


@csrf_exempt
@require_POST
def gateway_webhook(request: HttpRequest):
    gateway = get_gateway()
    signature = request.headers.get("X-Razorpay-Signature", "")
    if gateway is not None and gateway.has_webhook_secret:
        if not gateway.verify_webhook_signature(request.body, signature):
            log.warning("[payments] webhook signature mismatch")
            return JsonResponse({"success": False, "error": "Invalid signature", "code": "INVALID_SIGNATURE"}, status=400)
    elif getattr(settings, "IS_PRODUCTION", False):
        log.error("[payments] webhook received but no webhook secret is configured")
        return JsonResponse({"success": False, "error": "Webhook not configured", "code": "WEBHOOK_DISABLED"}, status=400)
    try:
        event = json.loads(request.body or b"{}")
    except (UnicodeDecodeError, json.JSONDecodeError):
        raise ValidationFailed([{"field": "body", "message": "Invalid JSON"}])
    handled = services.handle_gateway_event(event if isinstance(event, dict) else {})
    return ok(handled=handled)
