import logging

from django.db.models import Sum
from django.http import HttpRequest
from django.utils import timezone
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_http_methods

from apps.canteens.services import partner_canteen
from apps.common.http import ok, page_params, parse_json, validate
from apps.common.policy import guard

from . import services
from .forms import PartnerStatusForm
from .models import Order
from .serializers import serialize_order

log = logging.getLogger(__name__)


def _visible(canteen):
    # orders awaiting online payment are not the canteen's concern yet
    return (
        Order.objects.select_related("canteen", "user")
        .prefetch_related("items")
        .filter(canteen=canteen)
        .exclude(status=Order.STATUS_PENDING)
    )


@require_GET
@guard("partner.orders.view")
def order_list(request: HttpRequest):
    qs = _visible(partner_canteen(request.user)).order_by("-created_at")
    if request.GET.get("status"):
        qs = qs.filter(status=request.GET["status"])
    page, limit = page_params(request)
    total = qs.count()
    rows = [serialize_order(o, with_customer=True) for o in qs[(page - 1) * limit : page * limit]]
    return ok(rows, total=total, page=page, limit=limit)


@require_GET
@guard("partner.orders.view")
def live_orders(request: HttpRequest):
    qs = _visible(partner_canteen(request.user)).filter(status__in=Order.LIVE).order_by("created_at")
    rows = [serialize_order(o, with_customer=True) for o in qs]
    return ok(rows, count=len(rows))


@csrf_exempt
@require_http_methods(["PUT", "PATCH"])
@guard("partner.orders.update")
def update_status(request: HttpRequest, order_ref):
    data = validate(PartnerStatusForm, parse_json(request)).cleaned_data
    order = services.find_order(order_ref, canteen=partner_canteen(request.user))
    if data["status"] == Order.STATUS_CANCELLED:
        order = services.cancel_order(order, actor_role="partner", reason=data.get("reason") or data.get("note") or "")
    else:
        order = services.advance_status(order, data["status"], note=data.get("note") or "")
    return ok(serialize_order(order, with_customer=True))


@require_GET
@guard("partner.stats")
def stats(request: HttpRequest):
    canteen = partner_canteen(request.user)
    today = timezone.localdate()
    visible = _visible(canteen)
    todays = visible.filter(created_at__date=today)
    revenue = todays.exclude(status=Order.STATUS_CANCELLED).aggregate(total=Sum("total_amount"))["total"] or 0
    return ok(
        {
            "today_orders": todays.count(),
            "total_orders": visible.count(),
            "live_orders": visible.filter(status__in=Order.LIVE).count(),
            "menu_items": canteen.menu_items.count(),
            "today_revenue": float(revenue),
            "is_open": canteen.is_open,
            "is_approved": canteen.is_approved,
            "rating": float(canteen.rating),
        }
    )
