from django.http import HttpRequest
from django.shortcuts import get_object_or_404
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_http_methods

from apps.audit.utils import record, snapshot
from apps.common.http import ok, page_params, parse_json, validate
from apps.common.policy import guard

from .forms import AdminCanteenUpdateForm
from .models import Canteen
from .serializers import serialize_canteen


def _flag(value: str | None) -> bool | None:
    if value is None or value == "":
        return None
    return value.lower() in {"1", "true", "yes"}


@require_GET
@guard("admin.canteens")
def canteen_list(request: HttpRequest):
    qs = Canteen.objects.select_related("owner").order_by("name")
    approved = _flag(request.GET.get("is_approved"))
    if approved is not None:
        qs = qs.filter(is_approved=approved)
    is_open = _flag(request.GET.get("is_open"))
    if is_open is not None:
        qs = qs.filter(is_open=is_open)
    if request.GET.get("search"):
        qs = qs.filter(name__icontains=request.GET["search"])
    page, limit = page_params(request)
    total = qs.count()
    rows = [serialize_canteen(c) for c in qs[(page - 1) * limit : page * limit]]
    return ok(rows, total=total, page=page, limit=limit)


@csrf_exempt
@require_http_methods(["PUT", "PATCH"])
@guard("admin.canteens")
def canteen_update(request: HttpRequest, canteen_id):
    canteen = get_object_or_404(Canteen, id=canteen_id)
    body = parse_json(request)
    changes = validate(AdminCanteenUpdateForm, body).changes()
    before = snapshot(canteen)
    for field, value in changes.items():
        setattr(canteen, field, value)
    if changes:
        canteen.save(update_fields=[*changes.keys(), "updated_at"])
        approved_now = changes.get("is_approved") is True and not before["is_approved"]
        record(
            admin=request.user,
            action="canteen_approve" if approved_now else "canteen_update",
            entity=canteen,
            entity_type="canteen",
            before=before,
            after=snapshot(canteen),
            reason=str(body.get("reason") or ""),
            request=request,
        )
    return ok(serialize_canteen(canteen))
