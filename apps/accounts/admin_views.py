import logging

from django.db import transaction
from django.db.models import Q
from django.http import HttpRequest
from django.shortcuts import get_object_or_404
from django.views.decorators.http import require_GET

from apps.audit.utils import record, snapshot
from apps.common.http import ok, page_params, parse_json, route, validate
from apps.common.policy import guard

from .forms import AdminUserUpdateForm
from .models import RefreshToken, User
from .serializers import serialize_user

log = logging.getLogger(__name__)

AUDITED_FIELDS = ["name", "email", "role", "is_active", "is_approved"]


@require_GET
@guard("admin.users")
def user_list(request: HttpRequest):
    qs = User.objects.select_related("canteen").order_by("-created_at")
    params = request.GET
    if params.get("role"):
        qs = qs.filter(role=params["role"])
    if params.get("is_active") in ("true", "false"):
        qs = qs.filter(is_active=params["is_active"] == "true")
    if params.get("search"):
        term = params["search"]
        qs = qs.filter(Q(name__icontains=term) | Q(email__icontains=term) | Q(phone__icontains=term))
    page, limit = page_params(request)
    total = qs.count()
    rows = [serialize_user(u) for u in qs[(page - 1) * limit : page * limit]]
    return ok(rows, total=total, page=page, limit=limit)


@guard("admin.users")
def user_detail(request: HttpRequest, user_id):
    return ok(serialize_user(get_object_or_404(User, id=user_id)))


def _audit_action(before: dict, changes: dict) -> str:
    if changes.get("is_active") is False and before["is_active"]:
        return "user_suspend"
    if changes.get("is_approved") is True and not before["is_approved"]:
        return "user_approve"
    return "user_update"


@guard("admin.users")
def user_update(request: HttpRequest, user_id):
    body = parse_json(request)
    changes = validate(AdminUserUpdateForm, body).changes()
    with transaction.atomic():
        user = get_object_or_404(User.objects.select_for_update(), id=user_id)
        before = snapshot(user, AUDITED_FIELDS)
        for field, value in changes.items():
            setattr(user, field, value)
        if not changes:
            return ok(serialize_user(user))
        user.save(update_fields=[*changes.keys(), "updated_at"])
        if changes.get("is_active") is False:
            revoked = RefreshToken.revoke_all_for(user)
            log.info("[admin] deactivated user=%s, revoked %s refresh tokens", user.pk, revoked)
        canteen = getattr(user, "canteen", None)
        if changes.get("is_approved") is True and user.role == User.ROLE_PARTNER and canteen is not None:
            canteen.is_approved = True
            canteen.save(update_fields=["is_approved", "updated_at"])
        record(
            admin=request.user,
            action=_audit_action(before, changes),
            entity=user,
            entity_type="user",
            before=before,
            after=snapshot(user, AUDITED_FIELDS),
            reason=str(body.get("reason") or ""),
            request=request,
        )
    return ok(serialize_user(user))


user = route(get=user_detail, put=user_update, patch=user_update)
