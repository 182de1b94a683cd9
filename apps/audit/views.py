from django.views.decorators.http import require_GET

from apps.common.http import ok, page_params
from apps.common.policy import guard

from .models import AuditLog


def serialize_entry(entry: AuditLog) -> dict:
    return {
        "id": str(entry.id),
        "action": entry.action,
        "entity_type": entry.entity_type,
        "entity_id": entry.entity_id,
        "admin_email": entry.admin_email,
        "before": entry.before_state,
        "after": entry.after_state,
        "reason": entry.reason,
        "ip_address": entry.ip_address,
        "occurred_at": entry.occurred_at.isoformat(),
    }


@require_GET
@guard("admin.audit")
def audit_log_list(request):
    qs = AuditLog.objects.all()
    if request.GET.get("action"):
        qs = qs.filter(action=request.GET["action"])
    if request.GET.get("entity_type"):
        qs = qs.filter(entity_type=request.GET["entity_type"])
    if request.GET.get("entity_id"):
        qs = qs.filter(entity_id=request.GET["entity_id"])
    page, limit = page_params(request, default_limit=50)
    total = qs.count()
    rows = qs[(page - 1) * limit : page * limit]
    return ok([serialize_entry(e) for e in rows], total=total, page=page, limit=limit)
