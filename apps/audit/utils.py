import json
import logging

from django.core.serializers.json import DjangoJSONEncoder
from django.forms.models import model_to_dict
from django.utils import timezone

from apps.common.http import client_ip

from .models import AuditLog

log = logging.getLogger(__name__)


def snapshot(instance, fields=None) -> dict:
    """JSON-safe dict of a model instance's concrete fields."""
    data = model_to_dict(instance, fields=fields)
    data["id"] = str(instance.pk)
    return json.loads(json.dumps(data, cls=DjangoJSONEncoder))


def record(*, admin, action: str, entity, entity_type: str, before: dict | None = None, after: dict | None = None, reason: str = "", request=None, when=None) -> AuditLog:
    entry = AuditLog.objects.create(
        admin=admin,
        admin_email=getattr(admin, "email", "") or "",
        action=action,
        entity_type=entity_type,
        entity_id=str(entity.pk),
        before_state=before or {},
        after_state=after or {},
        reason=reason or "",
        ip_address=client_ip(request) if request is not None else "",
        user_agent=(request.headers.get("User-Agent", "") if request is not None else "")[:255],
        occurred_at=when or timezone.now(),
    )
    log.info("[audit] %s on %s:%s by %s", action, entity_type, entry.entity_id, entry.admin_email)
    return entry
