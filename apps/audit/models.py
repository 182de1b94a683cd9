from django.conf import settings
from django.db import models
from django.utils import timezone

from apps.common.models import BaseModel


class AuditLog(BaseModel):
    """Append-only record of an administrative action."""

    ACTION_CHOICES = [
        ("user_update", "User Updated"),
        ("user_approve", "User Approved"),
        ("user_suspend", "User Suspended"),
        ("canteen_update", "Canteen Updated"),
        ("canteen_approve", "Canteen Approved"),
        ("order_status_override", "Order Status Override"),
        ("order_cancel", "Order Cancelled"),
        ("order_refund", "Order Refunded"),
        ("order_payment_override", "Order Payment Override"),
        ("order_reassign", "Order Reassigned"),
    ]
    ENTITY_CHOICES = [("user", "User"), ("canteen", "Canteen"), ("order", "Order")]

    admin = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, related_name="audit_logs")
    admin_email = models.EmailField(blank=True)
    action = models.CharField(max_length=40, choices=ACTION_CHOICES)
    entity_type = models.CharField(max_length=20, choices=ENTITY_CHOICES)
    entity_id = models.CharField(max_length=64, blank=True)
    before_state = models.JSONField(default=dict, blank=True)
    after_state = models.JSONField(default=dict, blank=True)
    reason = models.CharField(max_length=500, blank=True)
    ip_address = models.CharField(max_length=64, blank=True)
    user_agent = models.CharField(max_length=255, blank=True)
    occurred_at = models.DateTimeField(default=timezone.now)

    class Meta:
        indexes = [
            models.Index(fields=["entity_type", "entity_id"], name="audit_entity_idx"),
            models.Index(fields=["action", "occurred_at"], name="audit_action_idx"),
        ]
        ordering = ["-occurred_at"]

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Audit log entries are immutable")
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Audit log entries are immutable")
