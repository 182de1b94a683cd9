from django.conf import settings
from django.db import models
from django.utils import timezone

from apps.common.models import BaseModel


class Notification(BaseModel):
    """Outbound SMS/email, one row per message."""

    TYPE_CHOICES = [("sms", "SMS"), ("email", "Email")]
    STATUS_CHOICES = [
        ("queued", "Queued"),
        ("processing", "Processing"),
        ("sent", "Sent"),
        ("delivered", "Delivered"),
        ("failed", "Failed"),
        ("bounced", "Bounced"),
    ]
    PROVIDER_CHOICES = [("twilio", "Twilio"), ("sendgrid", "SendGrid"), ("dev", "Dev Mode")]

    type = models.CharField(max_length=10, choices=TYPE_CHOICES)
    to = models.CharField(max_length=254)
    recipient = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="notifications"
    )
    order = models.ForeignKey(
        "orders.Order", on_delete=models.SET_NULL, null=True, blank=True, related_name="notifications"
    )
    template_code = models.CharField(max_length=80)
    payload_json = models.JSONField(default=dict, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="queued", db_index=True)
    provider = models.CharField(max_length=20, choices=PROVIDER_CHOICES, blank=True, null=True)
    provider_message_id = models.CharField(max_length=120, blank=True, null=True, db_index=True)
    error_code = models.CharField(max_length=50, blank=True, null=True)
    error_message = models.TextField(blank=True, null=True)
    attempts = models.PositiveIntegerField(default=0)
    idempotency_key = models.CharField(max_length=120, blank=True, null=True, unique=True)
    sent_at = models.DateTimeField(blank=True, null=True)
    delivered_at = models.DateTimeField(blank=True, null=True)

    class Meta:
        indexes = [
            models.Index(fields=["status", "created_at"], name="notif_status_created_idx"),
        ]

    def __str__(self):
        return f"{self.type}:{self.template_code} -> {self.to} ({self.status})"

    def mark(self, *, status: str, **extra):
        for k, v in extra.items():
            setattr(self, k, v)
        self.status = status
        self.save()

    def redact(self, keys) -> None:
        """Mask secrets (OTP codes) in the stored payload once they were handed off."""
        masked = {k: ("******" if k in keys else v) for k, v in self.payload_json.items()}
        if masked != self.payload_json:
            self.payload_json = masked
            self.save(update_fields=["payload_json", "updated_at"])


class NotificationAttempt(BaseModel):
    notification = models.ForeignKey(Notification, on_delete=models.CASCADE, related_name="attempts_log")
    started_at = models.DateTimeField(default=timezone.now)
    finished_at = models.DateTimeField(blank=True, null=True)
    result = models.CharField(max_length=20)  # ok | error
    provider_response_json = models.JSONField(default=dict, blank=True)
    error_message = models.TextField(blank=True, null=True)


class Template(BaseModel):
    """Admin-editable override for a built-in message template."""

    CHANNEL_CHOICES = [("sms", "SMS"), ("email", "Email")]
    code = models.CharField(max_length=80)
    channel = models.CharField(max_length=10, choices=CHANNEL_CHOICES)
    subject = models.CharField(max_length=200, blank=True)
    body_txt = models.TextField(blank=True)
    body_html = models.TextField(blank=True)

    class Meta:
        constraints = [models.UniqueConstraint(fields=["code", "channel"], name="uniq_template_code_channel")]

    def __str__(self):
        return f"{self.channel}:{self.code}"
