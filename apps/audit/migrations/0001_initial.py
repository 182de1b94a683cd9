import uuid

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="AuditLog",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("admin_email", models.EmailField(blank=True, max_length=254)),
                (
                    "action",
                    models.CharField(
                        choices=[
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
                        ],
                        max_length=40,
                    ),
                ),
                (
                    "entity_type",
                    models.CharField(
                        choices=[("user", "User"), ("canteen", "Canteen"), ("order", "Order")], max_length=20
                    ),
                ),
                ("entity_id", models.CharField(blank=True, max_length=64)),
                ("before_state", models.JSONField(blank=True, default=dict)),
                ("after_state", models.JSONField(blank=True, default=dict)),
                ("reason", models.CharField(blank=True, max_length=500)),
                ("ip_address", models.CharField(blank=True, max_length=64)),
                ("user_agent", models.CharField(blank=True, max_length=255)),
                ("occurred_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "admin",
                    models.ForeignKey(
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="audit_logs",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-occurred_at"],
                "indexes": [
                    models.Index(fields=["entity_type", "entity_id"], name="audit_entity_idx"),
                    models.Index(fields=["action", "occurred_at"], name="audit_action_idx"),
                ],
            },
        ),
    ]
