import uuid
from decimal import Decimal

import django.core.validators
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Canteen",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("name", models.CharField(max_length=100)),
                ("description", models.CharField(blank=True, max_length=300)),
                ("image", models.URLField(blank=True, max_length=500)),
                ("tags", models.JSONField(blank=True, default=list)),
                ("address", models.CharField(blank=True, max_length=255)),
                ("is_open", models.BooleanField(default=False)),
                ("is_approved", models.BooleanField(default=False)),
                ("preparation_time", models.CharField(default="15-20 min", max_length=20)),
                (
                    "price_range",
                    models.CharField(
                        choices=[("₹", "Budget"), ("₹₹", "Moderate"), ("₹₹₹", "Premium")], default="₹₹", max_length=3
                    ),
                ),
                ("rating", models.DecimalField(decimal_places=1, default=Decimal("0.0"), max_digits=2)),
                ("total_ratings", models.PositiveIntegerField(default=0)),
                ("rating_breakdown", models.JSONField(blank=True, default=dict)),
                (
                    "owner",
                    models.OneToOneField(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="canteen",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "indexes": [models.Index(fields=["is_open", "is_approved"], name="canteens_open_approved_idx")],
            },
        ),
        migrations.CreateModel(
            name="MenuItem",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("name", models.CharField(max_length=100)),
                ("description", models.CharField(blank=True, max_length=300)),
                (
                    "price",
                    models.DecimalField(
                        decimal_places=2,
                        max_digits=8,
                        validators=[django.core.validators.MinValueValidator(Decimal("0"))],
                    ),
                ),
                ("image", models.URLField(blank=True, max_length=500)),
                ("is_veg", models.BooleanField(default=True)),
                ("in_stock", models.BooleanField(default=True)),
                ("category", models.CharField(default="Mains", max_length=50)),
                ("preparation_time", models.PositiveIntegerField(default=10)),
                (
                    "canteen",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="menu_items",
                        to="canteens.canteen",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["canteen", "category", "in_stock"], name="canteens_item_category_idx")
                ],
            },
        ),
    ]
