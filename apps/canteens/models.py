from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models

from apps.common.models import BaseModel


class Canteen(BaseModel):
    PRICE_RANGE_CHOICES = [("₹", "Budget"), ("₹₹", "Moderate"), ("₹₹₹", "Premium")]

    owner = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="canteen",
    )
    name = models.CharField(max_length=100)
    description = models.CharField(max_length=300, blank=True)
    image = models.URLField(max_length=500, blank=True)
    tags = models.JSONField(default=list, blank=True)
    address = models.CharField(max_length=255, blank=True)
    is_open = models.BooleanField(default=False)
    is_approved = models.BooleanField(default=False)
    preparation_time = models.CharField(max_length=20, default="15-20 min")
    price_range = models.CharField(max_length=3, choices=PRICE_RANGE_CHOICES, default="₹₹")
    rating = models.DecimalField(max_digits=2, decimal_places=1, default=Decimal("0.0"))
    total_ratings = models.PositiveIntegerField(default=0)
    rating_breakdown = models.JSONField(default=dict, blank=True)  # {"1": n, ..., "5": n}

    class Meta:
        indexes = [models.Index(fields=["is_open", "is_approved"], name="canteens_open_approved_idx")]

    def __str__(self):
        return self.name

    @property
    def accepts_orders(self) -> bool:
        return self.is_open and self.is_approved


class MenuItem(BaseModel):
    DEFAULT_CATEGORY = "Mains"

    canteen = models.ForeignKey(Canteen, on_delete=models.CASCADE, related_name="menu_items")
    name = models.CharField(max_length=100)
    description = models.CharField(max_length=300, blank=True)
    price = models.DecimalField(max_digits=8, decimal_places=2, validators=[MinValueValidator(Decimal("0"))])
    image = models.URLField(max_length=500, blank=True)
    is_veg = models.BooleanField(default=True)
    in_stock = models.BooleanField(default=True)
    category = models.CharField(max_length=50, default=DEFAULT_CATEGORY)
    preparation_time = models.PositiveIntegerField(default=10)  # minutes

    class Meta:
        indexes = [models.Index(fields=["canteen", "category", "in_stock"], name="canteens_item_category_idx")]

    def __str__(self):
        return f"{self.name} ({self.canteen_id})"
