from decimal import Decimal

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

from apps.common.models import BaseModel


class Order(BaseModel):
    STATUS_PENDING = "pending"
    STATUS_PLACED = "placed"
    STATUS_CONFIRMED = "confirmed"
    STATUS_PREPARING = "preparing"
    STATUS_READY = "ready"
    STATUS_COMPLETED = "completed"
    STATUS_CANCELLED = "cancelled"
    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending payment"),
        (STATUS_PLACED, "Placed"),
        (STATUS_CONFIRMED, "Confirmed"),
        (STATUS_PREPARING, "Preparing"),
        (STATUS_READY, "Ready"),
        (STATUS_COMPLETED, "Completed"),
        (STATUS_CANCELLED, "Cancelled"),
    ]
    # operator-driven forward sequence
    FLOW = [STATUS_PLACED, STATUS_CONFIRMED, STATUS_PREPARING, STATUS_READY, STATUS_COMPLETED]
    TERMINAL = {STATUS_COMPLETED, STATUS_CANCELLED}
    LIVE = [STATUS_PLACED, STATUS_CONFIRMED, STATUS_PREPARING, STATUS_READY]

    PAYMENT_PENDING = "pending"
    PAYMENT_PAID = "paid"
    PAYMENT_FAILED = "failed"
    PAYMENT_REFUNDED = "refunded"
    PAYMENT_STATUS_CHOICES = [
        (PAYMENT_PENDING, "Pending"),
        (PAYMENT_PAID, "Paid"),
        (PAYMENT_FAILED, "Failed"),
        (PAYMENT_REFUNDED, "Refunded"),
    ]
    METHOD_GATEWAY = "razorpay"
    METHOD_COD = "cod"
    PAYMENT_METHOD_CHOICES = [(METHOD_GATEWAY, "Online (Razorpay)"), (METHOD_COD, "Cash on delivery")]

    order_id = models.CharField(max_length=32, unique=True, editable=False)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="orders")
    canteen = models.ForeignKey("canteens.Canteen", on_delete=models.PROTECT, related_name="orders")
    item_total = models.DecimalField(max_digits=10, decimal_places=2, validators=[MinValueValidator(Decimal("0"))])
    tax = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0"))
    delivery_fee = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0"))
    total_amount = models.DecimalField(max_digits=10, decimal_places=2, validators=[MinValueValidator(Decimal("0"))])
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    payment_status = models.CharField(max_length=20, choices=PAYMENT_STATUS_CHOICES, default=PAYMENT_PENDING)
    payment_method = models.CharField(max_length=20, choices=PAYMENT_METHOD_CHOICES, default=METHOD_GATEWAY)
    gateway_order_id = models.CharField(max_length=64, blank=True, db_index=True)
    gateway_payment_id = models.CharField(max_length=64, blank=True)
    gateway_signature = models.CharField(max_length=128, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    special_instructions = models.CharField(max_length=500, blank=True)
    cancel_reason = models.CharField(max_length=255, blank=True)
    cancelled_by = models.CharField(max_length=10, blank=True)  # customer | partner | admin
    refund_amount = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    refund_reason = models.CharField(max_length=255, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)
    refunded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )
    admin_overrides = models.JSONField(default=list, blank=True)
    is_reviewed = models.BooleanField(default=False)

    class Meta:
        indexes = [
            models.Index(fields=["user", "created_at"], name="orders_user_created_idx"),
            models.Index(fields=["canteen", "status", "created_at"], name="orders_canteen_status_idx"),
            models.Index(fields=["status", "payment_status"], name="orders_status_payment_idx"),
        ]

    def __str__(self):
        return self.order_id

    def save(self, *args, **kwargs):
        from apps.common.codes import generate_order_id

        is_new = self._state.adding
        prev = None
        should_track_status = True
        source = getattr(self, "_status_change_source", None)
        note = getattr(self, "_status_change_note", "")
        if not is_new and self.pk:
            update_fields = kwargs.get("update_fields")
            should_track_status = update_fields is None or "status" in update_fields
            prev = type(self).objects.filter(pk=self.pk).values("status", "total_amount").first()
            if prev and prev["total_amount"] != self.total_amount:
                raise ValueError("Order totals are fixed at creation")

        if not self.order_id:
            self.order_id = generate_order_id(exists=lambda code: type(self).objects.filter(order_id=code).exists())
        super().save(*args, **kwargs)
        for attr in ("_status_change_source", "_status_change_note"):
            if hasattr(self, attr):
                delattr(self, attr)
        if is_new:
            self.last_status_change = OrderStatusChange.objects.create(
                order=self, status=self.status, source=source or "initial", note=note or ""
            )
        elif should_track_status and prev and prev["status"] != self.status:
            self.last_status_change = OrderStatusChange.objects.create(
                order=self, status=self.status, source=source or "", note=note or ""
            )

    def set_status(self, status: str, *, source: str | None = None, note: str = "", fields=()) -> None:
        self.status = status
        if source:
            self._status_change_source = source
        if note:
            self._status_change_note = note[:200]
        self.save(update_fields=["status", *fields, "updated_at"])

    @property
    def is_terminal(self) -> bool:
        return self.status in self.TERMINAL


class OrderItem(BaseModel):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="items")
    menu_item = models.ForeignKey("canteens.MenuItem", on_delete=models.SET_NULL, null=True)
    name = models.CharField(max_length=100)
    price = models.DecimalField(max_digits=8, decimal_places=2)
    quantity = models.PositiveSmallIntegerField(validators=[MinValueValidator(1), MaxValueValidator(10)])

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity


class OrderStatusChange(BaseModel):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="status_changes")
    status = models.CharField(max_length=20, choices=Order.STATUS_CHOICES)
    source = models.CharField(max_length=32, blank=True)
    note = models.CharField(max_length=200, blank=True)

    class Meta:
        indexes = [
            models.Index(fields=["order", "created_at"], name="orders_status_change_idx"),
        ]
        ordering = ["created_at"]


class Review(BaseModel):
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="reviews")
    canteen = models.ForeignKey("canteens.Canteen", on_delete=models.CASCADE, related_name="reviews")
    order = models.OneToOneField(Order, on_delete=models.CASCADE, related_name="review")
    rating = models.PositiveSmallIntegerField(validators=[MinValueValidator(1), MaxValueValidator(5)])
    comment = models.CharField(max_length=500, blank=True)

    class Meta:
        indexes = [models.Index(fields=["canteen", "created_at"], name="orders_review_canteen_idx")]
