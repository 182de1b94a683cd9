from __future__ import annotations

import uuid
from decimal import Decimal

from django import forms
from django.conf import settings

from .models import Order
from .services import LineRequest


class CreateOrderForm(forms.Form):
    canteen_id = forms.UUIDField()
    items = forms.JSONField()
    special_instructions = forms.CharField(required=False, max_length=500)
    payment_method = forms.ChoiceField(required=False, choices=Order.PAYMENT_METHOD_CHOICES)

    def clean_items(self) -> list[LineRequest]:
        raw = self.cleaned_data.get("items")
        if not isinstance(raw, list) or not raw:
            raise forms.ValidationError("Order must contain at least one item")
        max_qty = settings.ORDER_MAX_ITEM_QTY
        merged: dict[uuid.UUID, int] = {}
        for entry in raw:
            if not isinstance(entry, dict):
                raise forms.ValidationError("Each item must be an object")
            try:
                item_id = uuid.UUID(str(entry.get("menu_item_id") or entry.get("item_id")))
            except ValueError:
                raise forms.ValidationError("Invalid menu item id")
            quantity = entry.get("quantity")
            if isinstance(quantity, bool) or not isinstance(quantity, int) or not 1 <= quantity <= max_qty:
                raise forms.ValidationError(f"Quantity must be between 1 and {max_qty}")
            merged[item_id] = merged.get(item_id, 0) + quantity
            if merged[item_id] > max_qty:
                raise forms.ValidationError(f"Quantity must be between 1 and {max_qty}")
        return [LineRequest(menu_item_id=k, quantity=v) for k, v in merged.items()]

    def clean_payment_method(self) -> str:
        return self.cleaned_data.get("payment_method") or Order.METHOD_GATEWAY


class VerifyPaymentForm(forms.Form):
    order_id = forms.CharField(max_length=64)
    razorpay_order_id = forms.CharField(max_length=64)
    razorpay_payment_id = forms.CharField(max_length=64)
    razorpay_signature = forms.CharField(max_length=128)


class DevConfirmForm(forms.Form):
    order_id = forms.CharField(max_length=64)


class CancelForm(forms.Form):
    reason = forms.CharField(required=False, max_length=255)


class PartnerStatusForm(forms.Form):
    status = forms.ChoiceField(choices=[(s, s) for s in [*Order.FLOW, Order.STATUS_CANCELLED]])
    note = forms.CharField(required=False, max_length=200)
    reason = forms.CharField(required=False, max_length=255)


class AdminStatusForm(forms.Form):
    status = forms.ChoiceField(choices=Order.STATUS_CHOICES)
    reason = forms.CharField(required=False, max_length=255)


class RefundForm(forms.Form):
    amount = forms.DecimalField(required=False, min_value=Decimal("0.01"), max_digits=10, decimal_places=2)
    reason = forms.CharField(max_length=255)


class PaymentStatusForm(forms.Form):
    payment_status = forms.ChoiceField(choices=Order.PAYMENT_STATUS_CHOICES)
    reason = forms.CharField(max_length=255)


class ReassignForm(forms.Form):
    canteen_id = forms.UUIDField()
    reason = forms.CharField(max_length=255)


class ReviewForm(forms.Form):
    order_id = forms.CharField(max_length=64)
    rating = forms.IntegerField(min_value=1, max_value=5)
    comment = forms.CharField(required=False, max_length=500)
