from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from django import forms

from apps.common.forms import PartialForm

from .models import Canteen

Q_MIN, Q_MAX = 2, 100


@dataclass(slots=True)
class SearchQuery:
    text: str
    limit: int = 20


class SearchQueryForm(forms.Form):
    q = forms.CharField(min_length=Q_MIN, max_length=Q_MAX)
    limit = forms.IntegerField(required=False, min_value=1, max_value=50)

    def to_query(self) -> SearchQuery:
        if not self.is_valid():
            raise ValueError("Form must be valid before to_query().")
        return SearchQuery(text=self.cleaned_data["q"].strip(), limit=self.cleaned_data.get("limit") or 20)


def _clean_tags(value: Any) -> list[str]:
    if value in (None, ""):
        return []
    if not isinstance(value, list) or not all(isinstance(t, str) for t in value):
        raise forms.ValidationError("Tags must be a list of strings")
    tags = [t.strip() for t in value if t.strip()]
    if len(tags) > 10:
        raise forms.ValidationError("At most 10 tags")
    return tags


class CanteenUpdateForm(PartialForm):
    clearable = ("description", "image", "address")

    name = forms.CharField(min_length=2, max_length=100)
    description = forms.CharField(max_length=300)
    image = forms.URLField(max_length=500)
    tags = forms.JSONField()
    address = forms.CharField(max_length=255)
    preparation_time = forms.CharField(max_length=20)
    price_range = forms.ChoiceField(choices=Canteen.PRICE_RANGE_CHOICES)

    def clean_tags(self) -> list[str]:
        return _clean_tags(self.cleaned_data.get("tags"))


class AdminCanteenUpdateForm(CanteenUpdateForm):
    is_open = forms.NullBooleanField()
    is_approved = forms.NullBooleanField()


class MenuItemForm(forms.Form):
    name = forms.CharField(min_length=2, max_length=100)
    description = forms.CharField(required=False, max_length=300)
    price = forms.DecimalField(min_value=Decimal("0"), max_digits=8, decimal_places=2)
    image = forms.URLField(required=False, max_length=500)
    is_veg = forms.NullBooleanField(required=False)
    in_stock = forms.NullBooleanField(required=False)
    category = forms.CharField(required=False, max_length=50)
    preparation_time = forms.IntegerField(required=False, min_value=1, max_value=180)

    def clean_category(self) -> str:
        return (self.cleaned_data.get("category") or "").strip() or "Mains"


class MenuItemUpdateForm(PartialForm):
    clearable = ("description", "image")

    name = forms.CharField(min_length=2, max_length=100)
    description = forms.CharField(max_length=300)
    price = forms.DecimalField(min_value=Decimal("0"), max_digits=8, decimal_places=2)
    image = forms.URLField(max_length=500)
    is_veg = forms.NullBooleanField()
    in_stock = forms.NullBooleanField()
    category = forms.CharField(max_length=50)
    preparation_time = forms.IntegerField(min_value=1, max_value=180)
