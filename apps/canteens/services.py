from __future__ import annotations

from django.db.models import Q, QuerySet

from apps.common.errors import NotFound

from .forms import SearchQuery
from .models import Canteen, MenuItem


def public_canteens() -> QuerySet[Canteen]:
    return Canteen.objects.filter(is_open=True, is_approved=True)


def listed_canteens() -> QuerySet[Canteen]:
    return public_canteens().order_by("-rating", "name")


def partner_canteen(user) -> Canteen:
    canteen = Canteen.objects.filter(owner=user).first()
    if canteen is None:
        raise NotFound("Canteen not found")
    return canteen


def can_manage(user, canteen: Canteen) -> bool:
    if not getattr(user, "is_authenticated", False):
        return False
    return user.role == "admin" or canteen.owner_id == user.pk


def menu_items(canteen: Canteen, *, include_out_of_stock: bool = False) -> QuerySet[MenuItem]:
    qs = canteen.menu_items.all()
    if not include_out_of_stock:
        qs = qs.filter(in_stock=True)
    return qs.order_by("category", "name")


def items_by_category(category: str) -> QuerySet[MenuItem]:
    return (
        MenuItem.objects.select_related("canteen")
        .filter(category__iexact=category.strip(), in_stock=True, canteen__in=public_canteens())
        .order_by("name")
    )


def search(query: SearchQuery) -> dict[str, list]:
    text = query.text
    canteens = list(
        public_canteens()
        .filter(Q(name__icontains=text) | Q(description__icontains=text))
        .order_by("-rating", "name")[: query.limit]
    )
    items = list(
        MenuItem.objects.select_related("canteen")
        .filter(in_stock=True, canteen__in=public_canteens())
        .filter(Q(name__icontains=text) | Q(category__icontains=text))
        .order_by("name")[: query.limit]
    )
    return {"canteens": canteens, "items": items}
