from __future__ import annotations

from typing import Any

from .models import Canteen, MenuItem


def serialize_canteen(canteen: Canteen) -> dict[str, Any]:
    return {
        "id": str(canteen.id),
        "name": canteen.name,
        "description": canteen.description,
        "image": canteen.image,
        "tags": canteen.tags or [],
        "address": canteen.address,
        "is_open": canteen.is_open,
        "is_approved": canteen.is_approved,
        "preparation_time": canteen.preparation_time,
        "price_range": canteen.price_range,
        "rating": float(canteen.rating),
        "total_ratings": canteen.total_ratings,
        "rating_breakdown": canteen.rating_breakdown or {},
        "owner_id": str(canteen.owner_id) if canteen.owner_id else None,
    }


def serialize_menu_item(item: MenuItem, *, with_canteen: bool = False) -> dict[str, Any]:
    data = {
        "id": str(item.id),
        "canteen_id": str(item.canteen_id),
        "name": item.name,
        "description": item.description,
        "price": float(item.price),
        "image": item.image,
        "is_veg": item.is_veg,
        "in_stock": item.in_stock,
        "category": item.category,
        "preparation_time": item.preparation_time,
    }
    if with_canteen:
        data["canteen"] = {"id": str(item.canteen_id), "name": item.canteen.name}
    return data


def group_by_category(items) -> list[dict[str, Any]]:
    groups: dict[str, list] = {}
    for item in items:
        groups.setdefault(item.category or MenuItem.DEFAULT_CATEGORY, []).append(serialize_menu_item(item))
    return [{"category": name, "items": rows} for name, rows in groups.items()]
