from __future__ import annotations

from typing import Any

from .models import Order, OrderItem, Review


def _iso(value):
    return value.isoformat() if value else None


def serialize_item(item: OrderItem) -> dict[str, Any]:
    return {
        "menu_item_id": str(item.menu_item_id) if item.menu_item_id else None,
        "name": item.name,
        "price": float(item.price),
        "quantity": item.quantity,
        "line_total": float(item.line_total),
    }


def serialize_order(order: Order, *, with_history: bool = False, with_customer: bool = False) -> dict[str, Any]:
    data = {
        "id": str(order.id),
        "order_id": order.order_id,
        "canteen": {"id": str(order.canteen_id), "name": order.canteen.name},
        "items": [serialize_item(i) for i in order.items.all()],
        "item_total": float(order.item_total),
        "tax": float(order.tax),
        "delivery_fee": float(order.delivery_fee),
        "total_amount": float(order.total_amount),
        "status": order.status,
        "payment_status": order.payment_status,
        "payment_method": order.payment_method,
        "special_instructions": order.special_instructions,
        "cancel_reason": order.cancel_reason or None,
        "is_reviewed": order.is_reviewed,
        "paid_at": _iso(order.paid_at),
        "created_at": order.created_at.isoformat(),
        "updated_at": order.updated_at.isoformat(),
    }
    if order.refund_amount is not None:
        data["refund"] = {
            "amount": float(order.refund_amount),
            "reason": order.refund_reason,
            "refunded_at": _iso(order.refunded_at),
        }
    if with_customer:
        data["customer"] = {"id": str(order.user_id), "name": order.user.name, "phone": order.user.phone}
    if with_history:
        data["history"] = [
            {"status": c.status, "source": c.source, "note": c.note, "at": c.created_at.isoformat()}
            for c in order.status_changes.all()
        ]
        data["admin_overrides"] = order.admin_overrides
    return data


def serialize_review(review: Review) -> dict[str, Any]:
    return {
        "id": str(review.id),
        "order_id": review.order.order_id,
        "canteen_id": str(review.canteen_id),
        "user": {"id": str(review.user_id), "name": review.user.name},
        "rating": review.rating,
        "comment": review.comment,
        "created_at": review.created_at.isoformat(),
    }
