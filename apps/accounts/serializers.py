from __future__ import annotations

from typing import Any

from .models import User


def _iso(dt) -> str | None:
    return dt.isoformat() if dt else None


def serialize_user(user: User) -> dict[str, Any]:
    canteen = getattr(user, "canteen", None)
    return {
        "id": str(user.id),
        "name": user.name,
        "email": user.email,
        "phone": user.phone,
        "role": user.role,
        "is_active": user.is_active,
        "is_approved": user.is_approved,
        "canteen_id": str(canteen.id) if canteen is not None else None,
        "is_phone_verified": user.is_phone_verified,
        "email_verified_at": _iso(user.email_verified_at),
        "phone_verified_at": _iso(user.phone_verified_at),
        "is_grandfathered": user.is_grandfathered,
        "created_at": _iso(user.created_at),
    }
